import datetime as dt
from decimal import Decimal

from pydantic import BaseModel, Field

from src.domain.state_machine import BookingStatus, PaymentStatus


class BookingCreateRequest(BaseModel):
    carer_id: int
    service_type: str = Field(min_length=1, max_length=64)
    service_hrs: Decimal | None = Field(default=None, ge=0)
    date: dt.date
    time: str = Field(min_length=1, max_length=16)
    location: str | None = None
    notes: str | None = None


class StatusUpdateRequest(BaseModel):
    status: BookingStatus


class CarerSummary(BaseModel):
    id: int
    name: str
    email: str
    postcode: str | None = None
    city: str | None = None
    charge_hrs: Decimal | None = None


class ClientSummary(BaseModel):
    id: int
    name: str
    email: str
    phone: str | None = None
    postcode: str | None = None


class BookingResponse(BaseModel):
    id: int
    client_id: int
    carer_id: int
    service_type: str
    service_hrs: Decimal | None = None
    date: dt.date
    time: str
    location: str
    notes: str | None = None
    status: BookingStatus
    total_cost: Decimal | None = None
    payment_status: PaymentStatus
    created_at: dt.datetime | None = None
    carer: CarerSummary | None = None
    client: ClientSummary | None = None


class BookingListResponse(BaseModel):
    count: int
    bookings: list[BookingResponse]


class LatestBookingResponse(BaseModel):
    message: str
    upcoming: BookingResponse | None = None


class NotificationResponse(BaseModel):
    id: int
    message: str
    is_read: bool
    created_at: dt.datetime | None = None


class PushTokenRequest(BaseModel):
    fcm_token: str = Field(min_length=1)


class PushTokenResponse(BaseModel):
    message: str
    carer_id: int


class WeeklyEarningsResponse(BaseModel):
    total_earnings: Decimal
    currency: str
    week_start: dt.date
    week_end: dt.date
    count: int
    bookings: list[BookingResponse]


class PaymentOrderResponse(BaseModel):
    booking_id: int
    order_id: str
    amount: int
    currency: str
    total_cost: Decimal
    key_id: str | None = None


class RazorpayVerifyRequest(BaseModel):
    razorpay_order_id: str
    razorpay_payment_id: str
    razorpay_signature: str


class PaymentStatusResponse(BaseModel):
    booking_id: int
    status: BookingStatus
    payment_status: PaymentStatus
    settled: bool


class WebhookAckResponse(BaseModel):
    received: bool
    outcome: str
