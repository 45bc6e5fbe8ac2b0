import asyncio
import datetime as dt
import logging
from uuid import uuid4

from fastapi import (
    APIRouter,
    BackgroundTasks,
    Depends,
    Header,
    HTTPException,
    Query,
    Request,
    WebSocket,
    WebSocketDisconnect,
    status,
)
from sqlalchemy.orm import Session

from src.api.schemas.schemas import (
    BookingCreateRequest,
    BookingListResponse,
    BookingResponse,
    CarerSummary,
    ClientSummary,
    LatestBookingResponse,
    NotificationResponse,
    PaymentOrderResponse,
    PaymentStatusResponse,
    PushTokenRequest,
    PushTokenResponse,
    RazorpayVerifyRequest,
    StatusUpdateRequest,
    WebhookAckResponse,
    WeeklyEarningsResponse,
)
from src.application.booking_service import BookingService
from src.application.notification_dispatcher import NotificationDispatcher
from src.application.payment_service import PaymentService
from src.application.realtime_broadcaster import RealtimeBroadcaster
from src.application.side_effects import BackgroundSideEffectRunner, SideEffectRunner
from src.domain.actors import Actor, AdminActor, CarerActor, ClientActor, actor_from_claims
from src.domain.exceptions import (
    AlreadySettledError,
    CareBookingError,
    ForbiddenError,
    InvalidSignatureError,
    InvalidStateTransitionError,
    NotFoundError,
    PaymentNotAllowedError,
)
from src.domain.state_machine import BookingStatus
from src.infrastructure.db.models import Booking
from src.infrastructure.db.session import get_db_session
from src.infrastructure.notifications.email import ResendEmailSender
from src.infrastructure.notifications.push import FirebasePushSender
from src.infrastructure.payments.razorpay_gateway import (
    PaymentGatewayNotConfigured,
    RazorpayGateway,
)
from src.infrastructure.realtime.registry import ConnectionRegistry, WebSocketSession


router = APIRouter()
logger = logging.getLogger(__name__)

_ERROR_STATUS = {
    NotFoundError: status.HTTP_404_NOT_FOUND,
    ForbiddenError: status.HTTP_403_FORBIDDEN,
    InvalidStateTransitionError: status.HTTP_409_CONFLICT,
    InvalidSignatureError: status.HTTP_400_BAD_REQUEST,
    AlreadySettledError: status.HTTP_409_CONFLICT,
    PaymentNotAllowedError: status.HTTP_409_CONFLICT,
}


# -----------------------------
# Dependencies
# -----------------------------
def get_db():
    with get_db_session() as db:
        yield db


def get_registry(request: Request) -> ConnectionRegistry:
    return request.app.state.connection_registry


def get_email_sender() -> ResendEmailSender:
    return ResendEmailSender()


def get_push_sender() -> FirebasePushSender:
    return FirebasePushSender()


def get_payment_gateway() -> RazorpayGateway:
    return RazorpayGateway()


def get_side_effects(background_tasks: BackgroundTasks) -> SideEffectRunner:
    return BackgroundSideEffectRunner(background_tasks)


def get_booking_service(
    db: Session = Depends(get_db),
    registry: ConnectionRegistry = Depends(get_registry),
    email_sender=Depends(get_email_sender),
    push_sender=Depends(get_push_sender),
    side_effects: SideEffectRunner = Depends(get_side_effects),
) -> BookingService:
    return BookingService(
        db,
        notifier=NotificationDispatcher(email_sender, push_sender),
        broadcaster=RealtimeBroadcaster(registry),
        side_effects=side_effects,
    )


def get_payment_service(
    db: Session = Depends(get_db),
    registry: ConnectionRegistry = Depends(get_registry),
    gateway: RazorpayGateway = Depends(get_payment_gateway),
    side_effects: SideEffectRunner = Depends(get_side_effects),
) -> PaymentService:
    return PaymentService(
        db,
        gateway=gateway,
        broadcaster=RealtimeBroadcaster(registry),
        side_effects=side_effects,
    )


def get_actor(
    x_actor_id: int = Header(...),
    x_actor_role: str = Header(...),
) -> Actor:
    # Identity is verified upstream; we only type it.
    try:
        return actor_from_claims(x_actor_role, x_actor_id)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Unknown actor role {x_actor_role!r}",
        ) from exc


def require_carer(actor: Actor = Depends(get_actor)) -> CarerActor:
    if not isinstance(actor, CarerActor):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Carer access only")
    return actor


def require_client(actor: Actor = Depends(get_actor)) -> ClientActor:
    if not isinstance(actor, ClientActor):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Client access only")
    return actor


def require_admin(actor: Actor = Depends(get_actor)) -> AdminActor:
    if not isinstance(actor, AdminActor):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access only")
    return actor


# -----------------------------
# Helpers
# -----------------------------
def _http_error(exc: CareBookingError) -> HTTPException:
    for error_type, status_code in _ERROR_STATUS.items():
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=str(exc))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


def _booking_response(
    booking: Booking,
    include_carer: bool = False,
    include_client: bool = False,
) -> BookingResponse:
    carer = None
    if include_carer and booking.carer is not None:
        carer = CarerSummary(
            id=booking.carer.id,
            name=booking.carer.full_name,
            email=booking.carer.email,
            postcode=booking.carer.postcode,
            city=booking.carer.city,
            charge_hrs=booking.carer.charge_hrs,
        )

    client = None
    if include_client and booking.client is not None:
        client = ClientSummary(
            id=booking.client.id,
            name=booking.client.full_name,
            email=booking.client.email,
            phone=booking.client.phone,
            postcode=booking.client.postcode,
        )

    return BookingResponse(
        id=booking.id,
        client_id=booking.client_id,
        carer_id=booking.carer_id,
        service_type=booking.service_type,
        service_hrs=booking.service_hrs,
        date=booking.date,
        time=booking.time,
        location=booking.location,
        notes=booking.notes,
        status=booking.status,
        total_cost=booking.total_cost if booking.status == BookingStatus.COMPLETED else None,
        payment_status=booking.payment_status,
        created_at=booking.created_at,
        carer=carer,
        client=client,
    )


@router.get("/health")
def health():
    return {"message": "Care Booking Engine is running"}


# -----------------------------
# Bookings
# -----------------------------
@router.post(
    "/bookings",
    response_model=BookingResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_booking(
    request: BookingCreateRequest,
    client: ClientActor = Depends(require_client),
    service: BookingService = Depends(get_booking_service),
):
    try:
        booking = service.create_booking(
            client=client,
            carer_id=request.carer_id,
            service_type=request.service_type,
            service_hrs=request.service_hrs,
            date=request.date,
            time=request.time,
            location=request.location,
            notes=request.notes,
        )
    except CareBookingError as exc:
        raise _http_error(exc) from exc

    return _booking_response(booking)


@router.get("/bookings", response_model=BookingListResponse)
def list_all_bookings(
    _admin: AdminActor = Depends(require_admin),
    service: BookingService = Depends(get_booking_service),
):
    bookings = service.list_all_bookings()
    return BookingListResponse(
        count=len(bookings),
        bookings=[
            _booking_response(b, include_carer=True, include_client=True)
            for b in bookings
        ],
    )


@router.get("/bookings/client", response_model=BookingListResponse)
def list_client_bookings(
    client: ClientActor = Depends(require_client),
    service: BookingService = Depends(get_booking_service),
):
    bookings = service.list_client_bookings(client.id)
    return BookingListResponse(
        count=len(bookings),
        bookings=[_booking_response(b, include_carer=True) for b in bookings],
    )


@router.get("/bookings/carer", response_model=BookingListResponse)
def list_carer_bookings(
    carer: CarerActor = Depends(require_carer),
    service: BookingService = Depends(get_booking_service),
):
    bookings = service.list_carer_bookings(carer.id)
    return BookingListResponse(
        count=len(bookings),
        bookings=[_booking_response(b, include_client=True) for b in bookings],
    )


@router.get("/bookings/carer/latest", response_model=LatestBookingResponse)
def latest_carer_booking(
    carer: CarerActor = Depends(require_carer),
    service: BookingService = Depends(get_booking_service),
):
    booking = service.latest_carer_booking(carer.id)
    if booking is None:
        return LatestBookingResponse(message="No bookings yet", upcoming=None)

    return LatestBookingResponse(
        message="Latest booking retrieved",
        upcoming=_booking_response(booking, include_carer=True, include_client=True),
    )


@router.get("/bookings/notifications", response_model=list[NotificationResponse])
def list_carer_notifications(
    carer: CarerActor = Depends(require_carer),
    service: BookingService = Depends(get_booking_service),
):
    return [
        NotificationResponse(
            id=item.id,
            message=item.message,
            is_read=item.is_read,
            created_at=item.created_at,
        )
        for item in service.list_carer_notifications(carer.id)
    ]


@router.put("/bookings/{booking_id}/status", response_model=BookingResponse)
def update_booking_status(
    booking_id: int,
    request: StatusUpdateRequest,
    carer: CarerActor = Depends(require_carer),
    service: BookingService = Depends(get_booking_service),
):
    try:
        booking = service.transition(
            booking_id=booking_id,
            acting_carer_id=carer.id,
            requested_status=request.status,
        )
    except CareBookingError as exc:
        raise _http_error(exc) from exc

    return _booking_response(booking)


@router.put("/admin/bookings/{booking_id}/status", response_model=BookingResponse)
def admin_update_booking_status(
    booking_id: int,
    request: StatusUpdateRequest,
    admin: AdminActor = Depends(require_admin),
    service: BookingService = Depends(get_booking_service),
):
    try:
        booking = service.admin_override(
            booking_id=booking_id,
            requested_status=request.status,
        )
    except CareBookingError as exc:
        raise _http_error(exc) from exc

    logger.info("Admin %s set booking %s to %s", admin.id, booking_id, request.status.value)
    return _booking_response(booking)


# -----------------------------
# Carers
# -----------------------------
@router.put("/carers/me/fcm-token", response_model=PushTokenResponse)
def update_carer_fcm_token(
    request: PushTokenRequest,
    carer: CarerActor = Depends(require_carer),
    service: BookingService = Depends(get_booking_service),
):
    try:
        service.register_push_token(carer.id, request.fcm_token)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except CareBookingError as exc:
        raise _http_error(exc) from exc

    return PushTokenResponse(message="FCM token updated successfully", carer_id=carer.id)


@router.get("/carers/me/earnings/weekly", response_model=WeeklyEarningsResponse)
def weekly_earnings(
    on: dt.date | None = Query(default=None),
    carer: CarerActor = Depends(require_carer),
    service: BookingService = Depends(get_booking_service),
):
    earnings = service.weekly_earnings(carer.id, on or dt.date.today())
    return WeeklyEarningsResponse(
        total_earnings=earnings.total_earnings,
        currency="GBP",
        week_start=earnings.week_start,
        week_end=earnings.week_end,
        count=len(earnings.bookings),
        bookings=[_booking_response(b) for b in earnings.bookings],
    )


# -----------------------------
# Payments
# -----------------------------
@router.post("/payments/bookings/{booking_id}/order", response_model=PaymentOrderResponse)
def create_payment_order(
    booking_id: int,
    client: ClientActor = Depends(require_client),
    service: PaymentService = Depends(get_payment_service),
):
    try:
        order = service.initiate_payment(booking_id=booking_id, client_id=client.id)
    except PaymentGatewayNotConfigured as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(exc),
        ) from exc
    except CareBookingError as exc:
        raise _http_error(exc) from exc

    return PaymentOrderResponse(
        booking_id=order.booking_id,
        order_id=order.order_id,
        amount=order.amount_minor,
        currency=order.currency,
        total_cost=order.total_cost,
        key_id=order.key_id,
    )


@router.post("/payments/bookings/{booking_id}/verify", response_model=PaymentStatusResponse)
def verify_payment(
    booking_id: int,
    request: RazorpayVerifyRequest,
    client: ClientActor = Depends(require_client),
    service: PaymentService = Depends(get_payment_service),
):
    try:
        result = service.confirm_payment(
            booking_id=booking_id,
            client_id=client.id,
            order_id=request.razorpay_order_id,
            payment_id=request.razorpay_payment_id,
            signature=request.razorpay_signature,
        )
    except PaymentGatewayNotConfigured as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(exc),
        ) from exc
    except CareBookingError as exc:
        raise _http_error(exc) from exc

    return PaymentStatusResponse(
        booking_id=result.booking.id,
        status=result.booking.status,
        payment_status=result.booking.payment_status,
        settled=result.settled,
    )


async def get_raw_body(request: Request) -> bytes:
    # Signature covers the exact bytes; read before any parsing.
    return await request.body()


@router.post("/payments/webhook", response_model=WebhookAckResponse)
def payment_webhook(
    raw_body: bytes = Depends(get_raw_body),
    x_razorpay_signature: str | None = Header(default=None),
    service: PaymentService = Depends(get_payment_service),
):
    try:
        outcome = service.handle_webhook(raw_body, x_razorpay_signature)
    except InvalidSignatureError as exc:
        logger.warning("Payment webhook rejected: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Webhook Error: {exc}",
        ) from exc
    except PaymentGatewayNotConfigured as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(exc),
        ) from exc

    return WebhookAckResponse(received=True, outcome=outcome)


# -----------------------------
# Live updates
# -----------------------------
@router.websocket("/ws")
async def live_updates(
    websocket: WebSocket,
    role: str = Query(...),
    party_id: int = Query(...),
):
    registry: ConnectionRegistry = websocket.app.state.connection_registry
    try:
        actor = actor_from_claims(role, party_id)
    except ValueError:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    session = WebSocketSession(
        session_id=str(uuid4()),
        websocket=websocket,
        loop=asyncio.get_running_loop(),
    )
    # Sends published before accept() completes fail and are logged by the session.
    registry.connect(actor.party_key, session)
    try:
        await websocket.accept()
        while True:
            # Clients only listen; inbound frames keep the socket alive.
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        registry.disconnect(actor.party_key, session.session_id)
