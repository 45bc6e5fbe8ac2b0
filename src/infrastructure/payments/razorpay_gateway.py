# src/infrastructure/payments/razorpay_gateway.py

import razorpay

from src.domain.exceptions import InvalidSignatureError
from src.infrastructure import settings


class PaymentGatewayNotConfigured(RuntimeError):
    """Raised when Razorpay credentials are missing."""


class RazorpayGateway:
    """
    Thin wrapper over the Razorpay client.
    Signature failures surface as InvalidSignatureError.
    """

    def __init__(
        self,
        key_id: str | None = None,
        key_secret: str | None = None,
        webhook_secret: str | None = None,
    ):
        self.key_id = key_id or settings.RAZORPAY_KEY_ID
        self.key_secret = key_secret or settings.RAZORPAY_KEY_SECRET
        self.webhook_secret = webhook_secret or settings.RAZORPAY_WEBHOOK_SECRET
        self._client: razorpay.Client | None = None

    @property
    def client(self) -> razorpay.Client:
        if self._client is None:
            if not self.key_id or not self.key_secret:
                raise PaymentGatewayNotConfigured(
                    "Razorpay keys not configured. Set RAZORPAY_KEY_ID and RAZORPAY_KEY_SECRET."
                )
            self._client = razorpay.Client(auth=(self.key_id, self.key_secret))
        return self._client

    def create_order(
        self,
        amount_minor: int,
        currency: str,
        receipt: str,
        notes: dict[str, str],
    ) -> dict:
        return self.client.order.create(
            {
                "amount": amount_minor,
                "currency": currency,
                "receipt": receipt,
                "notes": notes,
            }
        )

    def verify_payment_signature(
        self,
        order_id: str,
        payment_id: str,
        signature: str,
    ) -> None:
        try:
            self.client.utility.verify_payment_signature(
                {
                    "razorpay_order_id": order_id,
                    "razorpay_payment_id": payment_id,
                    "razorpay_signature": signature,
                }
            )
        except razorpay.errors.SignatureVerificationError as exc:
            raise InvalidSignatureError("Invalid payment signature") from exc

    def verify_webhook_signature(self, raw_body: bytes, signature: str | None) -> None:
        if not self.webhook_secret:
            raise PaymentGatewayNotConfigured("RAZORPAY_WEBHOOK_SECRET is not configured.")
        if not signature:
            raise InvalidSignatureError("Missing webhook signature")
        # Webhook checks only need the shared secret, not API keys.
        verifier = self._client or razorpay.Client()
        try:
            # Razorpay signs the exact bytes it sent.
            verifier.utility.verify_webhook_signature(
                raw_body.decode("utf-8"),
                signature,
                self.webhook_secret,
            )
        except (razorpay.errors.SignatureVerificationError, UnicodeDecodeError) as exc:
            raise InvalidSignatureError("Invalid webhook signature") from exc
