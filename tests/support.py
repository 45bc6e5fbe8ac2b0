import hashlib
import hmac
import json

from src.infrastructure.payments.razorpay_gateway import RazorpayGateway

TEST_KEY_ID = "rzp_test_key"
TEST_KEY_SECRET = "rzp_test_secret"
TEST_WEBHOOK_SECRET = "whsec_care_test"


class FakeEmailSender:
    def __init__(self):
        self.sent = []
        self.fail_with: Exception | None = None

    def send(self, to, subject, text, html):
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append({"to": to, "subject": subject, "text": text, "html": html})


class FakePushSender:
    def __init__(self):
        self.sent = []
        self.fail_with: Exception | None = None

    def send(self, token, title, body, data=None):
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append({"token": token, "title": title, "body": body, "data": data})
        return f"projects/test/messages/{len(self.sent)}"


class FakeGateway(RazorpayGateway):
    """Real signature checks, no network for order creation."""

    def __init__(self):
        super().__init__(
            key_id=TEST_KEY_ID,
            key_secret=TEST_KEY_SECRET,
            webhook_secret=TEST_WEBHOOK_SECRET,
        )
        self.orders = []

    def create_order(self, amount_minor, currency, receipt, notes):
        order = {
            "id": f"order_{len(self.orders) + 1:04d}",
            "amount": amount_minor,
            "currency": currency,
            "receipt": receipt,
            "notes": notes,
        }
        self.orders.append(order)
        return order


class RecordingSession:
    def __init__(self, session_id):
        self.session_id = session_id
        self.messages = []

    def deliver(self, message):
        self.messages.append(message)


class RecordingErrorSink:
    def __init__(self):
        self.errors = []

    def __call__(self, name, exc):
        self.errors.append((name, exc))


def sign_checkout(order_id: str, payment_id: str, secret: str = TEST_KEY_SECRET) -> str:
    message = f"{order_id}|{payment_id}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def sign_webhook(raw_body: bytes, secret: str = TEST_WEBHOOK_SECRET) -> str:
    return hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()


def payment_captured_event(booking_id, payment_id="pay_0001", order_id="order_0001") -> bytes:
    event = {
        "entity": "event",
        "event": "payment.captured",
        "payload": {
            "payment": {
                "entity": {
                    "id": payment_id,
                    "entity": "payment",
                    "order_id": order_id,
                    "status": "captured",
                    "notes": {"booking_id": str(booking_id)},
                }
            }
        },
    }
    return json.dumps(event, separators=(",", ":")).encode("utf-8")


def actor_headers(role: str, actor_id: int) -> dict[str, str]:
    return {"X-Actor-Role": role, "X-Actor-Id": str(actor_id)}
