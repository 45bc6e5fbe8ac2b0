# src/infrastructure/notifications/push.py

import logging
import threading

import firebase_admin
from firebase_admin import credentials, exceptions, messaging

from src.domain.exceptions import DependencyFailure
from src.infrastructure import settings

logger = logging.getLogger(__name__)

_init_lock = threading.Lock()


def _ensure_firebase_app() -> firebase_admin.App:
    with _init_lock:
        try:
            return firebase_admin.get_app()
        except ValueError:
            options = {"projectId": settings.FIREBASE_PROJECT_ID}
            if settings.FIREBASE_CREDENTIALS_PATH:
                cred = credentials.Certificate(settings.FIREBASE_CREDENTIALS_PATH)
            else:
                cred = credentials.ApplicationDefault()
            app = firebase_admin.initialize_app(cred, options)
            logger.info("Firebase Admin initialized for project %s", settings.FIREBASE_PROJECT_ID)
            return app


class FirebasePushSender:
    """Mobile push through Firebase Cloud Messaging."""

    def send(
        self,
        token: str,
        title: str,
        body: str,
        data: dict[str, str] | None = None,
    ) -> str:
        try:
            app = _ensure_firebase_app()
            message = messaging.Message(
                token=token,
                notification=messaging.Notification(title=title, body=body),
                data={key: str(value) for key, value in (data or {}).items()},
                android=messaging.AndroidConfig(priority="high"),
            )
            message_id = messaging.send(message, app=app)
        except (exceptions.FirebaseError, ValueError, OSError) as exc:
            raise DependencyFailure("push", str(exc)) from exc

        logger.info("Push notification sent message_id=%s", message_id)
        return message_id
