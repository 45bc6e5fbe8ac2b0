# src/application/realtime_broadcaster.py

import logging
from typing import Any

from src.infrastructure.realtime.registry import ConnectionRegistry

logger = logging.getLogger(__name__)

BOOKING_CREATED = "booking-created"
BOOKING_UPDATED = "booking-updated"
BOOKING_PAID = "booking-paid"


class RealtimeBroadcaster:
    """Fire-and-forget publish to every live session."""

    def __init__(self, registry: ConnectionRegistry):
        self.registry = registry

    def publish(self, event_name: str, payload: dict[str, Any]) -> int:
        message = {"event": event_name, "data": payload}
        delivered = 0

        for session in self.registry.sessions():
            try:
                session.deliver(message)
            except Exception as exc:
                # A closed socket or loop is expected churn.
                logger.warning(
                    "Could not publish %s to session %s: %s",
                    event_name,
                    session.session_id,
                    exc,
                )
                continue
            delivered += 1

        logger.info("Published %s to %s live session(s)", event_name, delivered)
        return delivered
