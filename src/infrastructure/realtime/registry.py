# src/infrastructure/realtime/registry.py

import asyncio
import concurrent.futures
import logging
import threading
from typing import Any, Protocol

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class LiveSession(Protocol):
    session_id: str

    def deliver(self, message: dict[str, Any]) -> None:
        ...


class WebSocketSession:
    """
    A connected websocket plus the event loop that owns it.
    deliver() may be called from any thread and never waits.
    """

    def __init__(
        self,
        session_id: str,
        websocket: WebSocket,
        loop: asyncio.AbstractEventLoop,
    ):
        self.session_id = session_id
        self.websocket = websocket
        self.loop = loop

    def deliver(self, message: dict[str, Any]) -> concurrent.futures.Future:
        future = asyncio.run_coroutine_threadsafe(
            self.websocket.send_json(message),
            self.loop,
        )
        future.add_done_callback(self._log_failure)
        return future

    def _log_failure(self, future) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.warning("Live session %s dropped a message: %s", self.session_id, exc)


class ConnectionRegistry:
    """
    Party key -> live sessions, updated on connect/disconnect.
    Safe to use from request threads and the event loop alike.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._sessions: dict[str, dict[str, LiveSession]] = {}

    def connect(self, party_key: str, session: LiveSession) -> None:
        with self._lock:
            self._sessions.setdefault(party_key, {})[session.session_id] = session
        logger.info("Live session %s connected for %s", session.session_id, party_key)

    def disconnect(self, party_key: str, session_id: str) -> None:
        with self._lock:
            sessions = self._sessions.get(party_key)
            if not sessions:
                return
            sessions.pop(session_id, None)
            if not sessions:
                del self._sessions[party_key]
        logger.info("Live session %s disconnected for %s", session_id, party_key)

    def sessions(self) -> list[LiveSession]:
        with self._lock:
            return [
                session
                for party_sessions in self._sessions.values()
                for session in party_sessions.values()
            ]

    def __len__(self) -> int:
        with self._lock:
            return sum(len(s) for s in self._sessions.values())
