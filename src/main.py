import logging

from fastapi import FastAPI

from src.api.routes.routes import router
from src.infrastructure import settings
from src.infrastructure.db.models import Base
from src.infrastructure.db.session import engine, wait_for_database
from src.infrastructure.realtime.registry import ConnectionRegistry

logger = logging.getLogger(__name__)

app = FastAPI(title="Care Booking Engine")
app.include_router(router)

# One registry per process; websocket handlers and request threads share it.
app.state.connection_registry = ConnectionRegistry()


@app.on_event("startup")
def on_startup() -> None:
    # The API container often starts before Postgres accepts connections.
    wait_for_database(
        engine,
        max_retries=settings.DB_CONNECT_MAX_RETRIES,
        retry_delay=settings.DB_CONNECT_RETRY_DELAY,
    )
    Base.metadata.create_all(bind=engine)
    logger.info("Care Booking Engine started")
