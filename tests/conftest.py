import datetime as dt
import os
from decimal import Decimal

os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from fastapi.testclient import TestClient

from src.api.routes import routes
from src.application.booking_service import BookingService
from src.application.notification_dispatcher import NotificationDispatcher
from src.application.payment_service import PaymentService
from src.application.realtime_broadcaster import RealtimeBroadcaster
from src.application.side_effects import SideEffectRunner
from src.domain.actors import ClientActor
from src.infrastructure.db.models import Base, Carer, Client
from src.infrastructure.db.session import build_engine, build_session_factory, get_db_session
from src.infrastructure.realtime.registry import ConnectionRegistry
from src.main import app
from support import (
    FakeEmailSender,
    FakeGateway,
    FakePushSender,
    RecordingErrorSink,
    RecordingSession,
)


@pytest.fixture
def engine():
    engine = build_engine("sqlite+pysqlite://")
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def email_sender():
    return FakeEmailSender()


@pytest.fixture
def push_sender():
    return FakePushSender()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def registry():
    return ConnectionRegistry()


@pytest.fixture
def live_session(registry):
    session = RecordingSession("live-1")
    registry.connect("client:1", session)
    return session


@pytest.fixture
def error_sink():
    return RecordingErrorSink()


@pytest.fixture
def booking_service(db, email_sender, push_sender, registry, error_sink):
    return BookingService(
        db,
        notifier=NotificationDispatcher(email_sender, push_sender, brand_name="Reigna Care"),
        broadcaster=RealtimeBroadcaster(registry),
        side_effects=SideEffectRunner(error_sink),
    )


@pytest.fixture
def payment_service(db, gateway, registry, error_sink):
    return PaymentService(
        db,
        gateway=gateway,
        broadcaster=RealtimeBroadcaster(registry),
        side_effects=SideEffectRunner(error_sink),
        currency="GBP",
    )


@pytest.fixture
def carer(db):
    carer = Carer(
        full_name="Amara Okafor",
        email="amara@example.com",
        charge_hrs=Decimal("20.00"),
        postcode="SW1A 1AA",
        city="London",
        fcm_token="fcm-token-amara",
    )
    db.add(carer)
    db.commit()
    return carer


@pytest.fixture
def other_carer(db):
    carer = Carer(
        full_name="Tomasz Nowak",
        email="tomasz@example.com",
        charge_hrs=Decimal("18.50"),
        postcode="M1 1AE",
    )
    db.add(carer)
    db.commit()
    return carer


@pytest.fixture
def care_client(db):
    client = Client(
        full_name="Margaret Hughes",
        email="margaret@example.com",
        phone="+44 20 7946 0018",
        postcode="SW1A 2AA",
    )
    db.add(client)
    db.commit()
    return client


@pytest.fixture
def make_booking(booking_service, carer, care_client):
    def _make(hours=Decimal("3"), **overrides):
        params = {
            "client": ClientActor(care_client.id),
            "carer_id": carer.id,
            "service_type": "Companionship",
            "date": dt.date(2026, 10, 21),
            "time": "09:00",
            "service_hrs": hours,
        }
        params.update(overrides)
        return booking_service.create_booking(**params)

    return _make


@pytest.fixture
def client(session_factory, email_sender, push_sender, gateway, registry):
    def _get_db():
        with get_db_session(session_factory) as session:
            yield session

    app.dependency_overrides[routes.get_db] = _get_db
    app.dependency_overrides[routes.get_email_sender] = lambda: email_sender
    app.dependency_overrides[routes.get_push_sender] = lambda: push_sender
    app.dependency_overrides[routes.get_payment_gateway] = lambda: gateway
    app.state.connection_registry = registry

    yield TestClient(app)

    app.dependency_overrides.clear()

