import os

# before any order_lifecycle import: settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("CELERY_TASK_ALWAYS_EAGER", "1")
os.environ.setdefault("MENU_SERVICE_URL", "")

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from order_lifecycle.data.database import Base
from order_lifecycle.data import models  # noqa: F401
from order_lifecycle.domain.schemas import LineItemIn, OrderCreate
from order_lifecycle.services.order_events import InMemoryOrderEvents
from order_lifecycle.services.order_service import OrderService
from order_lifecycle.services.refund_service import RefundService


class FakeClock:
    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class RecordingNotifier:
    def __init__(self):
        self.status_events = []
        self.new_orders = []

    def notify_status_change(self, event):
        self.status_events.append(event)

    def notify_new_order(self, order):
        self.new_orders.append(order)


@pytest.fixture
def engine(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'orders.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def events():
    return InMemoryOrderEvents()


@pytest.fixture
def make_service(clock, notifier, events):
    def factory(session, menu=None):
        return OrderService(
            session,
            notifier=notifier,
            events=events,
            refunds=RefundService(session, clock=clock),
            menu=menu,
            clock=clock,
        )

    return factory


@pytest.fixture
def service(db, make_service):
    return make_service(db)


@pytest.fixture
def order_payload():
    def factory(**overrides):
        data = {
            "customer_id": "cust-1",
            "restaurant_id": "rest-1",
            "restaurant_name": "Habesha Kitchen",
            "items": [
                LineItemIn(product_id="doro-wat", name="Doro Wat", price=Decimal("150"), quantity=2),
                LineItemIn(product_id="shiro", name="Shiro", price=Decimal("60"), quantity=1),
            ],
            "delivery_fee": Decimal("25"),
            "delivery_address": "Bole Road 12, Addis Ababa",
            "phone": "+251911000000",
            "payment_method": "cash",
        }
        data.update(overrides)
        return OrderCreate(**data)

    return factory
