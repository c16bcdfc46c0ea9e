# tests/conftest.py

import os

# must be set before goalpush.core.config is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("EXPO_ACCESS_TOKEN", "")
os.environ.setdefault("MAINTENANCE_INTERVAL_SECONDS", "0")
os.environ.setdefault("LOG_LEVEL", "INFO")

import json
from datetime import datetime

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from goalpush.core.db import Base
from goalpush.models.push_token import DeviceToken  # noqa: F401
from goalpush.models.push_receipt import PushReceipt  # noqa: F401
from goalpush.models.rate_limit import PushRateLimit  # noqa: F401
from goalpush.services.dispatcher import Dispatcher
from goalpush.services.expo_gateway import ExpoGateway
from goalpush.services.receipt_reconciler import ReceiptReconciler

NOW = datetime(2026, 1, 15, 12, 0, 0)
PUSH_URL = "https://exp.test/push/send"
RECEIPTS_URL = "https://exp.test/push/getReceipts"


def expo_token(n) -> str:
    return f"ExponentPushToken[device-{n}]"


class RecordingSleep:
    """Stands in for asyncio.sleep; remembers every requested delay."""

    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)


class FakeScheduler:
    """Captures run_after calls instead of arming timers."""

    def __init__(self):
        self.calls = []

    def run_after(self, delay_ms, callback, *args):
        self.calls.append((delay_ms, callback, args))

    async def fire_all(self):
        calls, self.calls = self.calls, []
        results = []
        for _, callback, args in calls:
            results.append(await callback(*args))
        return results


class FakeExpo:
    """
    Scripted Expo endpoint for httpx.MockTransport.

    `responses` is a list consumed in order; each item is an httpx.Response,
    an exception to raise, or a callable(request) -> httpx.Response.
    """

    def __init__(self, responses=None):
        self.responses = list(responses or [])
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self.responses:
            raise AssertionError(f"unexpected request to {request.url}")
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        if callable(item):
            return item(request)
        return item

    def bodies(self):
        return [json.loads(r.content) for r in self.requests]


def tickets_response(tickets, status_code=200, headers=None) -> httpx.Response:
    return httpx.Response(status_code, json={"data": tickets}, headers=headers)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def sleeper():
    return RecordingSleep()


@pytest.fixture
def scheduler():
    return FakeScheduler()


@pytest.fixture
def fake_expo():
    return FakeExpo()


@pytest.fixture
def gateway(fake_expo, sleeper):
    client = httpx.AsyncClient(transport=httpx.MockTransport(fake_expo))
    return ExpoGateway(
        "test-access-token",
        client=client,
        sleep=sleeper,
        push_url=PUSH_URL,
        receipts_url=RECEIPTS_URL,
    )


@pytest.fixture
def dispatcher(session_factory, gateway, scheduler):
    return Dispatcher(session_factory, gateway, scheduler=scheduler)


@pytest.fixture
def reconciler(session_factory, gateway):
    return ReceiptReconciler(session_factory, gateway)
