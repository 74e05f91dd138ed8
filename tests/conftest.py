# tests/conftest.py
import base64
import io
import os
import sys
from datetime import datetime

# lägg till projektroten (mappen som innehåller "handymate") först i sys.path
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

import pytest
from fastapi.testclient import TestClient
from PIL import Image, ImageDraw
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, create_engine

from handymate.server.api.deps import get_config_loader, get_delivery, get_now
from handymate.server.db.session import get_session, init_db
from handymate.server.main import app
from handymate.server.schemas.common import CustomerIn, LineItemIn
from handymate.server.schemas.quote import QuoteCreateIn
from handymate.server.settings.config import settings
from handymate.services import quote_service
from handymate.services.business_config import BusinessConfig

NOW = datetime(2024, 3, 1, 12, 0, 0)
BUSINESS = "biz-1"
VALID_PNR = "811218-9876"


class RecordingDelivery:
    def __init__(self, ok=True):
        self.ok = ok
        self.sent = []

    def deliver(self, message):
        self.sent.append(message)
        return self.ok


class Clock:
    def __init__(self, now):
        self.now = now


def signature_png(blank=False, fill=(0, 0, 0, 0)):
    img = Image.new("RGBA", (80, 30), fill)
    if not blank:
        draw = ImageDraw.Draw(img)
        draw.line((5, 20, 40, 5, 75, 22), fill=(20, 20, 120, 255), width=3)
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def signature_data_url(blank=False):
    return "data:image/png;base64," + base64.b64encode(signature_png(blank=blank)).decode("ascii")


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as s:
        yield s


@pytest.fixture
def config():
    return BusinessConfig(
        business_name="Testbygg AB",
        phone_number="070-123 45 67",
        bankgiro="123-4567",
        swish_number="1231231231",
    )


@pytest.fixture
def delivery():
    return RecordingDelivery()


@pytest.fixture
def clock():
    return Clock(NOW)


def quote_payload(**overrides):
    data = dict(
        customer=CustomerIn(name="Anna Andersson", email="anna@example.se", phone_number="0701234567"),
        title="Badrumsrenovering",
        lines=[
            LineItemIn(kind="labor", description="Arbete", quantity=10, unit="h", unit_price=650),
            LineItemIn(kind="material", description="Kakel", quantity=1, unit="st", unit_price=4000),
        ],
        deduction_type="rot",
        personnummer=VALID_PNR,
        property_designation="Stockholm Söder 1:23",
    )
    data.update(overrides)
    return QuoteCreateIn(**data)


@pytest.fixture
def make_quote(session, config):
    def _make(business_id=BUSINESS, now=NOW, **overrides):
        return quote_service.create_quote(
            session=session,
            business_id=business_id,
            payload=quote_payload(**overrides),
            config=config,
            now=now,
        )

    return _make


@pytest.fixture
def sent_quote(session, config, delivery, make_quote):
    """Skickad offert plus signeringsnyckel."""
    quote = make_quote()
    result = quote_service.send_quote(
        session=session,
        business_id=BUSINESS,
        quote_id=quote.id,
        config=config,
        delivery=delivery,
        now=NOW,
        public_app_url="https://app.example.se",
    )
    return result


@pytest.fixture
def client(engine, clock, delivery, config):
    def _session():
        with Session(engine) as s:
            yield s

    app.dependency_overrides[get_session] = _session
    app.dependency_overrides[get_now] = lambda: clock.now
    app.dependency_overrides[get_delivery] = lambda: delivery
    app.dependency_overrides[get_config_loader] = lambda: (lambda business_id: config)
    yield TestClient(
        app,
        headers={"X-HANDYMATE-API-KEY": settings.api_key, "X-Business-Id": BUSINESS},
    )
    app.dependency_overrides.clear()
