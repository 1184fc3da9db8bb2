import os

# Must be set before anything under shared.security or main is imported
os.environ.setdefault("INTERNAL_API_KEY", "test-internal-key")
os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret")
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["METRICS_ENABLED"] = "false"
os.environ["CREATE_SCHEMA_ON_STARTUP"] = "false"
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import json
from dataclasses import replace
from decimal import Decimal

import httpx
import pytest

from shared.config.database import Database
from shared.config.settings import Settings
from services.catalog_service.models import Product, ProductVariant, Service, ServiceSchedule
from services.notification_service.email_client import BrevoEmailClient
from services.order_service.service import OrderService

INTERNAL_API_KEY = os.environ["INTERNAL_API_KEY"]
ADMIN_EMAIL = "orders@example.com"


class FakeBrevo:
    """Stands in for the Brevo API; records every e-mail it is asked to send."""

    def __init__(self):
        self.sent = []
        self.status_code = 201
        self.error = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        if self.error is not None:
            raise self.error
        payload = json.loads(request.content)
        self.sent.append({"headers": dict(request.headers), "url": str(request.url), **payload})
        if self.status_code >= 400:
            return httpx.Response(self.status_code, json={"code": "bad_request", "message": "Sender not valid"})
        return httpx.Response(self.status_code, json={"messageId": f"<msg-{len(self.sent)}@brevo>"})

    def subjects(self):
        return [mail["subject"] for mail in self.sent]


@pytest.fixture
def settings(tmp_path):
    return replace(
        Settings.from_env(),
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'orders.db'}",
        brevo_api_key="test-brevo-key",
        brevo_api_url="https://brevo.test/v3",
        admin_email=ADMIN_EMAIL,
        public_base_url="https://shop.example.com",
        metrics_enabled=False,
        otlp_endpoint="",
    )


@pytest.fixture
async def database(settings):
    db = Database(settings)
    await db.create_all()
    async with db.session() as session:
        await OrderService.seed_statuses(session)
    yield db
    await db.dispose()


@pytest.fixture
async def catalog(database):
    """Two products (one with variants), one service with a schedule."""
    async with database.transaction() as db:
        lamp = Product(name="Desk Lamp", slug="desk-lamp", sku="LAMP-1", price=Decimal("150.00"), image_url="https://cdn.example.com/lamp.jpg")
        mug = Product(name="Coffee Mug", slug="coffee-mug", sku="MUG-1", price=Decimal("80.50"))
        db.add_all([lamp, mug])
        await db.flush()

        large = ProductVariant(product_id=mug.id, name="Large", sku="MUG-1-L", price=Decimal("95.00"))
        plain = ProductVariant(product_id=mug.id, name="Plain", sku=None, price=None)
        install = Service(name="Installation", slug="installation", price=Decimal("300.00"))
        db.add_all([large, plain, install])
        await db.flush()

        slot = ServiceSchedule(service_id=install.id, capacity=5)
        db.add(slot)
        await db.flush()

        return {
            "lamp": lamp.id,
            "mug": mug.id,
            "mug_large": large.id,
            "mug_plain": plain.id,
            "install": install.id,
            "install_slot": slot.id,
        }


@pytest.fixture
def brevo():
    return FakeBrevo()


@pytest.fixture
async def email_client(settings, brevo):
    client = BrevoEmailClient(settings, http_client=httpx.AsyncClient(transport=httpx.MockTransport(brevo.handler)))
    yield client
    await client.aclose()


@pytest.fixture
def app(settings, database, email_client):
    from main import create_app

    return create_app(settings=settings, database=database, email_client=email_client)


@pytest.fixture
async def client(app):
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as http:
        yield http


@pytest.fixture
def admin_headers():
    return {"X-Internal-API-Key": INTERNAL_API_KEY}


@pytest.fixture
def order_payload(catalog):
    return {
        "customer_email": "Ana.Lopez@Example.com ",
        "customer_name": "Ana Lopez Garcia",
        "customer_phone": "5551234567",
        "total_amount": 300,
        "payment_method": "Transferencia",
        "shipping_method": "Recoger en tienda",
        "items": [{"product_id": catalog["lamp"], "quantity": 2}],
    }


@pytest.fixture
def count_rows(database):
    """count_rows(Model, *where) -> number of matching rows, read in a fresh session."""
    from sqlalchemy import func, select

    async def _count(model, *conditions):
        async with database.session() as db:
            return await db.scalar(select(func.count()).select_from(model).where(*conditions))

    return _count
