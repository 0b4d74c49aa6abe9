"""
Shared pytest fixtures for the skeinsync test suite.

Every test that touches the database gets a fresh in-memory SQLite app.
Remote calls are never made: the HTTP session and the mutation layer are mocks.
"""

import json
from datetime import datetime
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from skeinsync import create_app
from skeinsync.extensions import db as _db
from skeinsync.models import (
    Account,
    Base,
    Colorway,
    ExternalKind,
    Integration,
    Inventory,
    Media,
)
from skeinsync.routes import webhooks
from skeinsync.services import identity
from skeinsync.services.mutations import ShopifyMutations

WEBHOOK_SECRET = "whsec_test"
SHOP = "lakeside-fiber.myshopify.com"
T0 = datetime(2026, 3, 1, 12, 0, 0)


# ============================================================================
# Application
# ============================================================================


@pytest.fixture
def app():
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": "sqlite://",
        "SHOPIFY_WEBHOOK_SECRET": WEBHOOK_SECRET,
        "SHOPIFY_CATALOG_SYNC_ENABLED": True,
        "MEDIA_BASE_URL": "https://cdn.example.com/",
    })
    with app.app_context():
        _db.create_all()
        yield app
        _db.session.remove()
        _db.drop_all()


@pytest.fixture
def db(app):
    return _db


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture(autouse=True)
def reset_webhook_dedupe():
    webhooks._SEEN_IDS.clear()
    yield
    webhooks._SEEN_IDS.clear()


# ============================================================================
# Seed data
# ============================================================================


@pytest.fixture
def account(db):
    account = Account(name="Lakeside Fiber")
    db.session.add(account)
    db.session.commit()
    return account


@pytest.fixture
def integration(db, account):
    integration = Integration(
        account_id=account.id,
        type="shopify",
        credentials=json.dumps({"access_token": "shpat_test"}),
        settings={"shop": f"https://{SHOP}/"},
    )
    db.session.add(integration)
    db.session.commit()
    return integration


@pytest.fixture
def bases(db, account):
    rows = [
        Base(account_id=account.id, descriptor="Merino Sock", weight="fingering", retail_price=Decimal("28.00")),
        Base(account_id=account.id, descriptor="Silk DK", weight="dk", retail_price=Decimal("32.50")),
        Base(account_id=account.id, descriptor="Cloud Worsted", weight="worsted", retail_price=Decimal("30.00")),
    ]
    db.session.add_all(rows)
    db.session.commit()
    return rows


@pytest.fixture
def colorway(db, account):
    colorway = Colorway(
        account_id=account.id,
        name="Moss Garden",
        description="Deep greens with a touch of gold",
        technique="tonal",
        colors=["green", "yellow"],
        per_pan=3,
        status="active",
    )
    db.session.add(colorway)
    db.session.commit()
    return colorway


@pytest.fixture
def media(db, colorway):
    rows = [
        Media(colorway_id=colorway.id, file_path="colorways/moss-2.jpg", is_primary=False),
        Media(colorway_id=colorway.id, file_path="colorways/moss-1.jpg", is_primary=True),
    ]
    db.session.add_all(rows)
    db.session.commit()
    return rows


@pytest.fixture
def inventories(db, account, colorway, bases):
    rows = [
        Inventory(account_id=account.id, colorway_id=colorway.id, base_id=base.id, quantity=qty)
        for base, qty in zip(bases, (5, 8, 0))
    ]
    db.session.add_all(rows)
    db.session.commit()
    return rows


@pytest.fixture
def map_variant(db, integration):
    """Map an inventory row to a remote variant gid."""

    def _map(inventory, n):
        gid = f"gid://shopify/ProductVariant/{n}"
        identity.record(integration, inventory, ExternalKind.VARIANT, gid)
        db.session.commit()
        return gid

    return _map


@pytest.fixture
def map_product(db, integration):
    def _map(colorway, n=1):
        gid = f"gid://shopify/Product/{n}"
        identity.record(integration, colorway, ExternalKind.PRODUCT, gid)
        db.session.commit()
        return gid

    return _map


# ============================================================================
# Mocks
# ============================================================================


@pytest.fixture
def mutations():
    return MagicMock(spec=ShopifyMutations)


@pytest.fixture
def clock():
    """A settable clock, starting at T0."""

    class Clock:
        now = T0

        def __call__(self):
            return self.now

    return Clock()
