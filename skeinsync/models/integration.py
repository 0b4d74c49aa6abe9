"""
Integration models: connections to Shopify, identity mappings and the sync audit log.
"""

import json
from enum import Enum
from typing import Optional

from flask import current_app
from sqlalchemy import event

from ..extensions import db
from ..utils.clock import utcnow
from .base import EntityKind, TimestampMixin, entity


class IntegrationType(str, Enum):
    SHOPIFY = "shopify"


class ExternalKind(str, Enum):
    PRODUCT = "product"
    PRODUCT_HANDLE = "product_handle"
    VARIANT = "variant"
    VARIANT_SKU = "variant_sku"
    ORDER = "order"
    CUSTOMER = "customer"
    COLLECTION = "collection"


class LogStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    WARNING = "warning"


class SyncSource(str, Enum):
    MANUAL = "manual"
    WEBHOOK = "webhook"
    IMPORT = "import"
    CATALOG = "catalog"


def normalize_shop_domain(shop: str) -> str:
    shop = shop.strip().rstrip("/")
    for scheme in ("https://", "http://"):
        if shop.lower().startswith(scheme):
            shop = shop[len(scheme):]
    return shop.split("/")[0].lower()


@entity(EntityKind.INTEGRATION)
class Integration(TimestampMixin, db.Model):
    __tablename__ = "integrations"

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False, index=True)
    type = db.Column(db.String(20), nullable=False, default=IntegrationType.SHOPIFY.value)
    credentials = db.Column(db.Text, nullable=False, default="")
    settings = db.Column(db.JSON)
    active = db.Column(db.Boolean, nullable=False, default=True)
    deleted_at = db.Column(db.DateTime)

    account = db.relationship("Account")
    identifiers = db.relationship(
        "ExternalIdentifier", back_populates="integration", cascade="all, delete-orphan", passive_deletes=True
    )
    logs = db.relationship("SyncLog", back_populates="integration", cascade="all, delete-orphan", passive_deletes=True)

    def to_dict(self) -> dict:
        # credentials never leave the process
        return {
            "id": self.id,
            "account_id": self.account_id,
            "type": self.type,
            "settings": self.settings or {},
            "active": self.active,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def soft_delete(self):
        self.deleted_at = utcnow()
        self.active = False

    @property
    def shop_domain(self) -> Optional[str]:
        settings = self.settings or {}
        shop = settings.get("shop") or settings.get("store_url")
        return normalize_shop_domain(shop) if shop else None

    def shopify_config(self) -> Optional[dict]:
        """Shop domain and access token, or None when the connection is not usable."""
        if self.type != IntegrationType.SHOPIFY.value:
            return None
        shop = self.shop_domain
        if not shop or not self.credentials:
            return None

        access_token = self.credentials
        try:
            decoded = json.loads(self.credentials)
        except ValueError:
            decoded = None
        if isinstance(decoded, dict):
            access_token = decoded.get("access_token")
        if not access_token:
            return None
        return {"shop": shop, "access_token": access_token}

    @property
    def catalog_sync_enabled(self) -> bool:
        if self.type != IntegrationType.SHOPIFY.value:
            return False
        if not current_app.config.get("SHOPIFY_CATALOG_SYNC_ENABLED", False):
            return False
        return bool((self.settings or {}).get("catalog_sync_enabled", True))

    @classmethod
    def live(cls):
        return cls.query.filter(cls.active.is_(True), cls.deleted_at.is_(None))

    @classmethod
    def shopify_for_account(cls, account_id: int) -> Optional["Integration"]:
        return cls.live().filter_by(account_id=account_id, type=IntegrationType.SHOPIFY.value).order_by(cls.id).first()

    @classmethod
    def find_shopify_by_shop_domain(cls, shop_domain: str) -> Optional["Integration"]:
        wanted = normalize_shop_domain(shop_domain)
        for integration in cls.live().filter_by(type=IntegrationType.SHOPIFY.value).order_by(cls.id):
            if integration.shop_domain == wanted:
                return integration
        return None

    @classmethod
    def get_or_create_shopify(cls, account_id: int) -> "Integration":
        integration = (
            cls.query.filter_by(account_id=account_id, type=IntegrationType.SHOPIFY.value)
            .filter(cls.deleted_at.is_(None))
            .order_by(cls.id)
            .first()
        )
        if integration is None:
            integration = cls(account_id=account_id, type=IntegrationType.SHOPIFY.value, credentials="", settings={})
            db.session.add(integration)
            db.session.flush()
        return integration


class ExternalIdentifier(TimestampMixin, db.Model):
    """One internal entity <-> one remote object, scoped to a connection."""

    __tablename__ = "external_identifiers"
    __table_args__ = (
        db.UniqueConstraint("integration_id", "external_type", "external_id", name="uq_external_identifiers_remote"),
        db.UniqueConstraint(
            "integration_id", "identifiable_type", "identifiable_id", "external_type", name="uq_external_identifiers_local"
        ),
    )

    id = db.Column(db.Integer, primary_key=True)
    integration_id = db.Column(
        db.Integer, db.ForeignKey("integrations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    identifiable_type = db.Column(db.String(30), nullable=False)
    identifiable_id = db.Column(db.Integer, nullable=False)
    external_type = db.Column(db.String(30), nullable=False)
    external_id = db.Column(db.String(255), nullable=False)
    data = db.Column(db.JSON)

    integration = db.relationship("Integration", back_populates="identifiers")

    @property
    def kind(self) -> EntityKind:
        return EntityKind(self.identifiable_type)

    def identifiable(self):
        return self.kind.get(self.identifiable_id)


class SyncLog(db.Model):
    """Append-only audit entry for a push, pull, import or catalog sync."""

    __tablename__ = "sync_logs"

    id = db.Column(db.Integer, primary_key=True)
    integration_id = db.Column(
        db.Integer, db.ForeignKey("integrations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    loggable_type = db.Column(db.String(30))
    loggable_id = db.Column(db.Integer)
    status = db.Column(db.String(20), nullable=False, index=True)
    message = db.Column(db.Text, nullable=False)
    meta = db.Column("metadata", db.JSON)
    synced_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    integration = db.relationship("Integration", back_populates="logs")

    @classmethod
    def append(cls, integration, status: LogStatus, message: str, loggable=None, at=None, **metadata):
        entry = cls(
            integration_id=integration.id,
            loggable_type=EntityKind.of(loggable).value if loggable is not None else None,
            loggable_id=loggable.id if loggable is not None else None,
            status=status.value,
            message=message,
            meta={k: (v.value if isinstance(v, Enum) else v) for k, v in metadata.items()},
            synced_at=at or utcnow(),
        )
        db.session.add(entry)
        return entry


@event.listens_for(SyncLog, "before_update")
def _sync_log_is_append_only(mapper, connection, target):
    raise RuntimeError("sync log entries are append-only")
