from enum import Enum

from sqlalchemy import event

from ..extensions import db
from ..utils.clock import utcnow


class TimestampMixin:
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)


class EntityKind(str, Enum):
    """Tag for the internal side of identity mappings and sync log entries."""

    COLORWAY = "colorway"
    BASE = "base"
    INVENTORY = "inventory"
    ORDER = "order"
    CUSTOMER = "customer"
    COLLECTION = "collection"
    INTEGRATION = "integration"

    @property
    def model(self):
        try:
            return _REGISTRY[self]
        except KeyError:
            raise LookupError(f"no model registered for entity kind {self.value!r}") from None

    def get(self, entity_id):
        return db.session.get(self.model, entity_id)

    @classmethod
    def of(cls, instance) -> "EntityKind":
        kind = getattr(type(instance), "__entity_kind__", None)
        if kind is None:
            raise TypeError(f"{type(instance).__name__} is not an identifiable entity")
        return kind


_REGISTRY: dict = {}


def entity(kind: EntityKind):
    """Register a model under `kind` and drop its identity rows when it is deleted."""

    def decorator(model):
        model.__entity_kind__ = kind
        _REGISTRY[kind] = model
        event.listen(model, "after_delete", _forget_identifiers)
        return model

    return decorator


def _forget_identifiers(mapper, connection, target):
    from .integration import ExternalIdentifier

    table = ExternalIdentifier.__table__
    connection.execute(
        table.delete()
        .where(table.c.identifiable_type == target.__entity_kind__.value)
        .where(table.c.identifiable_id == target.id)
    )
