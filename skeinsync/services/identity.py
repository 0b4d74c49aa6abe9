"""
External identity map.

Each row ties one internal entity to one remote object for a single connection.
Lookups return None when nothing is mapped; callers treat that as "skip".
"""

from typing import Optional

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import EntityKind, ExternalIdentifier, ExternalKind
from ..utils.logger import warn


def _kind_value(external_kind) -> str:
    return ExternalKind(external_kind).value


def _by_local(integration, kind: EntityKind, entity_id: int, external_kind) -> Optional[ExternalIdentifier]:
    return ExternalIdentifier.query.filter_by(
        integration_id=integration.id,
        identifiable_type=kind.value,
        identifiable_id=entity_id,
        external_type=_kind_value(external_kind),
    ).first()


def _by_remote(integration, external_kind, external_id) -> Optional[ExternalIdentifier]:
    return ExternalIdentifier.query.filter_by(
        integration_id=integration.id,
        external_type=_kind_value(external_kind),
        external_id=str(external_id),
    ).first()


def _persisted_id(entity) -> int:
    if entity.id is None:
        db.session.flush()
    return entity.id


def resolve(integration, entity, external_kind) -> Optional[str]:
    """Remote id for `entity`, or None."""
    if entity is None or entity.id is None:
        return None
    row = _by_local(integration, EntityKind.of(entity), entity.id, external_kind)
    return row.external_id if row else None


def resolve_internal(integration, external_kind, external_id, kind: EntityKind) -> Optional[int]:
    row = _by_remote(integration, external_kind, external_id)
    if row is None or row.identifiable_type != EntityKind(kind).value:
        return None
    return row.identifiable_id


def find_entity(integration, external_kind, external_id, kind: EntityKind):
    """Like resolve_internal, but returns the model instance."""
    entity_id = resolve_internal(integration, external_kind, external_id, kind)
    if entity_id is None:
        return None
    return EntityKind(kind).get(entity_id)


def record(integration, entity, external_kind, external_id, data=None) -> ExternalIdentifier:
    """
    Map `entity` to `external_id`. Recording the same pair again is a no-op.

    A changed remote id replaces the old row (delete + insert). A remote id
    already claimed by a different entity keeps its existing owner.
    """
    kind = EntityKind.of(entity)
    entity_id = _persisted_id(entity)
    external_id = str(external_id)

    existing = _by_local(integration, kind, entity_id, external_kind)
    if existing is not None and existing.external_id == external_id:
        return existing

    claimed = _by_remote(integration, external_kind, external_id)
    if claimed is not None:
        warn(
            f"[identity] {_kind_value(external_kind)} {external_id} already mapped to "
            f"{claimed.identifiable_type} {claimed.identifiable_id}; keeping it",
            integration=integration.id,
            wanted=f"{kind.value}:{entity_id}",
        )
        return claimed

    if existing is not None:
        db.session.delete(existing)
        db.session.flush()

    row = ExternalIdentifier(
        integration_id=integration.id,
        identifiable_type=kind.value,
        identifiable_id=entity_id,
        external_type=_kind_value(external_kind),
        external_id=external_id,
        data=data,
    )
    try:
        with db.session.begin_nested():
            db.session.add(row)
    except IntegrityError:
        # lost an insert race; whoever won is the mapping
        winner = _by_remote(integration, external_kind, external_id) or _by_local(
            integration, kind, entity_id, external_kind
        )
        if winner is None:
            raise
        return winner
    return row


def forget(integration, entity, external_kind) -> bool:
    if entity is None or entity.id is None:
        return False
    row = _by_local(integration, EntityKind.of(entity), entity.id, external_kind)
    if row is None:
        return False
    db.session.delete(row)
    db.session.flush()
    return True
