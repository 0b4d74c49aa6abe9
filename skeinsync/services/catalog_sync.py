"""
Catalog propagation: colorway and base edits pushed to already-mapped products.

Every entry point is a no-op unless the connection has catalog sync enabled.
Remote failures become `error` log entries; they are never raised to the caller.
"""

from flask import current_app

from ..errors import RemoteApiError
from ..extensions import db
from ..models import Colorway, ExternalIdentifier, ExternalKind, Inventory, LogStatus, SyncLog, SyncSource
from ..utils.logger import warn
from . import identity
from .sync import mutations_for


def _log(integration, loggable, status: LogStatus, message: str, operation: str, **extra):
    SyncLog.append(
        integration,
        status,
        message,
        loggable=loggable,
        sync_source=SyncSource.CATALOG,
        direction="push",
        operation=operation,
        **extra,
    )
    db.session.commit()


def _failed(integration, loggable, operation: str, exc: RemoteApiError):
    warn(f"[sync] {operation} failed: {exc}", integration=integration.id)
    _log(integration, loggable, LogStatus.ERROR, f"{operation} failed: {exc.message}", operation, error=exc.message)


def sync_colorway_catalog(colorway, integration, mutations=None) -> bool:
    if not integration.catalog_sync_enabled:
        return False
    product_id = identity.resolve(integration, colorway, ExternalKind.PRODUCT)
    if not product_id:
        return False

    try:
        (mutations or mutations_for(integration)).update_product(colorway, product_id)
    except RemoteApiError as e:
        _failed(integration, colorway, "product_update", e)
        return False
    _log(integration, colorway, LogStatus.SUCCESS, "Synced colorway catalog", "product_update", product_id=product_id)
    return True


def sync_colorway_images(colorway, integration, mutations=None) -> bool:
    if not integration.catalog_sync_enabled:
        return False
    product_id = identity.resolve(integration, colorway, ExternalKind.PRODUCT)
    if not product_id:
        return False

    base_url = current_app.config.get("MEDIA_BASE_URL", "")
    try:
        (mutations or mutations_for(integration)).sync_images(product_id, [m.url(base_url) for m in colorway.media])
    except RemoteApiError as e:
        _failed(integration, colorway, "image_sync", e)
        return False
    _log(integration, colorway, LogStatus.SUCCESS, "Synced colorway images", "image_sync", count=len(colorway.media))
    return True


def _base_inventories(base):
    return Inventory.query.filter_by(account_id=base.account_id, base_id=base.id).order_by(Inventory.id).all()


def sync_base_updated(base, integration, mutations=None) -> int:
    if not integration.catalog_sync_enabled:
        return 0
    mutations = mutations or mutations_for(integration)

    count = 0
    try:
        for inventory in _base_inventories(base):
            variant_id = identity.resolve(integration, inventory, ExternalKind.VARIANT)
            if variant_id:
                mutations.update_variant(variant_id, base)
                count += 1
    except RemoteApiError as e:
        _failed(integration, base, "base_updated", e)
        return count

    if count:
        _log(integration, base, LogStatus.SUCCESS, f"Updated {count} variants for base change", "base_updated",
             count=count)
    return count


def sync_base_created(base, integration, mutations=None) -> int:
    if not integration.catalog_sync_enabled:
        return 0
    mutations = mutations or mutations_for(integration)

    mapped = (
        Colorway.query.join(
            ExternalIdentifier,
            (ExternalIdentifier.identifiable_id == Colorway.id)
            & (ExternalIdentifier.identifiable_type == Colorway.__entity_kind__.value),
        )
        .filter(
            Colorway.account_id == base.account_id,
            ExternalIdentifier.integration_id == integration.id,
            ExternalIdentifier.external_type == ExternalKind.PRODUCT.value,
        )
        .order_by(Colorway.id)
        .all()
    )

    count = 0
    try:
        for colorway in mapped:
            product_id = identity.resolve(integration, colorway, ExternalKind.PRODUCT)
            inventory = Inventory.ensure(base.account_id, colorway.id, base.id)
            if identity.resolve(integration, inventory, ExternalKind.VARIANT):
                continue
            variant_id = mutations.create_variant(product_id, base, 0)
            identity.record(integration, inventory, ExternalKind.VARIANT, variant_id)
            db.session.commit()
            count += 1
    except RemoteApiError as e:
        _failed(integration, base, "base_created", e)
        return count

    if count:
        _log(integration, base, LogStatus.SUCCESS, f"Created variant for new base in {count} products",
             "base_created", count=count)
    return count


def sync_base_deleted(base, integration, mutations=None) -> int:
    if not integration.catalog_sync_enabled:
        return 0
    mutations = mutations or mutations_for(integration)

    count = 0
    for inventory in _base_inventories(base):
        variant_id = identity.resolve(integration, inventory, ExternalKind.VARIANT)
        if variant_id:
            try:
                mutations.delete_variant(variant_id)
            except RemoteApiError as e:
                # usually already gone remotely; keep going
                _failed(integration, base, "base_deleted", e)
            else:
                identity.forget(integration, inventory, ExternalKind.VARIANT)
                count += 1
        db.session.delete(inventory)
    db.session.commit()

    if count:
        _log(integration, base, LogStatus.SUCCESS, f"Deleted {count} variants for base removal", "base_deleted",
             count=count)
    return count
