# skeinsync/services/sync.py
from dataclasses import asdict, dataclass
from datetime import timedelta
from typing import Callable, Optional

from flask import current_app

from ..clients.shopify import client_for
from ..errors import RemoteApiError
from ..extensions import atomic, db
from ..models import (
    EntityKind,
    ExternalKind,
    Inventory,
    LogStatus,
    SyncLog,
    SyncSource,
    SyncStatus,
)
from ..utils.clock import utcnow
from ..utils.logger import error, info, warn
from . import identity
from .mutations import ShopifyMutations

DEFAULT_GRACE_SECONDS = 60


@dataclass
class PushResult:
    variants_updated: int = 0
    variants_created: int = 0
    products_created: int = 0
    skipped: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


def mutations_for(integration) -> ShopifyMutations:
    return ShopifyMutations(client_for(integration, current_app.config))


def detect_conflict(inventory, incoming: int, now, grace_seconds: int = DEFAULT_GRACE_SECONDS) -> bool:
    """
    True when both sides changed since the last sync and disagree.

    Inside the grace window a differing webhook is most likely the echo of our
    own push, so it is not reported.
    """
    last = inventory.last_synced_at
    if last is None:
        return False
    if inventory.updated_at is None or inventory.updated_at <= last:
        return False
    if inventory.quantity == incoming:
        return False
    return abs(now - last) > timedelta(seconds=grace_seconds)


def _push_log(integration, loggable, status: LogStatus, operation: str, count: int, source, at, **extra):
    return SyncLog.append(
        integration,
        status,
        f"Inventory sync: {operation}, count={count}",
        loggable=loggable,
        at=at,
        sync_source=source,
        direction="push",
        operation=operation,
        count=count,
        **extra,
    )


class InventorySync:
    """Moves quantities between the inventory table and the remote store."""

    def __init__(self, mutations: Optional[ShopifyMutations] = None, clock: Callable = utcnow,
                 grace_seconds: int = DEFAULT_GRACE_SECONDS):
        self._mutations = mutations
        self.clock = clock
        self.grace_seconds = grace_seconds

    @classmethod
    def from_app(cls, mutations: Optional[ShopifyMutations] = None) -> "InventorySync":
        return cls(mutations, grace_seconds=int(current_app.config.get("CONFLICT_GRACE_SECONDS",
                                                                       DEFAULT_GRACE_SECONDS)))

    def mutations(self, integration) -> ShopifyMutations:
        return self._mutations or mutations_for(integration)

    # ---------------------------------------------------------
    # Push (local -> remote)
    # ---------------------------------------------------------

    def push_inventory(self, inventory, integration, source=SyncSource.MANUAL) -> bool:
        variant_id = identity.resolve(integration, inventory, ExternalKind.VARIANT)
        if not variant_id:
            return False

        mutations = self.mutations(integration)
        try:
            self._set_remote_quantity(mutations, inventory, variant_id)
        except RemoteApiError as e:
            self._row_failed(integration, inventory, "variant", source, e, variant_id=variant_id)
            raise
        _push_log(integration, inventory, LogStatus.SUCCESS, "variant", 1, source, self.clock(), variant_id=variant_id)
        db.session.commit()
        return True

    def _set_remote_quantity(self, mutations, inventory, variant_id: str):
        inventory.mark(SyncStatus.PENDING)
        db.session.commit()
        try:
            mutations.set_variant_inventory(variant_id, inventory.quantity)
        except RemoteApiError:
            inventory.mark(SyncStatus.ERROR)
            db.session.commit()
            raise
        inventory.mark(SyncStatus.SYNCED, at=self.clock())

    def push_colorway(self, colorway, integration, source=SyncSource.MANUAL) -> PushResult:
        product_id = identity.resolve(integration, colorway, ExternalKind.PRODUCT)
        mutations = self.mutations(integration)
        if not product_id:
            return self._create_product(colorway, integration, mutations, source)

        result = PushResult()
        for inventory in Inventory.for_colorway(colorway):
            variant_id = identity.resolve(integration, inventory, ExternalKind.VARIANT)
            if not variant_id:
                try:
                    variant_id = mutations.create_variant(product_id, inventory.base, inventory.quantity)
                except RemoteApiError as e:
                    self._row_failed(integration, inventory, "variant_create", source, e)
                    result.skipped += 1
                    continue
                identity.record(integration, inventory, ExternalKind.VARIANT, variant_id)
                inventory.mark(SyncStatus.SYNCED, at=self.clock())
                result.variants_created += 1
            else:
                try:
                    self._set_remote_quantity(mutations, inventory, variant_id)
                except RemoteApiError as e:
                    self._row_failed(integration, inventory, "variant_update", source, e, variant_id=variant_id)
                    result.skipped += 1
                    continue
                result.variants_updated += 1
            db.session.commit()

        touched = result.variants_updated + result.variants_created
        if touched > 0:
            _push_log(integration, colorway, LogStatus.SUCCESS, "inventory_push", touched, source, self.clock(),
                      **result.to_dict())
        db.session.commit()
        info(f"[sync] pushed colorway {colorway.id}", **result.to_dict())
        return result

    def _row_failed(self, integration, inventory, operation: str, source, exc: RemoteApiError, **extra):
        warn(f"[sync] {operation} failed for inventory {inventory.id}: {exc}")
        inventory.mark(SyncStatus.ERROR)
        _push_log(integration, inventory, LogStatus.ERROR, operation, 0, source, self.clock(),
                  error=exc.message, errors=exc.raw_errors, **extra)
        db.session.commit()

    def _create_product(self, colorway, integration, mutations, source) -> PushResult:
        account = colorway.account
        bases = account.active_bases()
        try:
            created = mutations.create_product(colorway, bases, vendor=account.name)
        except RemoteApiError as e:
            error(f"[sync] product create failed for colorway {colorway.id}: {e}")
            _push_log(integration, colorway, LogStatus.ERROR, "product_create", 0, source, self.clock(),
                      error=e.message, errors=e.raw_errors)
            db.session.commit()
            raise

        identity.record(integration, colorway, ExternalKind.PRODUCT, created.product_id)
        rows = [Inventory.ensure(colorway.account_id, colorway.id, base.id) for base in bases]
        db.session.commit()

        for inventory, variant_id in zip(rows, created.variant_ids):
            identity.record(integration, inventory, ExternalKind.VARIANT, variant_id)
            try:
                self._set_remote_quantity(mutations, inventory, variant_id)
            except RemoteApiError as e:
                error(f"[sync] quantity set failed for new product {created.product_id}: {e}")
                _push_log(integration, colorway, LogStatus.ERROR, "product_create", 0, source, self.clock(),
                          error=e.message, errors=e.raw_errors, product_id=created.product_id,
                          inventory_id=inventory.id, variant_id=variant_id)
                db.session.commit()
                raise
            db.session.commit()

        media_base = current_app.config.get("MEDIA_BASE_URL", "")
        urls = [m.url(media_base) for m in colorway.media]
        if urls:
            try:
                mutations.sync_images(created.product_id, urls)
            except RemoteApiError as e:
                warn(f"[media] image sync failed for colorway {colorway.id}: {e}")
                _push_log(integration, colorway, LogStatus.WARNING, "image_sync", 0, source, self.clock(),
                          error=e.message)

        result = PushResult(products_created=1, variants_created=len(created.variant_ids))
        _push_log(integration, colorway, LogStatus.SUCCESS, "product_create", result.variants_created, source,
                  self.clock(), product_id=created.product_id)
        db.session.commit()
        return result

    # ---------------------------------------------------------
    # Pull (remote -> local). Never calls out, so it cannot echo.
    # ---------------------------------------------------------

    def pull_inventory(self, variant_id: str, quantity: int, integration, source=SyncSource.WEBHOOK) -> bool:
        inventory = identity.find_entity(integration, ExternalKind.VARIANT, variant_id, EntityKind.INVENTORY)
        if inventory is None:
            return False

        now = self.clock()
        previous_quantity = inventory.quantity
        previous_sync = inventory.last_synced_at
        conflict = detect_conflict(inventory, quantity, now, self.grace_seconds)

        with atomic():
            inventory.quantity = quantity
            inventory.mark(SyncStatus.SYNCED, at=now)
            if conflict:
                status = LogStatus.WARNING
                message = "Inventory sync conflict: both sides changed since last sync; remote value applied"
                warn(f"[sync] conflict on inventory {inventory.id}", local=previous_quantity, remote=quantity)
            else:
                status = LogStatus.SUCCESS
                message = f"Pulled inventory: quantity={quantity}"
            SyncLog.append(
                integration,
                status,
                message,
                loggable=inventory,
                at=now,
                sync_source=source,
                direction="pull",
                conflict=conflict,
                internal_quantity=previous_quantity,
                external_quantity=quantity,
                variant_id=variant_id,
                last_synced_at=previous_sync.isoformat() if previous_sync else None,
            )
        return True
