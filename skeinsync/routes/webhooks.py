# skeinsync/routes/webhooks.py
import json
import time

from flask import Blueprint, current_app, request

from ..errors import ConfigurationError, RemoteApiError
from ..extensions import db
from ..models import Integration, LogStatus, SyncLog, SyncSource
from ..services.sync import InventorySync, mutations_for
from ..utils.logger import error, info, warn
from ..utils.security import verify_webhook_hmac

bp = Blueprint("webhooks", __name__)

INVENTORY_TOPIC = "inventory_levels/update"

# In-memory idempotency (best-effort, per process)
_SEEN_IDS: dict[str, float] = {}
_SEEN_TTL = 60 * 10  # 10 minutes

def _seen(webhook_id: str) -> bool:
    now = time.time()
    # GC old ids
    for k, ts in list(_SEEN_IDS.items()):
        if now - ts > _SEEN_TTL:
            _SEEN_IDS.pop(k, None)
    return bool(webhook_id) and webhook_id in _SEEN_IDS

def _remember(webhook_id: str):
    if webhook_id:
        _SEEN_IDS[webhook_id] = time.time()

def _log(integration, status: LogStatus, message: str, **metadata):
    SyncLog.append(integration, status, message, sync_source=SyncSource.WEBHOOK, direction="pull", **metadata)
    db.session.commit()

def _bad_request(message: str):
    warn(f"[webhook] rejected: {message}")
    return {"message": message}, 400


@bp.post("/shopify")
def shopify():
    raw = verify_webhook_hmac(current_app.config.get("SHOPIFY_WEBHOOK_SECRET"))

    webhook_id = request.headers.get("X-Shopify-Webhook-Id", "")
    if _seen(webhook_id):
        info(f"[webhook] duplicate delivery {webhook_id} ignored")
        return "OK", 200
    _remember(webhook_id)

    topic = request.headers.get("X-Shopify-Topic", "")
    if topic != INVENTORY_TOPIC:
        info(f"[webhook] topic {topic or '-'} ignored")
        return "OK", 200

    try:
        payload = json.loads(raw.decode("utf-8")) if raw else None
    except ValueError:
        return _bad_request("body is not valid JSON")
    if not isinstance(payload, dict):
        return _bad_request("body must be a JSON object")
    if payload.get("inventory_item_id") in (None, "") or "available" not in payload:
        return _bad_request("inventory_item_id and available are required")
    try:
        available = int(payload["available"])
    except (TypeError, ValueError):
        return _bad_request("available must be an integer")

    shop = request.headers.get("X-Shopify-Shop-Domain", "")
    if not shop:
        return _bad_request("missing X-Shopify-Shop-Domain header")

    integration = Integration.find_shopify_by_shop_domain(shop)
    if integration is None:
        info(f"[webhook] no active connection for shop {shop}")
        return "OK", 200

    inventory_item_id = payload["inventory_item_id"]
    try:
        mutations = mutations_for(integration)
    except ConfigurationError as e:
        _log(integration, LogStatus.WARNING, f"Webhook ignored: {e}", topic=topic)
        return "OK", 200

    try:
        variant_id = mutations.variant_for_inventory_item(inventory_item_id)
        if not variant_id:
            _log(integration, LogStatus.WARNING, f"No variant for inventory item {inventory_item_id}",
                 inventory_item_id=str(inventory_item_id))
            return "OK", 200

        sync = InventorySync.from_app(mutations)
        pulled = sync.pull_inventory(variant_id, available, integration, source=SyncSource.WEBHOOK)
        if not pulled:
            _log(integration, LogStatus.WARNING, f"Variant {variant_id} is not mapped to any inventory row",
                 variant_id=variant_id, external_quantity=available)
    except RemoteApiError as e:
        error(f"[webhook] {shop} inventory update failed: {e}")
        db.session.rollback()
        _log(integration, LogStatus.ERROR, f"Webhook processing failed: {e.message}",
             inventory_item_id=str(inventory_item_id), errors=e.raw_errors)
    return "OK", 200
