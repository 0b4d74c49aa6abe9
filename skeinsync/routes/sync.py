# skeinsync/routes/sync.py
from flask import Blueprint, abort, request

from ..extensions import db
from ..models import Base, Colorway, Integration, Inventory, SyncSource
from ..services import catalog_sync
from ..services.sync import InventorySync
from ..utils.logger import info

bp = Blueprint("sync", __name__)

BASE_ACTIONS = {
    "created": catalog_sync.sync_base_created,
    "updated": catalog_sync.sync_base_updated,
    "deleted": catalog_sync.sync_base_deleted,
}

def _integration_for(account_id: int) -> Integration:
    integration = Integration.shopify_for_account(account_id)
    if integration is None:
        abort(404, description=f"No active Shopify connection for account {account_id}")
    return integration


@bp.post("/inventory/<int:inventory_id>/push")
def push_inventory(inventory_id: int):
    inventory = db.get_or_404(Inventory, inventory_id)
    integration = _integration_for(inventory.account_id)
    pushed = InventorySync.from_app().push_inventory(inventory, integration, source=SyncSource.MANUAL)
    info(f"[sync] manual push inventory={inventory_id} pushed={pushed}")
    return {"data": {"pushed": pushed}}, 200


@bp.post("/colorways/<int:colorway_id>/push")
def push_colorway(colorway_id: int):
    colorway = db.get_or_404(Colorway, colorway_id)
    integration = _integration_for(colorway.account_id)
    result = InventorySync.from_app().push_colorway(colorway, integration, source=SyncSource.MANUAL)
    return {"data": result.to_dict()}, 200


@bp.post("/colorways/<int:colorway_id>/catalog")
def colorway_catalog(colorway_id: int):
    colorway = db.get_or_404(Colorway, colorway_id)
    integration = _integration_for(colorway.account_id)
    body = request.get_json(silent=True) or {}

    data = {"product_updated": catalog_sync.sync_colorway_catalog(colorway, integration)}
    if body.get("images"):
        data["images_synced"] = catalog_sync.sync_colorway_images(colorway, integration)
    return {"data": data}, 200


@bp.post("/bases/<int:base_id>")
def base_changed(base_id: int):
    base = db.get_or_404(Base, base_id)
    body = request.get_json(silent=True) or {}
    action = body.get("action")
    handler = BASE_ACTIONS.get(action)
    if handler is None:
        return {"message": f"action must be one of {', '.join(BASE_ACTIONS)}"}, 400

    integration = _integration_for(base.account_id)
    count = handler(base, integration)
    return {"data": {"action": action, "count": count}}, 200
