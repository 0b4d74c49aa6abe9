"""
Tests for the manual sync endpoints, app-level error handling and model helpers.
"""

import json
from unittest.mock import patch

import pytest

from skeinsync.errors import RemoteValidationError
from skeinsync.models import Integration, LogStatus, SyncLog, normalize_shop_domain

from conftest import SHOP


@pytest.fixture
def remote(mutations):
    with patch("skeinsync.services.sync.mutations_for", return_value=mutations), \
            patch("skeinsync.services.catalog_sync.mutations_for", return_value=mutations):
        yield mutations


class TestHealth:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.get_json() == {"ok": True}


class TestPushEndpoints:
    """Manual push triggers."""

    def test_push_inventory(self, client, remote, inventories, map_variant):
        gid = map_variant(inventories[0], 1)

        response = client.post(f"/sync/inventory/{inventories[0].id}/push")

        assert response.status_code == 200
        assert response.get_json() == {"data": {"pushed": True}}
        remote.set_variant_inventory.assert_called_once_with(gid, 5)

    def test_push_unmapped_inventory(self, client, remote, integration, inventories):
        response = client.post(f"/sync/inventory/{inventories[0].id}/push")
        assert response.get_json() == {"data": {"pushed": False}}

    def test_remote_failure_is_bad_gateway(self, client, remote, inventories, map_variant):
        map_variant(inventories[0], 1)
        errors = [{"field": ["quantities"], "message": "Location not found"}]
        remote.set_variant_inventory.side_effect = RemoteValidationError("Location not found", errors)

        response = client.post(f"/sync/inventory/{inventories[0].id}/push")

        assert response.status_code == 502
        assert response.get_json() == {"message": "Location not found", "errors": errors}

    def test_no_connection(self, client, remote, inventories):
        response = client.post(f"/sync/inventory/{inventories[0].id}/push")
        assert response.status_code == 404
        assert "No active Shopify connection" in response.get_json()["message"]

    def test_unknown_inventory(self, client, remote, integration):
        assert client.post("/sync/inventory/999/push").status_code == 404

    def test_push_colorway(self, client, remote, colorway, inventories, map_product, map_variant):
        map_product(colorway)
        for n, inv in enumerate(inventories, start=1):
            map_variant(inv, n)

        response = client.post(f"/sync/colorways/{colorway.id}/push")

        assert response.status_code == 200
        assert response.get_json()["data"] == {
            "variants_updated": 3, "variants_created": 0, "products_created": 0, "skipped": 0,
        }


class TestCatalogEndpoints:
    """Catalog propagation triggers."""

    def test_colorway_catalog_with_images(self, client, remote, colorway, media, map_product):
        map_product(colorway)

        response = client.post(f"/sync/colorways/{colorway.id}/catalog", json={"images": True})

        assert response.get_json() == {"data": {"product_updated": True, "images_synced": True}}
        remote.update_product.assert_called_once()
        remote.sync_images.assert_called_once()

    def test_base_action(self, client, remote, bases, inventories, map_variant):
        map_variant(inventories[0], 1)

        response = client.post(f"/sync/bases/{bases[0].id}", json={"action": "updated"})

        assert response.get_json() == {"data": {"action": "updated", "count": 1}}

    def test_unknown_base_action(self, client, remote, integration, bases):
        response = client.post(f"/sync/bases/{bases[0].id}", json={"action": "renamed"})
        assert response.status_code == 400


class TestIntegrationModel:
    """Connection settings, credentials and the audit log."""

    @pytest.mark.parametrize("raw", [SHOP, f"https://{SHOP}/", f"HTTP://{SHOP.upper()}/admin", f"  {SHOP} "])
    def test_normalize_shop_domain(self, raw):
        assert normalize_shop_domain(raw) == SHOP

    def test_config_from_json_credentials(self, integration):
        assert integration.shopify_config() == {"shop": SHOP, "access_token": "shpat_test"}

    def test_config_from_plain_token(self, db, integration):
        integration.credentials = "shpat_plain"
        assert integration.shopify_config()["access_token"] == "shpat_plain"

    def test_config_needs_token_and_shop(self, db, integration):
        integration.credentials = json.dumps({"scope": "read_products"})
        assert integration.shopify_config() is None

        integration.credentials = "shpat_plain"
        integration.settings = {}
        assert integration.shopify_config() is None

    def test_to_dict_hides_credentials(self, integration):
        data = integration.to_dict()
        assert "credentials" not in data
        assert "shpat_test" not in json.dumps(data)

    def test_find_by_shop_domain(self, integration):
        assert Integration.find_shopify_by_shop_domain(SHOP.upper()) is integration
        assert Integration.find_shopify_by_shop_domain("other.myshopify.com") is None

    def test_sync_log_is_append_only(self, db, integration):
        entry = SyncLog.append(integration, LogStatus.SUCCESS, "pushed")
        db.session.commit()

        entry.message = "edited"
        with pytest.raises(RuntimeError):
            db.session.commit()
        db.session.rollback()
