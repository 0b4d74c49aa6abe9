"""
Tests for the Admin API mutation layer.

The GraphQL client is a mock; assertions are on the documents and variables
the layer sends and on how it reads the replies.
"""

from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from skeinsync.errors import RemoteApiError, RemoteValidationError
from skeinsync.models import Base, Colorway
from skeinsync.services.mutations import (
    INVENTORY_ITEM_VARIANT,
    INVENTORY_SET_QUANTITIES,
    MANAGEABLE_LOCATION,
    PRODUCT_CREATE,
    PRODUCT_CREATE_MEDIA,
    PRODUCT_DELETE_MEDIA,
    PRODUCT_MEDIA,
    VARIANT_INVENTORY_ITEM,
    ShopifyMutations,
    remote_status,
)


def _colorway(**overrides):
    fields = dict(
        id=11,
        name="Moss Garden",
        description="<p>Greens</p>",
        technique="tonal",
        colors=["green", "yellow", "green"],
        per_pan=3,
        status="active",
    )
    fields.update(overrides)
    return Colorway(**fields)


def _bases():
    return [
        Base(id=1, descriptor="Merino Sock", weight="fingering", retail_price=Decimal("28.00")),
        Base(id=2, descriptor="Silk DK", weight="dk", retail_price=Decimal("32.50")),
    ]


def _mutations(*replies):
    client = MagicMock()
    client.execute.side_effect = list(replies)
    return ShopifyMutations(client), client


def _created(product_id="gid://shopify/Product/1", variants=("gid://shopify/ProductVariant/1",)):
    return {"data": {"productCreate": {
        "product": {
            "id": product_id,
            "handle": "moss-garden",
            "variants": {"edges": [{"node": {"id": v}} for v in variants]},
        },
        "userErrors": [],
    }}}


class TestRemoteStatus:
    """The one status mapping used by create and update."""

    @pytest.mark.parametrize("local,remote", [
        ("active", "ACTIVE"),
        ("retired", "ARCHIVED"),
        ("idea", "DRAFT"),
        ("something-else", "ACTIVE"),
        (None, "ACTIVE"),
    ])
    def test_mapping(self, local, remote):
        assert remote_status(local) == remote


class TestCreateProduct:
    """productCreate payload and reply handling."""

    def test_one_variant_per_base(self):
        mutations, client = _mutations(_created(variants=("gid://shopify/ProductVariant/1",
                                                          "gid://shopify/ProductVariant/2")))

        created = mutations.create_product(_colorway(), _bases(), vendor="Lakeside Fiber")

        query, variables = client.execute.call_args.args
        product = variables["product"]
        assert query == PRODUCT_CREATE
        assert product["title"] == "Moss Garden"
        assert product["productType"] == "Yarn"
        assert product["vendor"] == "Lakeside Fiber"
        assert product["status"] == "ACTIVE"
        assert product["tags"] == ["green", "yellow", "tonal"]
        assert product["productOptions"][0]["name"] == "Base"
        assert [v["price"] for v in product["variants"]] == ["28.00", "32.50"]
        assert [v["optionValues"][0]["name"] for v in product["variants"]] == ["Merino Sock", "Silk DK"]
        assert product["metafields"] == [{
            "namespace": "skeinsync", "key": "per_pan", "value": "3", "type": "number_integer",
        }]
        assert created.product_id == "gid://shopify/Product/1"
        assert created.variant_ids == ["gid://shopify/ProductVariant/1", "gid://shopify/ProductVariant/2"]

    def test_default_variant_without_bases(self):
        mutations, client = _mutations(_created())

        mutations.create_product(_colorway(per_pan=0, name=""), [], vendor="Lakeside Fiber")

        product = client.execute.call_args.args[1]["product"]
        assert product["title"] == "Untitled"
        assert product["variants"] == [{"optionValues": [{"optionName": "Base", "name": "Default"}], "price": "0"}]
        assert "metafields" not in product

    def test_retired_colorway_is_archived(self):
        mutations, client = _mutations(_created())
        mutations.create_product(_colorway(status="retired"), _bases())
        assert client.execute.call_args.args[1]["product"]["status"] == "ARCHIVED"

    def test_user_errors_raise(self):
        errors = [{"field": ["title"], "message": "Title can't be blank"}]
        mutations, _ = _mutations({"data": {"productCreate": {"product": None, "userErrors": errors}}})

        with pytest.raises(RemoteValidationError) as exc_info:
            mutations.create_product(_colorway(), _bases())
        assert exc_info.value.raw_errors == errors
        assert "Title can't be blank" in exc_info.value.message

    def test_missing_product_raises(self):
        mutations, _ = _mutations({"data": {"productCreate": {"product": None, "userErrors": []}}})
        with pytest.raises(RemoteApiError):
            mutations.create_product(_colorway(), _bases())


class TestUpdateProduct:
    """productUpdate uses the same status and tags."""

    def test_payload(self):
        mutations, client = _mutations({"data": {"productUpdate": {"product": {"id": "p"}, "userErrors": []}}})

        mutations.update_product(_colorway(status="idea"), "gid://shopify/Product/1")

        product_input = client.execute.call_args.args[1]["input"]
        assert product_input["id"] == "gid://shopify/Product/1"
        assert product_input["status"] == "DRAFT"
        assert product_input["tags"] == ["green", "yellow", "tonal"]


class TestVariants:
    """Variant create / update / delete."""

    def test_create_variant_returns_id(self):
        mutations, client = _mutations(
            {"data": {"productVariantCreate": {"productVariant": {"id": "gid://shopify/ProductVariant/9"},
                                               "userErrors": []}}}
        )

        variant_id = mutations.create_variant("gid://shopify/Product/1", _bases()[1], quantity=4)

        variant_input = client.execute.call_args.args[1]["input"]
        assert variant_id == "gid://shopify/ProductVariant/9"
        assert variant_input["productId"] == "gid://shopify/Product/1"
        assert variant_input["price"] == "32.50"
        assert variant_input["inventoryQuantities"] == [{"availableQuantity": 4}]

    def test_delete_variant_user_errors(self):
        errors = [{"field": ["id"], "message": "Variant does not exist"}]
        mutations, _ = _mutations({"data": {"productVariantDelete": {"userErrors": errors}}})

        with pytest.raises(RemoteValidationError):
            mutations.delete_variant("gid://shopify/ProductVariant/404")

    def test_variant_for_numeric_inventory_item(self):
        mutations, client = _mutations(
            {"data": {"inventoryItem": {"variant": {"id": "gid://shopify/ProductVariant/5"}}}}
        )

        assert mutations.variant_for_inventory_item(808950810) == "gid://shopify/ProductVariant/5"
        query, variables = client.execute.call_args.args
        assert query == INVENTORY_ITEM_VARIANT
        assert variables == {"id": "gid://shopify/InventoryItem/808950810"}

    def test_variant_for_unknown_inventory_item(self):
        mutations, client = _mutations({"data": {"inventoryItem": None}})

        assert mutations.variant_for_inventory_item("gid://shopify/InventoryItem/1") is None
        assert client.execute.call_args.args[1] == {"id": "gid://shopify/InventoryItem/1"}


class TestSetVariantInventory:
    """Absolute quantity set at the first manageable location."""

    def test_lookups_then_set(self):
        mutations, client = _mutations(
            {"data": {"productVariant": {"inventoryItem": {"id": "gid://shopify/InventoryItem/3"}}}},
            {"data": {"locations": {"edges": [{"node": {"id": "gid://shopify/Location/1"}}]}}},
            {"data": {"inventorySetQuantities": {"userErrors": []}}},
        )

        mutations.set_variant_inventory("gid://shopify/ProductVariant/1", 12)

        queries = [c.args[0] for c in client.execute.call_args_list]
        assert queries == [VARIANT_INVENTORY_ITEM, MANAGEABLE_LOCATION, INVENTORY_SET_QUANTITIES]
        set_input = client.execute.call_args.args[1]["input"]
        assert set_input["name"] == "available"
        assert set_input["reason"] == "correction"
        assert set_input["ignoreCompareQuantity"] is True
        assert set_input["quantities"] == [{
            "inventoryItemId": "gid://shopify/InventoryItem/3",
            "locationId": "gid://shopify/Location/1",
            "quantity": 12,
        }]

    def test_missing_variant(self):
        mutations, _ = _mutations({"data": {"productVariant": None}})
        with pytest.raises(RemoteApiError):
            mutations.set_variant_inventory("gid://shopify/ProductVariant/1", 1)

    def test_no_location(self):
        mutations, _ = _mutations(
            {"data": {"productVariant": {"inventoryItem": {"id": "gid://shopify/InventoryItem/3"}}}},
            {"data": {"locations": {"edges": []}}},
        )
        with pytest.raises(RemoteApiError):
            mutations.set_variant_inventory("gid://shopify/ProductVariant/1", 1)


class TestSyncImages:
    """Replace-all media sync."""

    def test_deletes_existing_then_adds_in_order(self):
        ok = {"data": {"productCreateMedia": {"media": [], "mediaUserErrors": []}}}
        mutations, client = _mutations(
            {"data": {"product": {"media": {"edges": [{"node": {"id": "m1"}}, {"node": {"id": "m2"}}]}}}},
            {"data": {"productDeleteMedia": {"deletedMediaIds": ["m1", "m2"], "mediaUserErrors": []}}},
            ok,
            ok,
        )

        mutations.sync_images("gid://shopify/Product/1", ["https://cdn/a.jpg", "https://cdn/b.jpg"])

        calls = client.execute.call_args_list
        assert [c.args[0] for c in calls] == [PRODUCT_MEDIA, PRODUCT_DELETE_MEDIA, PRODUCT_CREATE_MEDIA,
                                              PRODUCT_CREATE_MEDIA]
        assert calls[1].args[1]["mediaIds"] == ["m1", "m2"]
        assert [c.args[1]["media"][0]["originalSource"] for c in calls[2:]] == ["https://cdn/a.jpg",
                                                                                 "https://cdn/b.jpg"]

    def test_nothing_to_delete(self):
        mutations, client = _mutations(
            {"data": {"product": {"media": {"edges": []}}}},
        )
        mutations.sync_images("gid://shopify/Product/1", [])
        assert client.execute.call_count == 1

    def test_media_user_errors_raise(self):
        errors = [{"field": ["media"], "message": "Image URL is invalid"}]
        mutations, _ = _mutations(
            {"data": {"product": {"media": {"edges": []}}}},
            {"data": {"productCreateMedia": {"media": [], "mediaUserErrors": errors}}},
        )
        with pytest.raises(RemoteValidationError) as exc_info:
            mutations.sync_images("gid://shopify/Product/1", ["ftp://bad"])
        assert exc_info.value.raw_errors == errors
