# skeinsync/services/mutations.py
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from ..errors import RemoteApiError, RemoteValidationError, join_messages
from ..models import ColorwayStatus
from ..utils.logger import info, warn

# =========================================================
# Status mapping (shared by create and update)
# =========================================================

REMOTE_STATUS = {
    ColorwayStatus.ACTIVE.value: "ACTIVE",
    ColorwayStatus.RETIRED.value: "ARCHIVED",
    ColorwayStatus.IDEA.value: "DRAFT",
}

def remote_status(status) -> str:
    value = status.value if isinstance(status, ColorwayStatus) else status
    return REMOTE_STATUS.get(value, "ACTIVE")

OPTION_NAME = "Base"
METAFIELD_NAMESPACE = "skeinsync"
PRODUCT_TYPE = "Yarn"

def price_string(amount) -> str:
    return str(amount) if amount is not None else "0"

def inventory_item_gid(inventory_item_id) -> str:
    value = str(inventory_item_id)
    return f"gid://shopify/InventoryItem/{value}" if value.isdigit() else value

# =========================================================
# GraphQL documents
# =========================================================

PRODUCT_CREATE = """
mutation productCreate($product: ProductCreateInput!) {
  productCreate(product: $product) {
    product {
      id
      handle
      variants(first: 100) { edges { node { id } } }
    }
    userErrors { field message }
  }
}
"""

PRODUCT_UPDATE = """
mutation productUpdate($input: ProductInput!) {
  productUpdate(input: $input) {
    product { id }
    userErrors { field message }
  }
}
"""

VARIANT_CREATE = """
mutation productVariantCreate($input: ProductVariantInput!) {
  productVariantCreate(input: $input) {
    productVariant { id }
    userErrors { field message }
  }
}
"""

VARIANT_UPDATE = """
mutation productVariantUpdate($input: ProductVariantInput!) {
  productVariantUpdate(input: $input) {
    productVariant { id }
    userErrors { field message }
  }
}
"""

VARIANT_DELETE = """
mutation productVariantDelete($id: ID!) {
  productVariantDelete(id: $id) {
    deletedProductVariantId
    userErrors { field message }
  }
}
"""

VARIANT_INVENTORY_ITEM = """
query getVariantInventoryItem($id: ID!) {
  productVariant(id: $id) {
    inventoryItem { id }
  }
}
"""

INVENTORY_ITEM_VARIANT = """
query getVariantFromInventoryItem($id: ID!) {
  inventoryItem(id: $id) {
    variant { id }
  }
}
"""

MANAGEABLE_LOCATION = """
query getLocations {
  locations(first: 1, query: "manageable") {
    edges { node { id } }
  }
}
"""

INVENTORY_SET_QUANTITIES = """
mutation inventorySetQuantities($input: InventorySetQuantitiesInput!) {
  inventorySetQuantities(input: $input) {
    userErrors { code field message }
  }
}
"""

PRODUCT_MEDIA = """
query getProductMedia($id: ID!) {
  product(id: $id) {
    media(first: 50) { edges { node { id } } }
  }
}
"""

PRODUCT_DELETE_MEDIA = """
mutation productDeleteMedia($productId: ID!, $mediaIds: [ID!]!) {
  productDeleteMedia(productId: $productId, mediaIds: $mediaIds) {
    deletedMediaIds
    mediaUserErrors { field message }
  }
}
"""

PRODUCT_CREATE_MEDIA = """
mutation productCreateMedia($productId: ID!, $media: [CreateMediaInput!]!) {
  productCreateMedia(productId: $productId, media: $media) {
    media { ... on MediaImage { id } }
    mediaUserErrors { field message code }
  }
}
"""


@dataclass
class CreatedProduct:
    product_id: str
    variant_ids: List[str] = field(default_factory=list)


def _payload(resp: dict, root: str, errors_key: str = "userErrors") -> dict:
    payload = ((resp or {}).get("data") or {}).get(root) or {}
    errs = payload.get(errors_key) or []
    if errs:
        raise RemoteValidationError(join_messages(errs), errs)
    return payload


class ShopifyMutations:
    """Turns colorways, bases and quantities into Admin API mutations."""

    def __init__(self, client):
        self.client = client

    # ---------------------------------------------------------
    # Products
    # ---------------------------------------------------------

    def create_product(self, colorway, bases: Iterable, vendor: Optional[str] = None) -> CreatedProduct:
        variants = [
            {"optionValues": [{"optionName": OPTION_NAME, "name": b.descriptor}], "price": price_string(b.retail_price)}
            for b in bases
        ]
        if not variants:
            variants = [{"optionValues": [{"optionName": OPTION_NAME, "name": "Default"}], "price": "0"}]

        product = {
            "title": colorway.name or "Untitled",
            "descriptionHtml": colorway.description or "",
            "productType": PRODUCT_TYPE,
            "vendor": vendor or "skeinsync",
            "status": remote_status(colorway.status),
            "tags": colorway.tags(),
            "productOptions": [{
                "name": OPTION_NAME,
                "values": [{"name": v["optionValues"][0]["name"]} for v in variants],
            }],
            "variants": variants,
        }
        if (colorway.per_pan or 0) > 0:
            product["metafields"] = [{
                "namespace": METAFIELD_NAMESPACE,
                "key": "per_pan",
                "value": str(colorway.per_pan),
                "type": "number_integer",
            }]

        payload = _payload(self.client.execute(PRODUCT_CREATE, {"product": product}), "productCreate")
        created = payload.get("product")
        if not created or not created.get("id"):
            raise RemoteApiError("productCreate returned no product")

        variant_ids = [e["node"]["id"] for e in ((created.get("variants") or {}).get("edges") or [])]
        info(f"[sync] created product {created['id']} with {len(variant_ids)} variants", colorway=colorway.id)
        return CreatedProduct(product_id=created["id"], variant_ids=variant_ids)

    def update_product(self, colorway, product_id: str):
        product_input = {
            "id": product_id,
            "title": colorway.name or "Untitled",
            "descriptionHtml": colorway.description or "",
            "status": remote_status(colorway.status),
            "tags": colorway.tags(),
        }
        _payload(self.client.execute(PRODUCT_UPDATE, {"input": product_input}), "productUpdate")

    # ---------------------------------------------------------
    # Variants
    # ---------------------------------------------------------

    def create_variant(self, product_id: str, base, quantity: int = 0) -> str:
        variant_input = {
            "productId": product_id,
            "optionValues": [{"optionName": OPTION_NAME, "name": base.descriptor}],
            "price": price_string(base.retail_price),
            "inventoryQuantities": [{"availableQuantity": int(quantity)}],
        }
        payload = _payload(self.client.execute(VARIANT_CREATE, {"input": variant_input}), "productVariantCreate")
        variant = payload.get("productVariant") or {}
        if not variant.get("id"):
            raise RemoteApiError("productVariantCreate returned no variant")
        return variant["id"]

    def update_variant(self, variant_id: str, base):
        variant_input = {
            "id": variant_id,
            "optionValues": [{"optionName": OPTION_NAME, "name": base.descriptor}],
            "price": price_string(base.retail_price),
        }
        _payload(self.client.execute(VARIANT_UPDATE, {"input": variant_input}), "productVariantUpdate")

    def delete_variant(self, variant_id: str):
        _payload(self.client.execute(VARIANT_DELETE, {"id": variant_id}), "productVariantDelete")

    def variant_for_inventory_item(self, inventory_item_id) -> Optional[str]:
        resp = self.client.execute(INVENTORY_ITEM_VARIANT, {"id": inventory_item_gid(inventory_item_id)})
        item = ((resp or {}).get("data") or {}).get("inventoryItem") or {}
        return (item.get("variant") or {}).get("id")

    # ---------------------------------------------------------
    # Inventory (absolute set, never a delta)
    # ---------------------------------------------------------

    def _variant_inventory_item_id(self, variant_id: str) -> str:
        resp = self.client.execute(VARIANT_INVENTORY_ITEM, {"id": variant_id})
        variant = ((resp or {}).get("data") or {}).get("productVariant") or {}
        item_id = (variant.get("inventoryItem") or {}).get("id")
        if not item_id:
            raise RemoteApiError(f"Variant not found or has no inventory item: {variant_id}")
        return item_id

    def _default_location_id(self) -> str:
        resp = self.client.execute(MANAGEABLE_LOCATION)
        edges = ((((resp or {}).get("data") or {}).get("locations") or {}).get("edges")) or []
        if not edges or not (edges[0].get("node") or {}).get("id"):
            raise RemoteApiError("No inventory location found for this shop")
        return edges[0]["node"]["id"]

    def set_variant_inventory(self, variant_id: str, quantity: int):
        inventory_item_id = self._variant_inventory_item_id(variant_id)
        location_id = self._default_location_id()
        variables = {"input": {
            "ignoreCompareQuantity": True,
            "name": "available",
            "reason": "correction",
            "quantities": [{
                "inventoryItemId": inventory_item_id,
                "locationId": location_id,
                "quantity": int(quantity),
            }],
        }}
        _payload(self.client.execute(INVENTORY_SET_QUANTITIES, variables), "inventorySetQuantities")

    # ---------------------------------------------------------
    # Media (replace-all)
    # ---------------------------------------------------------

    def _delete_all_media(self, product_id: str):
        resp = self.client.execute(PRODUCT_MEDIA, {"id": product_id})
        product = ((resp or {}).get("data") or {}).get("product") or {}
        media_ids = [e["node"]["id"] for e in ((product.get("media") or {}).get("edges") or [])]
        if not media_ids:
            return
        self.client.execute(PRODUCT_DELETE_MEDIA, {"productId": product_id, "mediaIds": media_ids})

    def _add_image(self, product_id: str, url: str):
        variables = {"productId": product_id, "media": [{"originalSource": url, "mediaContentType": "IMAGE"}]}
        resp = self.client.execute(PRODUCT_CREATE_MEDIA, variables)
        payload = ((resp or {}).get("data") or {}).get("productCreateMedia") or {}
        errs = payload.get("mediaUserErrors") or []
        if errs:
            warn(f"[media] productCreateMedia error on {product_id}: {join_messages(errs)}")
            raise RemoteValidationError(f"Image upload failed: {join_messages(errs)}", errs)

    def sync_images(self, product_id: str, urls: List[str]):
        info(f"[media] syncing {len(urls)} images to {product_id}")
        self._delete_all_media(product_id)
        for url in urls:
            self._add_image(product_id, url)
