import csv
from typing import Dict, Iterable, List, Optional

# logical field -> accepted header names, first non-empty wins
COLUMN_ALIASES: Dict[str, tuple] = {
    # products / colorways
    "handle": ("Handle", "handle"),
    "title": ("Title", "title"),
    "description": ("Body (HTML)", "descriptionHtml", "Description"),
    "status": ("Status", "status"),
    "tags": ("Tags", "tags"),
    "collections": ("collections",),
    "lineType": ("lineType",),
    "product_id": ("Product ID", "product_id", "productId"),

    # variants / bases
    "option1_name": ("Option1 Name", "option 1 name"),
    "option1_value": ("Option1 Value", "option 1 value"),
    "variant_price": ("Variant Price", "price"),
    "variant_sku": ("Variant SKU", "sku"),
    "variant_id": ("Variant ID", "Variant Id", "variant_id"),
    "cost": ("Cost per item", "cost"),
    "position": ("position",),

    # inventory
    "available": ("Available (not editable)", "location: Studio", "Variant Inventory Qty", "variant_inventory_quantity"),

    # orders
    "order_id": ("Id", "id"),
    "order_name": ("Name", "name"),
    "email": ("Email", "email"),
    "financial_status": ("Financial Status", "financialStatus"),
    "fulfillment_status": ("Fulfillment Status", "fulfillmentStatus"),
    "subtotal": ("Subtotal", "subtotal"),
    "shipping": ("Shipping", "shipping"),
    "discount_amount": ("Discount Amount", "discountAmount"),
    "tax_amount": ("Taxes", "taxes"),
    "total": ("Total", "total"),
    "created_at": ("Created at", "createdAt"),
    "lineitem_name": ("Lineitem name", "lineitemName"),
    "lineitem_quantity": ("Lineitem quantity", "lineitemQuantity"),
    "lineitem_price": ("Lineitem price", "lineitemPrice"),

    # customers
    "first_name": ("First Name", "firstName"),
    "last_name": ("Last Name", "lastName"),
    "phone": ("Phone", "phone"),
    "default_address_phone": ("Default Address Phone", "defaultAddressPhone"),
    "customer_id": ("Customer ID", "customerId"),

    # collections
    "collection_id": ("id",),
    "collection_title": ("title",),
    "collection_handle": ("handle",),
    "collection_description": ("descriptionHtml",),
    "product_handle": ("productHandle", "product handle"),
}


def parse_csv(stream: Iterable[str]) -> List[dict]:
    """Rows as dicts keyed by the trimmed header; rows with the wrong width are dropped."""
    reader = csv.reader(stream)
    try:
        headers = [h.strip() for h in next(reader)]
    except StopIteration:
        return []

    rows = []
    for values in reader:
        if len(values) != len(headers):
            continue
        rows.append(dict(zip(headers, values)))
    return rows


class ColumnMapper:

    def __init__(self, aliases: Optional[Dict[str, tuple]] = None):
        self.aliases = aliases or COLUMN_ALIASES

    def value(self, row: dict, field: str) -> Optional[str]:
        if field not in self.aliases:
            return row.get(field)
        for column in self.aliases[field]:
            v = row.get(column)
            if v is not None and v != "":
                return v
        return None

    def is_product_row(self, row: dict) -> bool:
        line_type = self.value(row, "lineType")
        if line_type:
            return line_type.lower() == "product"
        return bool(self.value(row, "title")) and not self.value(row, "option1_value")

    def is_variant_row(self, row: dict) -> bool:
        line_type = self.value(row, "lineType")
        if line_type:
            return line_type.lower() == "variant"
        return bool(self.value(row, "option1_value"))


columns = ColumnMapper()
