"""
CSV import of products, customers, orders and collections.

Each file is one transaction. Each row (or order group) runs in a savepoint, so
a bad row is rolled back on its own and reported in `ImportResult.errors`.
Everything created is mapped in the identity map straight away, so later rows
and later files can find it.
"""

import csv
import html
import json
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Callable, Dict, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError

from ..extensions import atomic, db
from ..models import (
    Base,
    BaseStatus,
    Collection,
    Colorway,
    ColorwayStatus,
    COLORS,
    Customer,
    EntityKind,
    ExternalKind,
    Integration,
    Inventory,
    LogStatus,
    Order,
    OrderItem,
    OrderStatus,
    SyncLog,
    SyncSource,
    Weight,
)
from ..utils.logger import error, info
from . import identity
from .csv_columns import columns, parse_csv

DEFAULT_PER_PAN = 2

WEIGHTS = {
    "lace": Weight.LACE,
    "fingering": Weight.FINGERING,
    "fingering sock": Weight.FINGERING,
    "sock": Weight.FINGERING,
    "dk": Weight.DK,
    "worsted": Weight.WORSTED,
    "bulky": Weight.BULKY,
}

COLORWAY_STATUSES = {
    "active": ColorwayStatus.ACTIVE,
    "archived": ColorwayStatus.RETIRED,
    "draft": ColorwayStatus.IDEA,
}

COLOR_ALIASES = {"grey": "gray"}

_TAG_RE = re.compile(r"<[^>]+>")


class ImportFileError(Exception):
    """The file as a whole cannot be imported."""


class RowError(ValueError):
    """One row is unusable; the rest of the file carries on."""


@dataclass
class ImportResult:
    kind: str
    success: bool = True
    counts: Dict[str, int] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)

    def bump(self, key: str, by: int = 1):
        self.counts[key] = self.counts.get(key, 0) + by

    def to_dict(self) -> dict:
        return {"kind": self.kind, "success": self.success, **self.counts, "errors": list(self.errors)}


# =========================================================
# Value parsing
# =========================================================

def clean_html(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    text = html.unescape(_TAG_RE.sub("", value)).strip()
    return text or None

def parse_decimal(value, default=None) -> Optional[Decimal]:
    if value is None or str(value).strip() == "":
        return default
    try:
        return Decimal(str(value).strip())
    except InvalidOperation:
        raise RowError(f"not a number: {value!r}") from None

def parse_int(value, default: int = 0) -> int:
    if value is None or str(value).strip() == "":
        return default
    try:
        return int(Decimal(str(value).strip()))
    except InvalidOperation:
        raise RowError(f"not a whole number: {value!r}") from None

def parse_date(value: Optional[str]) -> date:
    if value:
        try:
            return datetime.strptime(value.strip()[:10], "%Y-%m-%d").date()
        except ValueError:
            pass
    return date.today()

def parse_base_option(option: str) -> Tuple[str, Weight]:
    """'Lily Pad - DK' -> ('Lily Pad', DK). Without a weight, 'sock' in the name means fingering."""
    parts = option.split(" - ")
    descriptor = parts[0].strip() or "Unknown"
    weight = parts[1].strip().lower() if len(parts) > 1 else ""
    if not weight:
        weight = "sock" if "sock" in descriptor.lower() else "fingering"
    return descriptor, WEIGHTS.get(weight, Weight.FINGERING)

def parse_line_item(name: str) -> Tuple[str, str]:
    """'Colorway - Base' or 'Colorway - Base - Weight' -> (colorway, base descriptor)."""
    parts = name.split(" - ")
    colorway = parts[0].strip() or "Unknown"
    base = parts[1].strip() if len(parts) > 1 else "Unknown"
    return colorway, base

def parse_colors(value: Optional[str]) -> Optional[List[str]]:
    if not value:
        return None
    try:
        names = json.loads(value)
    except ValueError:
        names = None
    if not isinstance(names, list):
        names = value.split(",")

    colors = []
    for name in names:
        color = str(name).strip().lower()
        color = COLOR_ALIASES.get(color, color)
        if color in COLORS and color not in colors:
            colors.append(color)
    return colors or None

def order_status(financial: str, fulfillment: str) -> OrderStatus:
    paid = (financial or "").lower() == "paid"
    if paid and (fulfillment or "").lower() == "fulfilled":
        return OrderStatus.CLOSED
    if paid:
        return OrderStatus.OPEN
    return OrderStatus.DRAFT

def order_notes(row: dict) -> Optional[str]:
    notes = []
    for column, label in (("Name", "Order"), ("Discount Code", "Discount Code"),
                          ("Shipping Method", "Shipping"), ("Payment Method", "Payment")):
        if row.get(column):
            notes.append(f"{label}: {row[column]}")
    if row.get("Notes"):
        notes.append(row["Notes"])
    return "\n".join(notes) or None

def shopify_gid(resource: str, value: str) -> str:
    return f"gid://shopify/{resource}/{value}" if value.isdigit() else value


# =========================================================
# Importer
# =========================================================

class Importer:

    def __init__(self, account_id: int):
        self.account_id = account_id

    # ---------------------------------------------------------
    # Pipeline
    # ---------------------------------------------------------

    def _run(self, kind: str, stream, handler: Callable) -> ImportResult:
        result = ImportResult(kind)
        try:
            with atomic():
                integration = Integration.get_or_create_shopify(self.account_id)
                rows = parse_csv(stream)
                if not rows:
                    raise ImportFileError(f"{kind.capitalize()} CSV file is empty or invalid.")
                handler(integration, rows, result)
        except (ImportFileError, csv.Error, UnicodeDecodeError, SQLAlchemyError) as e:
            error(f"[import] {kind} import failed: {e}", account=self.account_id)
            result.success = False
            result.counts = {}
            result.errors.append(str(e))

        self._summarize(result)
        return result

    def _summarize(self, result: ImportResult):
        with atomic():
            integration = Integration.get_or_create_shopify(self.account_id)
            if not result.success:
                status = LogStatus.ERROR
            elif result.errors:
                status = LogStatus.WARNING
            else:
                status = LogStatus.SUCCESS
            SyncLog.append(
                integration,
                status,
                f"Imported {result.kind}: {len(result.errors)} errors",
                sync_source=SyncSource.IMPORT,
                direction="pull",
                operation=f"import_{result.kind}",
                error_count=len(result.errors),
                **result.counts,
            )
        info(f"[import] {result.kind} done", success=result.success, errors=len(result.errors), **result.counts)

    def _row(self, result: ImportResult, label: str, fn: Callable, *args):
        counts, errors = dict(result.counts), list(result.errors)
        try:
            with db.session.begin_nested():
                return fn(*args)
        except (ValueError, ArithmeticError, SQLAlchemyError) as e:
            result.counts, result.errors = counts, errors
            result.errors.append(f"Error processing {label}: {e}")
            return None

    # ---------------------------------------------------------
    # Products
    # ---------------------------------------------------------

    def import_products(self, stream) -> ImportResult:
        return self._run("products", stream, self._products)

    def _products(self, integration, rows: List[dict], result: ImportResult):
        by_handle: Dict[str, Colorway] = {}

        for row in rows:
            if not columns.is_product_row(row):
                continue
            handle = columns.value(row, "handle")
            title = columns.value(row, "title")
            if not handle and not title:
                continue
            colorway = self._row(result, "product row", self._upsert_colorway, integration, handle, title, row, result)
            if colorway is not None and handle:
                by_handle[handle] = colorway

        for row in rows:
            if not columns.is_variant_row(row):
                continue
            self._row(result, "variant row", self._variant_row, integration, row, by_handle, result)

    def _upsert_colorway(self, integration, handle, title, row, result) -> Colorway:
        colorway = None
        product_id = columns.value(row, "product_id")
        if handle:
            colorway = identity.find_entity(integration, ExternalKind.PRODUCT_HANDLE, handle, EntityKind.COLORWAY)
        if colorway is None and product_id:
            colorway = identity.find_entity(
                integration, ExternalKind.PRODUCT, shopify_gid("Product", product_id), EntityKind.COLORWAY
            )
        if colorway is None and title:
            colorway = Colorway.query.filter_by(account_id=self.account_id, name=title).first()

        status = COLORWAY_STATUSES.get((columns.value(row, "status") or "active").strip().lower(),
                                       ColorwayStatus.RETIRED)
        description = clean_html(columns.value(row, "description"))

        if colorway is None:
            colorway = Colorway(
                account_id=self.account_id,
                name=title or handle or "Unknown",
                description=description,
                status=status.value,
                colors=parse_colors(columns.value(row, "tags")),
                per_pan=DEFAULT_PER_PAN,
            )
            db.session.add(colorway)
            db.session.flush()
            result.bump("colorways_created")
        else:
            colorway.description = description or colorway.description
            colorway.status = status.value
            result.bump("colorways_updated")

        if handle:
            identity.record(integration, colorway, ExternalKind.PRODUCT_HANDLE, handle)
        if product_id:
            identity.record(integration, colorway, ExternalKind.PRODUCT, shopify_gid("Product", product_id))
        return colorway

    def _variant_row(self, integration, row, by_handle, result):
        handle = columns.value(row, "handle")
        option = columns.value(row, "option1_value")
        if not handle:
            raise RowError("missing Handle")
        if not option:
            raise RowError(f"missing Option1 Value for {handle}")

        colorway = by_handle.get(handle) or identity.find_entity(
            integration, ExternalKind.PRODUCT_HANDLE, handle, EntityKind.COLORWAY
        )
        if colorway is None:
            # variant rows can arrive without their product row
            title = columns.value(row, "title")
            if not title:
                raise RowError(f"no product found for handle {handle}")
            colorway = self._upsert_colorway(integration, handle, title, row, result)

        base = self._upsert_base(option, row, result)
        inventory = Inventory.ensure(self.account_id, colorway.id, base.id)
        available = columns.value(row, "available")
        if available is not None:
            inventory.quantity = parse_int(available)

        variant_id = columns.value(row, "variant_id")
        if variant_id:
            identity.record(integration, inventory, ExternalKind.VARIANT, shopify_gid("ProductVariant", variant_id))
        sku = columns.value(row, "variant_sku")
        if sku:
            identity.record(integration, inventory, ExternalKind.VARIANT_SKU, sku)
        result.bump("inventories_linked")

    def _upsert_base(self, option: str, row: dict, result) -> Base:
        descriptor, weight = parse_base_option(option)
        status = BaseStatus.RETIRED if (columns.value(row, "status") or "").strip().lower() == "archived" \
            else BaseStatus.ACTIVE
        price = parse_decimal(columns.value(row, "variant_price"))
        cost = parse_decimal(columns.value(row, "cost"))

        base = Base.query.filter_by(account_id=self.account_id, descriptor=descriptor, weight=weight.value).first()
        if base is None:
            base = Base(
                account_id=self.account_id,
                descriptor=descriptor,
                weight=weight.value,
                retail_price=price if price is not None else Decimal("0"),
                cost=cost if cost is not None else Decimal("0"),
                status=status.value,
            )
            db.session.add(base)
            db.session.flush()
            result.bump("bases_created")
        else:
            if price is not None:
                base.retail_price = price
            if cost is not None:
                base.cost = cost
            base.status = status.value
        return base

    # ---------------------------------------------------------
    # Customers
    # ---------------------------------------------------------

    def import_customers(self, stream) -> ImportResult:
        return self._run("customers", stream, self._customers)

    def _customers(self, integration, rows, result):
        for row in rows:
            email = columns.value(row, "email")
            if not email:
                continue
            self._row(result, f"customer {email}", self._upsert_customer, integration, email, row, result)

    def _upsert_customer(self, integration, email, row, result) -> Customer:
        external_id = columns.value(row, "customer_id")
        customer = None
        if external_id:
            customer = identity.find_entity(integration, ExternalKind.CUSTOMER, external_id, EntityKind.CUSTOMER)
        if customer is None:
            customer = Customer.query.filter_by(account_id=self.account_id, email=email).first()

        name = " ".join(p for p in (columns.value(row, "first_name"), columns.value(row, "last_name")) if p)
        fields = dict(
            name=name or email,
            email=email,
            phone=columns.value(row, "default_address_phone") or columns.value(row, "phone"),
            address_line1=row.get("Default Address Address1") or None,
            address_line2=row.get("Default Address Address2") or None,
            city=row.get("Default Address City") or None,
            state_region=row.get("Default Address Province Code") or None,
            postal_code=row.get("Default Address Zip") or None,
            country_code=row.get("Default Address Country Code") or None,
            notes=row.get("Note") or None,
        )
        if customer is None:
            customer = Customer(account_id=self.account_id, **fields)
            db.session.add(customer)
            db.session.flush()
            result.bump("customers_created")
        else:
            for key, value in fields.items():
                setattr(customer, key, value)
            result.bump("customers_updated")

        if external_id:
            identity.record(integration, customer, ExternalKind.CUSTOMER, external_id)
        return customer

    # ---------------------------------------------------------
    # Orders
    # ---------------------------------------------------------

    def import_orders(self, stream) -> ImportResult:
        return self._run("orders", stream, self._orders)

    def _orders(self, integration, rows, result):
        groups: Dict[str, List[dict]] = {}
        for row in rows:
            order_id = columns.value(row, "order_id")
            if order_id:
                groups.setdefault(order_id, []).append(row)

        for order_id, group in groups.items():
            self._row(result, f"order {order_id}", self._upsert_order, integration, order_id, group, result)

    def _upsert_order(self, integration, external_id: str, group: List[dict], result) -> Order:
        first = group[0]
        email = columns.value(first, "email")
        customer = Customer.query.filter_by(account_id=self.account_id, email=email).first() if email else None
        if customer is None:
            raise RowError(f"customer not found (email: {email})")

        reference = columns.value(first, "order_name")
        order = identity.find_entity(integration, ExternalKind.ORDER, external_id, EntityKind.ORDER)
        if order is None and reference:
            order = Order.query.filter_by(account_id=self.account_id, reference=reference).first()
        if order is None:
            order = Order(account_id=self.account_id)
            db.session.add(order)
            result.bump("orders_created")
        else:
            result.bump("orders_updated")

        tax = sum((parse_decimal(first.get(f"Tax {i} Value"), Decimal("0")) for i in range(1, 6)), Decimal("0"))
        order.customer = customer
        order.reference = reference
        order.status = order_status(columns.value(first, "financial_status"),
                                    columns.value(first, "fulfillment_status")).value
        order.order_date = parse_date(columns.value(first, "created_at"))
        order.subtotal_amount = parse_decimal(columns.value(first, "subtotal"), Decimal("0"))
        order.shipping_amount = parse_decimal(columns.value(first, "shipping"), Decimal("0"))
        order.discount_amount = parse_decimal(columns.value(first, "discount_amount"), Decimal("0"))
        order.tax_amount = tax
        order.total_amount = parse_decimal(columns.value(first, "total"), Decimal("0"))
        order.notes = order_notes(first)

        order.items.clear()
        db.session.flush()
        identity.record(integration, order, ExternalKind.ORDER, external_id)

        for row in group:
            name = columns.value(row, "lineitem_name")
            if not name:
                continue
            colorway_name, descriptor = parse_line_item(name)
            colorway = Colorway.query.filter_by(account_id=self.account_id, name=colorway_name).first()
            if colorway is None:
                result.errors.append(f"Colorway not found: {colorway_name}")
                continue
            base = Base.query.filter_by(account_id=self.account_id, descriptor=descriptor).order_by(Base.id).first()
            if base is None:
                result.errors.append(f"Base not found: {descriptor}")
                continue

            quantity = parse_int(columns.value(row, "lineitem_quantity"))
            unit_price = parse_decimal(columns.value(row, "lineitem_price"), Decimal("0"))
            order.items.append(OrderItem(
                colorway_id=colorway.id,
                base_id=base.id,
                quantity=quantity,
                unit_price=unit_price,
                line_total=unit_price * quantity,
            ))
            result.bump("order_items_created")
        return order

    # ---------------------------------------------------------
    # Collections
    # ---------------------------------------------------------

    def import_collections(self, stream) -> ImportResult:
        return self._run("collections", stream, self._collections)

    def _collections(self, integration, rows, result):
        groups: Dict[str, dict] = {}
        for row in rows:
            collection_id = columns.value(row, "collection_id")
            if not collection_id:
                continue
            group = groups.setdefault(collection_id, {
                "title": columns.value(row, "collection_title"),
                "handle": columns.value(row, "collection_handle"),
                "description": columns.value(row, "collection_description"),
                "products": [],
            })
            product_handle = columns.value(row, "product_handle")
            if product_handle:
                group["products"].append(product_handle)

        for collection_id, group in groups.items():
            label = f"collection {group['handle'] or collection_id}"
            self._row(result, label, self._upsert_collection, integration, collection_id, group, result)

    def _upsert_collection(self, integration, external_id: str, group: dict, result) -> Collection:
        name = group["title"] or group["handle"]
        if not name:
            raise RowError("collection has neither title nor handle")

        collection = identity.find_entity(integration, ExternalKind.COLLECTION, external_id, EntityKind.COLLECTION)
        if collection is None:
            collection = Collection.query.filter_by(account_id=self.account_id, name=name).first()
        if collection is None:
            collection = Collection(account_id=self.account_id, name=name)
            db.session.add(collection)
            result.bump("collections_created")
        else:
            collection.name = name
            result.bump("collections_updated")
        collection.description = clean_html(group["description"])
        collection.status = BaseStatus.ACTIVE.value
        db.session.flush()
        identity.record(integration, collection, ExternalKind.COLLECTION, external_id)

        for handle in group["products"]:
            colorway = identity.find_entity(integration, ExternalKind.PRODUCT_HANDLE, handle, EntityKind.COLORWAY)
            if colorway is not None and colorway not in collection.colorways:
                collection.colorways.append(colorway)
                result.bump("colorways_linked")
        return collection
