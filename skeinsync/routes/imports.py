# skeinsync/routes/imports.py
import io

from flask import Blueprint, abort, request

from ..extensions import db
from ..models import Account
from ..services.importer import Importer

bp = Blueprint("imports", __name__)

IMPORTS = {
    "products": Importer.import_products,
    "customers": Importer.import_customers,
    "orders": Importer.import_orders,
    "collections": Importer.import_collections,
}


@bp.post("/<kind>")
def upload(kind: str):
    run = IMPORTS.get(kind)
    if run is None:
        abort(404, description=f"Unknown import kind: {kind}")

    csv_file = request.files.get("file")
    if csv_file is None or not csv_file.filename:
        return {"message": "A CSV file is required in the 'file' field"}, 400
    account_id = request.form.get("account_id", type=int)
    if account_id is None:
        return {"message": "account_id is required"}, 400
    db.get_or_404(Account, account_id)

    # utf-8-sig: spreadsheet exports often carry a BOM on the first header
    stream = io.TextIOWrapper(csv_file.stream, encoding="utf-8-sig", newline="")
    result = run(Importer(account_id), stream)
    return {"data": result.to_dict()}, 200 if result.success else 422
