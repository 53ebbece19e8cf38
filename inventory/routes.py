import logging
from io import BytesIO

from flask import Blueprint, current_app, jsonify, request, send_file

from helpers import as_float, as_int, json_body, to_local_iso, utcnow
from models import db, Inventory
from notifications.service import run_low_inventory_scan, total_inventory_kg
from security import STAFF_ROLES, roles_required
from validation import FORM_VALIDATORS, ensure_valid
from inventory.analysis import generate_inventory_id, stock_status, summarize
from reports.pdf import inventory_report, report_filename

logger = logging.getLogger(__name__)

inventory_bp = Blueprint("inventory", __name__)


def inventory_to_dict(item: Inventory) -> dict:
    return {
        "id": item.id,
        "inventoryid": item.inventoryid,
        "quantity": as_float(item.quantity),
        "status": stock_status(item.quantity),
        "created_at": to_local_iso(item.created_at),
        "updated_at": to_local_iso(item.updated_at),
    }


def _inventory_rows():
    return [
        {"inventoryid": i.inventoryid, "quantity": i.quantity, "created_at": i.created_at}
        for i in Inventory.query.all()
    ]


@inventory_bp.get("/generate-inventory-id")
@roles_required()
def api_generate_inventory_id():
    return jsonify({"ok": True, "inventoryId": generate_inventory_id()}), 200


@inventory_bp.get("/search")
@roles_required()
def api_inventory_search():
    q = (request.args.get("q") or "").strip()
    if not q:
        return jsonify({"error": "Search query is required"}), 400

    items = (
        Inventory.query.filter(Inventory.inventoryid.ilike(f"%{q}%"))
        .order_by(Inventory.created_at.desc(), Inventory.id.desc())
        .all()
    )
    return jsonify({"data": [inventory_to_dict(i) for i in items], "count": len(items)}), 200


@inventory_bp.get("")
@roles_required()
def api_inventory_list():
    """
    Optional query:
      ?month=0..11     -> only rows created in that month (January = 0)
      ?sort=quantity   -> ascending by quantity instead of newest first
    """
    q = Inventory.query

    month = request.args.get("month")
    if month not in (None, ""):
        month_idx = as_int(month, -1)
        if not 0 <= month_idx <= 11:
            return jsonify({"error": "month must be between 0 and 11"}), 400
        q = q.filter(db.extract("month", Inventory.created_at) == month_idx + 1)

    if (request.args.get("sort") or "").lower() == "quantity":
        q = q.order_by(Inventory.quantity.asc(), Inventory.id.asc())
    else:
        q = q.order_by(Inventory.created_at.desc(), Inventory.id.desc())

    items = q.all()
    total = total_inventory_kg()
    threshold = current_app.config["LOW_INVENTORY_THRESHOLD_KG"]
    return jsonify(
        {
            "inventories": [inventory_to_dict(i) for i in items],
            "totalQuantity": total,
            "isLow": total < threshold,
        }
    ), 200


@inventory_bp.get("/summary")
@roles_required()
def api_inventory_summary():
    summary = summarize(
        _inventory_rows(),
        total_kg=total_inventory_kg(),
        minimum=current_app.config["LOW_INVENTORY_THRESHOLD_KG"],
    )
    return jsonify(summary), 200


@inventory_bp.get("/report.pdf")
@roles_required()
def api_inventory_report_pdf():
    summary = summarize(
        _inventory_rows(),
        total_kg=total_inventory_kg(),
        minimum=current_app.config["LOW_INVENTORY_THRESHOLD_KG"],
    )
    pdf = inventory_report(summary)
    return send_file(
        BytesIO(pdf),
        mimetype="application/pdf",
        as_attachment=True,
        download_name=report_filename("inventory"),
    )


@inventory_bp.get("/<int:iid>")
@roles_required()
def api_inventory_read_one(iid: int):
    item = db.session.get(Inventory, iid)
    if not item:
        return jsonify({"error": "Inventory not found"}), 404
    return jsonify(inventory_to_dict(item)), 200


@inventory_bp.post("")
@roles_required(*STAFF_ROLES)
def api_inventory_create():
    data = json_body()
    ensure_valid(data, FORM_VALIDATORS["inventory"])

    item = Inventory(
        inventoryid=str(data["inventoryid"]).strip(),
        quantity=as_float(data["quantity"]),
    )
    db.session.add(item)
    db.session.commit()
    logger.info("Inventory %s recorded: %s kg", item.inventoryid, item.quantity)

    run_low_inventory_scan()
    return jsonify({"ok": True, "inventory": inventory_to_dict(item)}), 201


@inventory_bp.put("/<int:iid>")
@roles_required(*STAFF_ROLES)
def api_inventory_update(iid: int):
    item = db.session.get(Inventory, iid)
    if not item:
        return jsonify({"error": "Inventory not found"}), 404

    data = json_body()
    ensure_valid(data, FORM_VALIDATORS["inventory"])

    item.inventoryid = str(data["inventoryid"]).strip()
    item.quantity = as_float(data["quantity"])
    item.updated_at = utcnow()
    db.session.commit()

    run_low_inventory_scan()
    return jsonify({"ok": True, "inventory": inventory_to_dict(item)}), 200


@inventory_bp.delete("/<int:iid>")
@roles_required(*STAFF_ROLES)
def api_inventory_delete(iid: int):
    item = db.session.get(Inventory, iid)
    if not item:
        return jsonify({"error": "Inventory not found"}), 404

    db.session.delete(item)
    db.session.commit()

    run_low_inventory_scan()
    return jsonify({"ok": True, "message": "Inventory deleted successfully"}), 200
