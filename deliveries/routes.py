from flask import Blueprint, jsonify, request

from helpers import as_float, as_int, json_body, month_bounds, pagination_args
from models import db, Delivery, Supplier
from notifications.service import notify_user
from security import ADMIN_ROLES, STAFF_ROLES, current_user, roles_required
from deliveries.service import create_delivery, delivery_stats, delivery_to_dict, update_delivery

deliveries_bp = Blueprint("deliveries", __name__)


def _own_supplier_ids(user):
    return [s.id for s in Supplier.query.filter_by(user_id=user.id).all()]


def _can_view(user, d: Delivery) -> bool:
    if user.effective_role in STAFF_ROLES:
        return True
    return d.supplier_id in _own_supplier_ids(user)


@deliveries_bp.get("")
@roles_required()
def api_deliveries_list():
    """
    Optional query:
      ?supplier_id=  ?status=  ?payment_status=  ?page=  ?limit=
    Supplier accounts only ever see their own deliveries.
    """
    user = current_user()
    page, limit, offset = pagination_args()

    q = Delivery.query
    if user.effective_role not in STAFF_ROLES:
        q = q.filter(Delivery.supplier_id.in_(_own_supplier_ids(user)))

    supplier_id = as_int(request.args.get("supplier_id"), None)
    if supplier_id:
        q = q.filter(Delivery.supplier_id == supplier_id)
    for field in ("status", "payment_status", "payment_method"):
        value = request.args.get(field)
        if value:
            q = q.filter(getattr(Delivery, field) == value)

    total = q.count()
    items = (
        q.order_by(Delivery.delivery_date.desc(), Delivery.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return jsonify(
        {
            "deliveries": [delivery_to_dict(d) for d in items],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "hasMore": total > offset + limit,
            },
        }
    ), 200


@deliveries_bp.get("/stats")
@roles_required(*STAFF_ROLES)
def api_deliveries_stats():
    supplier_id = as_int(request.args.get("supplier_id") or request.args.get("supplierId"), None)
    return jsonify({"stats": delivery_stats(supplier_id)}), 200


@deliveries_bp.get("/monthly-report")
@roles_required(*STAFF_ROLES)
def api_deliveries_monthly_report():
    year = as_int(request.args.get("year"), None)
    month = as_int(request.args.get("month"), None)
    if not year or not month or not 1 <= month <= 12:
        return jsonify({"error": "Year and month are required"}), 400

    start, end = month_bounds(year, month)
    row = (
        db.session.query(
            db.func.count(Delivery.id),
            db.func.coalesce(db.func.sum(Delivery.quantity), 0),
            db.func.coalesce(db.func.sum(Delivery.total_amount), 0),
            db.func.avg(Delivery.rate_per_kg),
        )
        .filter(Delivery.delivery_date >= start.date(), Delivery.delivery_date < end.date())
        .one()
    )
    return jsonify(
        {
            "year": year,
            "month": month,
            "stats": {
                "total_deliveries": row[0],
                "total_quantity": round(as_float(row[1]), 2),
                "total_value": round(as_float(row[2]), 2),
                "avg_rate": round(as_float(row[3]), 2),
            },
        }
    ), 200


@deliveries_bp.post("")
@roles_required(*STAFF_ROLES)
def api_deliveries_create():
    data = json_body()
    supplier = db.session.get(Supplier, as_int(data.get("supplier_id"), 0))
    if not supplier:
        return jsonify({"error": "Supplier not found"}), 404

    d = create_delivery(supplier, data, created_by=current_user().id)
    return jsonify({"ok": True, "delivery": delivery_to_dict(d)}), 201


@deliveries_bp.get("/<int:did>")
@roles_required()
def api_deliveries_read_one(did: int):
    d = db.session.get(Delivery, did)
    if not d or not _can_view(current_user(), d):
        return jsonify({"error": "Delivery not found"}), 404
    return jsonify({"delivery": delivery_to_dict(d)}), 200


@deliveries_bp.put("/<int:did>")
@roles_required(*STAFF_ROLES)
def api_deliveries_update(did: int):
    d = db.session.get(Delivery, did)
    if not d:
        return jsonify({"error": "Delivery not found"}), 404

    update_delivery(d, json_body())
    return jsonify({"ok": True, "delivery": delivery_to_dict(d)}), 200


@deliveries_bp.delete("/<int:did>")
@roles_required(*STAFF_ROLES)
def api_deliveries_delete(did: int):
    d = db.session.get(Delivery, did)
    if not d:
        return jsonify({"error": "Delivery not found"}), 404
    if d.payments:
        return jsonify({"error": "Cannot delete a delivery with recorded payments"}), 400

    db.session.delete(d)
    db.session.commit()
    return jsonify({"ok": True, "message": "Delivery deleted successfully"}), 200


def _set_status(did: int, status: str):
    d = db.session.get(Delivery, did)
    if not d:
        return jsonify({"error": "Delivery not found"}), 404
    if d.status == status:
        return jsonify({"error": f"Delivery is already {status}"}), 400

    d.status = status
    note = (json_body().get("reason") or "").strip()
    if note:
        d.notes = f"{d.notes}\n{note}" if d.notes else note

    supplier = d.supplier
    if supplier and supplier.user_id:
        notify_user(
            supplier.user_id,
            f"Delivery {status.capitalize()}",
            f"Your delivery of {as_float(d.quantity):g} kg on {d.delivery_date.isoformat()} was {status}.",
            type=f"DELIVERY_{status.upper()}",
            data={"delivery_id": d.id},
        )
    db.session.commit()
    return jsonify({"ok": True, "delivery": delivery_to_dict(d)}), 200


@deliveries_bp.put("/<int:did>/approve")
@roles_required(*ADMIN_ROLES)
def api_deliveries_approve(did: int):
    return _set_status(did, "approved")


@deliveries_bp.put("/<int:did>/reject")
@roles_required(*ADMIN_ROLES)
def api_deliveries_reject(did: int):
    return _set_status(did, "rejected")
