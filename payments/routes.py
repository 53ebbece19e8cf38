from flask import Blueprint, jsonify, request

from helpers import as_int, json_body, pagination_args, parse_date
from models import db, Payment, Supplier
from security import STAFF_ROLES, current_user, roles_required
from payments.service import (
    cancel_payment,
    complete_payment,
    create_payment,
    daily_payments,
    monthly_payments,
    payment_statistics,
    payment_to_dict,
    summary_by_method,
    update_payment,
)

payments_bp = Blueprint("payments", __name__)


def _date_arg(name):
    try:
        return parse_date(request.args.get(name)), None
    except ValueError:
        return None, (jsonify({"error": f"{name} must be a date (YYYY-MM-DD)"}), 400)


@payments_bp.get("")
@roles_required()
def api_payments_list():
    """
    Optional query:
      ?supplier_id=  ?date_from=  ?date_to=  ?status=  ?payment_method=
      ?payment_type=  ?page=  ?limit=
    """
    user = current_user()
    page, limit, offset = pagination_args()

    q = Payment.query
    if user.effective_role not in STAFF_ROLES:
        own = [s.id for s in Supplier.query.filter_by(user_id=user.id).all()]
        q = q.filter(Payment.supplier_id.in_(own))

    supplier_id = as_int(request.args.get("supplier_id"), None)
    if supplier_id:
        q = q.filter(Payment.supplier_id == supplier_id)

    date_from, error = _date_arg("date_from")
    if error:
        return error
    date_to, error = _date_arg("date_to")
    if error:
        return error
    if date_from:
        q = q.filter(Payment.payment_date >= date_from)
    if date_to:
        q = q.filter(Payment.payment_date <= date_to)

    for field in ("status", "payment_method", "payment_type"):
        value = request.args.get(field)
        if value:
            q = q.filter(getattr(Payment, field) == value)

    total = q.count()
    items = (
        q.order_by(Payment.payment_date.desc(), Payment.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return jsonify(
        {
            "payments": [payment_to_dict(p) for p in items],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "hasMore": total > offset + limit,
            },
        }
    ), 200


@payments_bp.post("")
@roles_required(*STAFF_ROLES)
def api_payments_create():
    p = create_payment(json_body(), created_by=current_user().id)
    return jsonify({"ok": True, "message": "Payment recorded successfully", "payment": payment_to_dict(p)}), 201


@payments_bp.get("/statistics")
@roles_required(*STAFF_ROLES)
def api_payments_statistics():
    return jsonify({"statistics": payment_statistics()}), 200


@payments_bp.get("/summary/<int:supplier_id>")
@roles_required(*STAFF_ROLES)
def api_payments_summary(supplier_id: int):
    if not db.session.get(Supplier, supplier_id):
        return jsonify({"error": "Supplier not found"}), 404

    date_from, error = _date_arg("date_from")
    if error:
        return error
    date_to, error = _date_arg("date_to")
    if error:
        return error

    return jsonify(
        {
            "supplier_id": supplier_id,
            "date_from": date_from.isoformat() if date_from else None,
            "date_to": date_to.isoformat() if date_to else None,
            "summary": summary_by_method(supplier_id, date_from, date_to),
        }
    ), 200


@payments_bp.get("/reports/daily/<day>")
@roles_required(*STAFF_ROLES)
def api_payments_daily_report(day):
    try:
        parsed = parse_date(day)
    except ValueError:
        return jsonify({"error": "Date parameter is required (YYYY-MM-DD format)"}), 400
    return jsonify({"date": parsed.isoformat(), "report": daily_payments(parsed)}), 200


@payments_bp.get("/reports/monthly/<int:year>/<int:month>")
@roles_required(*STAFF_ROLES)
def api_payments_monthly_report(year: int, month: int):
    if not 1 <= month <= 12:
        return jsonify({"error": "Year and month parameters are required"}), 400
    return jsonify({"year": year, "month": month, "report": monthly_payments(year, month)}), 200


@payments_bp.get("/<int:pid>")
@roles_required()
def api_payments_read_one(pid: int):
    p = db.session.get(Payment, pid)
    user = current_user()
    if not p:
        return jsonify({"error": "Payment not found"}), 404
    if user.effective_role not in STAFF_ROLES and (not p.supplier or p.supplier.user_id != user.id):
        return jsonify({"error": "Payment not found"}), 404
    return jsonify({"payment": payment_to_dict(p)}), 200


@payments_bp.put("/<int:pid>")
@roles_required(*STAFF_ROLES)
def api_payments_update(pid: int):
    p = db.session.get(Payment, pid)
    if not p:
        return jsonify({"error": "Payment not found"}), 404

    update_payment(p, json_body())
    return jsonify({"ok": True, "message": "Payment updated successfully", "payment": payment_to_dict(p)}), 200


@payments_bp.put("/<int:pid>/complete")
@roles_required(*STAFF_ROLES)
def api_payments_complete(pid: int):
    p = db.session.get(Payment, pid)
    if not p:
        return jsonify({"error": "Payment not found"}), 404
    if p.status == "cancelled":
        return jsonify({"error": "A cancelled payment cannot be completed"}), 400

    complete_payment(p)
    return jsonify({"ok": True, "message": "Payment completed successfully", "payment": payment_to_dict(p)}), 200


@payments_bp.put("/<int:pid>/cancel")
@roles_required(*STAFF_ROLES)
def api_payments_cancel(pid: int):
    p = db.session.get(Payment, pid)
    if not p:
        return jsonify({"error": "Payment not found"}), 404
    if p.status in ("paid", "completed"):
        return jsonify({"error": "A completed payment cannot be cancelled"}), 400

    cancel_payment(p)
    return jsonify({"ok": True, "message": "Payment cancelled", "payment": payment_to_dict(p)}), 200
