import logging

from flask import Blueprint, jsonify, request

from helpers import as_bool, as_float, as_int, clean_str, json_body, pagination_args, to_local_iso
from models import db, Delivery, Payment, Supplier
from security import STAFF_ROLES, current_user, roles_required
from validation import FORM_VALIDATORS, ensure_valid
from deliveries.service import create_delivery, delivery_stats, delivery_to_dict
from payments.service import payment_to_dict

logger = logging.getLogger(__name__)

suppliers_bp = Blueprint("suppliers", __name__)

EDITABLE_FIELDS = (
    "name",
    "contact_person",
    "contact_number",
    "email",
    "nic_number",
    "address",
    "bank_account_number",
    "bank_name",
    "bank_details",
    "payment_preferences",
)
# supplier accounts cannot change their own rate or status
STAFF_ONLY_FIELDS = ("rate", "is_active", "user_id")


def supplier_to_dict(s: Supplier) -> dict:
    return {
        "id": s.id,
        "supplier_id": s.supplier_id,
        "name": s.name,
        "contact_person": s.contact_person,
        "contact_number": s.contact_number,
        "email": s.email,
        "nic_number": s.nic_number,
        "address": s.address,
        "bank_account_number": s.bank_account_number,
        "bank_name": s.bank_name,
        "bank_details": s.bank_details,
        "payment_preferences": s.payment_preferences,
        "rate": as_float(s.rate),
        "is_active": bool(s.is_active),
        "user_id": s.user_id,
        "created_at": to_local_iso(s.created_at),
        "updated_at": to_local_iso(s.updated_at),
    }


def generate_supplier_id() -> str:
    """Next ``SUPnnnnn`` code after the highest one in use."""
    highest = 0
    for (code,) in db.session.query(Supplier.supplier_id).filter(Supplier.supplier_id.like("SUP%")):
        suffix = code[3:]
        if suffix.isdigit():
            highest = max(highest, int(suffix))
    return f"SUP{highest + 1:05d}"


def supplier_stats(sid: int) -> dict:
    deliveries = delivery_stats(sid)
    row = (
        db.session.query(
            db.func.count(Payment.id),
            db.func.coalesce(db.func.sum(Payment.amount), 0),
            db.func.coalesce(
                db.func.sum(
                    db.case((Payment.status.in_(("paid", "completed")), Payment.amount), else_=0)
                ),
                0,
            ),
        )
        .filter(Payment.supplier_id == sid)
        .one()
    )
    return {
        "deliveries": deliveries,
        "payments": {
            "total_payments": row[0],
            "total_paid": round(as_float(row[1]), 2),
            "paid_amount": round(as_float(row[2]), 2),
        },
    }


def _load_visible(sid: int):
    """Supplier by id, or an error response when missing or not the caller's own."""
    s = db.session.get(Supplier, sid)
    if not s:
        return None, (jsonify({"error": "Supplier not found"}), 404)
    user = current_user()
    if user.effective_role not in STAFF_ROLES and s.user_id != user.id:
        return None, (jsonify({"error": "Access denied. Insufficient permissions."}), 403)
    return s, None


@suppliers_bp.post("/register")
@roles_required()
def api_suppliers_register():
    user = current_user()
    data = json_body()
    if data.get("rate") in (None, ""):
        data["rate"] = 150
    ensure_valid(data, FORM_VALIDATORS["supplier"])

    nic = str(data["nic_number"]).strip()
    if Supplier.query.filter_by(nic_number=nic).first():
        return jsonify({"error": "Supplier with this NIC already exists"}), 400

    is_staff = user.effective_role in STAFF_ROLES
    if not is_staff and Supplier.query.filter_by(user_id=user.id).first():
        return jsonify({"error": "A supplier profile already exists for this account"}), 400

    s = Supplier(
        supplier_id=generate_supplier_id(),
        nic_number=nic,
        rate=as_float(data["rate"]),
        payment_preferences=data.get("payment_preferences") or "cash",
        is_active=True,
        user_id=as_int(data.get("user_id"), None) if is_staff else user.id,
    )
    for field in EDITABLE_FIELDS:
        if field not in ("nic_number", "payment_preferences") and field in data:
            setattr(s, field, clean_str(data[field]))

    db.session.add(s)
    db.session.commit()
    logger.info("Supplier %s registered by user %s", s.supplier_id, user.id)
    return jsonify({"ok": True, "message": "Supplier registered successfully", "supplier": supplier_to_dict(s)}), 201


@suppliers_bp.get("")
@roles_required(*STAFF_ROLES)
def api_suppliers_list():
    """
    Active suppliers, newest first.
    Optional query: ?q= (name, supplier id or NIC)  ?page=  ?limit=
    """
    page, limit, offset = pagination_args()
    q = Supplier.query.filter(Supplier.is_active.is_(True))

    term = (request.args.get("q") or request.args.get("search") or "").strip()
    if term:
        like = f"%{term}%"
        q = q.filter(
            db.or_(
                Supplier.name.ilike(like),
                Supplier.supplier_id.ilike(like),
                Supplier.nic_number.ilike(like),
            )
        )

    total = q.count()
    items = q.order_by(Supplier.created_at.desc(), Supplier.id.desc()).offset(offset).limit(limit).all()
    return jsonify(
        {
            "suppliers": [supplier_to_dict(s) for s in items],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "hasMore": total > offset + limit,
            },
        }
    ), 200


@suppliers_bp.get("/active")
@roles_required(*STAFF_ROLES)
def api_suppliers_active():
    items = Supplier.query.filter(Supplier.is_active.is_(True)).order_by(Supplier.name).all()
    return jsonify({"suppliers": [supplier_to_dict(s) for s in items]}), 200


@suppliers_bp.get("/me")
@roles_required()
def api_suppliers_me():
    s = Supplier.query.filter_by(user_id=current_user().id).first()
    if not s:
        return jsonify({"error": "Supplier not found"}), 404
    return jsonify({"supplier": supplier_to_dict(s), "stats": supplier_stats(s.id)}), 200


@suppliers_bp.get("/stats/deliveries")
@roles_required(*STAFF_ROLES)
def api_suppliers_delivery_stats():
    supplier_id = as_int(request.args.get("supplierId") or request.args.get("supplier_id"), None)
    return jsonify({"stats": delivery_stats(supplier_id)}), 200


@suppliers_bp.get("/<int:sid>")
@suppliers_bp.get("/<int:sid>/profile")
@roles_required()
def api_suppliers_read_one(sid: int):
    s, error = _load_visible(sid)
    if error:
        return error
    return jsonify({"supplier": supplier_to_dict(s), "stats": supplier_stats(s.id)}), 200


@suppliers_bp.put("/<int:sid>")
@suppliers_bp.put("/<int:sid>/profile")
@roles_required()
def api_suppliers_update(sid: int):
    s, error = _load_visible(sid)
    if error:
        return error

    data = json_body()
    is_staff = current_user().effective_role in STAFF_ROLES
    if not is_staff and any(f in data for f in STAFF_ONLY_FIELDS):
        return jsonify({"error": "Only staff can change rate or status"}), 403

    ensure_valid(data, FORM_VALIDATORS["supplier"], partial=True)

    is_active = as_bool(data.get("is_active")) if "is_active" in data else None
    if "is_active" in data and is_active is None:
        return jsonify({"error": "is_active must be true or false"}), 400

    nic = clean_str(data.get("nic_number"))
    if nic and nic != s.nic_number:
        if Supplier.query.filter(Supplier.nic_number == nic, Supplier.id != s.id).first():
            return jsonify({"error": "Supplier with this NIC already exists"}), 400

    for field in EDITABLE_FIELDS:
        if field in data:
            setattr(s, field, clean_str(data[field]))
    if is_staff:
        if "rate" in data:
            s.rate = as_float(data["rate"])
        if "is_active" in data:
            s.is_active = is_active
        if "user_id" in data:
            s.user_id = as_int(data["user_id"], None)

    db.session.commit()
    return jsonify({"ok": True, "message": "Supplier updated successfully", "supplier": supplier_to_dict(s)}), 200


@suppliers_bp.delete("/<int:sid>")
@roles_required(*STAFF_ROLES)
def api_suppliers_delete(sid: int):
    s = db.session.get(Supplier, sid)
    if not s or not s.is_active:
        return jsonify({"error": "Supplier not found"}), 404

    # soft delete keeps delivery and payment history intact
    s.is_active = False
    db.session.commit()
    logger.info("Supplier %s deactivated by user %s", s.supplier_id, current_user().id)
    return jsonify({"ok": True, "message": "Supplier deleted successfully"}), 200


@suppliers_bp.get("/<int:sid>/transactions")
@roles_required()
def api_suppliers_transactions(sid: int):
    s, error = _load_visible(sid)
    if error:
        return error

    page, limit, offset = pagination_args()
    deliveries = (
        Delivery.query.filter_by(supplier_id=s.id)
        .order_by(Delivery.delivery_date.desc(), Delivery.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    payments = (
        Payment.query.filter_by(supplier_id=s.id)
        .order_by(Payment.payment_date.desc(), Payment.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    total_deliveries = Delivery.query.filter_by(supplier_id=s.id).count()
    total_payments = Payment.query.filter_by(supplier_id=s.id).count()

    return jsonify(
        {
            "deliveries": [delivery_to_dict(d) for d in deliveries],
            "payments": [payment_to_dict(p) for p in payments],
            "pagination": {
                "page": page,
                "limit": limit,
                "hasMore": max(total_deliveries, total_payments) > offset + limit,
            },
        }
    ), 200


@suppliers_bp.post("/<int:sid>/deliveries")
@roles_required(*STAFF_ROLES)
def api_suppliers_add_delivery(sid: int):
    s = db.session.get(Supplier, sid)
    if not s:
        return jsonify({"error": "Supplier not found"}), 404
    if not s.is_active:
        return jsonify({"error": "Supplier is inactive"}), 400

    d = create_delivery(s, json_body(), created_by=current_user().id)
    return jsonify({"ok": True, "message": "Delivery recorded successfully", "delivery": delivery_to_dict(d)}), 201
