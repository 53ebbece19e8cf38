from flask import Blueprint, jsonify

from helpers import as_float, clean_str, json_body
from models import db, ProductionProcess, TeaQuality
from security import ADMIN_ROLES, roles_required
from validation import ensure_valid, numeric, positive_number, required

catalog_bp = Blueprint("catalog", __name__)

TEA_QUALITY_VALIDATORS = {
    "quality_name": [required("Quality name is required")],
    "price_per_kg": [required("Price per kg is required"), positive_number()],
    "min_weight": [numeric()],
    "max_weight": [numeric()],
}


def tea_quality_to_dict(t: TeaQuality) -> dict:
    return {
        "id": t.id,
        "quality_name": t.quality_name,
        "description": t.description,
        "price_per_kg": as_float(t.price_per_kg),
        "min_weight": as_float(t.min_weight),
        "max_weight": as_float(t.max_weight),
        "is_active": bool(t.is_active),
    }


def process_to_dict(p: ProductionProcess) -> dict:
    return {
        "id": p.id,
        "process_name": p.process_name,
        "description": p.description,
        "estimated_duration_hours": as_float(p.estimated_duration_hours),
        "required_temperature": as_float(p.required_temperature),
        "required_humidity": as_float(p.required_humidity),
        "is_active": bool(p.is_active),
    }


def _check_weights(t: TeaQuality):
    if as_float(t.max_weight) and as_float(t.min_weight) > as_float(t.max_weight):
        return jsonify({"error": "min_weight cannot exceed max_weight"}), 400
    return None


# ---------- Tea qualities ----------
@catalog_bp.get("/tea-qualities")
@roles_required()
def api_tea_qualities_list():
    items = (
        TeaQuality.query.filter(TeaQuality.is_active.is_(True))
        .order_by(TeaQuality.price_per_kg.desc(), TeaQuality.id.asc())
        .all()
    )
    return jsonify({"teaQualities": [tea_quality_to_dict(t) for t in items]}), 200


@catalog_bp.get("/tea-qualities/<int:tid>")
@roles_required()
def api_tea_qualities_read_one(tid: int):
    t = db.session.get(TeaQuality, tid)
    if not t or not t.is_active:
        return jsonify({"error": "Tea quality not found"}), 404
    return jsonify({"teaQuality": tea_quality_to_dict(t)}), 200


@catalog_bp.post("/tea-qualities")
@roles_required(*ADMIN_ROLES)
def api_tea_qualities_create():
    data = json_body()
    ensure_valid(data, TEA_QUALITY_VALIDATORS)

    name = data["quality_name"].strip()
    if TeaQuality.query.filter_by(quality_name=name).first():
        return jsonify({"error": "Tea quality already exists"}), 400

    t = TeaQuality(
        quality_name=name,
        description=clean_str(data.get("description")),
        price_per_kg=as_float(data["price_per_kg"]),
        min_weight=as_float(data.get("min_weight")),
        max_weight=as_float(data.get("max_weight")),
        is_active=True,
    )
    error = _check_weights(t)
    if error:
        return error

    db.session.add(t)
    db.session.commit()
    return jsonify({"ok": True, "teaQuality": tea_quality_to_dict(t)}), 201


@catalog_bp.put("/tea-qualities/<int:tid>")
@roles_required(*ADMIN_ROLES)
def api_tea_qualities_update(tid: int):
    t = db.session.get(TeaQuality, tid)
    if not t or not t.is_active:
        return jsonify({"error": "Tea quality not found"}), 404

    data = json_body()
    ensure_valid(data, TEA_QUALITY_VALIDATORS, partial=True)

    name = clean_str(data.get("quality_name"))
    if name and name != t.quality_name:
        if TeaQuality.query.filter_by(quality_name=name).first():
            return jsonify({"error": "Tea quality already exists"}), 400
        t.quality_name = name
    if "description" in data:
        t.description = clean_str(data["description"])
    for field in ("price_per_kg", "min_weight", "max_weight"):
        if field in data:
            setattr(t, field, as_float(data[field]))

    error = _check_weights(t)
    if error:
        db.session.rollback()
        return error

    db.session.commit()
    return jsonify({"ok": True, "teaQuality": tea_quality_to_dict(t)}), 200


@catalog_bp.delete("/tea-qualities/<int:tid>")
@roles_required(*ADMIN_ROLES)
def api_tea_qualities_delete(tid: int):
    t = db.session.get(TeaQuality, tid)
    if not t or not t.is_active:
        return jsonify({"error": "Tea quality not found"}), 404
    t.is_active = False
    db.session.commit()
    return jsonify({"ok": True}), 200


# ---------- Production processes ----------
@catalog_bp.get("/production-processes")
@roles_required()
def api_production_processes_list():
    items = (
        ProductionProcess.query.filter(ProductionProcess.is_active.is_(True))
        .order_by(ProductionProcess.id.asc())
        .all()
    )
    return jsonify({"processes": [process_to_dict(p) for p in items]}), 200
