import logging

from helpers import as_float, clean_str, parse_date, to_local_iso
from models import db, Delivery, Supplier
from validation import FORM_VALIDATORS, ValidationError, ensure_valid

logger = logging.getLogger(__name__)

DELIVERY_STATUSES = ("pending", "approved", "rejected")
PAYMENT_STATUSES = ("pending", "paid")


def delivery_to_dict(d: Delivery) -> dict:
    return {
        "id": d.id,
        "supplier_id": d.supplier_id,
        "supplier_code": d.supplier.supplier_id if d.supplier else None,
        "supplier_name": d.supplier.name if d.supplier else None,
        "delivery_date": to_local_iso(d.delivery_date),
        "quantity": as_float(d.quantity),
        "rate_per_kg": as_float(d.rate_per_kg),
        "total_amount": as_float(d.total_amount),
        "payment_method": d.payment_method,
        "payment_status": d.payment_status,
        "status": d.status,
        "notes": d.notes,
        "created_by": d.created_by,
        "created_at": to_local_iso(d.created_at),
        "updated_at": to_local_iso(d.updated_at),
    }


def _delivery_date(value):
    try:
        return parse_date(value)
    except ValueError:
        raise ValidationError({"delivery_date": "Please enter a valid date"}) from None


def create_delivery(supplier: Supplier, data: dict, created_by=None) -> Delivery:
    """
    Record a delivery for ``supplier``. The rate falls back to the supplier's
    agreed rate and the total to quantity x rate.
    """
    payload = dict(data, supplier_id=supplier.id)
    ensure_valid(payload, FORM_VALIDATORS["delivery"])

    quantity = as_float(data.get("quantity"))
    rate = as_float(data.get("rate_per_kg"), None)
    if rate is None:
        rate = as_float(supplier.rate)
    total = data.get("total_amount")
    total = as_float(total) if total not in (None, "") else round(quantity * rate, 2)

    d = Delivery(
        supplier_id=supplier.id,
        delivery_date=_delivery_date(data.get("delivery_date")),
        quantity=quantity,
        rate_per_kg=rate,
        total_amount=total,
        payment_method=data.get("payment_method") or "monthly",
        payment_status=data.get("payment_status") or "pending",
        status="pending",
        notes=clean_str(data.get("notes")),
        created_by=created_by,
    )
    db.session.add(d)
    db.session.commit()
    logger.info(
        "Delivery %s recorded for %s: %.2f kg @ %.2f", d.id, supplier.supplier_id, quantity, rate
    )
    return d


def update_delivery(d: Delivery, data: dict) -> Delivery:
    ensure_valid(data, FORM_VALIDATORS["delivery"], partial=True)

    if data.get("status") and data["status"] not in DELIVERY_STATUSES:
        raise ValidationError({"status": f"Must be one of: {', '.join(DELIVERY_STATUSES)}"})
    if data.get("payment_status") and data["payment_status"] not in PAYMENT_STATUSES:
        raise ValidationError(
            {"payment_status": f"Must be one of: {', '.join(PAYMENT_STATUSES)}"}
        )

    if "delivery_date" in data:
        d.delivery_date = _delivery_date(data["delivery_date"])
    if "quantity" in data:
        d.quantity = as_float(data["quantity"])
    if "rate_per_kg" in data:
        rate = as_float(data["rate_per_kg"], None)
        d.rate_per_kg = rate if rate is not None else as_float(d.supplier.rate)
    for field in ("payment_method", "payment_status", "status"):
        if data.get(field):
            setattr(d, field, data[field])
    if "notes" in data:
        d.notes = clean_str(data["notes"])

    if data.get("total_amount") not in (None, ""):
        d.total_amount = as_float(data["total_amount"])
    elif "quantity" in data or "rate_per_kg" in data:
        d.total_amount = round(as_float(d.quantity) * as_float(d.rate_per_kg), 2)

    db.session.commit()
    return d


def delivery_stats(supplier_id=None) -> dict:
    q = db.session.query(
        db.func.count(Delivery.id),
        db.func.coalesce(db.func.sum(Delivery.quantity), 0),
        db.func.coalesce(db.func.sum(Delivery.total_amount), 0),
        db.func.avg(Delivery.rate_per_kg),
        db.func.coalesce(
            db.func.sum(db.case((Delivery.payment_method == "monthly", 1), else_=0)), 0
        ),
        db.func.coalesce(
            db.func.sum(db.case((Delivery.payment_method == "spot", 1), else_=0)), 0
        ),
    )
    if supplier_id:
        q = q.filter(Delivery.supplier_id == supplier_id)
    row = q.one()
    return {
        "total_deliveries": row[0],
        "total_quantity": round(as_float(row[1]), 2),
        "total_value": round(as_float(row[2]), 2),
        "avg_rate": round(as_float(row[3]), 2),
        "monthly_deliveries": int(row[4]),
        "spot_deliveries": int(row[5]),
    }
