import logging
from datetime import timedelta

from helpers import as_float, as_int, clean_str, month_bounds, parse_date, to_local_iso, utcnow
from models import db, Delivery, Payment, Supplier
from notifications.service import notify_user
from validation import FORM_VALIDATORS, ValidationError, ensure_valid

logger = logging.getLogger(__name__)

PAYMENT_STATUSES = ("pending", "paid", "completed", "cancelled")
PAID_STATUSES = ("paid", "completed")


def payment_to_dict(p: Payment) -> dict:
    return {
        "id": p.id,
        "supplier_id": p.supplier_id,
        "supplier_code": p.supplier.supplier_id if p.supplier else None,
        "supplier_name": p.supplier.name if p.supplier else None,
        "delivery_id": p.delivery_id,
        "payment_type": p.payment_type,
        "payment_month": p.payment_month,
        "amount": as_float(p.amount),
        "payment_date": to_local_iso(p.payment_date),
        "payment_method": p.payment_method,
        "status": p.status,
        "reference_number": p.reference_number,
        "notes": p.notes,
        "created_by": p.created_by,
        "created_at": to_local_iso(p.created_at),
        "updated_at": to_local_iso(p.updated_at),
    }


def _date_field(data, field):
    try:
        return parse_date(data.get(field))
    except ValueError:
        raise ValidationError({field: "Please enter a valid date"}) from None


def _check_status(status):
    if status and status not in PAYMENT_STATUSES:
        raise ValidationError({"status": f"Must be one of: {', '.join(PAYMENT_STATUSES)}"})


def create_payment(data: dict, created_by=None) -> Payment:
    ensure_valid(data, FORM_VALIDATORS["payment"])
    _check_status(data.get("status"))

    supplier = db.session.get(Supplier, as_int(data.get("supplier_id"), 0))
    if not supplier:
        raise ValidationError({"supplier_id": "Supplier not found"})

    delivery_id = as_int(data.get("delivery_id"), None)
    if delivery_id is not None:
        delivery = db.session.get(Delivery, delivery_id)
        if not delivery or delivery.supplier_id != supplier.id:
            raise ValidationError({"delivery_id": "Delivery not found for this supplier"})

    payment_date = _date_field(data, "payment_date")
    p = Payment(
        supplier_id=supplier.id,
        delivery_id=delivery_id,
        payment_type=data.get("payment_type") or "monthly",
        payment_month=clean_str(data.get("payment_month")) or payment_date.strftime("%Y-%m"),
        amount=as_float(data["amount"]),
        payment_date=payment_date,
        payment_method=data.get("payment_method") or "Bank Transfer",
        status=data.get("status") or "pending",
        reference_number=clean_str(data.get("reference_number")),
        notes=clean_str(data.get("notes")),
        created_by=created_by,
    )
    db.session.add(p)
    db.session.commit()
    logger.info("Payment %s of %.2f recorded for %s", p.id, as_float(p.amount), supplier.supplier_id)
    return p


def update_payment(p: Payment, data: dict) -> Payment:
    ensure_valid(data, FORM_VALIDATORS["payment"], partial=True)
    _check_status(data.get("status"))

    if "amount" in data:
        p.amount = as_float(data["amount"])
    if "payment_date" in data:
        p.payment_date = _date_field(data, "payment_date")
    for field in ("payment_method", "payment_type", "status"):
        if data.get(field):
            setattr(p, field, data[field])
    for field in ("payment_month", "reference_number", "notes"):
        if field in data:
            setattr(p, field, clean_str(data[field]))

    db.session.commit()
    return p


def complete_payment(p: Payment) -> Payment:
    p.status = "completed"
    p.updated_at = utcnow()
    if p.delivery:
        p.delivery.payment_status = "paid"

    supplier = p.supplier
    if supplier and supplier.user_id:
        notify_user(
            supplier.user_id,
            "Payment Completed",
            f"A payment of LKR {as_float(p.amount):,.2f} has been completed.",
            type="PAYMENT_COMPLETED",
            data={"payment_id": p.id, "amount": as_float(p.amount)},
        )
    db.session.commit()
    return p


def cancel_payment(p: Payment) -> Payment:
    p.status = "cancelled"
    p.updated_at = utcnow()
    db.session.commit()
    return p


def summary_by_method(supplier_id, date_from=None, date_to=None):
    paid = Payment.status.in_(PAID_STATUSES)
    pending = Payment.status == "pending"
    q = db.session.query(
        Payment.payment_method,
        db.func.count(Payment.id),
        db.func.coalesce(db.func.sum(Payment.amount), 0),
        db.func.coalesce(db.func.sum(db.case((paid, Payment.amount), else_=0)), 0),
        db.func.coalesce(db.func.sum(db.case((pending, Payment.amount), else_=0)), 0),
    ).filter(Payment.supplier_id == supplier_id)
    if date_from:
        q = q.filter(Payment.payment_date >= date_from)
    if date_to:
        q = q.filter(Payment.payment_date <= date_to)

    rows = q.group_by(Payment.payment_method).order_by(Payment.payment_method).all()
    return [
        {
            "payment_method": method,
            "payment_count": count,
            "total_amount": round(as_float(total), 2),
            "paid_amount": round(as_float(paid_amount), 2),
            "pending_amount": round(as_float(pending_amount), 2),
        }
        for method, count, total, paid_amount, pending_amount in rows
    ]


def _grouped_by_supplier(*conditions):
    rows = (
        db.session.query(
            Supplier.name,
            Payment.payment_method,
            db.func.count(Payment.id),
            db.func.coalesce(db.func.sum(Payment.amount), 0),
        )
        .outerjoin(Supplier, Payment.supplier_id == Supplier.id)
        .filter(*conditions)
        .group_by(Payment.supplier_id, Supplier.name, Payment.payment_method)
        .order_by(db.func.sum(Payment.amount).desc())
        .all()
    )
    return [
        {
            "supplier_name": name,
            "payment_method": method,
            "total_payments": count,
            "total_amount": round(as_float(total), 2),
        }
        for name, method, count, total in rows
    ]


def daily_payments(day):
    return _grouped_by_supplier(Payment.payment_date == day)


def monthly_payments(year, month):
    start, end = month_bounds(year, month)
    return _grouped_by_supplier(
        Payment.payment_date >= start.date(), Payment.payment_date < end.date()
    )


def payment_statistics(today=None):
    """Totals over the last 12 months."""
    today = today or utcnow().date()
    since = today - timedelta(days=365)
    row = (
        db.session.query(
            db.func.count(db.distinct(Payment.supplier_id)),
            db.func.count(Payment.id),
            db.func.coalesce(
                db.func.sum(db.case((Payment.payment_type == "monthly", Payment.amount), else_=0)), 0
            ),
            db.func.coalesce(
                db.func.sum(db.case((Payment.payment_type == "spot-cash", Payment.amount), else_=0)), 0
            ),
            db.func.coalesce(db.func.sum(Payment.amount), 0),
            db.func.avg(Payment.amount),
            db.func.coalesce(db.func.sum(db.case((Payment.status == "pending", 1), else_=0)), 0),
            db.func.coalesce(db.func.sum(db.case((Payment.status.in_(PAID_STATUSES), 1), else_=0)), 0),
            db.func.coalesce(db.func.sum(db.case((Payment.status == "cancelled", 1), else_=0)), 0),
        )
        .filter(Payment.payment_date >= since)
        .one()
    )
    return {
        "since": since.isoformat(),
        "total_suppliers": row[0],
        "total_payments": row[1],
        "monthly_payments_total": round(as_float(row[2]), 2),
        "spot_cash_total": round(as_float(row[3]), 2),
        "total_amount": round(as_float(row[4]), 2),
        "average_payment": round(as_float(row[5]), 2),
        "pending_payments": int(row[6]),
        "completed_payments": int(row[7]),
        "cancelled_payments": int(row[8]),
    }
