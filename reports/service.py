import logging
from datetime import date, datetime, timedelta

from helpers import as_float, month_bounds, to_local_iso
from models import db, Delivery, Inventory, Payment, Supplier

logger = logging.getLogger(__name__)

PERIODS = {"7d": 7, "30d": 30, "90d": 90}
DEFAULT_PERIOD = "30d"
# a single inventory entry under this counts as low stock in reports
REPORT_LOW_STOCK_KG = 1000
PAID_STATUSES = ("paid", "completed")


def _num(value, digits=2):
    return round(as_float(value), digits)


def _day_range(day: date):
    start = datetime(day.year, day.month, day.day)
    return start, start + timedelta(days=1)


def _delivery_totals(*conditions):
    row = (
        db.session.query(
            db.func.count(Delivery.id),
            db.func.coalesce(db.func.sum(Delivery.quantity), 0),
            db.func.coalesce(db.func.sum(Delivery.total_amount), 0),
            db.func.avg(Delivery.rate_per_kg),
            db.func.count(db.distinct(Delivery.supplier_id)),
        )
        .filter(*conditions)
        .one()
    )
    return {
        "total_deliveries": row[0],
        "total_quantity": _num(row[1]),
        "total_amount": _num(row[2]),
        "avg_rate": _num(row[3]),
        "unique_suppliers": row[4],
    }


def _supplier_breakdown(*conditions):
    rows = (
        db.session.query(
            Supplier.name,
            Supplier.supplier_id,
            db.func.count(Delivery.id),
            db.func.sum(Delivery.quantity),
            db.func.sum(Delivery.total_amount),
            db.func.avg(Delivery.rate_per_kg),
        )
        .join(Supplier, Delivery.supplier_id == Supplier.id)
        .filter(*conditions)
        .group_by(Supplier.id, Supplier.name, Supplier.supplier_id)
        .order_by(db.func.sum(Delivery.total_amount).desc())
        .all()
    )
    return [
        {
            "supplier_name": r[0],
            "supplier_id": r[1],
            "delivery_count": r[2],
            "total_quantity": _num(r[3]),
            "total_amount": _num(r[4]),
            "avg_rate": _num(r[5]),
        }
        for r in rows
    ]


def _payment_totals(*conditions):
    paid = Payment.status.in_(PAID_STATUSES)
    pending = Payment.status == "pending"
    row = (
        db.session.query(
            db.func.count(Payment.id),
            db.func.coalesce(db.func.sum(Payment.amount), 0),
            db.func.coalesce(db.func.sum(db.case((paid, 1), else_=0)), 0),
            db.func.coalesce(db.func.sum(db.case((pending, 1), else_=0)), 0),
            db.func.coalesce(db.func.sum(db.case((paid, Payment.amount), else_=0)), 0),
            db.func.coalesce(db.func.sum(db.case((pending, Payment.amount), else_=0)), 0),
        )
        .filter(*conditions)
        .one()
    )
    return {
        "total_payments": row[0],
        "total_amount": _num(row[1]),
        "paid_count": int(row[2]),
        "pending_count": int(row[3]),
        "paid_amount": _num(row[4]),
        "pending_amount": _num(row[5]),
    }


def _inventory_totals(*conditions):
    row = (
        db.session.query(
            db.func.count(Inventory.id),
            db.func.coalesce(db.func.sum(Inventory.quantity), 0),
            db.func.avg(Inventory.quantity),
            db.func.min(Inventory.quantity),
            db.func.max(Inventory.quantity),
            db.func.coalesce(
                db.func.sum(db.case((Inventory.quantity < REPORT_LOW_STOCK_KG, 1), else_=0)), 0
            ),
        )
        .filter(*conditions)
        .one()
    )
    return {
        "total_items": row[0],
        "total_quantity": _num(row[1]),
        "avg_quantity": _num(row[2]),
        "min_quantity": _num(row[3]),
        "max_quantity": _num(row[4]),
        "low_stock_count": int(row[5]),
    }


# ---------- Supplier reports ----------
def daily_supplier_report(day: date) -> dict:
    on_day = Delivery.delivery_date == day
    return {
        "date": day.isoformat(),
        "deliveryStats": _delivery_totals(on_day),
        "supplierBreakdown": _supplier_breakdown(on_day),
        "paymentStats": _payment_totals(Payment.payment_date == day),
    }


def monthly_supplier_report(year: int, month: int) -> dict:
    start, end = month_bounds(year, month)
    in_month = (Delivery.delivery_date >= start.date(), Delivery.delivery_date < end.date())

    stats = _delivery_totals(*in_month)
    first_last = (
        db.session.query(db.func.min(Delivery.delivery_date), db.func.max(Delivery.delivery_date))
        .filter(*in_month)
        .one()
    )
    stats["first_delivery"] = to_local_iso(first_last[0])
    stats["last_delivery"] = to_local_iso(first_last[1])

    daily = (
        db.session.query(
            Delivery.delivery_date,
            db.func.count(Delivery.id),
            db.func.sum(Delivery.quantity),
            db.func.sum(Delivery.total_amount),
        )
        .filter(*in_month)
        .group_by(Delivery.delivery_date)
        .order_by(Delivery.delivery_date)
        .all()
    )

    ranking = _supplier_breakdown(*in_month)
    for position, row in enumerate(ranking, start=1):
        row["ranking"] = position

    return {
        "period": {"year": year, "month": month},
        "monthlyStats": stats,
        "dailyBreakdown": [
            {
                "delivery_date": to_local_iso(d),
                "daily_deliveries": count,
                "daily_quantity": _num(qty),
                "daily_amount": _num(amount),
            }
            for d, count, qty, amount in daily
        ],
        "supplierRanking": ranking,
    }


# ---------- Inventory reports ----------
def daily_inventory_report(day: date) -> dict:
    start, end = _day_range(day)
    on_day = (Inventory.created_at >= start, Inventory.created_at < end)

    stats = _inventory_totals(*on_day)
    low_items = (
        Inventory.query.filter(*on_day)
        .filter(Inventory.quantity < REPORT_LOW_STOCK_KG)
        .order_by(Inventory.quantity.asc())
        .all()
    )
    return {
        "date": day.isoformat(),
        "inventoryStats": stats,
        "lowStockItems": [
            {
                "inventoryid": i.inventoryid,
                "quantity": as_float(i.quantity),
                "created_at": to_local_iso(i.created_at),
            }
            for i in low_items
        ],
    }


def monthly_inventory_report(year: int, month: int) -> dict:
    start, end = month_bounds(year, month)
    in_month = (Inventory.created_at >= start, Inventory.created_at < end)

    items = Inventory.query.filter(*in_month).order_by(Inventory.created_at).all()
    trend = {}
    for i in items:
        key = i.created_at.date().isoformat()
        bucket = trend.setdefault(key, {"inventory_date": key, "daily_items": 0, "daily_quantity": 0.0})
        bucket["daily_items"] += 1
        bucket["daily_quantity"] += as_float(i.quantity)

    return {
        "period": {"year": year, "month": month},
        "monthlyInventoryStats": _inventory_totals(*in_month),
        "dailyInventoryTrend": [
            dict(b, daily_quantity=_num(b["daily_quantity"])) for _, b in sorted(trend.items())
        ],
    }


# ---------- Dashboard ----------
def normalize_period(period) -> str:
    return period if period in PERIODS else DEFAULT_PERIOD


def dashboard_report(period=DEFAULT_PERIOD, today=None) -> dict:
    period = normalize_period(period)
    today = today or date.today()
    since = today - timedelta(days=PERIODS[period])

    supplier_stats = _delivery_totals(Delivery.delivery_date >= since)
    supplier_stats["active_suppliers"] = supplier_stats.pop("unique_suppliers")

    inventory = _inventory_totals()
    inventory_stats = {
        "total_items": inventory["total_items"],
        "total_quantity": inventory["total_quantity"],
        "low_stock_items": inventory["low_stock_count"],
    }

    recent = (
        db.session.query(Delivery, Supplier.name)
        .join(Supplier, Delivery.supplier_id == Supplier.id)
        .filter(Delivery.delivery_date >= since)
        .order_by(Delivery.delivery_date.desc(), Delivery.id.desc())
        .limit(10)
        .all()
    )

    return {
        "period": period,
        "supplierStats": supplier_stats,
        "inventoryStats": inventory_stats,
        "paymentStats": _payment_totals(Payment.payment_date >= since),
        "recentActivities": [
            {
                "type": "delivery",
                "date": to_local_iso(d.delivery_date),
                "description": f"Delivery from {name} - {as_float(d.quantity):g}kg",
                "amount": as_float(d.total_amount),
            }
            for d, name in recent
        ],
    }
