"""
Raw-leaves inventory analytics.

Works on plain rows ``{"inventoryid", "quantity", "created_at"}`` so the
same figures feed the JSON summary and the PDF report.
"""
import calendar
import random
import time
from datetime import datetime, timedelta

from helpers import as_float, utcnow

RAW_LEAVES_MINIMUM_KG = 10000
LOW_STOCK_KG = 100
HIGH_STOCK_KG = 500


def generate_inventory_id() -> str:
    return f"INV-{int(time.time() * 1000)}-{random.randint(0, 999)}"


def stock_status(quantity) -> str:
    qty = as_float(quantity)
    if qty < LOW_STOCK_KG:
        return "Low Stock"
    if qty < HIGH_STOCK_KG:
        return "Medium Stock"
    return "High Stock"


def one_month_before(moment: datetime) -> datetime:
    """Same day and time one calendar month earlier (clamped to month end)."""
    year, month = moment.year, moment.month - 1
    if month == 0:
        year, month = year - 1, 12
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def week_start(moment: datetime):
    """Sunday that starts the week containing ``moment``."""
    # Python weekday(): Monday=0 ... Sunday=6
    days_since_sunday = (moment.weekday() + 1) % 7
    return (moment - timedelta(days=days_since_sunday)).date()


def in_past_month(rows, now=None):
    now = now or utcnow()
    start = one_month_before(now)
    picked = [r for r in rows if r.get("created_at") and start <= r["created_at"] <= now]
    return picked, start, now


def weekly_buckets(rows):
    buckets = {}
    for r in rows:
        key = week_start(r["created_at"]).isoformat()
        bucket = buckets.setdefault(key, {"count": 0, "totalQuantity": 0.0})
        bucket["count"] += 1
        bucket["totalQuantity"] += as_float(r.get("quantity"))

    out = []
    for key in sorted(buckets):
        b = buckets[key]
        out.append(
            {
                "weekStart": key,
                "count": b["count"],
                "totalQuantity": round(b["totalQuantity"], 2),
                "averageQuantity": round(b["totalQuantity"] / b["count"], 2),
            }
        )
    return out


def status_distribution(rows):
    total = len(rows)
    bands = [
        ("Low Stock", "Low Stock (< 100 kg)"),
        ("Medium Stock", "Medium Stock (100-499 kg)"),
        ("High Stock", "High Stock (≥ 500 kg)"),
    ]
    out = []
    for status, label in bands:
        members = [r for r in rows if stock_status(r.get("quantity")) == status]
        out.append(
            {
                "status": status,
                "label": label,
                "count": len(members),
                "percentage": round(len(members) / total * 100, 1) if total else 0.0,
                "totalQuantity": round(sum(as_float(r.get("quantity")) for r in members), 2),
            }
        )
    return out


def raw_leaves_status(total_kg, minimum=RAW_LEAVES_MINIMUM_KG):
    total_kg = as_float(total_kg)
    return {
        "totalKg": round(total_kg, 2),
        "minimumKg": minimum,
        "shortfallKg": round(max(minimum - total_kg, 0), 2),
        "status": "adequate" if total_kg >= minimum else "low",
    }


def summarize(rows, total_kg=None, now=None, minimum=RAW_LEAVES_MINIMUM_KG):
    """
    Past-month figures for the inventory summary and report.

    ``total_kg`` is the current stock on hand; it defaults to the sum of
    every row passed in.
    """
    if total_kg is None:
        total_kg = sum(as_float(r.get("quantity")) for r in rows)

    recent, start, end = in_past_month(rows, now=now)
    quantities = [as_float(r.get("quantity")) for r in recent]

    summary = {
        "periodStart": start.date().isoformat(),
        "periodEnd": end.date().isoformat(),
        "totalRecords": len(recent),
        "totalQuantity": round(sum(quantities), 2),
        "averageQuantity": round(sum(quantities) / len(quantities), 2) if quantities else 0.0,
        "minQuantity": min(quantities) if quantities else 0.0,
        "maxQuantity": max(quantities) if quantities else 0.0,
        "weekly": weekly_buckets(recent),
        "distribution": status_distribution(recent),
        "rawLeaves": raw_leaves_status(total_kg, minimum=minimum),
        "records": [
            {
                "inventoryid": r.get("inventoryid"),
                "quantity": as_float(r.get("quantity")),
                "created_at": r["created_at"].isoformat(),
                "status": stock_status(r.get("quantity")),
            }
            for r in sorted(recent, key=lambda r: r["created_at"], reverse=True)
        ],
    }
    return summary
