from datetime import timedelta

from flask import Blueprint, current_app, jsonify

from helpers import as_float, to_local_iso, utcnow
from models import db, Delivery, Inventory, Notification, Payment, Supplier, User
from notifications.service import total_inventory_kg, visible_to
from security import current_user, roles_required
from reports.service import REPORT_LOW_STOCK_KG

dashboard_bp = Blueprint("dashboard", __name__)


def _sum(column, *conditions):
    value = db.session.query(db.func.coalesce(db.func.sum(column), 0)).filter(*conditions).scalar()
    return round(as_float(value), 2)


def _inventory_block(now):
    total_kg = total_inventory_kg()
    threshold = current_app.config["LOW_INVENTORY_THRESHOLD_KG"]
    return {
        "total_items": Inventory.query.count(),
        "total_weight_kg": total_kg,
        "recent_additions": Inventory.query.filter(Inventory.created_at >= now - timedelta(days=7)).count(),
        "low_stock_items": Inventory.query.filter(Inventory.quantity < REPORT_LOW_STOCK_KG).count(),
        "minimum_kg": threshold,
        "is_low": total_kg < threshold,
    }


def _admin_summary(user, now):
    inventory = _inventory_block(now)
    month_ago = (now - timedelta(days=30)).date()
    unread_alerts = (
        visible_to(user)
        .filter(Notification.is_read.is_(False), Notification.priority == "high")
        .count()
    )
    return {
        "users": {
            "total": User.query.filter(User.is_active.is_(True)).count(),
            "recent": User.query.filter(User.created_at >= now - timedelta(days=7)).count(),
        },
        "suppliers": {
            "total": Supplier.query.count(),
            "active": Supplier.query.filter(Supplier.is_active.is_(True)).count(),
        },
        "inventory": inventory,
        "payments": {
            "total_completed": Payment.query.filter(Payment.status.in_(("paid", "completed"))).count(),
            "pending": Payment.query.filter(Payment.status == "pending").count(),
            "monthly_revenue": _sum(
                Payment.amount,
                Payment.status.in_(("paid", "completed")),
                Payment.payment_date >= month_ago,
            ),
        },
        "alerts": {
            "low_inventory": inventory["is_low"],
            "low_stock": inventory["low_stock_items"] > 0,
            "low_stock_count": inventory["low_stock_items"],
            "unread_high_priority": unread_alerts,
        },
    }


def _staff_summary(now):
    today = now.date()
    todays = Delivery.query.filter(Delivery.delivery_date == today)
    return {
        "deliveries_today": {
            "count": todays.count(),
            "total_quantity": _sum(Delivery.quantity, Delivery.delivery_date == today),
            "total_amount": _sum(Delivery.total_amount, Delivery.delivery_date == today),
        },
        "pending_deliveries": Delivery.query.filter(Delivery.status == "pending").count(),
        "inventory": _inventory_block(now),
        "pending_payments": {
            "count": Payment.query.filter(Payment.status == "pending").count(),
            "amount": _sum(Payment.amount, Payment.status == "pending"),
        },
    }


def _supplier_summary(user):
    supplier = Supplier.query.filter_by(user_id=user.id).first()
    if not supplier:
        return {"supplier": None, "deliveries": None, "payments": None}

    deliveries = Delivery.query.filter(Delivery.supplier_id == supplier.id)
    recent = deliveries.order_by(Delivery.delivery_date.desc(), Delivery.id.desc()).limit(5).all()
    return {
        "supplier": {
            "id": supplier.id,
            "supplier_id": supplier.supplier_id,
            "name": supplier.name,
            "rate": as_float(supplier.rate),
        },
        "deliveries": {
            "total": deliveries.count(),
            "total_quantity": _sum(Delivery.quantity, Delivery.supplier_id == supplier.id),
            "total_amount": _sum(Delivery.total_amount, Delivery.supplier_id == supplier.id),
            "recent": [
                {
                    "id": d.id,
                    "delivery_date": to_local_iso(d.delivery_date),
                    "quantity": as_float(d.quantity),
                    "total_amount": as_float(d.total_amount),
                    "status": d.status,
                    "payment_status": d.payment_status,
                }
                for d in recent
            ],
        },
        "payments": {
            "paid_amount": _sum(
                Payment.amount,
                Payment.supplier_id == supplier.id,
                Payment.status.in_(("paid", "completed")),
            ),
            "pending_amount": _sum(
                Payment.amount, Payment.supplier_id == supplier.id, Payment.status == "pending"
            ),
        },
    }


@dashboard_bp.get("/summary")
@roles_required()
def api_dashboard_summary():
    user = current_user()
    now = utcnow()
    role = user.effective_role

    if role == "admin":
        data = _admin_summary(user, now)
    elif role == "staff":
        data = _staff_summary(now)
    else:
        data = _supplier_summary(user)

    return jsonify(
        {
            "data": data,
            "user_role": role,
            "generated_at": to_local_iso(now),
        }
    ), 200
