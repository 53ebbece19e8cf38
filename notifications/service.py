import logging

from flask import current_app

from helpers import as_float, to_local_iso, utcnow
from models import db, Inventory, Notification

logger = logging.getLogger(__name__)

LOW_INVENTORY = "LOW_INVENTORY"


def notification_to_dict(n: Notification) -> dict:
    return {
        "id": n.id,
        "type": n.type,
        "title": n.title,
        "message": n.message,
        "data": n.data,
        "priority": n.priority,
        "recipient_id": n.recipient_id,
        "recipient_role": n.recipient_role,
        "is_read": bool(n.is_read),
        "read_at": to_local_iso(n.read_at),
        "created_at": to_local_iso(n.created_at),
    }


def visible_to(user):
    """Notifications addressed to the user, or broadcast to the user's role."""
    roles = {user.role}
    if user.effective_role == "admin":
        roles |= {"admin", "manager"}
    return Notification.query.filter(
        db.or_(
            Notification.recipient_id == user.id,
            db.and_(
                Notification.recipient_id.is_(None),
                Notification.recipient_role.in_(sorted(roles)),
            ),
        )
    )


def notify_user(user_id, title, message, type="info", data=None, priority="medium"):
    n = Notification(
        recipient_id=user_id,
        title=title,
        message=message,
        type=type,
        data=data,
        priority=priority,
    )
    db.session.add(n)
    return n


def notify_role(role, title, message, type="info", data=None, priority="medium"):
    n = Notification(
        recipient_role=role,
        title=title,
        message=message,
        type=type,
        data=data,
        priority=priority,
    )
    db.session.add(n)
    return n


def total_inventory_kg() -> float:
    total = db.session.query(db.func.coalesce(db.func.sum(Inventory.quantity), 0)).scalar()
    return as_float(total)


# ---------- Low-inventory scan ----------
def run_low_inventory_scan():
    """
    Keep exactly one LOW_INVENTORY broadcast for managers while total raw
    leaves are under the threshold; drop it once stock recovers.
    """
    threshold = current_app.config["LOW_INVENTORY_THRESHOLD_KG"]
    total = total_inventory_kg()

    existing = (
        Notification.query
        .filter(Notification.type == LOW_INVENTORY)
        .filter(Notification.recipient_role == "manager")
        .all()
    )

    if total >= threshold:
        for n in existing:
            db.session.delete(n)
        db.session.commit()
        return None

    if existing:
        # read or not, the oldest row stays the single alert
        current = min(existing, key=lambda n: n.id)
        for extra in existing:
            if extra is not current:
                db.session.delete(extra)
        current.message = (
            f"Raw leaves inventory is below {threshold:,.0f} kg. "
            f"Current total: {total:,.0f} kg."
        )
        current.data = {"total_kg": total, "threshold_kg": threshold}
        db.session.commit()
        return current

    logger.warning("Raw leaves inventory low: %.2f kg (threshold %.2f)", total, threshold)
    n = notify_role(
        "manager",
        "Low Raw Leaves Inventory",
        f"Raw leaves inventory is below {threshold:,.0f} kg. Current total: {total:,.0f} kg.",
        type=LOW_INVENTORY,
        data={"total_kg": total, "threshold_kg": threshold},
        priority="high",
    )
    db.session.commit()
    return n


def mark_read(n: Notification):
    n.is_read = True
    n.read_at = utcnow()
