from flask import Blueprint, jsonify, request

from helpers import as_int, json_body
from models import db, Notification, ROLES
from security import current_user, roles_required
from notifications.service import (
    mark_read,
    notification_to_dict,
    notify_role,
    notify_user,
    visible_to,
)

notifications_bp = Blueprint("notifications", __name__)


@notifications_bp.get("")
@roles_required()
def list_notifications():
    user = current_user()
    limit = min(max(as_int(request.args.get("limit"), 50), 1), 200)
    offset = max(as_int(request.args.get("offset"), 0), 0)
    unread_only = (request.args.get("unread_only") or "").lower() == "true"

    q = visible_to(user)
    unread = q.filter(Notification.is_read.is_(False)).count()
    if unread_only:
        q = q.filter(Notification.is_read.is_(False))

    total = q.count()
    items = (
        q.order_by(Notification.created_at.desc(), Notification.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )

    return jsonify(
        {
            "data": [notification_to_dict(n) for n in items],
            "pagination": {
                "total": total,
                "unread": unread,
                "limit": limit,
                "offset": offset,
                "hasMore": total > offset + limit,
            },
        }
    ), 200


@notifications_bp.get("/unread-count")
@roles_required()
def unread_count():
    count = visible_to(current_user()).filter(Notification.is_read.is_(False)).count()
    return jsonify({"unreadCount": count}), 200


@notifications_bp.post("")
@roles_required()
def create_notification():
    data = json_body()
    title = (data.get("title") or "").strip()
    # the dashboard widgets post "body" instead of "message"
    message = (data.get("message") or data.get("body") or "").strip()
    if not title or not message:
        return jsonify({"error": "Title and message are required"}), 400

    recipient_id = data.get("recipient_id")
    recipient_role = (data.get("recipient_role") or "").strip().lower() or None
    if recipient_role and recipient_role not in ROLES:
        return jsonify({"error": "Invalid recipient_role"}), 400

    kwargs = {
        "type": data.get("type") or "info",
        "data": data.get("metadata") or data.get("data"),
        "priority": data.get("priority") or "medium",
    }
    if recipient_id is not None:
        n = notify_user(as_int(recipient_id, None), title, message, **kwargs)
    else:
        n = notify_role(recipient_role or "manager", title, message, **kwargs)
    db.session.commit()

    return jsonify({"ok": True, "data": notification_to_dict(n)}), 201


@notifications_bp.put("/<int:nid>/read")
@roles_required()
def mark_notification_read(nid: int):
    n = visible_to(current_user()).filter(Notification.id == nid).first()
    if not n:
        return jsonify({"error": "Notification not found"}), 404

    mark_read(n)
    db.session.commit()
    return jsonify({"ok": True}), 200


@notifications_bp.put("/read-all")
@notifications_bp.put("/mark-all-read")
@roles_required()
def mark_all_read():
    items = visible_to(current_user()).filter(Notification.is_read.is_(False)).all()
    for n in items:
        mark_read(n)
    db.session.commit()
    return jsonify({"ok": True, "message": f"{len(items)} notifications marked as read"}), 200


@notifications_bp.delete("/<int:nid>")
@roles_required()
def delete_notification(nid: int):
    user = current_user()
    n = Notification.query.filter_by(id=nid, recipient_id=user.id).first()
    if not n:
        return jsonify({"error": "Notification not found"}), 404

    db.session.delete(n)
    db.session.commit()
    return jsonify({"ok": True, "id": nid}), 200
