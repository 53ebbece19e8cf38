import logging
import math

from flask import Blueprint, jsonify, request, send_file

from helpers import as_int, clean_str, json_body, pagination_args, to_local_iso, utcnow
from models import db, User, ROLES, USER_STATUSES
from security import ADMIN_ROLES, current_user, roles_required
from validation import FORM_VALIDATORS, ensure_valid, one_of, password, required
from admin.backups import (
    BackupError,
    backup_path,
    backup_to_dict,
    cleanup_backups,
    create_backup,
    delete_backup,
    list_backups,
    restore_backup,
)
from profiles.routes import save_avatar

logger = logging.getLogger(__name__)

admin_bp = Blueprint("admin", __name__)
backup_bp = Blueprint("backup", __name__)

NEW_USER_VALIDATORS = dict(
    FORM_VALIDATORS["user"],
    password=[
        required("Password is required"),
        password("Password must be at least 8 characters", minimum=8),
    ],
)
USER_UPDATE_VALIDATORS = {
    "name": FORM_VALIDATORS["user"]["name"],
    "email": FORM_VALIDATORS["user"]["email"],
    "phone": FORM_VALIDATORS["user"]["phone"],
    "role": FORM_VALIDATORS["user"]["role"],
    "status": [one_of(USER_STATUSES, "Invalid status. Must be active, inactive, or pending")],
}


def admin_user_to_dict(u: User) -> dict:
    return {
        "id": u.id,
        "name": u.name,
        "email": u.email,
        "role": u.role,
        "phone": u.phone,
        "employee_id": u.employee_id,
        "address": u.address,
        "avatar": u.avatar,
        "is_active": bool(u.is_active),
        "status": u.status,
        "last_login": to_local_iso(u.last_login),
        "created_at": to_local_iso(u.created_at),
    }


def _email_taken(email, exclude_id=None):
    q = User.query.filter(db.func.lower(User.email) == email.lower())
    if exclude_id:
        q = q.filter(User.id != exclude_id)
    return q.first() is not None


# ---------- Users ----------
@admin_bp.get("/users")
@roles_required(*ADMIN_ROLES)
def api_admin_users_list():
    """
    Optional query:
      ?search=  (name or email)  ?role=  ?status=  ?page=  ?limit=
    """
    page, limit, offset = pagination_args()
    q = User.query

    search = (request.args.get("search") or "").strip()
    if search:
        like = f"%{search}%"
        q = q.filter(db.or_(User.name.ilike(like), User.email.ilike(like)))

    role = (request.args.get("role") or "").strip().lower()
    if role and role != "all":
        q = q.filter(User.role == role)

    status = (request.args.get("status") or "").strip().lower()
    if status and status != "all":
        q = q.filter(User.status == status)

    total = q.count()
    users = q.order_by(User.created_at.desc(), User.id.desc()).offset(offset).limit(limit).all()
    return jsonify(
        {
            "users": [admin_user_to_dict(u) for u in users],
            "pagination": {
                "total": total,
                "page": page,
                "limit": limit,
                "pages": math.ceil(total / limit),
            },
        }
    ), 200


@admin_bp.post("/users")
@roles_required(*ADMIN_ROLES)
def api_admin_users_create():
    data = json_body()
    ensure_valid(data, NEW_USER_VALIDATORS)

    email = data["email"].strip().lower()
    if _email_taken(email):
        return jsonify({"error": "User with this email already exists"}), 400

    employee_id = clean_str(data.get("employee_id"))
    if employee_id and User.query.filter_by(employee_id=employee_id).first():
        return jsonify({"error": "Employee ID already exists"}), 400

    u = User(
        name=data["name"].strip(),
        email=email,
        role=data["role"],
        phone=clean_str(data.get("phone")),
        employee_id=employee_id,
        is_active=True,
        status="active",
    )
    u.set_password(data["password"])
    db.session.add(u)
    db.session.commit()
    logger.info("User %s (%s) created by %s", u.id, u.role, current_user().id)
    return jsonify({"ok": True, "message": "User created successfully", "user": admin_user_to_dict(u)}), 201


@admin_bp.post("/users/change-password")
@roles_required()
def api_admin_change_password():
    data = json_body()
    old_password = data.get("oldPassword") or data.get("old_password") or ""
    new_password = data.get("newPassword") or data.get("new_password") or ""

    if not old_password or not new_password:
        return jsonify({"error": "Old password and new password are required"}), 400
    if len(new_password) < 8:
        return jsonify({"error": "New password must be at least 8 characters long"}), 400

    user = current_user()
    if not user.check_password(old_password):
        return jsonify({"error": "Current password is incorrect"}), 400

    user.set_password(new_password)
    # invalidates every token issued before the change
    user.token_version = (user.token_version or 0) + 1
    user.updated_at = utcnow()
    db.session.commit()
    return jsonify({"ok": True, "message": "Password changed successfully"}), 200


@admin_bp.get("/users/<int:uid>")
@roles_required(*ADMIN_ROLES)
def api_admin_users_read_one(uid: int):
    u = db.session.get(User, uid)
    if not u:
        return jsonify({"error": "User not found"}), 404
    return jsonify({"user": admin_user_to_dict(u)}), 200


@admin_bp.patch("/users/<int:uid>")
@roles_required(*ADMIN_ROLES)
def api_admin_users_update(uid: int):
    u = db.session.get(User, uid)
    if not u:
        return jsonify({"error": "User not found"}), 404

    is_multipart = request.content_type and "multipart/form-data" in request.content_type
    data = request.form.to_dict() if is_multipart else json_body()
    ensure_valid(data, USER_UPDATE_VALIDATORS, partial=True)

    email = clean_str(data.get("email"))
    if email and _email_taken(email, exclude_id=u.id):
        return jsonify({"error": "Email already taken by another user"}), 400

    changed = False
    if clean_str(data.get("name")):
        u.name = data["name"].strip()
        changed = True
    if email:
        u.email = email.lower()
        changed = True
    if data.get("role"):
        u.role = data["role"]
        changed = True
    for field in ("phone", "employee_id", "address"):
        if field in data:
            setattr(u, field, clean_str(data[field]))
            changed = True
    if data.get("status"):
        u.status = data["status"]
        u.is_active = data["status"] == "active"
        changed = True

    avatar = request.files.get("avatar") if is_multipart else None
    if avatar and avatar.filename:
        url, error = save_avatar(avatar)
        if error:
            return error
        u.avatar = url
        changed = True

    if not changed:
        return jsonify({"error": "No valid fields to update"}), 400

    u.updated_at = utcnow()
    db.session.commit()
    return jsonify({"ok": True, "message": "User updated successfully", "user": admin_user_to_dict(u)}), 200


@admin_bp.delete("/users/<int:uid>")
@roles_required(*ADMIN_ROLES)
def api_admin_users_delete(uid: int):
    u = db.session.get(User, uid)
    if not u:
        return jsonify({"error": "User not found"}), 404
    if u.id == current_user().id:
        return jsonify({"error": "Cannot delete your own account"}), 400

    # soft delete
    u.is_active = False
    u.status = "inactive"
    db.session.commit()
    logger.info("User %s deactivated by %s", u.id, current_user().id)
    return jsonify({"ok": True, "message": "User deleted successfully"}), 200


@admin_bp.put("/users/<int:uid>/status")
@roles_required(*ADMIN_ROLES)
def api_admin_users_status(uid: int):
    status = (json_body().get("status") or "").strip().lower()
    if status not in USER_STATUSES:
        return jsonify({"error": "Invalid status. Must be active, inactive, or pending"}), 400

    u = db.session.get(User, uid)
    if not u:
        return jsonify({"error": "User not found"}), 404

    u.status = status
    u.is_active = status == "active"
    u.updated_at = utcnow()
    db.session.commit()
    return jsonify({"ok": True, "message": f"User status updated to {status}"}), 200


@admin_bp.get("/roles")
@roles_required(*ADMIN_ROLES)
def api_admin_roles():
    return jsonify({"roles": list(ROLES), "statuses": list(USER_STATUSES)}), 200


# ---------- Backups ----------
@backup_bp.errorhandler(BackupError)
def handle_backup_error(err):
    return jsonify({"error": err.message}), err.status


@backup_bp.get("/list")
@roles_required(*ADMIN_ROLES)
def api_backup_list():
    return jsonify({"backups": list_backups()}), 200


@backup_bp.post("/create")
@roles_required(*ADMIN_ROLES)
def api_backup_create():
    b = create_backup(current_user())
    return jsonify(
        {"ok": True, "message": "Database backup created successfully", "backup": backup_to_dict(b)}
    ), 201


@backup_bp.get("/download/<filename>")
@roles_required(*ADMIN_ROLES)
def api_backup_download(filename):
    path = backup_path(filename)
    try:
        return send_file(path, mimetype="application/json", as_attachment=True, download_name=filename)
    except FileNotFoundError:
        return jsonify({"error": "Backup file not found"}), 404


@backup_bp.delete("/<filename>")
@roles_required(*ADMIN_ROLES)
def api_backup_delete(filename):
    delete_backup(filename)
    return jsonify({"ok": True, "message": "Backup file deleted successfully"}), 200


@backup_bp.post("/restore")
@roles_required(*ADMIN_ROLES)
def api_backup_restore():
    # managers may manage backups but only a real admin may restore
    if current_user().role != "admin":
        return jsonify({"error": "Access denied. Insufficient permissions."}), 403

    filename = (json_body().get("filename") or "").strip()
    if not filename:
        return jsonify({"error": "Filename is required"}), 400

    counts = restore_backup(filename)
    return jsonify({"ok": True, "message": "Database restored successfully", "restored": counts}), 200


@backup_bp.post("/cleanup")
@roles_required(*ADMIN_ROLES)
def api_backup_cleanup():
    days = as_int(json_body().get("days"), 30)
    if days < 0:
        return jsonify({"error": "days must be zero or more"}), 400

    removed = cleanup_backups(days)
    return jsonify(
        {"ok": True, "message": f"Cleaned up {removed} old backup files", "deletedCount": removed}
    ), 200
