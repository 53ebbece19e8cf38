import os

from flask import Blueprint, current_app, jsonify, request

from helpers import allowed_image, clean_str, json_body, to_local_iso, unique_filename, utcnow
from models import db, User
from security import current_user, get_role_permissions, roles_required
from validation import FORM_VALIDATORS, ensure_valid

profile_bp = Blueprint("profile", __name__)

PROFILE_VALIDATORS = {
    "name": FORM_VALIDATORS["user"]["name"],
    "email": FORM_VALIDATORS["user"]["email"],
    "phone": FORM_VALIDATORS["user"]["phone"],
}


def save_avatar(file_storage):
    """Store an uploaded image and return (url, None) or (None, error response)."""
    if not allowed_image(file_storage.filename):
        return None, (jsonify({"error": "Unsupported image type"}), 400)
    fname = unique_filename(file_storage.filename)
    file_storage.save(os.path.join(current_app.config["UPLOAD_FOLDER"], fname))
    return f"/static/uploads/{fname}", None


def profile_to_dict(u: User) -> dict:
    return {
        "id": u.id,
        "name": u.name,
        "email": u.email,
        "role": u.role,
        "effectiveRole": u.effective_role,
        "permissions": get_role_permissions(u.role),
        "phone": u.phone,
        "address": u.address,
        "employee_id": u.employee_id,
        "avatar": u.avatar,
        "status": u.status,
        "last_login": to_local_iso(u.last_login),
        "created_at": to_local_iso(u.created_at),
    }


@profile_bp.get("")
@roles_required()
def api_profile_get():
    return jsonify({"user": profile_to_dict(current_user())}), 200


@profile_bp.put("")
@roles_required()
def api_profile_update():
    user = current_user()
    is_multipart = request.content_type and "multipart/form-data" in request.content_type
    data = request.form.to_dict() if is_multipart else json_body()
    ensure_valid(data, PROFILE_VALIDATORS, partial=True)

    email = clean_str(data.get("email"))
    if email:
        email = email.lower()
        taken = User.query.filter(
            db.func.lower(User.email) == email, User.id != user.id
        ).first()
        if taken:
            return jsonify({"error": "Email already taken by another user"}), 400
        user.email = email

    if clean_str(data.get("name")):
        user.name = data["name"].strip()
    for field in ("phone", "address"):
        if field in data:
            setattr(user, field, clean_str(data[field]))

    if is_multipart:
        avatar = request.files.get("avatar")
        if avatar and avatar.filename:
            url, error = save_avatar(avatar)
            if error:
                return error
            user.avatar = url

    user.updated_at = utcnow()
    db.session.commit()
    return jsonify({"ok": True, "message": "Profile updated successfully", "user": profile_to_dict(user)}), 200
