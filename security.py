# security.py
import logging
from functools import wraps

from flask import g, jsonify
from flask_jwt_extended import create_access_token, get_jwt, verify_jwt_in_request

from models import db, User

logger = logging.getLogger(__name__)

BASE_PERMISSIONS = ["view_profile", "edit_profile"]

ADMIN_PERMISSIONS = [
    "manage_users",
    "manage_suppliers",
    "view_reports",
    "manage_inventory",
    "manage_payments",
    "approve_deliveries",
    "manage_production",
    "view_analytics",
]

ROLE_PERMISSIONS = {
    "admin": ADMIN_PERMISSIONS,
    "manager": ADMIN_PERMISSIONS,
    "staff": ["record_deliveries", "view_inventory", "process_payments"],
    "supplier": ["view_deliveries", "view_payments", "schedule_deliveries"],
}

# role sets used by the blueprints
ADMIN_ROLES = ("admin",)
STAFF_ROLES = ("admin", "staff")


def effective_role(role: str) -> str:
    role = (role or "").lower()
    return "admin" if role == "manager" else role


def get_role_permissions(role: str) -> list:
    return BASE_PERMISSIONS + ROLE_PERMISSIONS.get(effective_role(role), [])


def issue_token(user: User) -> str:
    return create_access_token(
        identity=str(user.id),
        additional_claims={
            "id": user.id,
            "email": user.email,
            "role": user.role,
            "effectiveRole": user.effective_role,
            "name": user.name,
            "permissions": get_role_permissions(user.role),
            "tokenVersion": user.token_version or 0,
        },
    )


def user_payload(user: User) -> dict:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "role": user.role,
        "effectiveRole": user.effective_role,
        "permissions": get_role_permissions(user.role),
        "phone": user.phone,
        "employee_id": user.employee_id,
    }


def current_user() -> User:
    return g.current_user


def roles_required(*roles):
    """
    Verify the bearer token, load the user and check the effective role.

    - token older than the user's token_version -> 403
    - inactive account -> 403
    - role not in ``roles`` (when given) -> 403
    Missing or expired tokens are answered by the JWT loaders with 401.
    """
    allowed = {effective_role(r) for r in roles}

    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            verify_jwt_in_request()
            claims = get_jwt()

            user = db.session.get(User, claims.get("id"))
            if not user:
                return jsonify({"error": "User not found"}), 403

            if user.token_version and claims.get("tokenVersion") != user.token_version:
                return jsonify(
                    {"error": "Token has been invalidated. Please login again."}
                ), 403

            if user.is_active is False:
                return jsonify(
                    {"error": "Your account is inactive. Please contact support."}
                ), 403

            if allowed and user.effective_role not in allowed:
                logger.info(
                    "Denied %s (role=%s) access to %s", user.id, user.role, fn.__name__
                )
                return jsonify({"error": "Access denied. Insufficient permissions."}), 403

            g.current_user = user
            return fn(*args, **kwargs)

        return wrapper

    return decorator
