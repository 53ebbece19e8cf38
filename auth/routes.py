import logging

import requests as http_requests  # Brevo HTTP client
from flask import Blueprint, current_app, jsonify
from itsdangerous import URLSafeTimedSerializer, BadSignature, SignatureExpired

from helpers import json_body, utcnow
from models import db, User
from security import current_user, issue_token, roles_required, user_payload
from validation import FORM_VALIDATORS, ensure_valid

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__)

BREVO_URL = "https://api.brevo.com/v3/smtp/email"
# self-registration never grants admin rights
SELF_SERVICE_ROLES = ("staff", "supplier")


def _serializer():
    return URLSafeTimedSerializer(current_app.config["SECRET_KEY"], salt="password-reset")


def send_password_reset_email(email: str, token: str):
    cfg = current_app.config
    reset_link = f"{cfg['FRONTEND_URL']}/reset-password?token={token}"
    logger.debug("Password reset link for %s: %s", email, reset_link)

    if not cfg.get("BREVO_API_KEY"):
        logger.warning("BREVO_API_KEY is not set - skipping Brevo send.")
        return False

    payload = {
        "sender": {"name": cfg["MAIL_FROM_NAME"], "email": cfg["MAIL_FROM"]},
        "to": [{"email": email}],
        "subject": "BrewOps - Password Reset",
        "textContent": (
            "Hi,\n\n"
            "We received a request to reset your BrewOps password.\n\n"
            f"Click the link below to reset it:\n{reset_link}\n\n"
            "If you didn't request this, you can ignore this email.\n"
        ),
    }
    headers = {
        "accept": "application/json",
        "api-key": cfg["BREVO_API_KEY"],
        "content-type": "application/json",
    }
    try:
        resp = http_requests.post(BREVO_URL, headers=headers, json=payload, timeout=10)
    except http_requests.RequestException:
        logger.exception("Error calling Brevo API")
        return False

    if resp.status_code >= 400:
        logger.error("Brevo error: %s %s", resp.status_code, resp.text)
        return False
    logger.info("Password reset email sent via Brevo: %s", email)
    return True


@auth_bp.post("/register")
def register():
    data = json_body()
    role = (data.get("role") or "staff").strip().lower()
    payload = dict(data, role=role)
    ensure_valid(payload, FORM_VALIDATORS["user"])

    if role not in SELF_SERVICE_ROLES:
        return jsonify({"error": "role must be 'staff' or 'supplier'"}), 400

    email = data["email"].strip().lower()
    if User.query.filter(db.func.lower(User.email) == email).first():
        return jsonify({"error": "Email already registered"}), 400

    employee_id = (data.get("employeeId") or data.get("employee_id") or "").strip() or None
    if employee_id and User.query.filter_by(employee_id=employee_id).first():
        return jsonify({"error": "Employee ID already exists"}), 400

    u = User(
        name=data["name"].strip(),
        email=email,
        role=role,
        phone=(data.get("phone") or "").strip() or None,
        employee_id=employee_id,
    )
    u.set_password(data["password"])
    db.session.add(u)
    db.session.commit()
    logger.info("Registered user %s (%s)", u.id, u.role)

    return jsonify({"ok": True, "user": user_payload(u)}), 201


@auth_bp.post("/login")
def login():
    data = json_body()
    login_name = (data.get("email") or data.get("username") or "").strip()
    password = data.get("password") or ""
    if not login_name or not password:
        return jsonify({"error": "Login credentials and password are required"}), 400

    # employee id first, then name, then email
    user = (
        User.query.filter_by(employee_id=login_name).first()
        or User.query.filter(db.func.lower(User.email) == login_name.lower()).first()
        or User.query.filter(db.func.lower(User.name) == login_name.lower()).first()
    )

    if not user or not user.check_password(password):
        logger.info("Login failed for %s", login_name)
        return jsonify({"error": "Invalid credentials"}), 401

    if user.is_active is False:
        return jsonify({"error": "Your account is currently inactive. Please contact support."}), 403

    user.last_login = utcnow()
    db.session.commit()

    token = issue_token(user)
    logger.info("User %s logged in with role %s", user.id, user.role)
    return jsonify(
        {
            "ok": True,
            "jwtToken": token,
            "role": user.role,
            "effectiveRole": user.effective_role,
            "user": user_payload(user),
        }
    ), 200


@auth_bp.get("/user")
@roles_required()
def me():
    return jsonify(user_payload(current_user())), 200


# ----- start password reset -----
@auth_bp.post("/password/forgot")
def password_forgot():
    data = json_body()
    email = (data.get("email") or "").strip().lower()
    if not email:
        return jsonify({"error": "Email is required"}), 400

    user = User.query.filter(db.func.lower(User.email) == email).first()
    if not user:
        # don't leak whether email exists
        return jsonify({"ok": True}), 200

    token = _serializer().dumps({"uid": user.id, "tv": user.token_version})
    send_password_reset_email(user.email, token)
    return jsonify({"ok": True}), 200


@auth_bp.get("/password/verify/<token>")
def password_verify(token: str):
    user, error = _user_from_reset_token(token)
    if error:
        return error
    return jsonify({"ok": True, "email": user.email}), 200


@auth_bp.post("/password/reset")
def password_reset():
    data = json_body()
    user, error = _user_from_reset_token(data.get("token"))
    if error:
        return error

    new_password = (data.get("password") or "").strip()
    confirm = (data.get("confirm") or data.get("confirmPassword") or "").strip()
    if len(new_password) < 8:
        return jsonify({"error": "Password must be at least 8 characters long"}), 400
    if new_password != confirm:
        return jsonify({"error": "Passwords do not match"}), 400

    user.set_password(new_password)
    user.token_version = (user.token_version or 0) + 1
    db.session.commit()
    return jsonify({"ok": True}), 200


def _user_from_reset_token(token):
    if not token:
        return None, (jsonify({"error": "Missing token"}), 400)
    try:
        data = _serializer().loads(token, max_age=current_app.config["PASSWORD_RESET_MAX_AGE"])
    except SignatureExpired:
        return None, (jsonify({"error": "This password reset link has expired."}), 400)
    except BadSignature:
        return None, (jsonify({"error": "Invalid password reset token."}), 400)

    user = db.session.get(User, data.get("uid"))
    if not user:
        return None, (jsonify({"error": "User not found"}), 404)
    # a used link carries an old token_version
    if data.get("tv") != user.token_version:
        return None, (jsonify({"error": "This password reset link has already been used."}), 400)
    return user, None
