"""Auth blueprint — /auth/*

Session login for the admin API (Flask-Login cookie).

Route Map:
  POST /auth/login       — Log in with email + password
  POST /auth/logout      — Log out
  GET  /auth/me          — Current user
  GET  /auth/csrf-token  — Token for the X-CSRFToken header
"""

import logging

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required, login_user, logout_user
from flask_wtf.csrf import generate_csrf

from sitedesk.extensions import db, limiter
from sitedesk.models.user import User

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")

logger = logging.getLogger(__name__)


def _user_json(user):
    return {
        "id": user.id,
        "email": user.email,
        "full_name": user.full_name,
        "is_admin": bool(user.is_admin),
    }


# ──────────────────────────────────────────────
# POST /auth/login
# ──────────────────────────────────────────────

@auth_bp.route("/login", methods=["POST"])
@limiter.limit("10 per minute")
def login():
    """Log in. Accepts JSON or form POST with email + password."""
    if request.is_json:
        data = request.get_json(silent=True) or {}
    else:
        data = request.form.to_dict()

    email = (data.get("email") or "").lower().strip()
    password = data.get("password") or ""

    if not email or not password:
        return jsonify(ok=False, error="Email and password are required."), 400

    user = User.query.filter_by(email=email).first()

    # Same message for unknown email and wrong password
    if user is None or not user.check_password(password):
        logger.info(f"Failed login for {email}")
        return jsonify(ok=False, error="Invalid email or password."), 401

    if not user.is_active:
        return jsonify(ok=False, error="This account has been deactivated."), 403

    user.record_login()
    db.session.commit()

    login_user(user, remember=bool(data.get("remember")))
    return jsonify(ok=True, user=_user_json(user))


# ──────────────────────────────────────────────
# POST /auth/logout
# ──────────────────────────────────────────────

@auth_bp.route("/logout", methods=["POST"])
@login_required
def logout():
    logout_user()
    return jsonify(ok=True)


@auth_bp.route("/me", methods=["GET"])
@login_required
def me():
    return jsonify(ok=True, user=_user_json(current_user))


@auth_bp.route("/csrf-token", methods=["GET"])
def csrf_token():
    return jsonify(csrf_token=generate_csrf())
