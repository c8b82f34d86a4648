"""
User Authentication — Flask-Login blueprint.

Provides register, login, admin login and logout routes.
Uses werkzeug.security for password hashing; only the hash is stored, as
``passwordHash`` on the user's record.

Flask-Login keeps the session identity (role plus email) in the cookie.
``load_user`` restores the matching SyncSession from its persisted record, so an authenticated request
never needs a round-trip to the document store just to know who is asking.
"""

from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request
from flask_login import LoginManager, UserMixin, current_user, login_required, login_user, logout_user
from werkzeug.security import check_password_hash, generate_password_hash

from audit import log_event
from catalog import EXAM_TYPES, STUDENT_CLASSES
from errors import AuthenticationError, ValidationError
from extensions import SessionManager, limiter, session_identity
from models import ROLE_ADMIN, User

MIN_PASSWORD_LENGTH = 6
ADMIN_USER_ID = "admin_1"

auth_bp = Blueprint("auth", __name__)
login_manager = LoginManager()


class SessionUser(UserMixin):
    """Wraps a live SyncSession for Flask-Login."""

    def __init__(self, session):
        self.session = session

    @property
    def user(self) -> User:
        return self.session.user

    @property
    def email(self) -> str:
        return self.user.email

    @property
    def is_admin(self) -> bool:
        return self.user.is_admin

    def get_id(self) -> str:
        return session_identity(self.user.role, self.email)


@login_manager.user_loader
def load_user(identity):
    session = SessionManager.restore(current_app._get_current_object(), identity)
    if session is None or session.user is None:
        return None
    session.touch()
    return SessionUser(session)


@login_manager.unauthorized_handler
def unauthorized():
    return jsonify({"error": "Please sign in to continue."}), 401


def _form() -> dict:
    return request.get_json(silent=True) or request.form.to_dict()


def _normalise_email(value) -> str:
    return (value or "").strip().lower()


def _is_admin_email(email: str) -> bool:
    return email == _normalise_email(current_app.config.get("ADMIN_EMAIL"))


def _validate_password(password: str) -> str | None:
    """Return an error message if password is too weak, else None."""
    if len(password) < MIN_PASSWORD_LENGTH:
        return f"Password must be at least {MIN_PASSWORD_LENGTH} characters."
    return None


def _sign_in(user: User) -> SessionUser:
    session = SessionManager.open(current_app._get_current_object(), user)
    login_user(SessionUser(session), remember=True)
    return current_user


@auth_bp.route("/register", methods=["POST"])
@limiter.limit("3 per hour", methods=["POST"])
def register():
    data = _form()
    name = (data.get("name") or "").strip()
    email = _normalise_email(data.get("email"))
    password = data.get("password") or ""
    student_class = data.get("class") or "SS3"
    target_exam = data.get("targetExam") or "JAMB"
    referral_code = (data.get("referralCode") or "").strip().upper()

    if not name or not email or not password:
        raise ValidationError("Name, email and password are required.")
    pw_error = _validate_password(password)
    if pw_error:
        raise ValidationError(pw_error)
    if student_class not in STUDENT_CLASSES:
        raise ValidationError(f"Class must be one of {', '.join(STUDENT_CLASSES)}.")
    if target_exam not in EXAM_TYPES:
        raise ValidationError(f"Target exam must be one of {', '.join(EXAM_TYPES)}.")

    store = current_app.extensions["cloud_store"]
    if _is_admin_email(email) or store.users.get_by_key(email) is not None:
        raise ValidationError("Email already registered.")

    user = User(
        email=email,
        name=name,
        student_class=student_class,
        target_exam=target_exam,
        referred_by=referral_code or None,
    )
    store.users.save(user, password_hash=generate_password_hash(password))
    _sign_in(user)
    log_event("register", email, f"referred_by={referral_code or '-'}")
    return jsonify({"success": True, "user": user.to_dict()}), 201


@auth_bp.route("/login", methods=["POST"])
@limiter.limit("5 per 15 minutes", methods=["POST"])
def login():
    data = _form()
    email = _normalise_email(data.get("email"))
    password = data.get("password") or ""
    if not email or not password:
        raise ValidationError("Email and password are required.")

    store = current_app.extensions["cloud_store"]
    found = None if _is_admin_email(email) else store.users.get_credentials(email)
    if found is None or not found[1] or not check_password_hash(found[1], password):
        log_event("login_failed", email)
        raise AuthenticationError("Invalid email or password.")

    user = found[0]
    _sign_in(user)
    log_event("login_success", email)
    return jsonify({"success": True, "user": user.to_dict()})


@auth_bp.route("/admin/login", methods=["POST"])
@limiter.limit("5 per 15 minutes", methods=["POST"])
def admin_login():
    data = _form()
    email = _normalise_email(data.get("email"))
    password = data.get("password") or ""

    admin_email = _normalise_email(current_app.config.get("ADMIN_EMAIL"))
    admin_hash = current_app.config.get("ADMIN_PASSWORD_HASH") or ""
    if not admin_hash or email != admin_email or not check_password_hash(admin_hash, password):
        log_event("admin_login_failed", email)
        raise AuthenticationError("Invalid email or password.")

    # The admin is not a store record; its session user is synthesised here
    user = User(
        id=ADMIN_USER_ID,
        email=admin_email,
        name="Admin",
        role=ROLE_ADMIN,
        is_premium=True,
    )
    _sign_in(user)
    log_event("admin_login_success", admin_email)
    return jsonify({"success": True, "user": user.to_dict()})


@auth_bp.route("/logout", methods=["POST"])
@login_required
def logout():
    email = current_user.email
    identity = current_user.get_id()
    logout_user()
    SessionManager.end(identity)
    log_event("logout", email)
    return jsonify({"success": True})
