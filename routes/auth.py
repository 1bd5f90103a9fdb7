from flask import Blueprint, request, jsonify, current_app, g

from models import db
from models.user import User
from models.profile import Profile
from security.password import hash_password, verify_password, validate_password
from security.session import create_session, revoke_session, revoke_all_sessions
from security.csrf import issue_csrf_token
from utils.audit import log_event
from utils.auth_context import login_required
from utils.serialize import user_private


auth_bp = Blueprint("auth", __name__, url_prefix="/auth")

SELF_SERVICE_ROLES = ("USER", "MENTOR")


def _is_valid_email(email: str) -> bool:
    return isinstance(email, str) and "@" in email and len(email) <= 255


@auth_bp.post("/register")
def register():
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""
    name = (data.get("name") or "").strip()
    role = (data.get("role") or "USER").strip().upper()

    if not _is_valid_email(email):
        return jsonify(error="Invalid email"), 400
    if not name or len(name) > 120:
        return jsonify(error="Invalid name"), 400
    if role not in SELF_SERVICE_ROLES:
        return jsonify(error="role must be USER or MENTOR"), 400
    errors = validate_password(password, current_app.config.get("PASSWORD_MIN_LEN", 8))
    if errors:
        return jsonify(error="Password does not meet policy", details=errors), 400

    if User.query.filter_by(email=email).first():
        log_event("REGISTER_FAIL_EMAIL_EXISTS", metadata={"email": email})
        return jsonify(error="Email already registered"), 409

    user = User(
        email=email,
        password_hash=hash_password(password),
        name=name,
        role=role,
        free_bookings_remaining=current_app.config.get("FREE_BOOKING_LIMIT", 3),
    )
    db.session.add(user)
    db.session.flush()

    # user and profile land in the same commit
    db.session.add(Profile(
        user_id=user.id,
        bio=(data.get("bio") or "").strip() or None,
        country=(data.get("country") or "").strip() or None,
        city=(data.get("city") or "").strip() or None,
    ))
    db.session.commit()
    log_event("REGISTER_SUCCESS", user_id=user.id, metadata={"role": role})

    return jsonify(message="Registered successfully", id=user.id), 201


@auth_bp.post("/login")
def login():
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""

    user = User.query.filter_by(email=email).first()
    if not user or not verify_password(password, user.password_hash):
        log_event("LOGIN_FAIL", user_id=user.id if user else None, metadata={"email": email})
        return jsonify(error="Invalid credentials"), 401
    if user.status != "ACTIVE":
        log_event("LOGIN_BLOCKED", user_id=user.id)
        return jsonify(error="Account is not active"), 403

    # Rotate: revoke any existing sessions for this user
    revoked_count = revoke_all_sessions(user.id)

    raw_token = create_session(user.id)
    cookie_name = current_app.config.get("AUTH_COOKIE_NAME", "skillmentor_session")

    resp = jsonify(message="Login OK", user=user_private(user))
    resp.set_cookie(
        cookie_name,
        raw_token,
        httponly=True,
        secure=current_app.config.get("SESSION_COOKIE_SECURE", False),
        samesite=current_app.config.get("SESSION_COOKIE_SAMESITE", "Lax"),
        max_age=current_app.config.get("SESSION_LIFETIME_SECONDS", 8 * 60 * 60),
        path="/",
    )
    resp = issue_csrf_token(resp)

    log_event("LOGIN_SUCCESS", user_id=user.id, metadata={"revoked_sessions": revoked_count})
    return resp, 200


@auth_bp.get("/me")
@login_required
def me():
    return jsonify(user_private(g.user)), 200


@auth_bp.post("/logout")
@login_required
def logout():
    cookie_name = current_app.config.get("AUTH_COOKIE_NAME", "skillmentor_session")
    revoke_session(request.cookies.get(cookie_name))
    log_event("LOGOUT", user_id=g.user.id)

    resp = jsonify(message="Logged out")
    resp.delete_cookie(cookie_name, path="/")
    return resp, 200
