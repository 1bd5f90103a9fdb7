from datetime import datetime
from decimal import Decimal, InvalidOperation

from flask import Blueprint, request, jsonify, g
from sqlalchemy import or_, and_

from models import db
from models.user import User, ROLES
from models.profile import Profile
from security.rbac import require_roles
from utils.auth_context import login_required
from utils.audit import log_event
from utils.serialize import user_public, user_private, profile_dict

users_bp = Blueprint("users", __name__, url_prefix="/users")

PROFILE_TEXT_FIELDS = {"bio": None, "avatar_url": 255, "country": 80, "city": 80, "phone": 30}
PROFILE_LIST_FIELDS = ("interests", "languages")


def _page_args():
    page = max(request.args.get("page", type=int) or 1, 1)
    limit = request.args.get("limit", type=int) or 20
    return page, max(1, min(limit, 100))


@users_bp.get("")
@login_required
def list_users():
    page, limit = _page_args()
    search = (request.args.get("search") or "").strip()
    role = (request.args.get("role") or "").strip().upper()

    q = User.query.outerjoin(Profile, Profile.user_id == User.id)
    if search:
        like = f"%{search}%"
        q = q.filter(or_(
            User.name.ilike(like),
            Profile.bio.ilike(like),
            Profile.city.ilike(like),
            Profile.country.ilike(like),
            Profile.interests.ilike(like),
            Profile.languages.ilike(like),
        ))
    if role:
        q = q.filter(User.role == role)

    # non-admins only see themselves and mentors that can currently be booked
    if g.user.role != "ADMIN":
        q = q.filter(or_(
            User.id == g.user.id,
            and_(
                User.role == "MENTOR",
                User.is_premium.is_(True),
                User.premium_expires > datetime.utcnow(),
            ),
        ))

    total = q.count()
    rows = q.order_by(User.created_at.desc()).offset((page - 1) * limit).limit(limit).all()
    serialize = user_private if g.user.role == "ADMIN" else user_public
    return jsonify(
        meta={"page": page, "limit": limit, "total": total},
        data=[serialize(u) for u in rows],
    ), 200


@users_bp.get("/top-rated-mentors")
def top_rated_mentors():
    limit = max(1, min(request.args.get("limit", type=int) or 10, 50))
    rows = (
        User.query
        .filter(
            User.role == "MENTOR",
            User.status == "ACTIVE",
            User.is_premium.is_(True),
            User.premium_expires > datetime.utcnow(),
        )
        .order_by(User.average_rating.desc(), User.created_at.asc())
        .limit(limit)
        .all()
    )
    return jsonify([user_public(u) for u in rows]), 200


@users_bp.get("/<int:user_id>")
@login_required
def get_user(user_id: int):
    if g.user.role != "ADMIN" and g.user.id != user_id:
        return jsonify(error="Unauthorized"), 403
    user = User.query.get(user_id)
    if not user:
        return jsonify(error="User not found"), 404
    return jsonify(user_private(user)), 200


@users_bp.patch("/me")
@login_required
def update_profile():
    data = request.get_json(silent=True) or {}
    profile = g.user.profile
    if profile is None:
        profile = Profile(user_id=g.user.id)
        db.session.add(profile)

    name = data.get("name")
    if name is not None:
        if not isinstance(name, str) or not name.strip() or len(name.strip()) > 120:
            return jsonify(error="Invalid name"), 400
        g.user.name = name.strip()

    for field, max_len in PROFILE_TEXT_FIELDS.items():
        if field not in data:
            continue
        value = data.get(field)
        if value is not None and (not isinstance(value, str) or (max_len and len(value.strip()) > max_len)):
            return jsonify(error=f"Invalid {field}"), 400
        setattr(profile, field, value.strip() if value else None)

    for field in PROFILE_LIST_FIELDS:
        if field not in data:
            continue
        value = data.get(field) or []
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            return jsonify(error=f"{field} must be a list of strings"), 400
        setattr(profile, field, ",".join(v.strip() for v in value if v.strip()))

    if "hourly_rate" in data:
        raw = data.get("hourly_rate")
        if raw is None:
            profile.hourly_rate = None
        else:
            try:
                rate = Decimal(str(raw))
            except InvalidOperation:
                return jsonify(error="Invalid hourly_rate"), 400
            if rate < 0:
                return jsonify(error="Hourly rate cannot be negative"), 400
            profile.hourly_rate = rate

    db.session.commit()
    log_event("PROFILE_UPDATE", user_id=g.user.id)
    return jsonify(message="Profile updated", profile=profile_dict(profile)), 200


@users_bp.patch("/<int:user_id>/role")
@require_roles("ADMIN")
def update_user_role(user_id: int):
    data = request.get_json(silent=True) or {}
    role = (data.get("role") or "").strip().upper()
    if not role:
        return jsonify(error="Role is required"), 400
    if role not in ROLES:
        return jsonify(error="Invalid role"), 400

    user = User.query.get(user_id)
    if not user:
        return jsonify(error="User not found"), 404

    previous = user.role
    user.role = role
    db.session.commit()

    log_event("USER_ROLE_UPDATE", user_id=g.user.id, entity="user", entity_id=user.id,
              metadata={"from": previous, "to": role})
    return jsonify(user_private(user)), 200


@users_bp.delete("/<int:user_id>")
@require_roles("ADMIN")
def delete_user(user_id: int):
    user = User.query.get(user_id)
    if not user:
        return jsonify(error="User not found"), 404
    if user.id == g.user.id:
        return jsonify(error="Admins cannot delete themselves"), 400

    # soft delete: bookings, payments and reviews keep their foreign keys
    user.status = "BLOCKED"
    db.session.commit()

    log_event("USER_DELETE", user_id=g.user.id, entity="user", entity_id=user.id)
    return jsonify(message="User deleted"), 200
