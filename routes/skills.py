from decimal import Decimal, InvalidOperation

from flask import Blueprint, request, jsonify, g
from sqlalchemy import or_

from models import db
from models.booking import Booking
from models.skill import Skill, SKILL_LEVELS
from security.rbac import require_roles
from utils.auth_context import login_required
from utils.audit import log_event
from utils.serialize import skill_dict

skills_bp = Blueprint("skills", __name__, url_prefix="/skills")


def _parse_price(raw):
    if raw is None or raw == "":
        return None
    price = Decimal(str(raw))
    if price < 0:
        raise InvalidOperation("negative")
    return price


def _parse_tags(raw):
    if raw is None:
        return None
    if not isinstance(raw, list) or not all(isinstance(t, str) for t in raw):
        raise ValueError("tags must be a list of strings")
    return ",".join(t.strip() for t in raw if t.strip())


def _apply_fields(skill: Skill, data: dict, partial: bool):
    """Copies validated request fields onto ``skill``. Returns an error message or None."""
    if "title" in data or not partial:
        title = (data.get("title") or "").strip()
        if not title or len(title) > 160:
            return "title is required (max 160 chars)"
        skill.title = title

    if "category" in data:
        skill.category = (data.get("category") or "").strip() or None
    if "description" in data:
        skill.description = (data.get("description") or "").strip() or None
    if "image_url" in data:
        skill.image_url = (data.get("image_url") or "").strip() or None

    if "level" in data:
        level = (data.get("level") or "").strip().upper()
        if level not in SKILL_LEVELS:
            return f"level must be one of {', '.join(SKILL_LEVELS)}"
        skill.level = level

    if "price_per_hour" in data:
        try:
            skill.price_per_hour = _parse_price(data.get("price_per_hour"))
        except InvalidOperation:
            return "price_per_hour must be a non-negative number"

    if "tags" in data:
        try:
            skill.tags = _parse_tags(data.get("tags"))
        except ValueError as e:
            return str(e)

    if "is_published" in data:
        skill.is_published = bool(data.get("is_published"))
    return None


@skills_bp.post("")
@require_roles("MENTOR")
def create_skill():
    data = request.get_json(silent=True) or {}
    skill = Skill(owner_id=g.user.id)
    error = _apply_fields(skill, data, partial=False)
    if error:
        return jsonify(error=error), 400

    db.session.add(skill)
    db.session.commit()

    log_event("SKILL_CREATE", user_id=g.user.id, entity="skill", entity_id=skill.id)
    return jsonify(skill_dict(skill)), 201


@skills_bp.get("")
def list_skills():
    page = max(request.args.get("page", type=int) or 1, 1)
    limit = max(1, min(request.args.get("limit", type=int) or 20, 100))

    q = Skill.query.filter(Skill.is_published.is_(True))

    search = (request.args.get("search") or "").strip()
    if search:
        like = f"%{search}%"
        q = q.filter(or_(Skill.title.ilike(like), Skill.description.ilike(like), Skill.tags.ilike(like)))

    category = (request.args.get("category") or "").strip()
    if category:
        q = q.filter(Skill.category == category)

    level = (request.args.get("level") or "").strip().upper()
    if level:
        q = q.filter(Skill.level == level)

    owner_id = request.args.get("owner_id", type=int)
    if owner_id:
        q = q.filter(Skill.owner_id == owner_id)

    price_min = request.args.get("price_min", type=float)
    if price_min is not None:
        q = q.filter(Skill.price_per_hour >= price_min)
    price_max = request.args.get("price_max", type=float)
    if price_max is not None:
        q = q.filter(Skill.price_per_hour <= price_max)

    total = q.count()
    rows = q.order_by(Skill.created_at.desc()).offset((page - 1) * limit).limit(limit).all()
    return jsonify(
        meta={"page": page, "limit": limit, "total": total},
        data=[skill_dict(s) for s in rows],
    ), 200


@skills_bp.get("/<int:skill_id>")
def get_skill(skill_id: int):
    skill = Skill.query.get(skill_id)
    if not skill:
        return jsonify(error="Skill not found"), 404
    return jsonify(skill_dict(skill)), 200


def _owned_skill_or_error(skill_id: int):
    skill = Skill.query.get(skill_id)
    if not skill:
        return None, (jsonify(error="Skill not found"), 404)
    if g.user.role != "ADMIN" and skill.owner_id != g.user.id:
        return None, (jsonify(error="Not authorized"), 403)
    return skill, None


@skills_bp.patch("/<int:skill_id>")
@login_required
def update_skill(skill_id: int):
    skill, err = _owned_skill_or_error(skill_id)
    if err:
        return err

    data = request.get_json(silent=True) or {}
    error = _apply_fields(skill, data, partial=True)
    if error:
        db.session.rollback()
        return jsonify(error=error), 400

    db.session.commit()
    log_event("SKILL_UPDATE", user_id=g.user.id, entity="skill", entity_id=skill.id)
    return jsonify(skill_dict(skill)), 200


@skills_bp.delete("/<int:skill_id>")
@login_required
def delete_skill(skill_id: int):
    skill, err = _owned_skill_or_error(skill_id)
    if err:
        return err

    # bookings keep pointing at the skill, so unpublish instead of deleting the row
    if Booking.query.filter_by(skill_id=skill.id).first():
        skill.is_published = False
    else:
        db.session.delete(skill)
    db.session.commit()

    log_event("SKILL_DELETE", user_id=g.user.id, entity="skill", entity_id=skill_id)
    return jsonify(message="Skill deleted"), 200
