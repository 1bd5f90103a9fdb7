from datetime import datetime

from flask import Blueprint, request, jsonify, g

from models.booking import Booking
from security.rbac import require_roles
from services.bookings import create_booking, update_booking_status, cancel_booking
from utils.auth_context import login_required
from utils.serialize import booking_dict

booking_bp = Blueprint("booking", __name__, url_prefix="/bookings")

MIN_DURATION_MIN = 15
MAX_DURATION_MIN = 8 * 60


def _parse_iso(dt_str: str):
    # Expect ISO format like "2026-01-20T18:00:00"; aware values are converted to naive UTC
    dt = datetime.fromisoformat(dt_str.replace("Z", "+00:00"))
    if dt.tzinfo is not None:
        dt = (dt - dt.utcoffset()).replace(tzinfo=None)
    return dt


@booking_bp.post("")
@login_required
def book_session():
    data = request.get_json(silent=True) or {}
    skill_id = data.get("skill_id")
    scheduled_at = data.get("scheduled_at")
    duration_min = data.get("duration_min")

    if not skill_id or not scheduled_at or duration_min is None:
        return jsonify(error="skill_id, scheduled_at, duration_min are required"), 400

    try:
        skill_id = int(skill_id)
        duration_min = int(duration_min)
    except (TypeError, ValueError):
        return jsonify(error="skill_id and duration_min must be integers"), 400

    try:
        when = _parse_iso(str(scheduled_at))
    except ValueError:
        return jsonify(error="Invalid datetime format. Use ISO e.g. 2026-01-20T18:00:00"), 400

    if when <= datetime.utcnow():
        return jsonify(error="scheduled_at must be in the future"), 400
    if duration_min < MIN_DURATION_MIN or duration_min > MAX_DURATION_MIN:
        return jsonify(error=f"duration_min must be between {MIN_DURATION_MIN} and {MAX_DURATION_MIN}"), 400

    result = create_booking(g.user, skill_id, when, duration_min)
    if isinstance(result, dict):
        return jsonify(message="Payment required", **result), 200
    return jsonify(message="Booking confirmed", booking=booking_dict(result)), 201


@booking_bp.get("/me")
@login_required
def my_bookings():
    rows = (
        Booking.query
        .filter_by(mentee_id=g.user.id)
        .order_by(Booking.scheduled_at.desc())
        .all()
    )
    return jsonify([booking_dict(b) for b in rows]), 200


@booking_bp.get("/mentor")
@require_roles("MENTOR")
def mentor_bookings():
    status = (request.args.get("status") or "").strip().upper()
    q = Booking.query.filter_by(mentor_id=g.user.id)
    if status:
        q = q.filter(Booking.status == status)
    rows = q.order_by(Booking.scheduled_at.desc()).all()
    return jsonify([booking_dict(b) for b in rows]), 200


@booking_bp.get("/<int:booking_id>")
@login_required
def get_booking(booking_id: int):
    booking = Booking.query.get(booking_id)
    if not booking:
        return jsonify(error="Booking not found"), 404
    if g.user.role != "ADMIN" and g.user.id not in (booking.mentee_id, booking.mentor_id):
        return jsonify(error="Not authorized"), 403
    return jsonify(booking_dict(booking)), 200


@booking_bp.patch("/<int:booking_id>/status")
@require_roles("MENTOR")
def set_booking_status(booking_id: int):
    data = request.get_json(silent=True) or {}
    status = (data.get("status") or "").strip().upper()
    if not status:
        return jsonify(error="status is required"), 400

    booking = update_booking_status(g.user, booking_id, status)
    return jsonify(message="Booking updated", booking=booking_dict(booking)), 200


@booking_bp.patch("/<int:booking_id>/cancel")
@login_required
def cancel_my_booking(booking_id: int):
    booking = cancel_booking(g.user, booking_id)
    return jsonify(message="Booking cancelled", booking=booking_dict(booking)), 200
