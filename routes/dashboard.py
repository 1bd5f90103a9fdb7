"""Read-only statistics for the admin, mentor and personal dashboards."""
from datetime import datetime, timedelta

from flask import Blueprint, jsonify, g
from sqlalchemy import func, or_

from models import db
from models.booking import Booking
from models.conversation import Conversation
from models.message import Message
from models.review import Review
from models.skill import Skill
from models.user import User
from security.rbac import require_roles
from utils.auth_context import login_required
from utils.serialize import conversation_dict, review_dict, user_private

dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/dashboard")

RECENT_LIMIT = 5
TREND_DAYS = 7


def daily_counts(column, *criteria, days=TREND_DAYS, now=None):
    """Per-day row counts for the last ``days`` days (today included), oldest first, zero-filled."""
    if now is None:
        now = datetime.utcnow()
    start = (now - timedelta(days=days - 1)).replace(hour=0, minute=0, second=0, microsecond=0)

    day = func.date(column)
    rows = (
        db.session.query(day, func.count())
        .filter(column >= start, *criteria)
        .group_by(day)
        .all()
    )
    # sqlite hands back strings, postgres hands back dates
    counts = {str(d): n for d, n in rows}

    series = []
    for i in range(days):
        key = (start + timedelta(days=i)).date().isoformat()
        series.append({"date": key, "count": counts.get(key, 0)})
    return series


def _involving(user_id: int):
    return or_(Conversation.user_a_id == user_id, Conversation.user_b_id == user_id)


@dashboard_bp.get("/admin")
@require_roles("ADMIN")
def admin_dashboard():
    recent_users = User.query.order_by(User.created_at.desc(), User.id.desc()).limit(RECENT_LIMIT).all()
    recent_conversations = (
        Conversation.query
        .order_by(Conversation.created_at.desc(), Conversation.id.desc())
        .limit(RECENT_LIMIT)
        .all()
    )

    return jsonify(
        totals={
            "users": User.query.count(),
            "mentors": User.query.filter_by(role="MENTOR").count(),
            "admins": User.query.filter_by(role="ADMIN").count(),
            "conversations": Conversation.query.count(),
            "messages": Message.query.count(),
        },
        recent_users=[user_private(u) for u in recent_users],
        recent_conversations=[conversation_dict(c) for c in recent_conversations],
        daily_signups=daily_counts(User.created_at),
        daily_messages=daily_counts(Message.created_at),
    ), 200


@dashboard_bp.get("/mentor")
@require_roles("MENTOR")
def mentor_dashboard():
    mentor_id = g.user.id
    now = datetime.utcnow()

    earnings = (
        db.session.query(func.coalesce(func.sum(Booking.price_paid), 0))
        .filter(Booking.mentor_id == mentor_id, Booking.status == "COMPLETED")
        .scalar()
    )
    bookings = Booking.query.filter(Booking.mentor_id == mentor_id)
    upcoming = bookings.filter(Booking.status == "ACCEPTED", Booking.scheduled_at >= now).count()

    reviews = Review.query.filter(Review.target_user_id == mentor_id)
    average = db.session.query(func.avg(Review.rating)).filter(Review.target_user_id == mentor_id).scalar()
    recent_reviews = reviews.order_by(Review.created_at.desc(), Review.id.desc()).limit(RECENT_LIMIT).all()

    per_skill = (
        db.session.query(Skill.id, Skill.title, func.count(Booking.id))
        .outerjoin(Booking, Booking.skill_id == Skill.id)
        .filter(Skill.owner_id == mentor_id)
        .group_by(Skill.id, Skill.title)
        .order_by(Skill.id.asc())
        .all()
    )

    return jsonify(
        earnings={"total": int(earnings)},
        sessions={
            "total": bookings.count(),
            "completed": bookings.filter(Booking.status == "COMPLETED").count(),
            "upcoming": upcoming,
        },
        reviews={
            "total": reviews.count(),
            "average": round(float(average), 2) if average is not None else 0.0,
            "recent": [review_dict(r) for r in recent_reviews],
        },
        skills=[{"skill_id": sid, "title": title, "bookings": n} for sid, title, n in per_skill],
    ), 200


@dashboard_bp.get("/me")
@login_required
def my_dashboard():
    user_id = g.user.id
    recent = (
        Conversation.query
        .filter(_involving(user_id))
        .order_by(Conversation.updated_at.desc(), Conversation.id.desc())
        .limit(RECENT_LIMIT)
        .all()
    )

    return jsonify(
        messages={
            "sent": Message.query.filter_by(sender_id=user_id).count(),
            "received": Message.query.filter_by(receiver_id=user_id).count(),
        },
        conversations={
            "total": Conversation.query.filter(_involving(user_id)).count(),
            "recent": [conversation_dict(c, user_id) for c in recent],
        },
        daily_messages_sent=daily_counts(Message.created_at, Message.sender_id == user_id),
    ), 200
