from flask import Blueprint, request, jsonify, g
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from models import db
from models.booking import Booking
from models.review import Review
from models.user import User
from utils.auth_context import login_required
from utils.audit import log_event
from utils.serialize import review_dict

reviews_bp = Blueprint("reviews", __name__, url_prefix="/reviews")


def _parse_rating(raw):
    try:
        rating = int(raw)
    except (TypeError, ValueError):
        return None
    return rating if 1 <= rating <= 5 else None


def recompute_average_rating(mentor_id: int):
    avg = db.session.query(func.avg(Review.rating)).filter(Review.target_user_id == mentor_id).scalar()
    mentor = User.query.get(mentor_id)
    if mentor:
        mentor.average_rating = round(float(avg), 2) if avg is not None else 0.0


@reviews_bp.post("")
@login_required
def create_review():
    data = request.get_json(silent=True) or {}
    booking_id = data.get("booking_id")
    rating = _parse_rating(data.get("rating"))
    comment = (data.get("comment") or "").strip() or None

    if not booking_id:
        return jsonify(error="booking_id is required"), 400
    if rating is None:
        return jsonify(error="rating must be an integer between 1 and 5"), 400

    booking = Booking.query.get(booking_id)
    if not booking:
        return jsonify(error="Booking not found"), 404
    if booking.mentee_id != g.user.id:
        return jsonify(error="You can only review your own bookings"), 403
    if booking.status != "COMPLETED":
        return jsonify(error="Only completed sessions can be reviewed"), 400

    if Review.query.filter_by(reviewer_id=g.user.id, booking_id=booking.id).first():
        return jsonify(error="You have already reviewed this session"), 409

    review = Review(
        reviewer_id=g.user.id,
        target_user_id=booking.mentor_id,
        booking_id=booking.id,
        rating=rating,
        comment=comment,
    )
    db.session.add(review)
    try:
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        return jsonify(error="You have already reviewed this session"), 409

    recompute_average_rating(booking.mentor_id)
    db.session.commit()

    log_event("REVIEW_CREATE", user_id=g.user.id, entity="review", entity_id=review.id,
              metadata={"mentor_id": booking.mentor_id, "rating": rating})
    return jsonify(review_dict(review)), 201


@reviews_bp.get("/mentor/<int:mentor_id>")
def mentor_reviews(mentor_id: int):
    rows = (
        Review.query
        .filter_by(target_user_id=mentor_id)
        .order_by(Review.created_at.desc())
        .all()
    )
    return jsonify([review_dict(r) for r in rows]), 200


def _own_review_or_error(review_id: int):
    review = Review.query.get(review_id)
    if not review:
        return None, (jsonify(error="Review not found"), 404)
    if review.reviewer_id != g.user.id:
        return None, (jsonify(error="Not authorized"), 403)
    return review, None


@reviews_bp.patch("/<int:review_id>")
@login_required
def update_review(review_id: int):
    review, err = _own_review_or_error(review_id)
    if err:
        return err

    data = request.get_json(silent=True) or {}
    if "rating" in data:
        rating = _parse_rating(data.get("rating"))
        if rating is None:
            return jsonify(error="rating must be an integer between 1 and 5"), 400
        review.rating = rating
    if "comment" in data:
        review.comment = (data.get("comment") or "").strip() or None

    db.session.flush()
    recompute_average_rating(review.target_user_id)
    db.session.commit()

    log_event("REVIEW_UPDATE", user_id=g.user.id, entity="review", entity_id=review.id)
    return jsonify(review_dict(review)), 200


@reviews_bp.delete("/<int:review_id>")
@login_required
def delete_review(review_id: int):
    review, err = _own_review_or_error(review_id)
    if err:
        return err

    mentor_id = review.target_user_id
    db.session.delete(review)
    db.session.flush()
    recompute_average_rating(mentor_id)
    db.session.commit()

    log_event("REVIEW_DELETE", user_id=g.user.id, entity="review", entity_id=review_id)
    return jsonify(message="Review deleted"), 200
