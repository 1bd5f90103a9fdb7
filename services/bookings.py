import logging
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP

from flask import current_app

from models import db
from models.booking import Booking, BOOKING_STATUSES, ACTIVE_BOOKING_STATUSES
from models.payment import Payment
from models.skill import Skill
from services import stripe_client
from services.checkout import open_checkout
from utils.audit import log_event
from utils.errors import AuthorizationError, DomainError, NotFoundError, ValidationError
from utils.premium import user_has_premium

logger = logging.getLogger(__name__)


def calculate_price(hourly_rate, duration_min: int, default_rate=200) -> int:
    """(hourly rate / 60) * minutes, rounded half up to a whole currency unit."""
    rate = Decimal(str(hourly_rate if hourly_rate is not None else default_rate))
    amount = rate * Decimal(int(duration_min)) / Decimal(60)
    return int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def count_active_bookings(mentee_id: int = None, mentor_id: int = None) -> int:
    q = Booking.query.filter(Booking.status.in_(ACTIVE_BOOKING_STATUSES))
    if mentee_id is not None:
        q = q.filter(Booking.mentee_id == mentee_id)
    if mentor_id is not None:
        q = q.filter(Booking.mentor_id == mentor_id)
    return q.count()


def payment_required(mentee, now=None) -> bool:
    """
    Free tier check. Premium mentees never pay; everyone else pays once their
    PENDING + ACCEPTED bookings reach FREE_BOOKING_LIMIT.
    """
    if user_has_premium(mentee, now):
        return False
    limit = current_app.config.get("FREE_BOOKING_LIMIT", 3)
    active = count_active_bookings(mentee_id=mentee.id)
    mentee.free_bookings_remaining = max(limit - active, 0)
    return active >= limit


def create_booking(mentee, skill_id: int, scheduled_at: datetime, duration_min: int, now=None):
    """
    Admission check plus booking creation.

    Returns the ACCEPTED ``Booking`` when the session is free, otherwise a dict with
    the checkout ``payment_url`` for a PENDING booking awaiting payment.
    """
    if now is None:
        now = datetime.utcnow()

    requires_payment = payment_required(mentee, now)

    skill = Skill.query.get(skill_id)
    if not skill:
        raise NotFoundError("Skill not found")
    if skill.owner_id == mentee.id:
        raise DomainError("You cannot book yourself")

    mentor = skill.owner
    if not user_has_premium(mentor, now):
        raise DomainError("This mentor's premium has expired.")

    price = calculate_price(
        skill.price_per_hour,
        duration_min,
        current_app.config.get("DEFAULT_HOURLY_RATE", 200),
    )

    if requires_payment:
        return _create_paid_booking(mentee, skill, scheduled_at, duration_min, price)

    booking = Booking(
        mentee_id=mentee.id,
        mentor_id=mentor.id,
        skill_id=skill.id,
        scheduled_at=scheduled_at,
        duration_min=duration_min,
        price_paid=0,
        status="ACCEPTED",
    )
    db.session.add(booking)
    if mentee.free_bookings_remaining:
        mentee.free_bookings_remaining -= 1
    db.session.commit()

    log_event("BOOKING_CREATE", user_id=mentee.id, entity="booking", entity_id=booking.id,
              metadata={"skill_id": skill.id, "paid": False})
    return booking


def _create_paid_booking(mentee, skill, scheduled_at, duration_min, price):
    currency = current_app.config.get("PAYMENT_CURRENCY", "usd")

    # one commit for both provisional rows
    payment = Payment(
        user_id=mentee.id,
        amount=price,
        currency=currency,
        purpose="booking",
        status="PENDING",
    )
    booking = Booking(
        mentee_id=mentee.id,
        mentor_id=skill.owner_id,
        skill_id=skill.id,
        scheduled_at=scheduled_at,
        duration_min=duration_min,
        price_paid=price,
        status="PENDING",
    )
    db.session.add_all([payment, booking])
    db.session.flush()
    payment.booking_id = booking.id
    db.session.commit()

    booking_id = booking.id
    payment_id = payment.id

    line_item = stripe_client.build_line_item(
        f"Mentor Booking: {skill.title}",
        f"{duration_min} min session",
        price,
        currency,
    )
    metadata = {
        "purpose": "booking",
        "payment_id": payment_id,
        "booking_id": booking_id,
        "mentee_id": mentee.id,
        "mentor_id": skill.owner_id,
        "skill_id": skill.id,
        "scheduled_at": scheduled_at.isoformat(),
        "duration_min": duration_min,
        "price": price,
    }
    session_id, session_url = open_checkout(payment, booking, mentee.email, line_item, metadata)

    log_event("BOOKING_CREATE", user_id=mentee.id, entity="booking", entity_id=booking_id,
              metadata={"skill_id": skill.id, "paid": True, "payment_id": payment_id})
    return {
        "payment_url": session_url,
        "session_id": session_id,
        "payment_id": payment_id,
        "booking_id": booking_id,
    }


def _pending_payment_for(booking_id: int):
    return Payment.query.filter_by(booking_id=booking_id, status="PENDING").first()


def update_booking_status(mentor, booking_id: int, status: str, now=None):
    if status not in BOOKING_STATUSES:
        raise ValidationError(f"status must be one of {', '.join(BOOKING_STATUSES)}")

    booking = Booking.query.get(booking_id)
    if not booking:
        raise NotFoundError("Booking not found")
    if booking.mentor_id != mentor.id:
        raise AuthorizationError("Not authorized")

    if status == "ACCEPTED":
        if booking.status == "PENDING" and _pending_payment_for(booking.id):
            raise DomainError("Booking is awaiting payment")
        if not user_has_premium(mentor, now):
            limit = current_app.config.get("FREE_MENTOR_ACTIVE_BOOKING_LIMIT", 10)
            if count_active_bookings(mentor_id=mentor.id) >= limit:
                raise DomainError(
                    f"Free mentors can accept only {limit} active bookings. "
                    "Upgrade to premium for unlimited sessions."
                )

    previous = booking.status
    booking.status = status
    db.session.commit()

    log_event("BOOKING_STATUS_UPDATE", user_id=mentor.id, entity="booking", entity_id=booking.id,
              metadata={"from": previous, "to": status})
    return booking


def cancel_booking(mentee, booking_id: int):
    booking = Booking.query.get(booking_id)
    if not booking:
        raise NotFoundError("Booking not found")
    if booking.mentee_id != mentee.id:
        raise AuthorizationError("Not authorized")
    if booking.status not in ACTIVE_BOOKING_STATUSES:
        raise DomainError("Booking not cancellable")

    booking.status = "CANCELLED"
    payment = _pending_payment_for(booking.id)
    if payment:
        payment.status = "FAILED"
    db.session.commit()

    log_event("BOOKING_CANCEL", user_id=mentee.id, entity="booking", entity_id=booking.id)
    return booking
