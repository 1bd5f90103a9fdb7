"""
Turns verified Stripe checkout events into booking / subscription state.

Every handler looks rows up before touching them. A confirmation first claims the
correlated Payment with a conditional UPDATE, so a redelivered or concurrently
delivered event finds it already SUCCESS and changes nothing.
"""
import logging
from datetime import datetime

from models import db
from models.booking import Booking
from models.payment import Payment
from models.subscription import Subscription
from services.checkout import fail_provisional
from services.subscriptions import claim_payment, extend_subscription, mark_payment_success
from utils.audit import log_event

logger = logging.getLogger(__name__)

HANDLED_EVENTS = ("checkout.session.completed", "checkout.session.expired")
PURPOSES = ("booking", "subscription")


def _as_int(value):
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def find_payment(payment_id, session_id):
    payment = None
    pid = _as_int(payment_id)
    if pid:
        payment = Payment.query.get(pid)
    if not payment and session_id:
        payment = Payment.query.filter_by(transaction_id=session_id).first()
    return payment


def handle_event(event: dict, now=None):
    """Dispatches a verified event. Returns the finalized record, or None when nothing changed."""
    event_type = event.get("type")
    if event_type not in HANDLED_EVENTS:
        logger.debug("Ignoring Stripe event %s", event_type)
        return None

    session = event["data"]["object"]
    if event_type == "checkout.session.completed":
        return on_payment_confirmed(session, now=now)
    return on_checkout_expired(session)


def on_payment_confirmed(session: dict, now=None):
    if now is None:
        now = datetime.utcnow()

    session_id = session.get("id")
    meta = session.get("metadata") or {}

    payment = find_payment(meta.get("payment_id"), session_id)
    purpose = meta.get("purpose") or (payment.purpose if payment else None)
    if purpose not in PURPOSES:
        # Payment Links and other sessions created outside this app carry none of our metadata
        logger.warning("Acknowledging checkout %s with unknown purpose %r", session_id, purpose)
        return None

    if payment is not None and payment.status == "SUCCESS":
        logger.info("Checkout %s already reconciled (payment %s)", session_id, payment.id)
        return None
    if payment is not None and not claim_payment(payment):
        logger.info("Checkout %s claimed by a concurrent delivery (payment %s)", session_id, payment.id)
        return None

    if purpose == "booking":
        record = _finalize_booking(meta, payment)
    else:
        record = _finalize_subscription(meta, payment, session_id, now)

    if payment is None:
        logger.warning("No provisional payment for checkout %s; recording one", session_id)
        payment = Payment(
            user_id=record.mentee_id if purpose == "booking" else record.user_id,
            amount=int((session.get("amount_total") or 0) / 100),
            currency=(session.get("currency") or "usd"),
            purpose=purpose,
        )
        db.session.add(payment)

    if purpose == "booking":
        payment.booking_id = record.id
    else:
        payment.subscription_id = record.id
    if session_id and payment.transaction_id is None:
        payment.transaction_id = session_id
    mark_payment_success(payment, provider_payment_id=session.get("payment_intent"), raw=session, now=now)
    db.session.commit()

    log_event("PAYMENT_SUCCESS", user_id=None, entity="payment", entity_id=payment.id,
              metadata={"stripe_session_id": session_id, "purpose": purpose, "record_id": record.id})
    return record


def _finalize_booking(meta: dict, payment):
    booking = None
    booking_id = _as_int(meta.get("booking_id")) or (payment.booking_id if payment else None)
    if booking_id:
        booking = Booking.query.get(booking_id)

    price = _as_int(meta.get("price")) or 0

    if booking is None:
        try:
            lookup = {
                "mentee_id": int(meta["mentee_id"]),
                "mentor_id": int(meta["mentor_id"]),
                "skill_id": int(meta["skill_id"]),
                "scheduled_at": datetime.fromisoformat(meta["scheduled_at"]),
                "duration_min": int(meta["duration_min"]),
            }
        except (KeyError, TypeError, ValueError) as exc:
            raise ValueError(f"Booking metadata incomplete: {meta!r}") from exc

        booking = Booking.query.filter_by(**lookup).first()
        if booking is None:
            logger.warning("Provisional booking missing, recreating from metadata %s", lookup)
            booking = Booking(status="ACCEPTED", price_paid=price, **lookup)
            db.session.add(booking)
            db.session.flush()
            return booking

    booking.status = "ACCEPTED"
    booking.price_paid = price
    return booking


def _finalize_subscription(meta: dict, payment, session_id, now):
    subscription = None
    subscription_id = _as_int(meta.get("subscription_id")) or (payment.subscription_id if payment else None)
    if subscription_id:
        subscription = Subscription.query.get(subscription_id)
    if subscription is None and session_id:
        subscription = Subscription.query.filter_by(transaction_id=session_id).first()

    if subscription is None:
        user_id = _as_int(meta.get("user_id"))
        plan_id = _as_int(meta.get("plan_id"))
        if not user_id or not plan_id:
            raise ValueError(f"Subscription metadata incomplete: {meta!r}")
        logger.warning("Provisional subscription missing, recreating for user %s", user_id)
        subscription = Subscription(
            user_id=user_id,
            plan_id=plan_id,
            status="PENDING",
            expires_at=now,
            transaction_id=session_id,
        )
        db.session.add(subscription)
        db.session.flush()

    return extend_subscription(subscription, now=now)


def on_checkout_expired(session: dict):
    meta = session.get("metadata") or {}
    payment = find_payment(meta.get("payment_id"), session.get("id"))
    if payment is None:
        return None
    if fail_provisional(payment, reason="checkout_expired"):
        return payment
    return None
