"""
Checkout handoff shared by paid bookings and subscriptions.

The provisional Payment and its Booking/Subscription are committed by the caller
before ``open_checkout`` runs; the Stripe request happens outside that commit and,
if it fails, the provisional rows are removed again before the error surfaces.
"""
import logging
from urllib.parse import urlencode, urlparse, parse_qsl, urlunparse

from flask import current_app
from sqlalchemy import update

from models import db
from models.booking import Booking
from models.payment import Payment
from models.subscription import Subscription
from services import stripe_client
from utils.audit import log_event
from utils.errors import PaymentInitiationError

logger = logging.getLogger(__name__)


def _append_query(url: str, params: dict) -> str:
    if not url:
        return url
    parts = urlparse(url)
    query = dict(parse_qsl(parts.query))
    query.update({k: v for k, v in params.items() if v is not None})
    return urlunparse(parts._replace(query=urlencode(query)))


def discard_provisional(payment, record):
    """Compensating delete for a checkout that never reached Stripe."""
    db.session.delete(payment)
    db.session.flush()
    if record is not None:
        db.session.delete(record)
    db.session.commit()


def fail_provisional(payment, reason: str) -> bool:
    """
    Marks a still-PENDING payment FAILED and drops the provisional record it held.

    Used for expired or abandoned checkouts. Returns False when the payment was
    already settled, so a late expiry never undoes a confirmed payment.
    """
    if payment.status != "PENDING":
        return False

    # loses to a confirmation that already claimed the row
    claimed = db.session.execute(
        update(Payment)
        .where(Payment.id == payment.id, Payment.status == "PENDING")
        .values(status="FAILED")
        .execution_options(synchronize_session=False)
    )
    if claimed.rowcount != 1:
        return False

    record = None
    if payment.booking_id:
        record = Booking.query.get(payment.booking_id)
    elif payment.subscription_id:
        record = Subscription.query.get(payment.subscription_id)

    payment.status = "FAILED"
    payment.booking_id = None
    payment.subscription_id = None
    db.session.flush()

    if record is not None and record.status == "PENDING":
        db.session.delete(record)

    db.session.commit()
    log_event("PAYMENT_FAILED", user_id=payment.user_id, entity="payment", entity_id=payment.id,
              metadata={"reason": reason, "transaction_id": payment.transaction_id})
    return True


def open_checkout(payment, record, customer_email: str, line_item: dict, metadata: dict):
    """
    Requests a hosted checkout session for an already-committed provisional payment.

    Returns ``(session_id, session_url)``. On provider failure the payment and
    ``record`` are deleted and ``PaymentInitiationError`` is raised.
    """
    cfg = current_app.config
    payment_id = payment.id
    user_id = payment.user_id
    cancel_url = _append_query(cfg.get("STRIPE_CANCEL_URL"), {"payment_id": str(payment_id)})

    try:
        session_id, session_url = stripe_client.create_checkout_session(
            customer_email,
            line_item,
            cfg.get("STRIPE_SUCCESS_URL"),
            cancel_url,
            metadata,
        )
    except Exception as exc:
        logger.exception("Stripe checkout session creation failed for payment %s", payment_id)
        discard_provisional(payment, record)
        log_event("PAYMENT_SESSION_FAILED", user_id=user_id, entity="payment", entity_id=payment_id,
                  metadata={"purpose": metadata.get("purpose"), "error": str(exc)})
        raise PaymentInitiationError() from exc

    payment.transaction_id = session_id
    if isinstance(record, Subscription):
        record.transaction_id = session_id
    db.session.commit()

    log_event("PAYMENT_SESSION_CREATED", user_id=user_id, entity="payment", entity_id=payment_id,
              metadata={"stripe_session_id": session_id, "purpose": metadata.get("purpose")})
    return session_id, session_url
