import json
import logging
from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy import update

from models import db
from models.payment import Payment
from models.subscription import Subscription
from models.subscription_log import SubscriptionLog
from models.subscription_plan import SubscriptionPlan
from services import stripe_client
from services.checkout import open_checkout
from utils.audit import log_event
from utils.errors import AuthorizationError, ConflictError, NotFoundError
from utils.premium import user_has_premium

logger = logging.getLogger(__name__)


def _promote(user):
    if user.role == "USER":
        user.role = "PREMIUM_USER"


def _demote(user):
    user.is_premium = False
    user.premium_expires = None
    if user.role == "PREMIUM_USER":
        user.role = "USER"


def create_subscription(user, plan_id: int, now=None):
    if now is None:
        now = datetime.utcnow()

    if user_has_premium(user, now):
        raise ConflictError(
            f"You already have an active premium plan until {user.premium_expires.isoformat()}"
        )

    plan = SubscriptionPlan.query.get(plan_id)
    if not plan:
        raise NotFoundError("Subscription plan not found")

    currency = current_app.config.get("PAYMENT_CURRENCY", "usd")
    subscription = Subscription(
        user_id=user.id,
        plan_id=plan.id,
        status="PENDING",
        expires_at=now + timedelta(days=plan.duration_days),
    )
    payment = Payment(
        user_id=user.id,
        amount=plan.price,
        currency=currency,
        purpose="subscription",
        status="PENDING",
    )
    db.session.add_all([subscription, payment])
    db.session.flush()
    payment.subscription_id = subscription.id
    db.session.commit()

    subscription_id = subscription.id
    payment_id = payment.id

    line_item = stripe_client.build_line_item(
        f"{plan.name} Subscription",
        f"{plan.duration_days} days of premium access",
        plan.price,
        currency,
    )
    metadata = {
        "purpose": "subscription",
        "payment_id": payment_id,
        "subscription_id": subscription_id,
        "user_id": user.id,
        "plan_id": plan.id,
        "duration_days": plan.duration_days,
    }
    session_id, session_url = open_checkout(payment, subscription, user.email, line_item, metadata)

    log_event("SUBSCRIPTION_CREATE", user_id=user.id, entity="subscription", entity_id=subscription_id,
              metadata={"plan_id": plan_id, "payment_id": payment_id})
    return {
        "payment_url": session_url,
        "session_id": session_id,
        "payment_id": payment_id,
        "subscription_id": subscription_id,
    }


def extend_subscription(subscription, now=None, action="ACTIVATED_BY_WEBHOOK"):
    """
    Moves a subscription to ACTIVE and pushes the owner's premium expiry.

    The new expiry is counted from the later of ``now`` and whatever premium the
    user already holds, so an overlapping purchase extends rather than resets.
    Does not commit.
    """
    if now is None:
        now = datetime.utcnow()

    plan = SubscriptionPlan.query.get(subscription.plan_id)
    if not plan:
        raise NotFoundError("Subscription plan not found")

    user = subscription.user
    base = now
    if subscription.status == "ACTIVE" and subscription.expires_at > base:
        base = subscription.expires_at
    if user_has_premium(user, now) and user.premium_expires > base:
        base = user.premium_expires

    new_expiry = base + timedelta(days=plan.duration_days)

    superseded = (
        Subscription.query
        .filter(
            Subscription.user_id == user.id,
            Subscription.status == "ACTIVE",
            Subscription.id != subscription.id,
        )
        .all()
    )
    for old in superseded:
        old.status = "EXPIRED"
        db.session.add(SubscriptionLog(user_id=user.id, subscription_id=old.id, action="SUPERSEDED"))

    subscription.status = "ACTIVE"
    if subscription.started_at is None:
        subscription.started_at = now
    subscription.expires_at = new_expiry

    user.is_premium = True
    user.premium_expires = new_expiry
    _promote(user)

    db.session.add(SubscriptionLog(
        user_id=user.id,
        subscription_id=subscription.id,
        action=f"{action}: {plan.duration_days} day(s)",
    ))
    return subscription


def claim_payment(payment) -> bool:
    """
    Flips ``payment`` to SUCCESS with a conditional UPDATE inside the current transaction.

    Returns False when another delivery already claimed it. Concurrent claimers
    serialize on the row write, so exactly one of them sees a rowcount of 1 and goes
    on to finalize; a rollback releases the claim again.
    """
    result = db.session.execute(
        update(Payment)
        .where(Payment.id == payment.id, Payment.status != "SUCCESS")
        .values(status="SUCCESS")
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def mark_payment_success(payment, provider_payment_id=None, raw=None, now=None):
    payment.status = "SUCCESS"
    payment.paid_at = now or datetime.utcnow()
    if provider_payment_id:
        payment.provider_payment_id = provider_payment_id
    if raw is not None:
        payment.raw_response = json.dumps(raw, default=str)


def activate_subscription(transaction_id: str, now=None):
    """
    Finalizes the subscription paid through checkout session ``transaction_id``.

    Applying the same confirmation twice is a no-op: the correlated payment is
    claimed before anything is extended, and a delivery that loses the claim
    returns the subscription unchanged.
    """
    subscription = Subscription.query.filter_by(transaction_id=transaction_id).first()
    if not subscription:
        raise NotFoundError(f"Subscription not found for transactionId: {transaction_id}")

    payment = Payment.query.filter_by(transaction_id=transaction_id).first()
    if payment is not None and (payment.status == "SUCCESS" or not claim_payment(payment)):
        logger.info("Subscription %s already activated for %s", subscription.id, transaction_id)
        return subscription

    extend_subscription(subscription, now=now)

    if payment is None:
        plan = SubscriptionPlan.query.get(subscription.plan_id)
        payment = Payment(
            user_id=subscription.user_id,
            subscription_id=subscription.id,
            amount=plan.price,
            currency=current_app.config.get("PAYMENT_CURRENCY", "usd"),
            purpose="subscription",
            transaction_id=transaction_id,
        )
        db.session.add(payment)
    mark_payment_success(payment, now=now)
    db.session.commit()

    log_event("SUBSCRIPTION_ACTIVATE", user_id=subscription.user_id, entity="subscription",
              entity_id=subscription.id, metadata={"transaction_id": transaction_id})
    return subscription


def cancel_subscription(requester, subscription_id: int):
    subscription = Subscription.query.get(subscription_id)
    if not subscription:
        raise NotFoundError("Subscription not found")
    if requester.role != "ADMIN" and subscription.user_id != requester.id:
        raise AuthorizationError("You can only cancel your own subscription")
    if subscription.status in ("CANCELLED", "EXPIRED"):
        raise ConflictError(f"Subscription already {subscription.status.lower()}")

    was_pending = subscription.status == "PENDING"
    subscription.status = "CANCELLED"

    if was_pending:
        # only the in-flight checkout is dropped; premium held elsewhere stays
        pending = Payment.query.filter_by(subscription_id=subscription.id, status="PENDING").first()
        if pending:
            pending.status = "FAILED"
    else:
        _demote(subscription.user)

    db.session.add(SubscriptionLog(
        user_id=subscription.user_id,
        subscription_id=subscription.id,
        action="CANCELLED",
    ))
    db.session.commit()

    log_event("SUBSCRIPTION_CANCEL", user_id=requester.id, entity="subscription", entity_id=subscription.id)
    return subscription
