"""
Periodic maintenance run from the CLI (``flask expire-subscriptions`` and
``flask reap-checkouts``), typically on a system cron schedule.

Each sweep holds a named row in ``sweep_locks`` while it runs, so overlapping cron
invocations in separate processes skip instead of working the same rows twice.
"""
import logging
import secrets
from datetime import datetime, timedelta
from functools import wraps

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from models import db
from models.payment import Payment
from models.subscription import Subscription
from models.subscription_log import SubscriptionLog
from models.sweep_lock import SweepLock
from services.checkout import fail_provisional
from utils.audit import log_event

logger = logging.getLogger(__name__)


def acquire_sweep_lock(name: str, ttl_minutes=None, now=None):
    """
    Takes the lock row for ``name``. Returns the holder token, or None when a live
    run holds it. Commits the current session.
    """
    if now is None:
        now = datetime.utcnow()
    if ttl_minutes is None:
        ttl_minutes = current_app.config.get("SWEEP_LOCK_TTL_MINUTES", 15)

    token = secrets.token_hex(16)
    expires_at = now + timedelta(minutes=ttl_minutes)

    db.session.add(SweepLock(name=name, holder=token, acquired_at=now, expires_at=expires_at))
    try:
        db.session.commit()
        return token
    except IntegrityError:
        db.session.rollback()

    # only a lapsed holder can be replaced
    taken = db.session.execute(
        update(SweepLock)
        .where(SweepLock.name == name, SweepLock.expires_at <= now)
        .values(holder=token, acquired_at=now, expires_at=expires_at)
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    if taken.rowcount != 1:
        return None

    logger.warning("Took over stale %s lock", name)
    return token


def release_sweep_lock(name: str, token: str):
    SweepLock.query.filter_by(name=name, holder=token).delete(synchronize_session=False)
    db.session.commit()


def single_flight(name: str):
    """Skips a run (returning None) while another process holds the ``name`` sweep lock."""
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            token = acquire_sweep_lock(name)
            if token is None:
                logger.info("%s skipped: already running", name)
                return None
            try:
                return fn(*args, **kwargs)
            except Exception:
                db.session.rollback()
                raise
            finally:
                release_sweep_lock(name, token)

        return wrapper
    return decorator


@single_flight("expire-subscriptions")
def expire_subscriptions(now=None) -> int:
    if now is None:
        now = datetime.utcnow()

    expired = (
        Subscription.query
        .filter(Subscription.status == "ACTIVE", Subscription.expires_at <= now)
        .all()
    )
    for sub in expired:
        sub.status = "EXPIRED"
        db.session.add(SubscriptionLog(user_id=sub.user_id, subscription_id=sub.id, action="SUBSCRIPTION_EXPIRED"))

        user = sub.user
        still_covered = user.premium_expires is not None and user.premium_expires > now
        if not still_covered:
            user.is_premium = False
            user.premium_expires = None
            if user.role == "PREMIUM_USER":
                user.role = "USER"

    db.session.commit()

    if expired:
        logger.info("Expired %d subscriptions", len(expired))
        log_event("SUBSCRIPTIONS_EXPIRED", metadata={"count": len(expired), "ids": [s.id for s in expired]})
    return len(expired)


@single_flight("reap-checkouts")
def reap_abandoned_checkouts(now=None, ttl_minutes=None) -> int:
    """Fails PENDING payments older than the checkout TTL and drops their provisional rows."""
    if now is None:
        now = datetime.utcnow()
    if ttl_minutes is None:
        ttl_minutes = current_app.config.get("CHECKOUT_SESSION_TTL_MINUTES", 30)

    cutoff = now - timedelta(minutes=ttl_minutes)
    stale = (
        Payment.query
        .filter(Payment.status == "PENDING", Payment.created_at <= cutoff)
        .order_by(Payment.created_at.asc())
        .all()
    )

    reaped = 0
    for payment in stale:
        if fail_provisional(payment, reason="checkout_abandoned"):
            reaped += 1

    if reaped:
        logger.info("Reaped %d abandoned checkouts", reaped)
    return reaped
