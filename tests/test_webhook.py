import json
from datetime import datetime, timedelta
from unittest.mock import patch

import pytest

from models import db
from models.audit_log import AuditLog
from models.booking import Booking
from models.payment import Payment
from models.subscription import Subscription


@pytest.fixture
def signed():
    """Accepts any signature; the handler parses the raw body itself."""
    with patch("stripe.Webhook.construct_event") as construct:
        construct.return_value = {}
        yield construct


def _post_event(client, event):
    return client.post(
        "/webhook",
        data=json.dumps(event),
        content_type="application/json",
        headers={"Stripe-Signature": "t=1,v1=test"},
    )


def _completed(session_id, metadata, amount_total=0, payment_intent="pi_test_1"):
    return {
        "id": "evt_1",
        "type": "checkout.session.completed",
        "data": {"object": {
            "id": session_id,
            "metadata": metadata,
            "amount_total": amount_total,
            "currency": "usd",
            "payment_intent": payment_intent,
        }},
    }


def _pending_booking(mentee, mentor, skill, session_id="cs_test_booking", price=100):
    booking = Booking(mentee_id=mentee.id, mentor_id=mentor.id, skill_id=skill.id,
                      scheduled_at=datetime(2030, 1, 1, 10, 0), duration_min=30,
                      price_paid=price, status="PENDING")
    payment = Payment(user_id=mentee.id, amount=price, purpose="booking", status="PENDING",
                      transaction_id=session_id)
    db.session.add_all([booking, payment])
    db.session.flush()
    payment.booking_id = booking.id
    db.session.commit()
    return booking, payment


def _booking_meta(booking, payment):
    return {
        "purpose": "booking",
        "payment_id": str(payment.id),
        "booking_id": str(booking.id),
        "mentee_id": str(booking.mentee_id),
        "mentor_id": str(booking.mentor_id),
        "skill_id": str(booking.skill_id),
        "scheduled_at": booking.scheduled_at.isoformat(),
        "duration_min": str(booking.duration_min),
        "price": str(booking.price_paid),
    }


def test_invalid_signature_is_rejected(client):
    with patch("stripe.Webhook.construct_event", side_effect=ValueError("bad signature")):
        resp = _post_event(client, {"type": "checkout.session.completed"})
    assert resp.status_code == 400


def test_missing_webhook_secret_is_server_error(app, client, signed):
    app.config["STRIPE_WEBHOOK_SECRET"] = None
    resp = _post_event(client, {"type": "checkout.session.completed"})
    assert resp.status_code == 500
    signed.assert_not_called()


def test_unrelated_events_are_acknowledged(client, signed):
    resp = _post_event(client, {"id": "evt_x", "type": "customer.created", "data": {"object": {}}})
    assert resp.status_code == 200
    assert resp.get_json() == {"received": True}


def test_completed_booking_is_accepted_once(client, signed, mentor, mentee, make_skill):
    skill = make_skill(mentor)
    booking, payment = _pending_booking(mentee, mentor, skill)
    event = _completed("cs_test_booking", _booking_meta(booking, payment), amount_total=10000)

    assert _post_event(client, event).status_code == 200
    db.session.expire_all()
    assert booking.status == "ACCEPTED"
    assert payment.status == "SUCCESS"
    assert payment.provider_payment_id == "pi_test_1"
    paid_at = payment.paid_at

    # Stripe redelivery
    assert _post_event(client, event).status_code == 200
    db.session.expire_all()
    assert payment.paid_at == paid_at
    assert AuditLog.query.filter_by(action="PAYMENT_SUCCESS").count() == 1


def test_missing_provisional_booking_is_recreated(client, signed, mentor, mentee, make_skill):
    skill = make_skill(mentor)
    meta = {
        "purpose": "booking",
        "mentee_id": str(mentee.id),
        "mentor_id": str(mentor.id),
        "skill_id": str(skill.id),
        "scheduled_at": "2030-01-01T10:00:00",
        "duration_min": "60",
        "price": "200",
    }

    assert _post_event(client, _completed("cs_orphan", meta, amount_total=20000)).status_code == 200

    booking = Booking.query.one()
    assert booking.status == "ACCEPTED"
    assert booking.price_paid == 200
    payment = Payment.query.filter_by(transaction_id="cs_orphan").one()
    assert payment.status == "SUCCESS"
    assert payment.amount == 200
    assert payment.booking_id == booking.id


def test_unknown_purpose_is_acknowledged_without_changes(client, signed):
    resp = _post_event(client, _completed("cs_weird", {"purpose": "donation"}))

    assert resp.status_code == 200
    assert Payment.query.count() == 0


def test_session_without_metadata_is_acknowledged(client, signed):
    resp = _post_event(client, _completed("cs_payment_link", {}, amount_total=5000))

    assert resp.status_code == 200
    assert Payment.query.count() == 0
    assert Booking.query.count() == 0


def test_incomplete_booking_metadata_is_processing_error(client, signed):
    resp = _post_event(client, _completed("cs_partial", {"purpose": "booking", "mentee_id": "1"}))

    assert resp.status_code == 500
    assert Payment.query.count() == 0


def test_completed_subscription_grants_premium(client, signed, mentee, plan):
    sub = Subscription(user_id=mentee.id, plan_id=plan.id, status="PENDING",
                       expires_at=datetime.utcnow(), transaction_id="cs_test_sub")
    payment = Payment(user_id=mentee.id, amount=plan.price, purpose="subscription",
                      status="PENDING", transaction_id="cs_test_sub")
    db.session.add_all([sub, payment])
    db.session.flush()
    payment.subscription_id = sub.id
    db.session.commit()

    meta = {"purpose": "subscription", "payment_id": str(payment.id), "subscription_id": str(sub.id),
            "user_id": str(mentee.id), "plan_id": str(plan.id), "duration_days": "30"}
    before = datetime.utcnow()
    assert _post_event(client, _completed("cs_test_sub", meta)).status_code == 200

    db.session.expire_all()
    assert sub.status == "ACTIVE"
    assert payment.status == "SUCCESS"
    assert mentee.is_premium is True
    assert mentee.role == "PREMIUM_USER"
    assert mentee.premium_expires >= before + timedelta(days=30)
    expiry = mentee.premium_expires

    # replay must not extend again
    assert _post_event(client, _completed("cs_test_sub", meta)).status_code == 200
    db.session.expire_all()
    assert mentee.premium_expires == expiry


def test_expired_checkout_drops_provisional_booking(client, signed, mentor, mentee, make_skill):
    skill = make_skill(mentor)
    booking, payment = _pending_booking(mentee, mentor, skill, session_id="cs_test_expired")
    booking_id = booking.id
    event = {
        "id": "evt_2",
        "type": "checkout.session.expired",
        "data": {"object": {"id": "cs_test_expired", "metadata": _booking_meta(booking, payment)}},
    }

    assert _post_event(client, event).status_code == 200

    db.session.expire_all()
    assert payment.status == "FAILED"
    assert payment.booking_id is None
    assert db.session.get(Booking, booking_id) is None


def test_late_expiry_does_not_undo_confirmed_payment(client, signed, mentor, mentee, make_skill):
    skill = make_skill(mentor)
    booking, payment = _pending_booking(mentee, mentor, skill, session_id="cs_test_late")
    meta = _booking_meta(booking, payment)
    _post_event(client, _completed("cs_test_late", meta))

    expired = {"id": "evt_3", "type": "checkout.session.expired",
               "data": {"object": {"id": "cs_test_late", "metadata": meta}}}
    assert _post_event(client, expired).status_code == 200

    db.session.expire_all()
    assert payment.status == "SUCCESS"
    assert booking.status == "ACCEPTED"
