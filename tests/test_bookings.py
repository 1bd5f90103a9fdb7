from datetime import datetime, timedelta
from unittest.mock import patch

from models import db
from models.booking import Booking
from models.payment import Payment

from conftest import login, csrf_headers, future_iso


def _book(client, skill, minutes=30, when=None):
    return client.post(
        "/bookings",
        json={"skill_id": skill.id, "scheduled_at": when or future_iso(), "duration_min": minutes},
        headers=csrf_headers(client),
    )


def _fill_free_quota(mentee, mentor, skill, count=3):
    for i in range(count):
        db.session.add(Booking(
            mentee_id=mentee.id,
            mentor_id=mentor.id,
            skill_id=skill.id,
            scheduled_at=datetime.utcnow() + timedelta(days=i + 1),
            duration_min=30,
            status="ACCEPTED",
        ))
    db.session.commit()


def test_free_booking_is_accepted_immediately(client, mentor, mentee, make_skill, stripe_checkout):
    skill = make_skill(mentor, price_per_hour=200)
    login(client, mentee)

    resp = _book(client, skill)

    assert resp.status_code == 201
    body = resp.get_json()["booking"]
    assert body["status"] == "ACCEPTED"
    assert body["price_paid"] == 0
    assert Payment.query.count() == 0
    assert mentee.free_bookings_remaining == 2
    stripe_checkout.assert_not_called()


def test_booking_beyond_free_quota_requires_payment(client, mentor, mentee, make_skill, stripe_checkout):
    skill = make_skill(mentor, price_per_hour=90)
    _fill_free_quota(mentee, mentor, skill)
    login(client, mentee)

    resp = _book(client, skill, minutes=45)

    assert resp.status_code == 200
    body = resp.get_json()
    assert body["payment_url"] == "https://checkout.stripe.test/cs_test_123"

    payment = db.session.get(Payment, body["payment_id"])
    booking = db.session.get(Booking, body["booking_id"])
    assert payment.status == "PENDING"
    assert payment.amount == 68
    assert payment.transaction_id == "cs_test_123"
    assert payment.booking_id == booking.id
    assert booking.status == "PENDING"

    kwargs = stripe_checkout.call_args.kwargs
    assert kwargs["line_items"][0]["price_data"]["unit_amount"] == 6800
    assert kwargs["metadata"]["purpose"] == "booking"
    assert kwargs["metadata"]["booking_id"] == str(booking.id)
    assert kwargs["customer_email"] == mentee.email


def test_premium_mentee_never_pays(client, mentor, make_user, make_skill, stripe_checkout):
    mentee = make_user(role="PREMIUM_USER", premium_days=10)
    skill = make_skill(mentor)
    _fill_free_quota(mentee, mentor, skill, count=5)
    login(client, mentee)

    resp = _book(client, skill)

    assert resp.status_code == 201
    stripe_checkout.assert_not_called()


def test_stripe_failure_leaves_no_provisional_rows(client, mentor, mentee, make_skill):
    skill = make_skill(mentor)
    _fill_free_quota(mentee, mentor, skill)
    login(client, mentee)
    before = Booking.query.count()

    with patch("stripe.checkout.Session.create", side_effect=RuntimeError("stripe down")):
        resp = _book(client, skill)

    assert resp.status_code == 502
    assert resp.get_json()["error"] == "Could not initiate payment."
    assert Payment.query.count() == 0
    assert Booking.query.count() == before


def test_expired_mentor_premium_rejected(client, make_user, mentee, make_skill, stripe_checkout):
    mentor = make_user(role="MENTOR", premium_days=-1)
    skill = make_skill(mentor)
    login(client, mentee)

    resp = _book(client, skill)

    assert resp.status_code == 400
    assert resp.get_json()["error"] == "This mentor's premium has expired."
    assert Booking.query.count() == 0


def test_cannot_book_own_skill(client, mentor, make_skill):
    skill = make_skill(mentor)
    login(client, mentor)

    resp = _book(client, skill)

    assert resp.status_code == 400
    assert resp.get_json()["error"] == "You cannot book yourself"


def test_unknown_skill_is_404(client, mentee):
    login(client, mentee)
    resp = client.post(
        "/bookings",
        json={"skill_id": 999, "scheduled_at": future_iso(), "duration_min": 30},
        headers=csrf_headers(client),
    )
    assert resp.status_code == 404


def test_booking_input_validation(client, mentor, mentee, make_skill):
    skill = make_skill(mentor)
    login(client, mentee)

    past = (datetime.utcnow() - timedelta(days=1)).isoformat()
    assert _book(client, skill, when=past).status_code == 400
    assert _book(client, skill, minutes=5).status_code == 400
    assert _book(client, skill, when="tomorrow").status_code == 400


def test_requests_without_csrf_header_are_rejected(client, mentor, mentee, make_skill):
    skill = make_skill(mentor)
    login(client, mentee)

    resp = client.post("/bookings", json={"skill_id": skill.id, "scheduled_at": future_iso(), "duration_min": 30})

    assert resp.status_code == 403


def test_only_owning_mentor_updates_status(client, mentor, make_user, mentee, make_skill):
    other_mentor = make_user(role="MENTOR", premium_days=30)
    skill = make_skill(mentor)
    booking = Booking(mentee_id=mentee.id, mentor_id=mentor.id, skill_id=skill.id,
                      scheduled_at=datetime.utcnow() + timedelta(days=1), duration_min=30, status="ACCEPTED")
    db.session.add(booking)
    db.session.commit()

    login(client, other_mentor)
    resp = client.patch(f"/bookings/{booking.id}/status", json={"status": "COMPLETED"}, headers=csrf_headers(client))
    assert resp.status_code == 403

    login(client, mentor)
    resp = client.patch(f"/bookings/{booking.id}/status", json={"status": "COMPLETED"}, headers=csrf_headers(client))
    assert resp.status_code == 200
    assert resp.get_json()["booking"]["status"] == "COMPLETED"


def test_mentor_cannot_accept_unpaid_booking(client, mentor, mentee, make_skill, stripe_checkout):
    skill = make_skill(mentor)
    _fill_free_quota(mentee, mentor, skill)
    login(client, mentee)
    booking_id = _book(client, skill).get_json()["booking_id"]

    login(client, mentor)
    resp = client.patch(f"/bookings/{booking_id}/status", json={"status": "ACCEPTED"}, headers=csrf_headers(client))

    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Booking is awaiting payment"


def test_cancel_by_non_owner_is_forbidden(client, mentor, mentee, make_user, make_skill):
    stranger = make_user()
    skill = make_skill(mentor)
    booking = Booking(mentee_id=mentee.id, mentor_id=mentor.id, skill_id=skill.id,
                      scheduled_at=datetime.utcnow() + timedelta(days=1), duration_min=30, status="ACCEPTED")
    db.session.add(booking)
    db.session.commit()

    login(client, stranger)
    resp = client.patch(f"/bookings/{booking.id}/cancel", headers=csrf_headers(client))

    assert resp.status_code == 403
    assert booking.status == "ACCEPTED"


def test_cancelling_unpaid_booking_fails_its_payment(client, mentor, mentee, make_skill, stripe_checkout):
    skill = make_skill(mentor)
    _fill_free_quota(mentee, mentor, skill)
    login(client, mentee)
    body = _book(client, skill).get_json()

    resp = client.patch(f"/bookings/{body['booking_id']}/cancel", headers=csrf_headers(client))

    assert resp.status_code == 200
    assert resp.get_json()["booking"]["status"] == "CANCELLED"
    assert db.session.get(Payment, body["payment_id"]).status == "FAILED"


def test_booking_visible_to_participants_only(client, mentor, mentee, make_user, make_skill):
    stranger = make_user()
    skill = make_skill(mentor)
    booking = Booking(mentee_id=mentee.id, mentor_id=mentor.id, skill_id=skill.id,
                      scheduled_at=datetime.utcnow() + timedelta(days=1), duration_min=30, status="ACCEPTED")
    db.session.add(booking)
    db.session.commit()

    login(client, stranger)
    assert client.get(f"/bookings/{booking.id}").status_code == 403

    login(client, mentee)
    assert client.get(f"/bookings/{booking.id}").status_code == 200
    assert [b["id"] for b in client.get("/bookings/me").get_json()] == [booking.id]


def test_cancel_landing_page_releases_checkout(client, mentor, mentee, make_skill, stripe_checkout):
    skill = make_skill(mentor)
    _fill_free_quota(mentee, mentor, skill)
    login(client, mentee)
    body = _book(client, skill).get_json()

    resp = client.get(f"/pay/cancel?payment_id={body['payment_id']}")

    assert resp.status_code == 200
    assert db.session.get(Payment, body["payment_id"]).status == "FAILED"
    assert db.session.get(Booking, body["booking_id"]) is None

    success = client.get("/pay/success?session_id=cs_test_123")
    assert success.status_code == 200


def test_cancel_landing_page_ignores_anonymous_visitors(app, client, mentor, mentee, make_skill, stripe_checkout):
    skill = make_skill(mentor)
    _fill_free_quota(mentee, mentor, skill)
    login(client, mentee)
    body = _book(client, skill).get_json()

    anonymous = app.test_client()
    resp = anonymous.get(f"/pay/cancel?payment_id={body['payment_id']}")

    assert resp.status_code == 200
    assert db.session.get(Payment, body["payment_id"]).status == "PENDING"
    assert db.session.get(Booking, body["booking_id"]).status == "PENDING"


def test_cancel_landing_page_ignores_other_users(client, mentor, mentee, make_user, make_skill, stripe_checkout):
    stranger = make_user()
    skill = make_skill(mentor)
    _fill_free_quota(mentee, mentor, skill)
    login(client, mentee)
    body = _book(client, skill).get_json()

    login(client, stranger)
    resp = client.get(f"/pay/cancel?payment_id={body['payment_id']}")

    assert resp.status_code == 200
    assert db.session.get(Payment, body["payment_id"]).status == "PENDING"
    assert db.session.get(Booking, body["booking_id"]) is not None
