from datetime import datetime, timedelta

import pytest

from models import db
from models.booking import Booking

from conftest import login, csrf_headers


@pytest.fixture
def completed_booking(mentor, mentee, make_skill):
    skill = make_skill(mentor)
    booking = Booking(mentee_id=mentee.id, mentor_id=mentor.id, skill_id=skill.id,
                      scheduled_at=datetime.utcnow() - timedelta(days=1), duration_min=60, status="COMPLETED")
    db.session.add(booking)
    db.session.commit()
    return booking


def test_review_updates_mentor_average(client, mentor, mentee, completed_booking):
    login(client, mentee)

    resp = client.post("/reviews", json={"booking_id": completed_booking.id, "rating": 4, "comment": "Great"},
                       headers=csrf_headers(client))
    assert resp.status_code == 201
    review_id = resp.get_json()["id"]
    assert mentor.average_rating == 4.0

    resp = client.patch(f"/reviews/{review_id}", json={"rating": 2}, headers=csrf_headers(client))
    assert resp.status_code == 200
    assert mentor.average_rating == 2.0

    listed = client.get(f"/reviews/mentor/{mentor.id}").get_json()
    assert [r["rating"] for r in listed] == [2]

    resp = client.delete(f"/reviews/{review_id}", headers=csrf_headers(client))
    assert resp.status_code == 200
    assert mentor.average_rating == 0.0


def test_duplicate_review_is_conflict(client, mentee, completed_booking):
    login(client, mentee)
    payload = {"booking_id": completed_booking.id, "rating": 5}

    assert client.post("/reviews", json=payload, headers=csrf_headers(client)).status_code == 201
    assert client.post("/reviews", json=payload, headers=csrf_headers(client)).status_code == 409


def test_only_completed_sessions_can_be_reviewed(client, mentee, completed_booking):
    completed_booking.status = "ACCEPTED"
    db.session.commit()
    login(client, mentee)

    resp = client.post("/reviews", json={"booking_id": completed_booking.id, "rating": 5}, headers=csrf_headers(client))

    assert resp.status_code == 400


def test_rating_must_be_in_range(client, mentee, completed_booking):
    login(client, mentee)
    resp = client.post("/reviews", json={"booking_id": completed_booking.id, "rating": 6}, headers=csrf_headers(client))
    assert resp.status_code == 400


def test_outsider_cannot_review_or_edit(client, mentee, make_user, completed_booking):
    outsider = make_user()
    login(client, mentee)
    review_id = client.post("/reviews", json={"booking_id": completed_booking.id, "rating": 5},
                            headers=csrf_headers(client)).get_json()["id"]

    login(client, outsider)
    resp = client.post("/reviews", json={"booking_id": completed_booking.id, "rating": 1}, headers=csrf_headers(client))
    assert resp.status_code == 403
    resp = client.patch(f"/reviews/{review_id}", json={"rating": 1}, headers=csrf_headers(client))
    assert resp.status_code == 403
