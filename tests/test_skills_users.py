from models.audit_log import AuditLog
from models.skill import Skill

from conftest import login, csrf_headers


def test_mentor_creates_and_edits_skill(client, mentor):
    login(client, mentor)

    resp = client.post("/skills", json={
        "title": "Intro to pandas",
        "category": "data",
        "level": "beginner",
        "price_per_hour": 120,
        "tags": ["python", "data"],
    }, headers=csrf_headers(client))
    assert resp.status_code == 201
    skill = resp.get_json()
    assert skill["level"] == "BEGINNER"
    assert skill["tags"] == ["python", "data"]

    resp = client.patch(f"/skills/{skill['id']}", json={"price_per_hour": -5}, headers=csrf_headers(client))
    assert resp.status_code == 400

    resp = client.patch(f"/skills/{skill['id']}", json={"title": "Pandas in depth"}, headers=csrf_headers(client))
    assert resp.status_code == 200
    assert resp.get_json()["title"] == "Pandas in depth"


def test_plain_user_cannot_create_skill(client, mentee):
    login(client, mentee)
    resp = client.post("/skills", json={"title": "Nope"}, headers=csrf_headers(client))
    assert resp.status_code == 403


def test_skill_listing_filters(client, mentor, make_skill):
    make_skill(mentor, title="Guitar", category="music", price_per_hour=50)
    make_skill(mentor, title="Piano", category="music", price_per_hour=150)
    make_skill(mentor, title="Chess", category="games", price_per_hour=80)

    body = client.get("/skills?category=music").get_json()
    assert body["meta"]["total"] == 2

    body = client.get("/skills?category=music&price_max=100").get_json()
    assert [s["title"] for s in body["data"]] == ["Guitar"]

    body = client.get("/skills?search=che").get_json()
    assert [s["title"] for s in body["data"]] == ["Chess"]


def test_only_owner_edits_skill(client, mentor, make_user, make_skill):
    skill = make_skill(mentor)
    other = make_user(role="MENTOR", premium_days=30)
    login(client, other)

    resp = client.delete(f"/skills/{skill.id}", headers=csrf_headers(client))

    assert resp.status_code == 403
    assert Skill.query.get(skill.id) is not None


def test_profile_update_rejects_negative_rate(client, mentee):
    login(client, mentee)

    resp = client.patch("/users/me", json={"hourly_rate": -1}, headers=csrf_headers(client))
    assert resp.status_code == 400

    resp = client.patch("/users/me", json={"bio": "Learning Go", "languages": ["en", "pt"]},
                        headers=csrf_headers(client))
    assert resp.status_code == 200
    assert resp.get_json()["profile"]["languages"] == ["en", "pt"]


def test_user_directory_visibility(client, mentor, mentee, make_user):
    lapsed = make_user(role="MENTOR", premium_days=-2)
    login(client, mentee)

    ids = {u["id"] for u in client.get("/users").get_json()["data"]}

    assert ids == {mentee.id, mentor.id}
    assert lapsed.id not in ids
    assert client.get(f"/users/{mentor.id}").status_code == 403


def test_admin_changes_role(client, mentee, make_user):
    admin = make_user(role="ADMIN")
    login(client, admin)

    resp = client.patch(f"/users/{mentee.id}/role", json={"role": "MENTOR"}, headers=csrf_headers(client))

    assert resp.status_code == 200
    assert mentee.role == "MENTOR"
    assert AuditLog.query.filter_by(action="USER_ROLE_UPDATE").count() == 1

    resp = client.get("/admin/audit-logs?action=USER_ROLE_UPDATE")
    assert resp.status_code == 200
    assert resp.get_json()[0]["metadata"] == {"from": "USER", "to": "MENTOR"}


def test_audit_log_is_admin_only(client, mentee):
    login(client, mentee)
    assert client.get("/admin/audit-logs").status_code == 403


def test_top_rated_mentors_is_public(client, mentor):
    mentor.average_rating = 4.5
    resp = client.get("/users/top-rated-mentors")
    assert resp.status_code == 200
    assert resp.get_json()[0]["id"] == mentor.id
