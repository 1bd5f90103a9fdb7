from datetime import datetime, timedelta
from unittest.mock import patch

import pytest

from app import create_app
from config import Config
from models import db
from models.payment import Payment
from models.profile import Profile
from models.skill import Skill
from models.subscription_plan import SubscriptionPlan
from models.user import User
from security.password import hash_password

PASSWORD = "correct-horse-battery"


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SECRET_KEY = "test-secret"
    STRIPE_SECRET_KEY = "sk_test_dummy"
    STRIPE_WEBHOOK_SECRET = "whsec_test"
    STRIPE_SUCCESS_URL = "http://localhost/pay/success"
    STRIPE_CANCEL_URL = "http://localhost/pay/cancel"
    LOG_LEVEL = "WARNING"


@pytest.fixture
def app():
    app = create_app(TestConfig)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(app):
    counter = {"n": 0}

    def _make(role="USER", premium_days=None, email=None, name=None, hourly_rate=None):
        counter["n"] += 1
        n = counter["n"]
        user = User(
            email=email or f"user{n}@example.com",
            password_hash=hash_password(PASSWORD, rounds=4),
            name=name or f"User {n}",
            role=role,
        )
        if premium_days is not None:
            user.is_premium = True
            user.premium_expires = datetime.utcnow() + timedelta(days=premium_days)
        db.session.add(user)
        db.session.flush()
        db.session.add(Profile(user_id=user.id, hourly_rate=hourly_rate))
        db.session.commit()
        return user

    return _make


@pytest.fixture
def mentor(make_user):
    return make_user(role="MENTOR", premium_days=30, name="Mentor")


@pytest.fixture
def mentee(make_user):
    return make_user(role="USER", name="Mentee")


@pytest.fixture
def make_skill(app):
    def _make(owner, price_per_hour=200, title="Python basics", **kwargs):
        skill = Skill(owner_id=owner.id, title=title, price_per_hour=price_per_hour, **kwargs)
        db.session.add(skill)
        db.session.commit()
        return skill

    return _make


@pytest.fixture
def plan(app):
    p = SubscriptionPlan(name="Monthly Premium", price=1000, duration_days=30, description="1 month")
    db.session.add(p)
    db.session.commit()
    return p


@pytest.fixture
def stripe_checkout():
    """Patches the Stripe SDK checkout call; yields the mock."""
    with patch("stripe.checkout.Session.create") as create:
        create.return_value = {"id": "cs_test_123", "url": "https://checkout.stripe.test/cs_test_123"}
        yield create


def login(client, user, password=PASSWORD):
    resp = client.post("/auth/login", json={"email": user.email, "password": password})
    assert resp.status_code == 200, resp.get_json()
    return resp


def csrf_headers(client):
    cookie = client.get_cookie("csrf_token")
    return {"X-CSRF-Token": cookie.value if cookie else ""}


def payments_for(user):
    return Payment.query.filter_by(user_id=user.id).all()


def future_iso(days=2):
    return (datetime.utcnow() + timedelta(days=days)).replace(microsecond=0).isoformat()
