from flask import Blueprint, jsonify

from routes.auth import auth_bp
from routes.users import users_bp
from routes.skills import skills_bp
from routes.booking import booking_bp
from routes.subscriptions import subscriptions_bp
from routes.payments import payments_bp
from routes.stripe_webhook import webhook_bp
from routes.reviews import reviews_bp
from routes.audit_logs import audit_bp
from routes.pay_pages import pay_pages_bp
from routes.chat import chat_bp
from routes.dashboard import dashboard_bp

health_bp = Blueprint("health", __name__)


@health_bp.get("/health")
def health():
    return jsonify(status="ok"), 200


ALL_BLUEPRINTS = (
    health_bp,
    auth_bp,
    users_bp,
    skills_bp,
    booking_bp,
    subscriptions_bp,
    payments_bp,
    webhook_bp,
    reviews_bp,
    audit_bp,
    pay_pages_bp,
    chat_bp,
    dashboard_bp,
)
