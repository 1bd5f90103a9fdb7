from flask import Blueprint, request, jsonify, g

from models.subscription import Subscription
from models.subscription_plan import SubscriptionPlan
from security.rbac import require_roles
from services.subscriptions import create_subscription, cancel_subscription
from utils.auth_context import login_required
from utils.serialize import plan_dict, subscription_dict

subscriptions_bp = Blueprint("subscriptions", __name__, url_prefix="/subscriptions")


@subscriptions_bp.get("/plans")
def list_plans():
    plans = SubscriptionPlan.query.order_by(SubscriptionPlan.price.asc()).all()
    return jsonify([plan_dict(p) for p in plans]), 200


@subscriptions_bp.post("")
@require_roles("USER", "PREMIUM_USER", "MENTOR")
def subscribe():
    data = request.get_json(silent=True) or {}
    plan_id = data.get("plan_id")
    try:
        plan_id = int(plan_id)
    except (TypeError, ValueError):
        return jsonify(error="plan_id is required"), 400

    result = create_subscription(g.user, plan_id)
    return jsonify(message="Payment required", **result), 200


@subscriptions_bp.get("/me")
@login_required
def my_subscriptions():
    rows = (
        Subscription.query
        .filter_by(user_id=g.user.id)
        .order_by(Subscription.created_at.desc())
        .all()
    )
    return jsonify([subscription_dict(s) for s in rows]), 200


@subscriptions_bp.patch("/<int:subscription_id>/cancel")
@login_required
def cancel(subscription_id: int):
    subscription = cancel_subscription(g.user, subscription_id)
    return jsonify(message="Subscription cancelled", subscription=subscription_dict(subscription)), 200
