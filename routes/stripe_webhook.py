import json
import logging

from flask import Blueprint, request, jsonify, current_app

from models import db
from services import stripe_client
from services.reconciler import handle_event
from utils.errors import WebhookSignatureError

logger = logging.getLogger(__name__)

webhook_bp = Blueprint("webhook", __name__)


@webhook_bp.post("/webhook")
def stripe_webhook():
    endpoint_secret = current_app.config.get("STRIPE_WEBHOOK_SECRET")
    sig_header = request.headers.get("Stripe-Signature")
    payload = request.get_data()

    if not endpoint_secret:
        logger.error("Webhook received but STRIPE_WEBHOOK_SECRET is not configured")
        return jsonify(error="Webhook secret not configured"), 500

    try:
        stripe_client.construct_event(payload, sig_header, endpoint_secret)
    except Exception as exc:
        logger.warning("Rejected webhook with invalid signature")
        raise WebhookSignatureError() from exc

    # signature checked above; work on the plain JSON body from here on
    event = json.loads(payload)

    try:
        handle_event(event)
    except Exception:
        db.session.rollback()
        logger.exception("Failed to process Stripe event %s (%s)", event.get("id"), event.get("type"))
        return jsonify(error="Webhook processing failed"), 500

    return jsonify(received=True), 200
