"""
Thin wrapper over the Stripe SDK.

Everything that talks to Stripe goes through here so the booking and subscription
flows never touch ``stripe`` directly and tests can patch one seam.
"""
import time

import stripe
from flask import current_app


def is_configured() -> bool:
    return bool((current_app.config.get("STRIPE_SECRET_KEY") or "").strip())


def get_client():
    if not is_configured():
        raise RuntimeError("Stripe is not configured: STRIPE_SECRET_KEY is missing or empty.")
    stripe.api_key = current_app.config["STRIPE_SECRET_KEY"]
    return stripe


def build_line_item(name: str, description: str, amount: int, currency: str = None) -> dict:
    """One checkout line; ``amount`` is in whole currency units."""
    currency = (currency or current_app.config.get("PAYMENT_CURRENCY", "usd")).lower()
    return {
        "price_data": {
            "currency": currency,
            "product_data": {"name": name, "description": description},
            "unit_amount": int(amount) * 100,  # Stripe expects the smallest unit
        },
        "quantity": 1,
    }


def create_checkout_session(customer_email: str, line_item: dict, success_url: str, cancel_url: str, metadata: dict):
    """
    Returns ``(session_id, session_url)``.

    Metadata values are stringified since Stripe only stores strings. Sessions expire
    after CHECKOUT_SESSION_TTL_MINUTES so an abandoned checkout eventually produces a
    ``checkout.session.expired`` event.
    """
    client = get_client()
    ttl = current_app.config.get("CHECKOUT_SESSION_TTL_MINUTES", 30)
    expires_at = int(time.time()) + max(ttl, 30) * 60

    session = client.checkout.Session.create(
        mode="payment",
        payment_method_types=["card"],
        customer_email=customer_email,
        line_items=[line_item],
        success_url=success_url,
        cancel_url=cancel_url,
        metadata={k: "" if v is None else str(v) for k, v in metadata.items()},
        expires_at=expires_at,
    )
    return session["id"], session["url"]


def construct_event(payload: bytes, sig_header: str, secret: str):
    return stripe.Webhook.construct_event(payload, sig_header, secret)
