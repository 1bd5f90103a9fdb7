from html import escape

from flask import Blueprint, request, current_app, g

from models.payment import Payment
from services.checkout import fail_provisional

pay_pages_bp = Blueprint("pay_pages", __name__)

PAGE = """
<html>
  <head><title>{title}</title></head>
  <body style="font-family: system-ui; max-width: 720px; margin: 40px auto;">
    <h1>{title}</h1>
    <p>{message}</p>
    <a href="{link}" style="display: inline-block; padding: 12px 18px; background: #0ea5e9; color: white; text-decoration: none; border-radius: 8px; font-weight: 600;">{link_label}</a>
  </body>
</html>
"""

SUCCESS_MESSAGES = {
    "booking": "Your session is confirmed as soon as Stripe notifies us, usually within a few seconds.",
    "subscription": "Your premium plan is activated as soon as Stripe notifies us, usually within a few seconds.",
}


def _frontend(path: str) -> str:
    base_url = current_app.config.get("FRONTEND_BASE_URL", "http://localhost:5173").rstrip("/")
    return f"{base_url}{path}"


@pay_pages_bp.get("/pay/success")
def pay_success():
    # Stripe fills {CHECKOUT_SESSION_ID} into the success URL
    session_id = request.args.get("session_id")
    payment = Payment.query.filter_by(transaction_id=session_id).first() if session_id else None

    if payment is not None and payment.status == "SUCCESS":
        message = "Payment received and confirmed."
    elif payment is not None:
        message = SUCCESS_MESSAGES.get(payment.purpose, SUCCESS_MESSAGES["booking"])
    else:
        message = "Your payment was accepted. Check the app for its confirmation."

    target = "/subscriptions" if payment is not None and payment.purpose == "subscription" else "/bookings"
    return PAGE.format(
        title="Payment Successful",
        message=escape(message),
        link=escape(_frontend(target)),
        link_label="Back to SkillMentor",
    ), 200


@pay_pages_bp.get("/pay/cancel")
def pay_cancel():
    payment_id = request.args.get("payment_id", type=int)

    user = getattr(g, "user", None)
    payment = Payment.query.get(payment_id) if payment_id and user else None
    # anyone can land here; only the payer can release the checkout
    if payment is not None and payment.user_id == user.id:
        fail_provisional(payment, reason="stripe_cancel")

    return PAGE.format(
        title="Payment Cancelled",
        message="No payment was taken. You can book the session again whenever you are ready.",
        link=escape(_frontend("/skills")),
        link_label="Browse skills",
    ), 200
