from datetime import datetime
from models.db import db

class Payment(db.Model):
    __tablename__ = "payments"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    booking_id = db.Column(db.Integer, db.ForeignKey("bookings.id"), nullable=True, index=True)
    subscription_id = db.Column(db.Integer, db.ForeignKey("subscriptions.id"), nullable=True, index=True)

    provider = db.Column(db.String(20), nullable=False, default="STRIPE")
    amount = db.Column(db.Integer, nullable=False)   # whole currency units
    currency = db.Column(db.String(10), nullable=False, default="usd")
    purpose = db.Column(db.String(20), nullable=False)  # booking, subscription

    status = db.Column(db.String(20), nullable=False, default="PENDING")  # PENDING, SUCCESS, FAILED
    # checkout session id; the webhook correlates on it
    transaction_id = db.Column(db.String(255), nullable=True, unique=True, index=True)
    provider_payment_id = db.Column(db.String(255), nullable=True)
    raw_response = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    paid_at = db.Column(db.DateTime, nullable=True)
