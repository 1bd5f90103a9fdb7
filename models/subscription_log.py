from datetime import datetime
from models.db import db

class SubscriptionLog(db.Model):
    __tablename__ = "subscription_logs"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    subscription_id = db.Column(db.Integer, db.ForeignKey("subscriptions.id"), nullable=True, index=True)
    action = db.Column(db.String(120), nullable=False)  # e.g. ACTIVATED_BY_WEBHOOK, SUBSCRIPTION_EXPIRED

    timestamp = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
