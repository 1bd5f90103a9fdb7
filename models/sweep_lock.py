from datetime import datetime
from models.db import db

class SweepLock(db.Model):
    __tablename__ = "sweep_locks"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(80), unique=True, nullable=False, index=True)  # e.g. expire-subscriptions
    holder = db.Column(db.String(64), nullable=False)  # random token of the run holding it

    acquired_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False)
