from datetime import datetime
from models.db import db

ROLES = ("USER", "PREMIUM_USER", "MENTOR", "ADMIN")

class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)

    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    name = db.Column(db.String(120), nullable=False)

    role = db.Column(db.String(20), nullable=False, default="USER", index=True)
    # status values: ACTIVE, BLOCKED
    status = db.Column(db.String(20), nullable=False, default="ACTIVE")

    is_premium = db.Column(db.Boolean, default=False, nullable=False)
    premium_expires = db.Column(db.DateTime, nullable=True)
    free_bookings_remaining = db.Column(db.Integer, default=3, nullable=False)

    average_rating = db.Column(db.Float, default=0, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    profile = db.relationship("Profile", back_populates="user", uselist=False, cascade="all, delete-orphan")
    skills = db.relationship("Skill", back_populates="owner", cascade="all, delete-orphan")
