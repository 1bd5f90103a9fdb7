from datetime import datetime
from models.db import db

BOOKING_STATUSES = ("PENDING", "ACCEPTED", "COMPLETED", "CANCELLED", "EXPIRED")
ACTIVE_BOOKING_STATUSES = ("PENDING", "ACCEPTED")

class Booking(db.Model):
    __tablename__ = "bookings"

    id = db.Column(db.Integer, primary_key=True)

    mentee_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    mentor_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    skill_id = db.Column(db.Integer, db.ForeignKey("skills.id"), nullable=False, index=True)

    scheduled_at = db.Column(db.DateTime, nullable=False)
    duration_min = db.Column(db.Integer, nullable=False)
    price_paid = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(20), nullable=False, default="PENDING", index=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    mentee = db.relationship("User", foreign_keys=[mentee_id])
    mentor = db.relationship("User", foreign_keys=[mentor_id])
    skill = db.relationship("Skill")
