from datetime import datetime
from models.db import db

SKILL_LEVELS = ("BEGINNER", "INTERMEDIATE", "ADVANCED", "EXPERT")

class Skill(db.Model):
    __tablename__ = "skills"

    id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    title = db.Column(db.String(160), nullable=False)
    category = db.Column(db.String(80), nullable=True, index=True)
    description = db.Column(db.Text, nullable=True)
    level = db.Column(db.String(20), nullable=False, default="BEGINNER")
    price_per_hour = db.Column(db.Numeric(10, 2), nullable=True)  # None falls back to DEFAULT_HOURLY_RATE
    tags = db.Column(db.Text, nullable=True)
    image_url = db.Column(db.String(255), nullable=True)
    is_published = db.Column(db.Boolean, default=True, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    owner = db.relationship("User", back_populates="skills")
