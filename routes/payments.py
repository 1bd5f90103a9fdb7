from flask import Blueprint, jsonify, g

from models.payment import Payment
from utils.auth_context import login_required
from utils.serialize import payment_dict

payments_bp = Blueprint("payments", __name__, url_prefix="/payments")


@payments_bp.get("/me")
@login_required
def my_payments():
    rows = (
        Payment.query
        .filter_by(user_id=g.user.id)
        .order_by(Payment.created_at.desc())
        .all()
    )
    return jsonify([payment_dict(p) for p in rows]), 200
