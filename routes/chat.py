from datetime import datetime

from flask import Blueprint, request, jsonify, g
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from models import db
from models.conversation import Conversation
from models.message import Message, MESSAGE_MAX_LEN
from models.user import User
from utils.auth_context import login_required
from utils.audit import log_event
from utils.serialize import conversation_dict, message_dict

chat_bp = Blueprint("chat", __name__, url_prefix="/chat")


def _pair(user_id: int, other_id: int):
    return (user_id, other_id) if user_id < other_id else (other_id, user_id)


def get_or_create_conversation(user_id: int, other_id: int):
    """Returns ``(conversation, created)`` for the two users, whichever of them started it."""
    a, b = _pair(user_id, other_id)
    convo = Conversation.query.filter_by(user_a_id=a, user_b_id=b).first()
    if convo:
        return convo, False

    convo = Conversation(user_a_id=a, user_b_id=b)
    db.session.add(convo)
    try:
        db.session.flush()
    except IntegrityError:
        # another request opened the same pair first
        db.session.rollback()
        return Conversation.query.filter_by(user_a_id=a, user_b_id=b).one(), False
    return convo, True


def _counterpart_or_error(raw_id, field: str):
    try:
        other_id = int(raw_id)
    except (TypeError, ValueError):
        return None, (jsonify(error=f"{field} is required"), 400)
    if other_id == g.user.id:
        return None, (jsonify(error="You cannot start a conversation with yourself"), 400)

    other = User.query.get(other_id)
    if not other or other.status != "ACTIVE":
        return None, (jsonify(error="User not found"), 404)
    return other, None


def _participant_conversation_or_error(conversation_id: int):
    convo = Conversation.query.get(conversation_id)
    if not convo:
        return None, (jsonify(error="Conversation not found"), 404)
    if not convo.has_participant(g.user.id):
        return None, (jsonify(error="Not authorized"), 403)
    return convo, None


def _last_message(convo):
    return (
        Message.query
        .filter_by(conversation_id=convo.id)
        .order_by(Message.created_at.desc(), Message.id.desc())
        .first()
    )


@chat_bp.post("/create")
@login_required
def create_conversation():
    data = request.get_json(silent=True) or {}
    other, err = _counterpart_or_error(data.get("user_b_id"), "user_b_id")
    if err:
        return err

    convo, created = get_or_create_conversation(g.user.id, other.id)
    db.session.commit()

    if created:
        log_event("CONVERSATION_CREATE", user_id=g.user.id, entity="conversation", entity_id=convo.id,
                  metadata={"with_user_id": other.id})
    return jsonify(conversation_dict(convo, g.user.id, _last_message(convo))), 201 if created else 200


@chat_bp.get("/my-conversations")
@login_required
def my_conversations():
    rows = (
        Conversation.query
        .filter(or_(Conversation.user_a_id == g.user.id, Conversation.user_b_id == g.user.id))
        .order_by(Conversation.updated_at.desc(), Conversation.id.desc())
        .all()
    )
    return jsonify([conversation_dict(c, g.user.id, _last_message(c)) for c in rows]), 200


@chat_bp.get("/<int:conversation_id>")
@login_required
def get_conversation(conversation_id: int):
    convo, err = _participant_conversation_or_error(conversation_id)
    if err:
        return err

    limit = request.args.get("limit", type=int) or 50
    limit = max(1, min(limit, 200))
    offset = max(0, request.args.get("offset", type=int) or 0)

    messages = (
        Message.query
        .filter_by(conversation_id=convo.id)
        .order_by(Message.created_at.asc(), Message.id.asc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return jsonify(
        conversation=conversation_dict(convo, g.user.id),
        messages=[message_dict(m) for m in messages],
    ), 200


@chat_bp.post("/messages/send")
@login_required
def send_message():
    data = request.get_json(silent=True) or {}
    text = (data.get("text") or "").strip()
    if not text:
        return jsonify(error="text is required"), 400
    if len(text) > MESSAGE_MAX_LEN:
        return jsonify(error=f"text must be at most {MESSAGE_MAX_LEN} characters"), 400

    receiver, err = _counterpart_or_error(data.get("receiver_id"), "receiver_id")
    if err:
        return err

    convo, _ = get_or_create_conversation(g.user.id, receiver.id)
    message = Message(conversation_id=convo.id, sender_id=g.user.id, receiver_id=receiver.id, text=text)
    db.session.add(message)
    convo.updated_at = datetime.utcnow()
    db.session.commit()

    return jsonify(message_dict(message)), 201


@chat_bp.post("/<int:conversation_id>/join")
@login_required
def join_conversation(conversation_id: int):
    convo, err = _participant_conversation_or_error(conversation_id)
    if err:
        return err
    return jsonify(conversation=conversation_dict(convo, g.user.id, _last_message(convo)), joined=True), 200
