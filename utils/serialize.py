def _iso(value):
    return value.isoformat() if value else None


def _num(value):
    return float(value) if value is not None else None


def _split(value):
    return [v for v in (value or "").split(",") if v]


def user_public(u):
    return {
        "id": u.id,
        "name": u.name,
        "role": u.role,
        "average_rating": u.average_rating,
        "is_premium": u.is_premium,
        "premium_expires": _iso(u.premium_expires),
        "profile": profile_dict(u.profile) if u.profile else None,
    }


def user_private(u):
    out = user_public(u)
    out.update({
        "email": u.email,
        "status": u.status,
        "free_bookings_remaining": u.free_bookings_remaining,
        "created_at": _iso(u.created_at),
    })
    return out


def profile_dict(p):
    return {
        "bio": p.bio,
        "avatar_url": p.avatar_url,
        "country": p.country,
        "city": p.city,
        "phone": p.phone,
        "hourly_rate": _num(p.hourly_rate),
        "interests": _split(p.interests),
        "languages": _split(p.languages),
    }


def skill_dict(s):
    return {
        "id": s.id,
        "owner_id": s.owner_id,
        "owner_name": s.owner.name if s.owner else None,
        "title": s.title,
        "category": s.category,
        "description": s.description,
        "level": s.level,
        "price_per_hour": _num(s.price_per_hour),
        "tags": _split(s.tags),
        "image_url": s.image_url,
        "is_published": s.is_published,
        "created_at": _iso(s.created_at),
    }


def booking_dict(b):
    return {
        "id": b.id,
        "mentee_id": b.mentee_id,
        "mentor_id": b.mentor_id,
        "skill_id": b.skill_id,
        "scheduled_at": _iso(b.scheduled_at),
        "duration_min": b.duration_min,
        "price_paid": b.price_paid,
        "status": b.status,
        "created_at": _iso(b.created_at),
    }


def payment_dict(p):
    return {
        "id": p.id,
        "amount": p.amount,
        "currency": p.currency,
        "purpose": p.purpose,
        "status": p.status,
        "booking_id": p.booking_id,
        "subscription_id": p.subscription_id,
        "transaction_id": p.transaction_id,
        "created_at": _iso(p.created_at),
        "paid_at": _iso(p.paid_at),
    }


def plan_dict(p):
    return {
        "id": p.id,
        "name": p.name,
        "price": p.price,
        "duration_days": p.duration_days,
        "description": p.description,
    }


def subscription_dict(s):
    return {
        "id": s.id,
        "user_id": s.user_id,
        "plan": plan_dict(s.plan) if s.plan else None,
        "status": s.status,
        "started_at": _iso(s.started_at),
        "expires_at": _iso(s.expires_at),
        "created_at": _iso(s.created_at),
    }


def review_dict(r):
    return {
        "id": r.id,
        "reviewer_id": r.reviewer_id,
        "reviewer_name": r.reviewer.name if r.reviewer else None,
        "target_user_id": r.target_user_id,
        "booking_id": r.booking_id,
        "rating": r.rating,
        "comment": r.comment,
        "created_at": _iso(r.created_at),
    }


def message_dict(m):
    return {
        "id": m.id,
        "conversation_id": m.conversation_id,
        "sender_id": m.sender_id,
        "sender_name": m.sender.name if m.sender else None,
        "receiver_id": m.receiver_id,
        "text": m.text,
        "created_at": _iso(m.created_at),
    }


def conversation_dict(c, viewer_id=None, last_message=None):
    out = {
        "id": c.id,
        "user_a_id": c.user_a_id,
        "user_b_id": c.user_b_id,
        "created_at": _iso(c.created_at),
        "updated_at": _iso(c.updated_at),
    }
    if viewer_id is not None:
        other = c.other_user(viewer_id)
        out["other_user"] = {"id": other.id, "name": other.name, "role": other.role} if other else None
        out["last_message"] = message_dict(last_message) if last_message else None
    return out
