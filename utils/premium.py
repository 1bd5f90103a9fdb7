from datetime import datetime


def is_premium_valid(flag, expiry, now=None) -> bool:
    """Premium counts only while the flag is set AND expiry is strictly in the future."""
    if now is None:
        now = datetime.utcnow()
    return bool(flag) and expiry is not None and expiry > now


def user_has_premium(user, now=None) -> bool:
    if user is None:
        return False
    return is_premium_valid(user.is_premium, user.premium_expires, now)
