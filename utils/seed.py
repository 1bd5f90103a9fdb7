from models import db
from models.subscription_plan import SubscriptionPlan

DEFAULT_PLANS = [
    {
        "name": "Monthly Premium",
        "price": 1000,
        "duration_days": 30,
        "description": "Access all premium features for 1 month",
    },
    {
        "name": "Yearly Premium",
        "price": 10000,
        "duration_days": 365,
        "description": "Access all premium features for 1 year",
    },
]

def seed_plans() -> int:
    """Insert the default plan catalog; existing names are left untouched."""
    existing = {p.name for p in SubscriptionPlan.query.all()}
    added = 0
    for plan in DEFAULT_PLANS:
        if plan["name"] not in existing:
            db.session.add(SubscriptionPlan(**plan))
            added += 1
    db.session.commit()
    return added
