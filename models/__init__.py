from .db import db
from .user import User, ROLES
from .profile import Profile
from .audit_log import AuditLog
from .session import Session
from .skill import Skill
from .booking import Booking
from .payment import Payment
from .subscription_plan import SubscriptionPlan
from .subscription import Subscription
from .subscription_log import SubscriptionLog
from .review import Review
from .sweep_lock import SweepLock
from .conversation import Conversation
from .message import Message
