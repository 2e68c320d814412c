"""SQLAlchemy models package"""
from .base import generate_uuid, utcnow
from .user import User
from .organization import Organization
from .device import Device
from .pickup import Pickup, PickupDevice, PickupSlot
from .impact import EcoImpactFormula, ImpactReport
from .gamification import Badge, UserBadge, Challenge, UserChallengeProgress

__all__ = [
    'generate_uuid',
    'utcnow',
    'User',
    'Organization',
    'Device',
    'Pickup',
    'PickupDevice',
    'PickupSlot',
    'EcoImpactFormula',
    'ImpactReport',
    'Badge',
    'UserBadge',
    'Challenge',
    'UserChallengeProgress',
]
