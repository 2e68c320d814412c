"""
GreenCycle API Route Blueprints
"""
from .devices import devices_bp
from .pickups import pickups_bp
from .ngos import ngos_bp
from .gamification import gamification_bp
from .impact import impact_bp

__all__ = [
    "devices_bp",
    "pickups_bp",
    "ngos_bp",
    "gamification_bp",
    "impact_bp",
]
