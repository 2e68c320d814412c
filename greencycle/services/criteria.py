"""
Badge criteria.

Badge rows store their thresholds as JSON keyed by metric name. Each badge
type recognizes its own subset of keys, so the JSON is parsed into one typed
criteria class per type and evaluated through ``CRITERIA_TYPES``. A badge
qualifies when any threshold it declares is met. Thresholds that are missing,
zero or non-numeric are treated as not declared.
"""
import json
import logging
from dataclasses import dataclass, fields
from typing import Optional

from greencycle.utils.helpers import round_half_up

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UserStats:
    """Aggregate statistics a badge can be judged against"""
    devices_recycled: int = 0
    pickups_completed: int = 0
    water_saved: float = 0.0
    co2_saved: float = 0.0
    points: int = 0
    level: int = 0
    days_active: int = 0


def _met(value, threshold):
    return threshold is not None and value >= threshold


def _percent(value, threshold):
    if threshold is None:
        return 0
    return min(100, round_half_up(100.0 * value / threshold))


@dataclass(frozen=True)
class RecyclingCriteria:
    devices_required: Optional[float] = None

    def qualifies(self, stats):
        return _met(stats.devices_recycled, self.devices_required)

    def progress(self, stats):
        return _percent(stats.devices_recycled, self.devices_required)


@dataclass(frozen=True)
class EnvironmentalCriteria:
    water_saved_required: Optional[float] = None
    co2_saved_required: Optional[float] = None

    def qualifies(self, stats):
        return (_met(stats.water_saved, self.water_saved_required)
                or _met(stats.co2_saved, self.co2_saved_required))

    def progress(self, stats):
        """Percent of the water threshold reached"""
        return _percent(stats.water_saved, self.water_saved_required)


@dataclass(frozen=True)
class EngagementCriteria:
    pickups_required: Optional[float] = None

    def qualifies(self, stats):
        return _met(stats.pickups_completed, self.pickups_required)

    def progress(self, stats):
        return _percent(stats.pickups_completed, self.pickups_required)


@dataclass(frozen=True)
class AchievementCriteria:
    points_required: Optional[float] = None
    level_required: Optional[float] = None

    def qualifies(self, stats):
        return (_met(stats.points, self.points_required)
                or _met(stats.level, self.level_required))

    def progress(self, stats):
        return _percent(stats.points, self.points_required)


@dataclass(frozen=True)
class CommunityCriteria:
    days_active_required: Optional[float] = None

    def qualifies(self, stats):
        return _met(stats.days_active, self.days_active_required)

    def progress(self, stats):
        return _percent(stats.days_active, self.days_active_required)


CRITERIA_TYPES = {
    'recycling': RecyclingCriteria,
    'environmental': EnvironmentalCriteria,
    'engagement': EngagementCriteria,
    'achievement': AchievementCriteria,
    'community': CommunityCriteria,
}


def _threshold(value):
    if isinstance(value, bool):
        return None
    try:
        value = float(value)
    except (TypeError, ValueError):
        return None
    return value if value > 0 else None


def parse_criteria(badge_type, raw):
    """Build the typed criteria for a badge, or None for an unknown type.

    ``raw`` may be a dict or a JSON string; unrecognized keys are ignored.
    """
    criteria_cls = CRITERIA_TYPES.get(badge_type)
    if criteria_cls is None:
        return None

    if isinstance(raw, str):
        try:
            raw = json.loads(raw or '{}')
        except ValueError:
            logger.warning('Ignoring malformed criteria for badge type %s: %r', badge_type, raw)
            raw = {}
    if not isinstance(raw, dict):
        raw = {}

    values = {f.name: _threshold(raw.get(f.name)) for f in fields(criteria_cls)}
    return criteria_cls(**values)


def badge_qualifies(badge, stats):
    criteria = parse_criteria(badge.badge_type, badge.criteria)
    return criteria is not None and criteria.qualifies(stats)


def badge_progress(badge, stats):
    """Integer percentage 0-100 towards a badge"""
    criteria = parse_criteria(badge.badge_type, badge.criteria)
    if criteria is None:
        return 0
    return criteria.progress(stats)
