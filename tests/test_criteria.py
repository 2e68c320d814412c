"""
Badge criteria parsing and evaluation tests
"""
from types import SimpleNamespace

from greencycle.services.criteria import (
    AchievementCriteria,
    EnvironmentalCriteria,
    RecyclingCriteria,
    UserStats,
    badge_progress,
    badge_qualifies,
    parse_criteria,
)


def make_badge(badge_type, criteria):
    return SimpleNamespace(badge_type=badge_type, criteria=criteria)


class TestParseCriteria:
    """Test JSON criteria parsing per badge type"""

    def test_parses_dict(self):
        criteria = parse_criteria('recycling', {'devices_required': 10})
        assert criteria == RecyclingCriteria(devices_required=10.0)

    def test_parses_json_string(self):
        criteria = parse_criteria('environmental', '{"co2_saved_required": 50}')
        assert criteria == EnvironmentalCriteria(water_saved_required=None, co2_saved_required=50.0)

    def test_unknown_type_returns_none(self):
        assert parse_criteria('mystery', {'devices_required': 1}) is None

    def test_ignores_keys_of_other_types(self):
        criteria = parse_criteria('recycling', {'points_required': 100})
        assert criteria.devices_required is None

    def test_zero_and_non_numeric_thresholds_are_not_declared(self):
        criteria = parse_criteria('achievement', {'points_required': 0, 'level_required': 'high'})
        assert criteria == AchievementCriteria()

    def test_boolean_threshold_is_not_declared(self):
        criteria = parse_criteria('recycling', {'devices_required': True})
        assert criteria.devices_required is None

    def test_malformed_json_is_empty(self):
        criteria = parse_criteria('recycling', '{not json')
        assert criteria == RecyclingCriteria()


class TestBadgeQualifies:
    """Test any-threshold-met evaluation"""

    def test_recycling_threshold_met(self):
        badge = make_badge('recycling', {'devices_required': 3})
        assert badge_qualifies(badge, UserStats(devices_recycled=3))
        assert not badge_qualifies(badge, UserStats(devices_recycled=2))

    def test_environmental_any_threshold(self):
        badge = make_badge('environmental', {'water_saved_required': 10000, 'co2_saved_required': 5})
        assert badge_qualifies(badge, UserStats(water_saved=10.0, co2_saved=5.0))

    def test_achievement_by_level(self):
        badge = make_badge('achievement', {'level_required': 2})
        assert badge_qualifies(badge, UserStats(points=400, level=2))

    def test_engagement_and_community(self):
        assert badge_qualifies(make_badge('engagement', {'pickups_required': 1}),
                               UserStats(pickups_completed=1))
        assert badge_qualifies(make_badge('community', {'days_active_required': 30}),
                               UserStats(days_active=31))

    def test_no_thresholds_never_qualifies(self):
        assert not badge_qualifies(make_badge('recycling', {}), UserStats(devices_recycled=100))

    def test_unknown_type_never_qualifies(self):
        assert not badge_qualifies(make_badge('mystery', {'devices_required': 1}),
                                   UserStats(devices_recycled=100))


class TestBadgeProgress:
    """Test percentage progress"""

    def test_rounds_percentage(self):
        badge = make_badge('recycling', {'devices_required': 3})
        assert badge_progress(badge, UserStats(devices_recycled=1)) == 33
        assert badge_progress(badge, UserStats(devices_recycled=2)) == 67

    def test_caps_at_100(self):
        badge = make_badge('engagement', {'pickups_required': 2})
        assert badge_progress(badge, UserStats(pickups_completed=9)) == 100

    def test_environmental_progress_uses_water(self):
        badge = make_badge('environmental', {'co2_saved_required': 10})
        assert badge_progress(badge, UserStats(co2_saved=10.0)) == 0

    def test_unknown_type_is_zero(self):
        assert badge_progress(make_badge('mystery', {}), UserStats()) == 0
