"""
Valuation, impact ledger and device submission tests
"""
import pytest
from sqlalchemy.exc import OperationalError

from greencycle import db
from greencycle.errors import ValidationError
from greencycle.models import ImpactReport, User, UserChallengeProgress
from greencycle.services import gamification, valuation
from greencycle.services.eco_formulas import DEFAULT_FORMULAS, seed_default_formulas


class TestCalculateDeviceValue:
    """Test device pricing and disposition"""

    def test_laptop_in_good_condition(self, app):
        result = valuation.calculate_device_value('laptop', 'good', 2)
        assert result == {'estimated_value': 140, 'recommendation': 'donate'}

    def test_new_desktop_resells(self, app):
        result = valuation.calculate_device_value('desktop', 'excellent', 0)
        assert result == {'estimated_value': 300, 'recommendation': 'resell'}

    def test_broken_device_recycles(self, app):
        result = valuation.calculate_device_value('desktop', 'broken', 0)
        assert result == {'estimated_value': 60, 'recommendation': 'recycle'}

    def test_unknown_type_uses_base_100(self, app):
        result = valuation.calculate_device_value('toaster', 'fair', 0)
        assert result == {'estimated_value': 60, 'recommendation': 'repair'}

    def test_unknown_condition_uses_half_multiplier(self, app):
        result = valuation.calculate_device_value('laptop', None, 0)
        assert result['estimated_value'] == 125
        assert result['recommendation'] == 'repair'

    def test_cheap_device_recycles(self, app):
        result = valuation.calculate_device_value('other', 'poor', 2)
        # 100 * 0.4 * 0.7
        assert result == {'estimated_value': 28, 'recommendation': 'recycle'}

    def test_age_depreciation_floors_at_twenty_percent(self, app):
        old = valuation.calculate_device_value('laptop', 'excellent', 10)
        older = valuation.calculate_device_value('laptop', 'excellent', 40)
        assert old['estimated_value'] == older['estimated_value'] == 50

    def test_default_age_is_two_years(self, app):
        assert valuation.calculate_device_value('tablet', 'good') == \
            valuation.calculate_device_value('tablet', 'good', 2)

    def test_value_never_increases_as_condition_worsens(self, app):
        for device_type in list(DEFAULT_FORMULAS) + ['toaster']:
            for age in (0, 1, 3, 8):
                values = [
                    valuation.calculate_device_value(device_type, condition, age)['estimated_value']
                    for condition in ('excellent', 'good', 'fair', 'poor', 'broken')
                ]
                assert values == sorted(values, reverse=True)

    def test_negative_age_rejected(self, app):
        with pytest.raises(ValidationError):
            valuation.calculate_device_value('laptop', 'good', -1)

    def test_lookup_failure_falls_back(self, app, monkeypatch):
        def broken_lookup(device_type):
            raise OperationalError('SELECT', {}, Exception('database is locked'))

        monkeypatch.setattr(valuation, 'get_formula', broken_lookup)
        result = valuation.calculate_device_value('laptop', 'excellent', 0)
        assert result == {'estimated_value': 50, 'recommendation': 'recycle'}


class TestSeedFormulas:
    """Test idempotent formula seeding"""

    def test_seeding_twice_adds_nothing(self, app):
        assert seed_default_formulas() == 0


class TestRecordImpact:
    """Test the impact ledger"""

    def test_laptop_two_kilograms(self, app, test_user, device_factory):
        device = device_factory(device_type='laptop', weight_kg=2.0)

        report = valuation.record_impact(test_user, device, 2.0)

        assert report.water_saved_liters == pytest.approx(2400.0)
        assert report.co2_saved_kg == pytest.approx(9.6)
        assert report.toxic_waste_prevented_kg == pytest.approx(0.5)
        assert report.points_awarded == 50

        user = db.session.get(User, test_user.id)
        assert user.points == 50
        assert user.level == 0

    def test_second_report_for_device_is_ignored(self, app, test_user, device_factory):
        device = device_factory(device_type='laptop', weight_kg=2.0)

        assert valuation.record_impact(test_user, device, 2.0) is not None
        assert valuation.record_impact(test_user, device, 2.0) is None

        assert ImpactReport.query.filter_by(device_id=device.id).count() == 1
        assert db.session.get(User, test_user.id).points == 50

    def test_unknown_type_records_nothing(self, app, test_user, device_factory):
        device = device_factory(device_type='toaster', weight_kg=1.0)

        assert valuation.record_impact(test_user, device, 1.0) is None
        assert ImpactReport.query.count() == 0
        assert db.session.get(User, test_user.id).points == 0

    def test_points_round_half_up(self, app, test_user, device_factory):
        device = device_factory(device_type='smartphone', weight_kg=0.5)

        report = valuation.record_impact(test_user, device, 0.5)
        assert report.points_awarded == 8

    def test_weight_must_be_positive(self, app, test_user, device_factory):
        device = device_factory()
        with pytest.raises(ValidationError):
            valuation.record_impact(test_user, device, 0)


class TestSubmitDevice:
    """Test device submission"""

    def test_submit_creates_uploaded_device(self, app, test_user):
        device, result = valuation.submit_device(test_user, {
            'device_type': 'Laptop',
            'brand': 'Acme',
            'condition': 'good',
            'weight_kg': 2.2,
            'age_years': 2,
        })

        assert device.status == 'uploaded'
        assert device.device_type == 'laptop'
        assert device.estimated_value == 140
        assert device.recommendation == 'donate'
        assert result == {'estimated_value': 140, 'recommendation': 'donate'}

    def test_hint_fills_gaps_but_user_wins(self, app, test_user):
        device, _ = valuation.submit_device(
            test_user,
            {'device_type': 'laptop'},
            hint={'device_type': 'tablet', 'condition': 'fair', 'confidence': 0.92},
        )

        assert device.device_type == 'laptop'
        assert device.condition == 'fair'
        assert device.ai_confidence_score == pytest.approx(0.92)

    def test_hint_alone_supplies_type(self, app, test_user):
        device, _ = valuation.submit_device(test_user, {}, hint={'device_type': 'smartphone'})
        assert device.device_type == 'smartphone'

    def test_missing_type_rejected(self, app, test_user):
        with pytest.raises(ValidationError):
            valuation.submit_device(test_user, {'condition': 'good'})

    def test_invalid_condition_rejected(self, app, test_user):
        with pytest.raises(ValidationError):
            valuation.submit_device(test_user, {'device_type': 'laptop', 'condition': 'shiny'})

    def test_text_fields_are_escaped(self, app, test_user):
        device, _ = valuation.submit_device(test_user, {
            'device_type': 'laptop',
            'description': '<script>alert(1)</script>',
        })
        assert '<script>' not in device.description

    def test_submission_advances_upload_challenges(self, app, test_user, challenge_factory):
        challenge = challenge_factory(challenge_type=gamification.CHALLENGE_DEVICE_UPLOAD, target_value=3)
        gamification.join_challenge(test_user.id, challenge.id)

        valuation.submit_device(test_user, {'device_type': 'laptop'})

        progress = UserChallengeProgress.query.filter_by(
            user_id=test_user.id, challenge_id=challenge.id).one()
        assert progress.current_progress == 1


class TestImpactSummary:
    """Test per-user and global impact totals"""

    def test_user_summary(self, app, test_user, device_factory):
        device = device_factory(device_type='laptop', weight_kg=2.0)
        valuation.record_impact(test_user, device, 2.0)

        summary = valuation.impact_summary(db.session.get(User, test_user.id))

        assert summary['devices_processed'] == 1
        assert summary['water_saved_liters'] == 2400.0
        assert summary['co2_saved_kg'] == 9.6
        assert summary['points_from_impact'] == 50

    def test_global_summary_counts_verified_organizations(self, app, test_user, organization_factory):
        organization_factory()
        organization_factory(verification_status='pending')

        summary = valuation.global_impact_summary()

        assert summary['total_users'] == 1
        assert summary['total_ngos'] == 1
        assert summary['water_saved_liters'] == 0.0
