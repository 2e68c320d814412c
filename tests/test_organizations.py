"""
Organization profile and verification tests
"""
import pytest

from greencycle import db
from greencycle.errors import NotFoundOrUnauthorized, ValidationError
from greencycle.models import Organization
from greencycle.services import organizations, proximity

PUNE = (18.5204, 73.8567)


class TestProfile:
    """Test the organization's own view"""

    def test_profile_with_statistics(self, app, ngo_account, test_ngo, device_factory):
        device_factory(ngo_id=test_ngo.id, status='received', weight_kg=2.0)
        device_factory(ngo_id=test_ngo.id, status='recycled', weight_kg=1.5)
        device_factory(weight_kg=9.0)

        profile = organizations.organization_profile(ngo_account)

        assert profile['ngo']['id'] == test_ngo.id
        assert profile['ngo']['contact_email'] == ngo_account.email
        assert profile['statistics'] == {
            'total_devices': 2,
            'devices_received': 1,
            'devices_processed': 1,
            'total_weight_kg': 3.5,
            'total_pickups': 0,
            'completed_pickups': 0,
        }

    def test_plain_user_has_no_profile(self, app, test_user):
        with pytest.raises(NotFoundOrUnauthorized):
            organizations.organization_profile(test_user)


class TestUpdateProfile:
    """Test self-service edits"""

    def test_updates_given_fields_only(self, app, ngo_account, test_ngo):
        organization = organizations.update_organization_profile(ngo_account, {
            'capacity_per_day': '12',
            'services': 'Laptops, TVs',
            'city': '  Pimpri  ',
        })

        assert organization.capacity_per_day == 12
        assert organization.services == ['laptops', 'tvs']
        assert organization.city == 'Pimpri'
        assert organization.name == 'Pune E-Waste Collective'

    def test_cannot_change_own_verification(self, app, ngo_account, test_ngo):
        with pytest.raises(ValidationError):
            organizations.update_organization_profile(ngo_account, {'verification_status': 'verified'})

    def test_latitude_without_longitude_rejected(self, app, ngo_account):
        with pytest.raises(ValidationError):
            organizations.update_organization_profile(ngo_account, {'latitude': 18.5})

    def test_negative_capacity_rejected(self, app, ngo_account):
        with pytest.raises(ValidationError):
            organizations.update_organization_profile(ngo_account, {'capacity_per_day': -1})

    def test_blank_name_rejected(self, app, ngo_account):
        with pytest.raises(ValidationError):
            organizations.update_organization_profile(ngo_account, {'name': '   '})


class TestVerification:
    """Test admin verification decisions"""

    def test_unverified_organization_leaves_matching(self, app, test_admin, test_ngo):
        organizations.set_verification(test_admin, test_ngo.id, 'rejected')
        assert proximity.find_nearest(*PUNE) == []

        result = organizations.set_verification(test_admin, test_ngo.id, 'verified')

        assert result == {'id': test_ngo.id, 'name': test_ngo.name, 'verification_status': 'verified'}
        assert [o['id'] for o in proximity.find_nearest(*PUNE)] == [test_ngo.id]

    def test_invalid_status_rejected(self, app, test_admin, test_ngo):
        with pytest.raises(ValidationError):
            organizations.set_verification(test_admin, test_ngo.id, 'approved')

    def test_unknown_organization(self, app, test_admin):
        with pytest.raises(NotFoundOrUnauthorized):
            organizations.set_verification(test_admin, 'missing', 'verified')

    def test_only_admins_decide(self, app, ngo_account, test_ngo):
        with pytest.raises(NotFoundOrUnauthorized):
            organizations.set_verification(ngo_account, test_ngo.id, 'verified')
        db.session.expire_all()
        assert db.session.get(Organization, test_ngo.id).verification_status == 'verified'
