"""
Pytest configuration and fixtures for GreenCycle engine tests
"""
import pytest
import os
from datetime import date, timedelta
from itertools import count

from greencycle import create_app, db
from greencycle.models import (
    User,
    Organization,
    Device,
    Badge,
    Challenge,
    utcnow,
)
from greencycle.services.eco_formulas import seed_default_formulas
from greencycle.utils.auth import generate_token

_sequence = count(1)


@pytest.fixture(scope='function')
def app():
    """Create application instance with a fresh schema for each test"""
    os.environ['FLASK_ENV'] = 'testing'
    app = create_app('testing')

    with app.app_context():
        db.create_all()
        seed_default_formulas()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client"""
    return app.test_client()


@pytest.fixture
def future_date():
    """A pickup date safely in the future"""
    return date.today() + timedelta(days=3)


# Factory fixtures
@pytest.fixture
def user_factory(app):
    """Factory for creating accounts"""
    def _create_user(**kwargs):
        n = next(_sequence)
        defaults = {
            'email': f'user{n}@example.com',
            'name': f'User {n}',
            'role': 'user',
            'is_active': True,
            'points': 0,
            'level': 0,
        }
        defaults.update(kwargs)

        user = User(**defaults)
        db.session.add(user)
        db.session.commit()
        return user

    return _create_user


@pytest.fixture
def test_user(user_factory):
    return user_factory(name='Asha Recycler')


@pytest.fixture
def test_admin(user_factory):
    return user_factory(name='Admin', role='admin')


@pytest.fixture
def organization_factory(app, user_factory):
    """Factory for verified organizations, each with its own ngo account"""
    def _create_organization(**kwargs):
        account = kwargs.pop('account', None) or user_factory(role='ngo')
        defaults = {
            'user_id': account.id,
            'name': f'Green Org {next(_sequence)}',
            'city': 'Pune',
            'latitude': 18.5204,
            'longitude': 73.8567,
            'services': ['laptops', 'phones'],
            'capacity_per_day': 10,
            'verification_status': 'verified',
            'is_active': True,
        }
        defaults.update(kwargs)

        organization = Organization(**defaults)
        db.session.add(organization)
        db.session.commit()
        return organization

    return _create_organization


@pytest.fixture
def test_ngo(organization_factory):
    return organization_factory(name='Pune E-Waste Collective')


@pytest.fixture
def ngo_account(test_ngo):
    return test_ngo.account


@pytest.fixture
def device_factory(app, test_user):
    """Factory for devices owned by test_user unless an owner is given"""
    def _create_device(**kwargs):
        owner = kwargs.pop('owner', None) or test_user
        defaults = {
            'user_id': owner.id,
            'device_type': 'laptop',
            'condition': 'good',
            'weight_kg': 2.0,
            'age_years': 2,
            'status': 'uploaded',
        }
        defaults.update(kwargs)

        device = Device(**defaults)
        db.session.add(device)
        db.session.commit()
        return device

    return _create_device


@pytest.fixture
def badge_factory(app):
    def _create_badge(**kwargs):
        defaults = {
            'name': f'Badge {next(_sequence)}',
            'description': 'Test badge',
            'badge_type': 'recycling',
            'rarity': 'common',
            'criteria': {'devices_required': 1},
            'reward_points': 10,
            'is_active': True,
        }
        defaults.update(kwargs)

        badge = Badge(**defaults)
        db.session.add(badge)
        db.session.commit()
        return badge

    return _create_badge


@pytest.fixture
def challenge_factory(app):
    def _create_challenge(**kwargs):
        now = utcnow()
        defaults = {
            'title': f'Challenge {next(_sequence)}',
            'description': 'Test challenge',
            'challenge_type': 'device_upload',
            'target_value': 5,
            'reward_points': 30,
            'start_date': now - timedelta(days=1),
            'end_date': now + timedelta(days=7),
            'is_active': True,
        }
        defaults.update(kwargs)

        challenge = Challenge(**defaults)
        db.session.add(challenge)
        db.session.commit()
        return challenge

    return _create_challenge


@pytest.fixture
def headers_for(app):
    """Generate auth headers with a JWT token for any account"""
    def _headers(user):
        token = generate_token(user.id, user.role)
        return {
            'Authorization': f'Bearer {token}',
            'Content-Type': 'application/json'
        }

    return _headers


@pytest.fixture
def auth_headers(headers_for, test_user):
    return headers_for(test_user)


@pytest.fixture
def ngo_headers(headers_for, ngo_account):
    return headers_for(ngo_account)
