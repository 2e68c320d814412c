"""
Organization matching tests
"""
import pytest

from greencycle.errors import NotFoundOrUnauthorized, ValidationError
from greencycle.services import proximity

PUNE = (18.5204, 73.8567)
MUMBAI = (19.0760, 72.8777)


@pytest.fixture
def organizations(organization_factory):
    """Three verified organizations around Pune plus two that never match"""
    return {
        'centre': organization_factory(name='Centre Recyclers', latitude=PUNE[0], longitude=PUNE[1],
                                       services=['laptops'], rating=3.5),
        'suburb': organization_factory(name='Suburb Reuse', latitude=18.5600, longitude=73.8100,
                                       services=['phones', 'batteries'], rating=4.8),
        'mumbai': organization_factory(name='Mumbai Metals', latitude=MUMBAI[0], longitude=MUMBAI[1],
                                       city='Mumbai', services=['laptops'], rating=4.0),
        'pending': organization_factory(name='Pending Place', latitude=PUNE[0], longitude=PUNE[1],
                                        verification_status='pending'),
        'nowhere': organization_factory(name='Address Unknown', latitude=None, longitude=None,
                                        services=['cables']),
    }


class TestHaversine:
    """Test great-circle distance"""

    def test_same_point_is_zero(self):
        assert proximity.haversine_km(*PUNE, *PUNE) == 0.0

    def test_pune_to_mumbai(self):
        assert proximity.haversine_km(*PUNE, *MUMBAI) == pytest.approx(120, abs=2)

    def test_is_symmetric(self):
        assert proximity.haversine_km(*PUNE, *MUMBAI) == pytest.approx(proximity.haversine_km(*MUMBAI, *PUNE))


class TestFindNearest:
    """Test radius search"""

    def test_sorted_by_distance_within_radius(self, app, organizations):
        results = proximity.find_nearest(*PUNE, radius_km=50)

        assert [r['name'] for r in results] == ['Centre Recyclers', 'Suburb Reuse']
        assert results[0]['distance_km'] == 0.0
        assert results[1]['distance_km'] == round(results[1]['distance_km'], 2)

    def test_wider_radius_reaches_mumbai(self, app, organizations):
        names = [r['name'] for r in proximity.find_nearest(*PUNE, radius_km=200)]
        assert names[-1] == 'Mumbai Metals'

    def test_limit(self, app, organizations):
        assert len(proximity.find_nearest(*PUNE, radius_km=200, limit=1)) == 1

    def test_services_overlap(self, app, organizations):
        results = proximity.find_nearest(*PUNE, radius_km=200, services=['Batteries', 'tvs'])
        assert [r['name'] for r in results] == ['Suburb Reuse']

    def test_excludes_unverified_and_unlocated(self, app, organizations):
        names = {r['name'] for r in proximity.find_nearest(*PUNE, radius_km=20000, limit=50)}
        assert 'Pending Place' not in names
        assert 'Address Unknown' not in names

    def test_missing_coordinates_rejected(self, app):
        with pytest.raises(ValidationError):
            proximity.find_nearest(None, 73.8)

    def test_out_of_range_coordinates_rejected(self, app):
        with pytest.raises(ValidationError):
            proximity.find_nearest(91, 73.8)

    def test_non_integer_limit_rejected(self, app, organizations):
        with pytest.raises(ValidationError):
            proximity.find_nearest(*PUNE, limit='abc')

    def test_uses_configured_defaults(self, app, organizations):
        app.config['DEFAULT_RESULT_LIMIT'] = 1
        assert len(proximity.find_nearest(*PUNE)) == 1


class TestListOrganizations:
    """Test location-optional browsing"""

    def test_without_location_orders_by_rating(self, app, organizations):
        names = [o['name'] for o in proximity.list_organizations()]
        assert names == ['Suburb Reuse', 'Mumbai Metals', 'Centre Recyclers', 'Address Unknown']

    def test_with_location_appends_unlocated(self, app, organizations):
        results = proximity.list_organizations(lat=PUNE[0], lon=PUNE[1], radius_km=50)

        assert [o['name'] for o in results] == ['Centre Recyclers', 'Suburb Reuse', 'Address Unknown']
        assert results[-1]['distance_km'] is None

    def test_city_filter(self, app, organizations):
        assert [o['name'] for o in proximity.list_organizations(city='mum')] == ['Mumbai Metals']

    def test_owner_account_is_not_exposed(self, app, organizations):
        assert 'user_id' not in proximity.list_organizations()[0]


class TestServices:
    """Test the service catalogue"""

    def test_distinct_sorted_services(self, app, organizations):
        assert proximity.list_services() == ['batteries', 'cables', 'laptops', 'phones']

    def test_get_organization(self, app, organizations):
        assert proximity.get_organization(organizations['suburb'].id)['name'] == 'Suburb Reuse'

    def test_get_unverified_organization(self, app, organizations):
        with pytest.raises(NotFoundOrUnauthorized):
            proximity.get_organization(organizations['pending'].id)
