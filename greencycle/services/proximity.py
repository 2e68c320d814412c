"""
Organization matching by distance and services.

Only verified and active organizations are candidates. Distances are
great-circle (haversine) kilometres.
"""
from math import radians, cos, sin, asin, sqrt

from flask import current_app

from greencycle.errors import NotFoundOrUnauthorized, ValidationError
from greencycle.models import Organization
from greencycle.utils.validators import to_float, to_int, validate_coordinates

EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1, lng1, lat2, lng2):
    """Return the great-circle distance in km between two points."""
    lat1, lng1, lat2, lng2 = map(radians, [lat1, lng1, lat2, lng2])
    dlat = lat2 - lat1
    dlng = lng2 - lng1
    a = sin(dlat / 2) ** 2 + cos(lat1) * cos(lat2) * sin(dlng / 2) ** 2
    return 2 * EARTH_RADIUS_KM * asin(sqrt(a))


def _normalize_services(services):
    if services is None:
        return None
    if isinstance(services, str):
        services = services.split(',')
    wanted = {str(s).strip().lower() for s in services if str(s).strip()}
    return wanted or None


def _offers_any(organization, wanted):
    if wanted is None:
        return True
    offered = {str(s).strip().lower() for s in (organization.services or [])}
    return bool(offered & wanted)


def _location(lat, lon):
    lat, lon = to_float(lat), to_float(lon)
    if lat is None or lon is None:
        raise ValidationError('Latitude and longitude are required')
    if not validate_coordinates(lat, lon):
        raise ValidationError('Latitude or longitude out of range')
    return lat, lon


def _radius(radius_km):
    if radius_km is None:
        radius_km = current_app.config['DEFAULT_SEARCH_RADIUS_KM']
    radius = to_float(radius_km)
    if radius is None or radius <= 0:
        raise ValidationError('radius_km must be a positive number')
    return radius


def _entry(organization, distance):
    data = organization.to_dict()
    data['distance_km'] = round(distance, 2) if distance is not None else None
    return data


def _candidates(wanted, city=None):
    query = Organization.verified()
    if city:
        query = query.filter(Organization.city.ilike(f'%{city.strip()}%'))
    return [org for org in query.all() if _offers_any(org, wanted)]


def find_nearest(lat, lon, radius_km=None, services=None, limit=None):
    """
    Organizations within ``radius_km`` of a point, nearest first

    Args:
        lat, lon: Search origin
        radius_km (float): Search radius (default from config)
        services (list): Keep organizations offering at least one of these
        limit (int): Maximum results (default from config)

    Returns:
        list: Organization dicts with ``distance_km``
    """
    lat, lon = _location(lat, lon)
    radius = _radius(radius_km)
    if limit is None:
        limit = current_app.config['DEFAULT_RESULT_LIMIT']
    limit = to_int(limit)
    if limit is None:
        raise ValidationError('limit must be an integer')
    limit = max(1, limit)

    ranked = []
    for org in _candidates(_normalize_services(services)):
        if not org.has_location:
            continue
        distance = haversine_km(lat, lon, org.latitude, org.longitude)
        if distance <= radius:
            ranked.append((distance, org))

    ranked.sort(key=lambda pair: pair[0])
    return [_entry(org, distance) for distance, org in ranked[:limit]]


def list_organizations(lat=None, lon=None, radius_km=None, services=None, city=None):
    """
    Browse organizations, optionally ranked around a location

    Without a location, ordered by rating then name. With one, organizations
    in range come first by distance, then those without coordinates.
    """
    wanted = _normalize_services(services)
    candidates = _candidates(wanted, city)

    if lat is None and lon is None:
        candidates.sort(key=lambda org: (-(org.rating or 0.0), org.name))
        return [_entry(org, None) for org in candidates]

    lat, lon = _location(lat, lon)
    radius = _radius(radius_km)

    ranked = []
    unlocated = []
    for org in candidates:
        if not org.has_location:
            unlocated.append(org)
            continue
        distance = haversine_km(lat, lon, org.latitude, org.longitude)
        if distance <= radius:
            ranked.append((distance, org))

    ranked.sort(key=lambda pair: pair[0])
    unlocated.sort(key=lambda org: org.name)
    return [_entry(org, d) for d, org in ranked] + [_entry(org, None) for org in unlocated]


def list_services():
    """Distinct services offered by verified organizations"""
    services = set()
    for org in Organization.verified().all():
        for service in org.services or []:
            if str(service).strip():
                services.add(str(service).strip())
    return sorted(services)


def get_organization(ngo_id):
    organization = Organization.verified().filter(Organization.id == ngo_id).first()
    if organization is None:
        raise NotFoundOrUnauthorized('NGO not found')
    return organization.to_dict()
