"""
Organization self-service profile and admin verification.

Verification status is written by admins only. The profile update never
touches it.
"""
import logging

from sqlalchemy import case, func, select

from greencycle import db
from greencycle.database import atomic, conditional_update, expire
from greencycle.errors import NotFoundOrUnauthorized, ValidationError
from greencycle.models import Device, Organization, Pickup
from greencycle.models.device import IMPACT_STATUSES
from greencycle.models.organization import VERIFICATION_STATUSES
from greencycle.services.lifecycle import organization_for
from greencycle.utils.validators import clean_text, to_float, to_int, validate_coordinates

logger = logging.getLogger(__name__)

# Free-text profile fields and their column limits
PROFILE_TEXT_FIELDS = {
    'name': 255,
    'address': None,
    'city': 100,
    'contact_phone': 20,
}


def _own_organization(actor):
    organization = organization_for(actor)
    if organization is None:
        raise NotFoundOrUnauthorized('Organization profile not found')
    return organization


def _count_where(condition):
    return func.coalesce(func.sum(case((condition, 1), else_=0)), 0)


def _statistics(organization_id):
    total_devices, devices_received, devices_processed, total_weight = db.session.execute(
        select(
            func.count(Device.id),
            _count_where(Device.status == 'received'),
            _count_where(Device.status.in_(IMPACT_STATUSES)),
            func.coalesce(func.sum(Device.weight_kg), 0.0),
        ).where(Device.ngo_id == organization_id)
    ).one()

    total_pickups, completed_pickups = db.session.execute(
        select(
            func.count(Pickup.id),
            _count_where(Pickup.status == 'completed'),
        ).where(Pickup.ngo_id == organization_id)
    ).one()

    return {
        'total_devices': total_devices,
        'devices_received': devices_received,
        'devices_processed': devices_processed,
        'total_weight_kg': round(float(total_weight), 2),
        'total_pickups': total_pickups,
        'completed_pickups': completed_pickups,
    }


def organization_profile(actor):
    """The caller's organization with contact details and workload statistics"""
    organization = _own_organization(actor)
    data = organization.to_dict()
    data['contact_name'] = actor.name
    data['contact_email'] = actor.email
    return {'ngo': data, 'statistics': _statistics(organization.id)}


def _profile_values(attributes):
    values = {}
    for field, max_length in PROFILE_TEXT_FIELDS.items():
        if attributes.get(field) is not None:
            values[field] = clean_text(attributes[field], max_length)
    if 'name' in values and not values['name']:
        raise ValidationError('name cannot be empty')

    lat, lon = attributes.get('latitude'), attributes.get('longitude')
    if lat is not None or lon is not None:
        if not validate_coordinates(lat, lon):
            raise ValidationError('latitude and longitude must be given together and be in range')
        values['latitude'], values['longitude'] = to_float(lat), to_float(lon)

    if attributes.get('services') is not None:
        services = attributes['services']
        if isinstance(services, str):
            services = services.split(',')
        if not isinstance(services, (list, tuple)):
            raise ValidationError('services must be a list')
        values['services'] = sorted({str(s).strip().lower() for s in services if str(s).strip()})

    if attributes.get('capacity_per_day') is not None:
        capacity = to_int(attributes['capacity_per_day'])
        if capacity is None or capacity < 0:
            raise ValidationError('capacity_per_day must be a non-negative integer')
        values['capacity_per_day'] = capacity

    return values


def update_organization_profile(actor, attributes):
    """
    Update the caller's organization; absent fields are left unchanged

    Lowering ``capacity_per_day`` below a date's current bookings keeps those
    bookings and refuses new ones until the count drops.
    """
    organization = _own_organization(actor)
    values = _profile_values(attributes or {})
    if not values:
        raise ValidationError('No profile fields to update')

    with atomic():
        conditional_update(Organization, [Organization.id == organization.id], **values)
        expire(Organization, organization.id)

    logger.info('Organization %s updated profile fields: %s', organization.id, ', '.join(sorted(values)))
    return db.session.get(Organization, organization.id)


def set_verification(actor, ngo_id, status):
    """Admin decision on an organization's verification status"""
    if actor is None or not actor.is_admin():
        raise NotFoundOrUnauthorized('Organization not found')
    if status not in VERIFICATION_STATUSES:
        raise ValidationError('Invalid verification status', allowed=list(VERIFICATION_STATUSES))

    with atomic():
        updated = conditional_update(Organization, [Organization.id == ngo_id], verification_status=status)
        if not updated:
            raise NotFoundOrUnauthorized('Organization not found')
        expire(Organization, ngo_id)

    organization = db.session.get(Organization, ngo_id)
    logger.info('Organization %s verification set to %s by %s', ngo_id, status, actor.id)
    return {
        'id': organization.id,
        'name': organization.name,
        'verification_status': organization.verification_status,
    }
