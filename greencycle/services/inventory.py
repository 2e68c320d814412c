"""
Device reads and removal.

Owners list and remove their own devices, organizations see the devices
assigned to them, admins see everything. A device linked to an open pickup
cannot be removed.
"""
import logging

from sqlalchemy import select

from greencycle.database import atomic, conditional_delete, forget
from greencycle.errors import ConflictError, NotFoundOrUnauthorized, ValidationError
from greencycle.models import Device, ImpactReport, Pickup, PickupDevice
from greencycle.models.device import DEVICE_STATUSES
from greencycle.models.pickup import OPEN_PICKUP_STATUSES
from greencycle.services.lifecycle import organization_for
from greencycle.utils.helpers import paginate_query

logger = logging.getLogger(__name__)


def _status_filter(query, status):
    if status:
        if status not in DEVICE_STATUSES:
            raise ValidationError('Invalid status', allowed=list(DEVICE_STATUSES))
        query = query.filter(Device.status == status)
    return query


def _with_people(device):
    data = device.to_dict()
    data['user_name'] = device.owner.name
    data['user_email'] = device.owner.email
    data['ngo_name'] = device.organization.name if device.organization else None
    return data


def _page(query, page, per_page, serialize):
    result = paginate_query(query, page, per_page)
    return {
        'devices': [serialize(device) for device in result['items']],
        'pagination': {
            'page': result['page'],
            'per_page': result['per_page'],
            'total': result['total'],
            'pages': result['pages'],
        },
    }


def list_user_devices(user, status=None, page=1, per_page=10):
    query = _status_filter(Device.query.filter_by(user_id=user.id), status)
    query = query.order_by(Device.created_at.desc())
    return _page(query, page, per_page, lambda device: device.to_dict())


def list_ngo_devices(actor, status=None, page=1, per_page=10):
    organization = organization_for(actor)
    if organization is None:
        raise NotFoundOrUnauthorized('Organization profile not found')

    query = _status_filter(Device.query.filter_by(ngo_id=organization.id), status)
    query = query.order_by(Device.created_at.desc())
    return _page(query, page, per_page, _with_people)


def get_device(actor, device_id):
    """
    One device with owner and organization names

    Users see their own devices. Organizations see devices assigned to them
    and unassigned ones. Admins see any device.
    """
    query = Device.query.filter_by(id=device_id)
    if actor.is_ngo():
        organization = organization_for(actor)
        if organization is None:
            raise NotFoundOrUnauthorized('Device not found or access denied')
        query = query.filter((Device.ngo_id == organization.id) | Device.ngo_id.is_(None))
    elif not actor.is_admin():
        query = query.filter_by(user_id=actor.id)

    device = query.first()
    if device is None:
        raise NotFoundOrUnauthorized('Device not found or access denied')
    return _with_people(device)


def _in_open_pickup(device_id):
    return (
        select(PickupDevice.device_id)
        .join(Pickup, Pickup.id == PickupDevice.pickup_id)
        .where(PickupDevice.device_id == device_id, Pickup.status.in_(OPEN_PICKUP_STATUSES))
    )


def delete_device(actor, device_id):
    """
    Remove a device owned by the caller, or any device for an admin

    The open-pickup check is part of the DELETE itself, so a pickup
    scheduled concurrently either sees the device or blocks the removal.
    """
    criteria = [Device.id == device_id, ~_in_open_pickup(device_id).exists()]
    if not actor.is_admin():
        criteria.append(Device.user_id == actor.id)

    with atomic():
        removed = conditional_delete(Device, criteria)
        if not removed:
            owned = Device.query.filter_by(id=device_id)
            if not actor.is_admin():
                owned = owned.filter_by(user_id=actor.id)
            if owned.first() is None:
                raise NotFoundOrUnauthorized('Device not found or access denied')
            raise ConflictError('Device is part of an open pickup')

        # Same effect as the ON DELETE CASCADE on databases that do not enforce it
        conditional_delete(PickupDevice, [PickupDevice.device_id == device_id])
        conditional_delete(ImpactReport, [ImpactReport.device_id == device_id])
        forget(Device, device_id)

    logger.info('Device %s deleted by %s', device_id, actor.id)
