"""
Device lifecycle state machine.

uploaded -> pickup_scheduled -> picked_up -> received -> processing ->
{refurbished | donated | recycled | disposed}

Every status write is a compare-and-swap on the status the caller read, so
two actors racing on the same device cannot both win. Entering ``donated``
or ``recycled`` from a non-terminal state records the device's impact once.
"""
import logging

from flask import current_app
from sqlalchemy import select

from greencycle import db
from greencycle.database import atomic, conditional_update, expire
from greencycle.errors import ConflictError, NotFoundOrUnauthorized, ValidationError
from greencycle.models import Device, Organization, Pickup, PickupDevice, utcnow
from greencycle.models.device import DEVICE_STATUSES, IMPACT_STATUSES, TERMINAL_DEVICE_STATUSES
from greencycle.services import gamification, valuation

logger = logging.getLogger(__name__)

SCHEDULABLE_DEVICE_STATUSES = ('uploaded', 'pickup_scheduled')

# Forward edges enforced when STRICT_DEVICE_TRANSITIONS is on
DEVICE_TRANSITIONS = {
    'uploaded': {'pickup_scheduled'},
    'pickup_scheduled': {'picked_up'},
    'picked_up': {'received'},
    'received': {'processing'},
    'processing': set(TERMINAL_DEVICE_STATUSES),
    'refurbished': set(),
    'donated': set(),
    'recycled': set(),
    'disposed': set(),
}


def organization_for(actor):
    """The organization owned by an ``ngo`` account, or None"""
    if actor is None or not actor.is_ngo():
        return None
    return Organization.query.filter_by(user_id=actor.id).first()


def _load_for_actor(actor, device_id):
    if actor is not None and actor.is_admin():
        device = db.session.get(Device, device_id)
    else:
        organization = organization_for(actor)
        if organization is None:
            raise NotFoundOrUnauthorized('Unauthorized to update device status')
        device = Device.query.filter_by(id=device_id, ngo_id=organization.id).first()

    if device is None:
        raise NotFoundOrUnauthorized('Device not found or access denied')
    return device


def _check_edge(old_status, new_status):
    if not current_app.config.get('STRICT_DEVICE_TRANSITIONS'):
        return
    if new_status not in DEVICE_TRANSITIONS[old_status]:
        raise ConflictError(
            f'Cannot move device from {old_status} to {new_status}',
            current_status=old_status,
        )


def _completed_pickup_for(device_id):
    return db.session.scalar(
        select(PickupDevice.pickup_id)
        .join(Pickup, Pickup.id == PickupDevice.pickup_id)
        .where(PickupDevice.device_id == device_id, Pickup.status == 'completed')
        .order_by(Pickup.actual_pickup_time.desc())
        .limit(1)
    )


def _first_processing(device_id):
    """Latch processed_at; True only for the call that set it"""
    latched = conditional_update(
        Device,
        [Device.id == device_id, Device.processed_at.is_(None)],
        processed_at=utcnow(),
    )
    expire(Device, device_id, 'processed_at')
    return latched == 1


def transition_device(actor, device_id, new_status, notes=None):
    """
    Move a device to a new status on behalf of an organization or admin

    Returns:
        dict: {'device': Device, 'impact': ImpactReport or None,
               'badges': [...], 'challenges': [...]}
    """
    if new_status not in DEVICE_STATUSES:
        raise ValidationError('Invalid status', allowed=list(DEVICE_STATUSES))

    result = {'impact': None, 'badges': [], 'challenges': []}

    with atomic():
        device = _load_for_actor(actor, device_id)
        old_status = device.status
        _check_edge(old_status, new_status)

        swapped = conditional_update(
            Device,
            [Device.id == device.id, Device.status == old_status],
            status=new_status,
        )
        if not swapped:
            raise ConflictError('Device status changed concurrently, please retry')
        expire(Device, device.id)

        if (new_status in IMPACT_STATUSES and old_status not in TERMINAL_DEVICE_STATUSES
                and _first_processing(device.id)):
            owner = device.owner
            if device.weight_kg:
                result['impact'] = valuation.record_impact(
                    owner, device, device.weight_kg,
                    pickup_id=_completed_pickup_for(device.id),
                )
            result['badges'] = gamification.check_badges(owner.id)
            result['challenges'] = gamification.advance_challenges(
                owner.id, gamification.CHALLENGE_DEVICE_RECYCLED)

    logger.info('Device %s moved %s -> %s by %s%s', device.id, old_status, new_status, actor.id,
                f' ({notes})' if notes else '')
    result['device'] = device
    return result


# ---------------------------------------------------------------------------
# Scheduler-driven writes. Callers own the transaction.
# ---------------------------------------------------------------------------

def _expire_all(device_ids):
    for device_id in device_ids:
        expire(Device, device_id)


def mark_pickup_scheduled(user_id, device_ids, ngo_id):
    """Assign the user's schedulable devices to an organization.

    Raises ConflictError unless every device moved.
    """
    moved = conditional_update(
        Device,
        [
            Device.id.in_(device_ids),
            Device.user_id == user_id,
            Device.status.in_(SCHEDULABLE_DEVICE_STATUSES),
        ],
        status='pickup_scheduled',
        ngo_id=ngo_id,
    )
    if moved != len(device_ids):
        raise ConflictError('One or more devices are no longer available for pickup')
    _expire_all(device_ids)
    return moved


def mark_picked_up(device_ids):
    """Devices collected by a completed pickup"""
    moved = conditional_update(
        Device,
        [Device.id.in_(device_ids), Device.status.in_(SCHEDULABLE_DEVICE_STATUSES)],
        status='picked_up',
    )
    _expire_all(device_ids)
    return moved


def reset_to_uploaded(device_ids):
    """Release devices from a cancelled pickup. Collected devices stay put."""
    moved = conditional_update(
        Device,
        [Device.id.in_(device_ids), Device.status.in_(SCHEDULABLE_DEVICE_STATUSES)],
        status='uploaded',
        ngo_id=None,
    )
    _expire_all(device_ids)
    return moved
