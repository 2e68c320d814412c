"""
Capacity-constrained pickup scheduler.

Each organization accepts at most ``capacity_per_day`` open pickups per date.
The open count lives on a ``PickupSlot`` row per (organization, date) and is
only changed by conditional increments/decrements, so concurrent bookings for
the last free slot cannot both succeed.
"""
import logging
from datetime import date

from sqlalchemy import select

from greencycle import db
from greencycle.database import atomic, conditional_update, expire, insert_ignore
from greencycle.errors import ConflictError, NotFoundOrUnauthorized, ValidationError
from greencycle.models import (
    Device,
    Organization,
    Pickup,
    PickupDevice,
    PickupSlot,
    generate_uuid,
    utcnow,
)
from greencycle.models.pickup import OPEN_PICKUP_STATUSES, PICKUP_STATUSES, TERMINAL_PICKUP_STATUSES
from greencycle.services import gamification, lifecycle
from greencycle.utils.helpers import paginate_query, parse_date
from greencycle.utils.validators import clean_text

logger = logging.getLogger(__name__)

USER_CANCELLABLE_STATUSES = ('scheduled', 'confirmed')

# Position on the main line; moves may not go backwards
PICKUP_PROGRESS = {
    'scheduled': 0,
    'rescheduled': 0,
    'confirmed': 1,
    'in_progress': 2,
    'completed': 3,
}

LOGISTICS_FIELDS = {
    'driver_name': 255,
    'driver_phone': 20,
    'vehicle_details': 255,
    'estimated_arrival': 20,
    'notes': None,
}


# ---------------------------------------------------------------------------
# Capacity slots
# ---------------------------------------------------------------------------

def reserve_slot(ngo_id, pickup_date):
    """Take one open-pickup slot for an organization on a date"""
    insert_ignore(
        PickupSlot,
        ['ngo_id', 'pickup_date'],
        id=generate_uuid(),
        ngo_id=ngo_id,
        pickup_date=pickup_date,
        booked_count=0,
    )

    capacity = (
        select(Organization.capacity_per_day)
        .where(Organization.id == ngo_id)
        .scalar_subquery()
    )
    reserved = conditional_update(
        PickupSlot,
        [
            PickupSlot.ngo_id == ngo_id,
            PickupSlot.pickup_date == pickup_date,
            PickupSlot.booked_count < capacity,
        ],
        booked_count=PickupSlot.booked_count + 1,
    )
    if not reserved:
        logger.info('Capacity reached for organization %s on %s', ngo_id, pickup_date)
        raise ConflictError(
            'NGO has reached capacity for this date. Please choose another date.',
            pickup_date=pickup_date.isoformat(),
        )


def release_slot(ngo_id, pickup_date):
    """Give back a slot when a pickup leaves the open set"""
    released = conditional_update(
        PickupSlot,
        [
            PickupSlot.ngo_id == ngo_id,
            PickupSlot.pickup_date == pickup_date,
            PickupSlot.booked_count > 0,
        ],
        booked_count=PickupSlot.booked_count - 1,
    )
    if not released:
        logger.warning('No booked slot to release for organization %s on %s', ngo_id, pickup_date)
    return released


def booked_count(ngo_id, pickup_date):
    count = db.session.scalar(
        select(PickupSlot.booked_count).where(
            PickupSlot.ngo_id == ngo_id,
            PickupSlot.pickup_date == pickup_date,
        )
    )
    return count or 0


# ---------------------------------------------------------------------------
# Scheduling
# ---------------------------------------------------------------------------

def _schedule_date(value):
    pickup_date = parse_date(value)
    if pickup_date is None:
        raise ValidationError('pickup_date must be a date in YYYY-MM-DD format')
    if pickup_date < date.today():
        raise ValidationError('pickup_date cannot be in the past')
    return pickup_date


def schedule_pickup(user, device_ids, ngo_id, pickup_date, pickup_address,
                    pickup_time_slot=None, pickup_instructions=None):
    """
    Book a pickup of the user's devices with an organization

    Returns:
        dict: pickup_id, status, device_count, total_weight_kg, ngo_name
    """
    if not isinstance(device_ids, (list, tuple)) or not device_ids:
        raise ValidationError('At least one device ID is required')
    device_ids = list(dict.fromkeys(str(device_id) for device_id in device_ids))

    pickup_address = clean_text(pickup_address)
    if not ngo_id or pickup_date is None or not pickup_address:
        raise ValidationError('NGO ID, pickup date, and pickup address are required')
    pickup_date = _schedule_date(pickup_date)

    with atomic():
        devices = Device.query.filter(
            Device.id.in_(device_ids),
            Device.user_id == user.id,
            Device.status.in_(lifecycle.SCHEDULABLE_DEVICE_STATUSES),
        ).all()
        if len(devices) != len(device_ids):
            raise NotFoundOrUnauthorized('Some devices are not found or not eligible for pickup')

        busy = db.session.scalars(
            select(PickupDevice.device_id)
            .join(Pickup, Pickup.id == PickupDevice.pickup_id)
            .where(PickupDevice.device_id.in_(device_ids), Pickup.status.in_(OPEN_PICKUP_STATUSES))
        ).all()
        if busy:
            raise ConflictError('Some devices already belong to an open pickup', device_ids=sorted(busy))

        organization = db.session.get(Organization, ngo_id)
        if organization is None or not organization.is_schedulable:
            raise NotFoundOrUnauthorized('NGO not found or not verified')

        reserve_slot(organization.id, pickup_date)

        total_weight = sum(device.weight_kg or 0.0 for device in devices)
        pickup = Pickup(
            user_id=user.id,
            ngo_id=organization.id,
            pickup_date=pickup_date,
            pickup_time_slot=clean_text(pickup_time_slot, 20),
            pickup_address=pickup_address,
            pickup_instructions=clean_text(pickup_instructions),
            status='scheduled',
            total_devices=len(device_ids),
            total_weight_kg=total_weight,
        )
        db.session.add(pickup)
        db.session.flush()

        for device_id in device_ids:
            db.session.add(PickupDevice(pickup_id=pickup.id, device_id=device_id))

        lifecycle.mark_pickup_scheduled(user.id, device_ids, organization.id)

    logger.info('Pickup %s scheduled with %s on %s (%d devices)',
                pickup.id, organization.name, pickup_date, len(device_ids))
    return {
        'pickup_id': pickup.id,
        'status': pickup.status,
        'pickup_date': pickup_date.isoformat(),
        'device_count': len(device_ids),
        'total_weight_kg': total_weight,
        'ngo_name': organization.name,
    }


# ---------------------------------------------------------------------------
# Status changes
# ---------------------------------------------------------------------------

def _check_pickup_edge(old_status, new_status):
    if old_status in TERMINAL_PICKUP_STATUSES:
        raise ConflictError(f'Pickup is already {old_status}', current_status=old_status)
    if new_status in ('cancelled', 'rescheduled') or new_status == old_status:
        return
    if PICKUP_PROGRESS[new_status] < PICKUP_PROGRESS[old_status]:
        raise ConflictError(
            f'Cannot move pickup from {old_status} back to {new_status}',
            current_status=old_status,
        )


def _logistics(details):
    values = {}
    for field, max_length in LOGISTICS_FIELDS.items():
        value = clean_text(details.get(field), max_length)
        if value:
            values[field] = value
    return values


def update_pickup_status(actor, pickup_id, status, **details):
    """
    Move an organization's pickup along its status line

    ``details`` may carry logistics fields and, for ``rescheduled``, a new
    ``pickup_date``.
    """
    if status not in PICKUP_STATUSES:
        raise ValidationError('Invalid status', allowed=list(PICKUP_STATUSES))

    organization = lifecycle.organization_for(actor)
    if organization is None:
        raise NotFoundOrUnauthorized('Pickup not found or access denied')

    result = {'badges': [], 'challenges': []}

    with atomic():
        pickup = Pickup.query.filter_by(id=pickup_id, ngo_id=organization.id).first()
        if pickup is None:
            raise NotFoundOrUnauthorized('Pickup not found or access denied')

        old_status = pickup.status
        old_date = pickup.pickup_date
        _check_pickup_edge(old_status, status)

        values = _logistics(details)

        if status == 'rescheduled' and details.get('pickup_date'):
            new_date = _schedule_date(details['pickup_date'])
            if new_date != old_date:
                reserve_slot(organization.id, new_date)
                release_slot(organization.id, old_date)
                values['pickup_date'] = new_date

        if status == 'completed':
            values['actual_pickup_time'] = utcnow()

        swapped = conditional_update(
            Pickup,
            [Pickup.id == pickup.id, Pickup.status == old_status],
            status=status,
            **values,
        )
        if not swapped:
            raise ConflictError('Pickup status changed concurrently, please retry')
        expire(Pickup, pickup.id)

        if status == 'completed':
            release_slot(organization.id, old_date)
            lifecycle.mark_picked_up(pickup.device_ids)
            result['challenges'] = gamification.advance_challenges(
                pickup.user_id, gamification.CHALLENGE_PICKUP_COMPLETED)
            result['badges'] = gamification.check_badges(pickup.user_id)
        elif status == 'cancelled':
            release_slot(organization.id, old_date)
            lifecycle.reset_to_uploaded(pickup.device_ids)

    logger.info('Pickup %s moved %s -> %s by organization %s',
                pickup.id, old_status, status, organization.id)
    result['pickup'] = pickup
    return result


def cancel_pickup(user, pickup_id, reason=None):
    """Cancel one of the user's not-yet-started pickups and release its devices"""
    with atomic():
        pickup = Pickup.query.filter_by(id=pickup_id, user_id=user.id).first()
        if pickup is None:
            raise NotFoundOrUnauthorized('Pickup not found')
        if pickup.status not in USER_CANCELLABLE_STATUSES:
            raise ConflictError(f'Pickup cannot be cancelled once {pickup.status}',
                                current_status=pickup.status)

        cancelled = conditional_update(
            Pickup,
            [Pickup.id == pickup.id, Pickup.status.in_(USER_CANCELLABLE_STATUSES)],
            status='cancelled',
            notes=clean_text(reason) or 'Cancelled by user',
        )
        if not cancelled:
            raise ConflictError('Pickup status changed concurrently, please retry')
        expire(Pickup, pickup.id)

        release_slot(pickup.ngo_id, pickup.pickup_date)
        lifecycle.reset_to_uploaded(pickup.device_ids)

    logger.info('Pickup %s cancelled by user %s', pickup.id, user.id)
    return pickup


def rate_pickup(user, pickup_id, score, feedback=None):
    """
    Rate a completed pickup once and fold the score into the organization's
    running average
    """
    if isinstance(score, bool) or not isinstance(score, int) or not 1 <= score <= 5:
        raise ValidationError('Rating must be an integer between 1 and 5')

    with atomic():
        pickup = Pickup.query.filter_by(id=pickup_id, user_id=user.id).first()
        if pickup is None:
            raise NotFoundOrUnauthorized('Pickup not found')

        rated = conditional_update(
            Pickup,
            [Pickup.id == pickup.id, Pickup.rating.is_(None), Pickup.status == 'completed'],
            rating=score,
            feedback=clean_text(feedback),
        )
        if not rated:
            raise ConflictError('Pickup is not completed or has already been rated')

        conditional_update(
            Organization,
            [Organization.id == pickup.ngo_id],
            rating=(Organization.rating * Organization.total_reviews + score) / (Organization.total_reviews + 1),
            total_reviews=Organization.total_reviews + 1,
        )
        expire(Pickup, pickup.id)
        expire(Organization, pickup.ngo_id)

        ngo_rating, total_reviews = db.session.execute(
            select(Organization.rating, Organization.total_reviews)
            .where(Organization.id == pickup.ngo_id)
        ).one()

    logger.info('Pickup %s rated %d by user %s', pickup_id, score, user.id)
    return {
        'pickup_id': pickup_id,
        'rating': score,
        'ngo_rating': ngo_rating,
        'total_reviews': total_reviews,
    }


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

def get_pickup(actor, pickup_id):
    """Pickup with its devices, visible to its requester, its organization or an admin"""
    query = Pickup.query.filter_by(id=pickup_id)
    if actor.is_ngo():
        organization = lifecycle.organization_for(actor)
        if organization is None:
            raise NotFoundOrUnauthorized('Pickup not found')
        query = query.filter_by(ngo_id=organization.id)
    elif not actor.is_admin():
        query = query.filter_by(user_id=actor.id)

    pickup = query.first()
    if pickup is None:
        raise NotFoundOrUnauthorized('Pickup not found')

    data = pickup.to_dict(include_devices=True)
    data['ngo_name'] = pickup.organization.name
    data['ngo_contact_phone'] = pickup.organization.contact_phone
    data['user_name'] = pickup.requester.name
    return data


def _status_filter(query, status):
    if status:
        if status not in PICKUP_STATUSES:
            raise ValidationError('Invalid status', allowed=list(PICKUP_STATUSES))
        query = query.filter(Pickup.status == status)
    return query


def _page(query, page, per_page):
    result = paginate_query(query, page, per_page)
    return {
        'pickups': [pickup.to_dict() for pickup in result['items']],
        'pagination': {
            'page': result['page'],
            'per_page': result['per_page'],
            'total': result['total'],
            'pages': result['pages'],
        },
    }


def list_user_pickups(user, status=None, page=1, per_page=10):
    query = _status_filter(Pickup.query.filter_by(user_id=user.id), status)
    query = query.order_by(Pickup.pickup_date.desc(), Pickup.created_at.desc())
    return _page(query, page, per_page)


def list_ngo_pickups(actor, status=None, pickup_date=None, page=1, per_page=10):
    organization = lifecycle.organization_for(actor)
    if organization is None:
        raise NotFoundOrUnauthorized('Organization profile not found')

    query = _status_filter(Pickup.query.filter_by(ngo_id=organization.id), status)
    if pickup_date:
        day = parse_date(pickup_date)
        if day is None:
            raise ValidationError('date must be in YYYY-MM-DD format')
        query = query.filter(Pickup.pickup_date == day)
    query = query.order_by(Pickup.pickup_date.asc(), Pickup.pickup_time_slot.asc())
    return _page(query, page, per_page)
