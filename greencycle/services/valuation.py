"""
Valuation and environmental impact calculator.

Valuation prices a device from its type's formula row, its condition and its
age, and recommends a disposition. Impact turns a processed device's weight
into water/CO2/toxic-waste savings and points.
"""
import logging

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from greencycle import db
from greencycle.database import atomic, insert_ignore
from greencycle.errors import ValidationError
from greencycle.models import Device, ImpactReport, Organization, User, generate_uuid, utcnow
from greencycle.models.device import CONDITIONS, IMPACT_STATUSES
from greencycle.services import gamification
from greencycle.services.eco_formulas import get_formula, normalize_device_type
from greencycle.utils.helpers import round_half_up
from greencycle.utils.validators import clean_text, to_float

logger = logging.getLogger(__name__)

FALLBACK_BASE_VALUE = 100
FALLBACK_VALUATION = {'estimated_value': 50, 'recommendation': 'recycle'}

CONDITION_MULTIPLIERS = {
    'excellent': 1.0,
    'good': 0.8,
    'fair': 0.6,
    'poor': 0.4,
    'broken': 0.2,
}
UNKNOWN_CONDITION_MULTIPLIER = 0.5

DEFAULT_AGE_YEARS = 2

# Free-text attributes accepted on submission, with their column limits
DEVICE_TEXT_FIELDS = {
    'brand': 100,
    'model': 100,
    'description': None,
    'pickup_address': None,
}


def age_multiplier(age_years):
    """Linear depreciation of 15% per year, floored at 20%"""
    return max(0.2, 1 - 0.15 * age_years)


def recommend(value, condition):
    """Pick a disposition from the unrounded value and the condition"""
    if value > 200 and condition != 'broken':
        return 'resell'
    if value > 100 and condition in ('excellent', 'good'):
        return 'donate'
    if condition == 'broken' or value < 50:
        return 'recycle'
    return 'repair'


def calculate_device_value(device_type, condition, age_years=DEFAULT_AGE_YEARS):
    """
    Estimate a device's value and recommend what to do with it

    Args:
        device_type (str): Formula table key (unknown types use a base of 100)
        condition (str): excellent / good / fair / poor / broken
        age_years (float): Age of the device in years

    Returns:
        dict: {'estimated_value': int, 'recommendation': str}
    """
    age = to_float(age_years)
    if age is None or age < 0:
        raise ValidationError('age_years must be a non-negative number')

    try:
        formula = get_formula(device_type)
    except SQLAlchemyError:
        logger.warning('Formula lookup failed for %s; using fallback valuation', device_type, exc_info=True)
        return dict(FALLBACK_VALUATION)

    base = formula.points_per_kg * 10 if formula is not None else FALLBACK_BASE_VALUE
    multiplier = CONDITION_MULTIPLIERS.get(condition, UNKNOWN_CONDITION_MULTIPLIER)
    value = base * multiplier * age_multiplier(age)

    return {
        'estimated_value': round_half_up(value),
        'recommendation': recommend(value, condition),
    }


def record_impact(user, device, weight_kg, pickup_id=None):
    """
    Write the impact report for a processed device and credit its points

    Returns the ImpactReport, or None when the device type has no formula or
    the device already has a report.
    """
    weight = to_float(weight_kg)
    if weight is None or weight <= 0:
        raise ValidationError('weight_kg must be a positive number')

    formula = get_formula(device.device_type)
    if formula is None:
        logger.warning('No eco formula found for device type: %s', device.device_type)
        return None

    water = formula.water_saved_per_kg * weight
    co2 = formula.co2_saved_per_kg * weight
    toxic = formula.toxic_waste_prevented_per_kg * weight
    points = round_half_up(formula.points_per_kg * weight)

    with atomic():
        report_id = generate_uuid()
        inserted = insert_ignore(
            ImpactReport,
            ['device_id'],
            id=report_id,
            user_id=user.id,
            device_id=device.id,
            pickup_id=pickup_id,
            water_saved_liters=water,
            co2_saved_kg=co2,
            toxic_waste_prevented_kg=toxic,
            points_awarded=points,
        )
        if not inserted:
            logger.warning('Impact already recorded for device %s; skipping credit', device.id)
            return None

        gamification.credit_points(user.id, points)

    logger.info('Impact recorded for device %s: %.1fL water, %.2fkg CO2, %d points',
                device.id, water, co2, points)
    return db.session.get(ImpactReport, report_id)


def _merge_hint(attributes, hint):
    merged = dict(attributes or {})
    confidence = None
    if hint:
        for key in ('device_type', 'condition'):
            if not merged.get(key) and hint.get(key):
                merged[key] = hint[key]
        confidence = to_float(hint.get('confidence'))
        if confidence is not None and not 0.0 <= confidence <= 1.0:
            raise ValidationError('Recognition confidence must be between 0 and 1')
    return merged, confidence


def submit_device(user, attributes, hint=None):
    """
    Create a device in status ``uploaded`` and value it

    ``hint`` is the recognition oracle's {device_type, condition, confidence};
    explicit attributes win, the hint fills the gaps.

    Returns:
        tuple: (Device, valuation dict)
    """
    merged, confidence = _merge_hint(attributes, hint)

    device_type = normalize_device_type(merged.get('device_type'))
    if not device_type:
        raise ValidationError('device_type is required')

    condition = merged.get('condition')
    if condition is not None:
        condition = str(condition).strip().lower()
        if condition not in CONDITIONS:
            raise ValidationError(f'condition must be one of: {", ".join(CONDITIONS)}')

    weight = None
    if merged.get('weight_kg') is not None:
        weight = to_float(merged['weight_kg'])
        if weight is None or weight <= 0:
            raise ValidationError('weight_kg must be a positive number')

    age = DEFAULT_AGE_YEARS
    if merged.get('age_years') is not None:
        age = to_float(merged['age_years'])
        if age is None or age < 0:
            raise ValidationError('age_years must be a non-negative number')

    valuation = calculate_device_value(device_type, condition, age)

    with atomic():
        device = Device(
            user_id=user.id,
            device_type=device_type,
            condition=condition,
            weight_kg=weight,
            age_years=age,
            status='uploaded',
            estimated_value=valuation['estimated_value'],
            recommendation=valuation['recommendation'],
            ai_confidence_score=confidence,
        )
        for field, max_length in DEVICE_TEXT_FIELDS.items():
            setattr(device, field, clean_text(merged.get(field), max_length))

        db.session.add(device)
        db.session.flush()

        gamification.advance_challenges(user.id, gamification.CHALLENGE_DEVICE_UPLOAD)

    logger.info('Device %s (%s) submitted by user %s, valued at %d',
                device.id, device_type, user.id, valuation['estimated_value'])
    return device, valuation


def impact_summary(user):
    """Environmental totals for one user"""
    devices_processed, water, co2, toxic, points = db.session.execute(
        select(
            func.count(ImpactReport.id),
            func.coalesce(func.sum(ImpactReport.water_saved_liters), 0.0),
            func.coalesce(func.sum(ImpactReport.co2_saved_kg), 0.0),
            func.coalesce(func.sum(ImpactReport.toxic_waste_prevented_kg), 0.0),
            func.coalesce(func.sum(ImpactReport.points_awarded), 0),
        ).where(ImpactReport.user_id == user.id)
    ).one()

    devices_submitted = db.session.scalar(
        select(func.count(Device.id)).where(Device.user_id == user.id)
    )

    return {
        'devices_submitted': devices_submitted,
        'devices_processed': devices_processed,
        'water_saved_liters': round(float(water), 2),
        'co2_saved_kg': round(float(co2), 2),
        'toxic_waste_prevented_kg': round(float(toxic), 2),
        'points_from_impact': int(points),
        'points': user.points,
        'level': user.level,
    }


def global_impact_summary():
    """Platform-wide environmental totals"""
    water, co2, toxic = db.session.execute(
        select(
            func.coalesce(func.sum(ImpactReport.water_saved_liters), 0.0),
            func.coalesce(func.sum(ImpactReport.co2_saved_kg), 0.0),
            func.coalesce(func.sum(ImpactReport.toxic_waste_prevented_kg), 0.0),
        )
    ).one()

    total_devices = db.session.scalar(select(func.count(Device.id)))
    devices_processed = db.session.scalar(
        select(func.count(Device.id)).where(Device.status.in_(IMPACT_STATUSES))
    )
    total_users = db.session.scalar(
        select(func.count(User.id)).where(User.role == 'user', User.is_active.is_(True))
    )
    total_ngos = db.session.scalar(
        select(func.count(Organization.id)).where(
            Organization.verification_status == 'verified',
            Organization.is_active.is_(True),
        )
    )

    return {
        'total_devices': total_devices,
        'devices_processed': devices_processed,
        'total_users': total_users,
        'total_ngos': total_ngos,
        'water_saved_liters': round(float(water), 2),
        'co2_saved_kg': round(float(co2), 2),
        'toxic_waste_prevented_kg': round(float(toxic), 2),
        'generated_at': utcnow().isoformat(),
    }
