"""
Eco-impact formula table.

Per-device-type coefficients used by the valuation and impact calculator.
The defaults below are seeded into ``eco_impact_formulas`` at startup; rows
already present (e.g. tuned by an administrator) are left untouched.
"""
import logging

from greencycle import db
from greencycle.database import insert_ignore
from greencycle.models import EcoImpactFormula, generate_uuid

logger = logging.getLogger(__name__)

# device_type: (water_saved_per_kg, co2_saved_per_kg, toxic_waste_prevented_per_kg, points_per_kg)
DEFAULT_FORMULAS = {
    'smartphone': (800.0, 3.2, 0.15, 15),
    'laptop': (1200.0, 4.8, 0.25, 25),
    'desktop': (1500.0, 6.0, 0.35, 30),
    'tablet': (600.0, 2.4, 0.12, 12),
    'other': (500.0, 2.0, 0.10, 10),
}


def normalize_device_type(device_type):
    if device_type is None:
        return None
    return str(device_type).strip().lower() or None


def get_formula(device_type):
    """Return the formula row for a device type, or None when unknown."""
    device_type = normalize_device_type(device_type)
    if not device_type:
        return None
    return EcoImpactFormula.query.filter_by(device_type=device_type).first()


def seed_default_formulas():
    """Insert the default formula rows that are missing. Returns the count added."""
    added = 0
    for device_type, (water, co2, toxic, points) in DEFAULT_FORMULAS.items():
        if insert_ignore(
            EcoImpactFormula,
            ['device_type'],
            id=generate_uuid(),
            device_type=device_type,
            water_saved_per_kg=water,
            co2_saved_per_kg=co2,
            toxic_waste_prevented_per_kg=toxic,
            points_per_kg=points,
        ):
            added += 1
    db.session.commit()
    if added:
        logger.info('Seeded %d eco-impact formulas', added)
    return added
