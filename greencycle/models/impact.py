"""Eco-impact formula table and impact ledger models"""
from greencycle import db
from .base import BaseModel


class EcoImpactFormula(BaseModel):
    """Per-device-type coefficients used for valuation and impact"""
    __tablename__ = 'eco_impact_formulas'

    device_type = db.Column(db.String(50), nullable=False, unique=True)
    water_saved_per_kg = db.Column(db.Float, nullable=False, default=500.0)
    co2_saved_per_kg = db.Column(db.Float, nullable=False, default=2.5)
    toxic_waste_prevented_per_kg = db.Column(db.Float, nullable=False, default=0.1)
    points_per_kg = db.Column(db.Integer, nullable=False, default=10)

    def __repr__(self):
        return f'<EcoImpactFormula {self.device_type}>'


class ImpactReport(BaseModel):
    """
    Ledger entry for the environmental savings of one processed device.
    At most one per device.
    """
    __tablename__ = 'impact_reports'

    user_id = db.Column(db.String(36), db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    device_id = db.Column(db.String(36), db.ForeignKey('devices.id', ondelete='CASCADE'), nullable=False)
    pickup_id = db.Column(db.String(36), db.ForeignKey('pickups.id', ondelete='SET NULL'), nullable=True)

    water_saved_liters = db.Column(db.Float, nullable=False, default=0.0)
    co2_saved_kg = db.Column(db.Float, nullable=False, default=0.0)
    toxic_waste_prevented_kg = db.Column(db.Float, nullable=False, default=0.0)
    points_awarded = db.Column(db.Integer, nullable=False, default=0)

    __table_args__ = (
        db.UniqueConstraint('device_id', name='unique_impact_report_per_device'),
        db.Index('idx_impact_reports_user', 'user_id'),
    )

    def __repr__(self):
        return f'<ImpactReport device={self.device_id} points={self.points_awarded}>'
