"""Device model"""
from greencycle import db
from .base import BaseModel


CONDITIONS = ('excellent', 'good', 'fair', 'poor', 'broken')
RECOMMENDATIONS = ('donate', 'recycle', 'resell', 'repair')

# Causal order of the lifecycle; the last four are terminal.
DEVICE_STATUSES = (
    'uploaded',
    'pickup_scheduled',
    'picked_up',
    'received',
    'processing',
    'refurbished',
    'donated',
    'recycled',
    'disposed',
)
TERMINAL_DEVICE_STATUSES = frozenset({'refurbished', 'donated', 'recycled', 'disposed'})
IMPACT_STATUSES = frozenset({'donated', 'recycled'})


class Device(BaseModel):
    """
    Device model - an electronic item submitted for valuation and disposal.

    ``status`` is written only by services.lifecycle.
    """
    __tablename__ = 'devices'

    user_id = db.Column(db.String(36), db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    ngo_id = db.Column(db.String(36), db.ForeignKey('ngos.id', ondelete='SET NULL'), nullable=True)

    device_type = db.Column(db.String(50), nullable=False)
    brand = db.Column(db.String(100))
    model = db.Column(db.String(100))
    condition = db.Column(db.String(20))
    weight_kg = db.Column(db.Float)
    age_years = db.Column(db.Float)

    status = db.Column(db.String(20), nullable=False, default='uploaded')
    estimated_value = db.Column(db.Integer)
    recommendation = db.Column(db.String(20))

    # Set once, the first time the device enters donated or recycled
    processed_at = db.Column(db.DateTime)

    ai_confidence_score = db.Column(db.Float)
    description = db.Column(db.Text)
    pickup_address = db.Column(db.Text)

    __table_args__ = (
        db.CheckConstraint(
            "condition IS NULL OR condition IN ('excellent', 'good', 'fair', 'poor', 'broken')",
            name='ck_devices_condition'),
        db.CheckConstraint(
            "recommendation IS NULL OR recommendation IN ('donate', 'recycle', 'resell', 'repair')",
            name='ck_devices_recommendation'),
        db.Index('idx_devices_user_status', 'user_id', 'status'),
        db.Index('idx_devices_ngo_status', 'ngo_id', 'status'),
    )

    organization = db.relationship('Organization', backref=db.backref('devices', lazy='dynamic'))

    def __repr__(self):
        return f'<Device {self.device_type} - {self.status}>'

    @property
    def is_terminal(self):
        return self.status in TERMINAL_DEVICE_STATUSES
