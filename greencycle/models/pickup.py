"""Pickup, pickup-device link and per-day slot models"""
from greencycle import db
from .base import BaseModel, utcnow


PICKUP_STATUSES = ('scheduled', 'confirmed', 'in_progress', 'completed', 'cancelled', 'rescheduled')
TERMINAL_PICKUP_STATUSES = frozenset({'completed', 'cancelled'})
OPEN_PICKUP_STATUSES = tuple(s for s in PICKUP_STATUSES if s not in TERMINAL_PICKUP_STATUSES)


class Pickup(BaseModel):
    """
    Pickup model - one user, one organization, one date, one or more devices
    """
    __tablename__ = 'pickups'

    user_id = db.Column(db.String(36), db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    ngo_id = db.Column(db.String(36), db.ForeignKey('ngos.id', ondelete='CASCADE'), nullable=False)

    # Scheduling
    pickup_date = db.Column(db.Date, nullable=False)
    pickup_time_slot = db.Column(db.String(20))
    pickup_address = db.Column(db.Text, nullable=False)
    pickup_instructions = db.Column(db.Text)
    status = db.Column(db.String(20), nullable=False, default='scheduled')

    # Logistics
    driver_name = db.Column(db.String(255))
    driver_phone = db.Column(db.String(20))
    vehicle_details = db.Column(db.String(255))
    estimated_arrival = db.Column(db.String(20))
    actual_pickup_time = db.Column(db.DateTime)

    total_devices = db.Column(db.Integer, nullable=False, default=0)
    total_weight_kg = db.Column(db.Float, nullable=False, default=0.0)
    notes = db.Column(db.Text)

    # Customer feedback
    rating = db.Column(db.Integer)
    feedback = db.Column(db.Text)

    __table_args__ = (
        db.CheckConstraint('rating IS NULL OR (rating >= 1 AND rating <= 5)', name='ck_pickups_rating'),
        db.Index('idx_pickups_ngo_date_status', 'ngo_id', 'pickup_date', 'status'),
        db.Index('idx_pickups_user_status', 'user_id', 'status'),
    )

    # Relationships
    requester = db.relationship('User', backref=db.backref('pickups', lazy='dynamic'))
    organization = db.relationship('Organization', backref=db.backref('pickups', lazy='dynamic'))
    device_links = db.relationship('PickupDevice', backref='pickup', lazy='dynamic',
                                   cascade='all, delete-orphan')

    def __repr__(self):
        return f'<Pickup {self.id} {self.pickup_date} - {self.status}>'

    @property
    def is_open(self):
        return self.status not in TERMINAL_PICKUP_STATUSES

    @property
    def device_ids(self):
        return [link.device_id for link in self.device_links]

    def to_dict(self, include_devices=False):
        data = super().to_dict()
        if include_devices:
            data['devices'] = [link.device.to_dict() for link in self.device_links]
        return data


class PickupDevice(db.Model):
    """Junction row linking a device to a pickup"""
    __tablename__ = 'pickup_devices'

    pickup_id = db.Column(db.String(36), db.ForeignKey('pickups.id', ondelete='CASCADE'), primary_key=True)
    device_id = db.Column(db.String(36), db.ForeignKey('devices.id', ondelete='CASCADE'), primary_key=True)
    linked_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        db.Index('idx_pickup_devices_device', 'device_id'),
    )

    device = db.relationship('Device')


class PickupSlot(BaseModel):
    """
    Open-pickup counter for one organization on one date.

    Reservations are a conditional increment on this row, which keeps the
    count at or below the organization's ``capacity_per_day`` without a
    separate read.
    """
    __tablename__ = 'pickup_slots'

    ngo_id = db.Column(db.String(36), db.ForeignKey('ngos.id', ondelete='CASCADE'), nullable=False)
    pickup_date = db.Column(db.Date, nullable=False)
    booked_count = db.Column(db.Integer, nullable=False, default=0)

    __table_args__ = (
        db.UniqueConstraint('ngo_id', 'pickup_date', name='unique_slot_per_ngo_date'),
        db.CheckConstraint('booked_count >= 0', name='ck_pickup_slots_booked'),
    )

    def __repr__(self):
        return f'<PickupSlot {self.ngo_id} {self.pickup_date}: {self.booked_count}>'
