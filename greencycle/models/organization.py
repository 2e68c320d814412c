"""Organization (NGO) model"""
from greencycle import db
from .base import BaseModel


VERIFICATION_STATUSES = ('pending', 'verified', 'rejected')


class Organization(BaseModel):
    """
    Recycling organization that receives and processes devices.
    Only verified and active organizations take part in matching and scheduling.
    """
    __tablename__ = 'ngos'

    user_id = db.Column(db.String(36), db.ForeignKey('users.id', ondelete='CASCADE'), nullable=True, index=True)
    name = db.Column(db.String(255), nullable=False)
    address = db.Column(db.Text)
    city = db.Column(db.String(100))
    latitude = db.Column(db.Float)
    longitude = db.Column(db.Float)
    contact_phone = db.Column(db.String(20))
    services = db.Column(db.JSON, default=list)

    capacity_per_day = db.Column(db.Integer, nullable=False, default=10)
    rating = db.Column(db.Float, nullable=False, default=0.0)
    total_reviews = db.Column(db.Integer, nullable=False, default=0)

    verification_status = db.Column(db.String(20), nullable=False, default='pending')
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    __table_args__ = (
        db.CheckConstraint("verification_status IN ('pending', 'verified', 'rejected')",
                           name='ck_ngos_verification_status'),
        db.CheckConstraint('capacity_per_day >= 0', name='ck_ngos_capacity'),
        db.Index('idx_ngos_verified_active', 'verification_status', 'is_active'),
    )

    account = db.relationship('User', backref=db.backref('organization', uselist=False))

    def __repr__(self):
        return f'<Organization {self.name} ({self.verification_status})>'

    @property
    def is_schedulable(self):
        """Verified and active"""
        return self.verification_status == 'verified' and bool(self.is_active)

    @property
    def has_location(self):
        return self.latitude is not None and self.longitude is not None

    @classmethod
    def verified(cls):
        """Query verified, active organizations"""
        return cls.query.filter(cls.verification_status == 'verified', cls.is_active.is_(True))

    def to_dict(self):
        data = super().to_dict(exclude=['user_id'])
        data['services'] = list(self.services or [])
        return data
