"""User model"""
from greencycle import db
from .base import BaseModel


ROLES = ('user', 'ngo', 'admin')


class User(BaseModel):
    """
    User model - end users, NGO operators and administrators

    Accounts are owned by the identity subsystem; the engine only moves
    ``points`` and ``level``.
    """
    __tablename__ = 'users'

    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(20), nullable=False, default='user')
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    points = db.Column(db.Integer, nullable=False, default=0)
    level = db.Column(db.Integer, nullable=False, default=0)

    __table_args__ = (
        db.CheckConstraint("role IN ('user', 'ngo', 'admin')", name='ck_users_role'),
        db.CheckConstraint('points >= 0', name='ck_users_points_non_negative'),
        db.Index('idx_users_role_points', 'role', 'points'),
    )

    # Relationships
    devices = db.relationship('Device', backref='owner', lazy='dynamic')
    badges = db.relationship('UserBadge', backref='user', lazy='dynamic')

    def __repr__(self):
        return f'<User {self.email} ({self.role})>'

    def is_admin(self):
        return self.role == 'admin'

    def is_ngo(self):
        return self.role == 'ngo'
