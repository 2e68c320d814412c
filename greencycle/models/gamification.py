"""Badge and community challenge models"""
from greencycle import db
from .base import BaseModel, utcnow


BADGE_TYPES = ('recycling', 'environmental', 'engagement', 'achievement', 'community')
RARITIES = ('common', 'rare', 'epic', 'legendary')


class Badge(BaseModel):
    """Badge definition with JSON-encoded criteria"""
    __tablename__ = 'badges'

    name = db.Column(db.String(100), nullable=False, unique=True)
    description = db.Column(db.Text)
    icon = db.Column(db.String(255))
    badge_type = db.Column(db.String(50), nullable=False, default='achievement')
    rarity = db.Column(db.String(20), nullable=False, default='common')
    criteria = db.Column(db.JSON, default=dict)  # {devices_required: 10, ...}
    reward_points = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    __table_args__ = (
        db.CheckConstraint("rarity IN ('common', 'rare', 'epic', 'legendary')", name='ck_badges_rarity'),
    )

    def __repr__(self):
        return f'<Badge {self.name} ({self.badge_type})>'


class UserBadge(db.Model):
    """Earned badge. Never updated or deleted once written."""
    __tablename__ = 'user_badges'

    user_id = db.Column(db.String(36), db.ForeignKey('users.id', ondelete='CASCADE'), primary_key=True)
    badge_id = db.Column(db.String(36), db.ForeignKey('badges.id', ondelete='CASCADE'), primary_key=True)
    earned_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    badge = db.relationship('Badge')

    def to_dict(self):
        return {
            'id': self.badge.id,
            'name': self.badge.name,
            'description': self.badge.description,
            'badge_type': self.badge.badge_type,
            'rarity': self.badge.rarity,
            'icon': self.badge.icon,
            'earned_at': self.earned_at.isoformat() if self.earned_at else None,
        }


class Challenge(BaseModel):
    """Time-boxed community challenge"""
    __tablename__ = 'community_challenges'

    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    challenge_type = db.Column(db.String(50), nullable=False)
    target_value = db.Column(db.Integer, nullable=False)
    reward_points = db.Column(db.Integer, nullable=False, default=0)
    start_date = db.Column(db.DateTime, nullable=False)
    end_date = db.Column(db.DateTime, nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    __table_args__ = (
        db.CheckConstraint('target_value > 0', name='ck_challenges_target'),
        db.Index('idx_challenges_type_window', 'challenge_type', 'start_date', 'end_date'),
    )

    def __repr__(self):
        return f'<Challenge {self.title} ({self.challenge_type})>'

    def is_running(self, now):
        return bool(self.is_active) and self.start_date <= now <= self.end_date


class UserChallengeProgress(BaseModel):
    """One user's progress on one challenge"""
    __tablename__ = 'user_challenge_progress'

    user_id = db.Column(db.String(36), db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    challenge_id = db.Column(db.String(36), db.ForeignKey('community_challenges.id', ondelete='CASCADE'),
                             nullable=False)
    current_progress = db.Column(db.Integer, nullable=False, default=0)
    completed = db.Column(db.Boolean, nullable=False, default=False)
    joined_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    completed_at = db.Column(db.DateTime)

    __table_args__ = (
        db.UniqueConstraint('user_id', 'challenge_id', name='unique_progress_per_user_challenge'),
        db.Index('idx_progress_user_completed', 'user_id', 'completed'),
    )

    challenge = db.relationship('Challenge', backref=db.backref('participants', lazy='dynamic'))
