"""
Gamification rules engine.

Points accrual and level computation, badge evaluation and award,
community challenge progress, and the leaderboard. Point balances are only
ever changed with single-statement increments so concurrent credits for the
same user (an impact report and a badge reward, say) cannot lose updates.
"""
import logging
import math
from datetime import timedelta

from sqlalchemy import case, func, select
from sqlalchemy.orm import aliased

from greencycle import db
from greencycle.database import atomic, conditional_update, expire, insert_ignore
from greencycle.errors import ConflictError, NotFoundOrUnauthorized, ValidationError
from greencycle.models import (
    Badge,
    Challenge,
    Device,
    ImpactReport,
    Pickup,
    User,
    UserBadge,
    UserChallengeProgress,
    generate_uuid,
    utcnow,
)
from greencycle.models.device import IMPACT_STATUSES
from greencycle.services.criteria import UserStats, badge_progress, badge_qualifies
from greencycle.utils.validators import to_int

logger = logging.getLogger(__name__)

POINTS_PER_LEVEL_UNIT = 100
LEVEL_UP_BONUS_PER_LEVEL = 50

# Challenge types advanced by the engine itself
CHALLENGE_DEVICE_UPLOAD = 'device_upload'
CHALLENGE_DEVICE_RECYCLED = 'device_recycled'
CHALLENGE_PICKUP_COMPLETED = 'pickup_completed'

LEADERBOARD_WINDOWS = {
    'all': None,
    'weekly': timedelta(days=7),
    'monthly': timedelta(days=30),
}

CHALLENGE_FILTERS = ('active', 'upcoming', 'completed', 'all')

DEFAULT_BADGES = [
    {'name': 'First Recycle', 'description': 'Had your first device recycled or donated',
     'badge_type': 'recycling', 'rarity': 'common', 'criteria': {'devices_required': 1}, 'reward_points': 10},
    {'name': 'Eco Warrior', 'description': 'Recycled 10 devices',
     'badge_type': 'recycling', 'rarity': 'rare', 'criteria': {'devices_required': 10}, 'reward_points': 100},
    {'name': 'Water Guardian', 'description': 'Saved 1000 liters of water through recycling',
     'badge_type': 'environmental', 'rarity': 'epic', 'criteria': {'water_saved_required': 1000},
     'reward_points': 150},
    {'name': 'Carbon Cutter', 'description': 'Prevented 50 kg of CO2 emissions',
     'badge_type': 'environmental', 'rarity': 'rare', 'criteria': {'co2_saved_required': 50}, 'reward_points': 100},
    {'name': 'Pickup Pro', 'description': 'Completed 5 pickups',
     'badge_type': 'engagement', 'rarity': 'rare', 'criteria': {'pickups_required': 5}, 'reward_points': 75},
    {'name': 'Rising Star', 'description': 'Reached level 3',
     'badge_type': 'achievement', 'rarity': 'rare', 'criteria': {'level_required': 3}, 'reward_points': 50},
    {'name': 'Point Collector', 'description': 'Earned 1000 points',
     'badge_type': 'achievement', 'rarity': 'epic', 'criteria': {'points_required': 1000}, 'reward_points': 100},
    {'name': 'Green Veteran', 'description': 'Member for a full year',
     'badge_type': 'community', 'rarity': 'legendary', 'criteria': {'days_active_required': 365},
     'reward_points': 200},
]


# ---------------------------------------------------------------------------
# Points & levels
# ---------------------------------------------------------------------------

def level_for_points(points):
    """level = floor(sqrt(points / 100))"""
    return math.isqrt(max(0, int(points)) // POINTS_PER_LEVEL_UNIT)


def next_level_points(level):
    """Points needed to reach the level after ``level``"""
    return (level + 1) ** 2 * POINTS_PER_LEVEL_UNIT


def _load_user(user_id):
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundOrUnauthorized('User not found')
    return user


def _balance(user_id):
    return db.session.execute(
        select(User.points, User.level).where(User.id == user_id)
    ).one()


def _apply_level_up(user_id):
    """Recompute the level after a credit and pay the level-up bonus once.

    Single pass: a bonus that itself crosses another boundary is picked up by
    the next credit, not here.
    """
    points, level = _balance(user_id)
    new_level = level_for_points(points)
    if new_level <= level:
        return {'points': points, 'level': level, 'leveled_up': False, 'bonus_points': 0}

    bonus = new_level * LEVEL_UP_BONUS_PER_LEVEL
    won = conditional_update(
        User,
        [User.id == user_id, User.level < new_level],
        level=new_level,
        points=User.points + bonus,
    )
    points, level = _balance(user_id)
    if not won:
        # A concurrent credit already moved this user past new_level
        return {'points': points, 'level': level, 'leveled_up': False, 'bonus_points': 0}

    logger.info('User %s reached level %d (+%d bonus points)', user_id, new_level, bonus)
    return {'points': points, 'level': level, 'leveled_up': True, 'bonus_points': bonus}


def credit_points(user_id, amount):
    """Add points to a user's balance and recompute the level.

    Returns a dict with the resulting ``points``/``level`` and whether a
    level-up bonus was paid.
    """
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValidationError('Point amount must be an integer')
    if amount < 0:
        raise ValidationError('Point credits cannot be negative')

    with atomic():
        changed = conditional_update(User, [User.id == user_id], points=User.points + amount)
        if not changed:
            raise NotFoundOrUnauthorized('User not found')
        result = _apply_level_up(user_id)
        expire(User, user_id, 'points', 'level')
    return result


def adjust_points(actor, user_id, delta):
    """Administrative correction of a balance. Clamps at zero, leaves level alone."""
    if actor is None or not actor.is_admin():
        raise NotFoundOrUnauthorized('Only administrators can adjust points')
    if isinstance(delta, bool) or not isinstance(delta, int):
        raise ValidationError('Point delta must be an integer')

    with atomic():
        changed = conditional_update(
            User,
            [User.id == user_id],
            points=case((User.points + delta < 0, 0), else_=User.points + delta),
        )
        if not changed:
            raise NotFoundOrUnauthorized('User not found')
        points, level = _balance(user_id)
        expire(User, user_id, 'points', 'level')

    logger.info('Admin %s adjusted points of user %s by %d', actor.id, user_id, delta)
    return {'points': points, 'level': level}


# ---------------------------------------------------------------------------
# Badges
# ---------------------------------------------------------------------------

def user_stats(user_id):
    """Aggregate the statistics badge criteria are evaluated against"""
    user = _load_user(user_id)

    devices_recycled = db.session.scalar(
        select(func.count(Device.id)).where(
            Device.user_id == user_id,
            Device.status.in_(IMPACT_STATUSES),
        )
    )
    pickups_completed = db.session.scalar(
        select(func.count(Pickup.id)).where(
            Pickup.user_id == user_id,
            Pickup.status == 'completed',
        )
    )
    water_saved, co2_saved = db.session.execute(
        select(
            func.coalesce(func.sum(ImpactReport.water_saved_liters), 0.0),
            func.coalesce(func.sum(ImpactReport.co2_saved_kg), 0.0),
        ).where(ImpactReport.user_id == user_id)
    ).one()
    points, level = _balance(user_id)

    days_active = 0
    if user.created_at is not None:
        days_active = max(0, (utcnow() - user.created_at).days)

    return UserStats(
        devices_recycled=devices_recycled or 0,
        pickups_completed=pickups_completed or 0,
        water_saved=float(water_saved or 0.0),
        co2_saved=float(co2_saved or 0.0),
        points=points,
        level=level,
        days_active=days_active,
    )


def _unearned_badges(user_id):
    owned = select(UserBadge.badge_id).where(UserBadge.user_id == user_id)
    return Badge.query.filter(Badge.is_active.is_(True), Badge.id.not_in(owned)).all()


def check_badges(user_id):
    """Award every badge the user now qualifies for.

    A badge row is written with an insert that yields to an existing
    (user, badge) row, so a concurrent evaluation cannot award it twice.
    Returns the newly awarded badges.
    """
    awarded = []
    with atomic():
        stats = user_stats(user_id)
        for badge in _unearned_badges(user_id):
            if not badge_qualifies(badge, stats):
                continue

            inserted = insert_ignore(
                UserBadge,
                ['user_id', 'badge_id'],
                user_id=user_id,
                badge_id=badge.id,
                earned_at=utcnow(),
            )
            if not inserted:
                logger.debug('Badge %s already held by user %s', badge.name, user_id)
                continue

            if badge.reward_points:
                credit_points(user_id, badge.reward_points)

            logger.info('User %s earned badge "%s"', user_id, badge.name)
            awarded.append({
                'id': badge.id,
                'name': badge.name,
                'reward_points': badge.reward_points,
            })
    return awarded


def badge_progress_report(user_id):
    """Every active badge with the user's earned flag and percentage progress"""
    stats = user_stats(user_id)
    earned = {
        ub.badge_id: ub.earned_at
        for ub in UserBadge.query.filter_by(user_id=user_id).all()
    }

    report = []
    badges = Badge.query.filter(Badge.is_active.is_(True)).order_by(Badge.name.asc()).all()
    for badge in badges:
        is_earned = badge.id in earned
        report.append({
            'id': badge.id,
            'name': badge.name,
            'description': badge.description,
            'badge_type': badge.badge_type,
            'rarity': badge.rarity,
            'icon': badge.icon,
            'criteria': badge.criteria or {},
            'reward_points': badge.reward_points,
            'earned': is_earned,
            'earned_at': earned[badge.id].isoformat() if is_earned else None,
            'progress': 100 if is_earned else badge_progress(badge, stats),
        })

    # Earned first, then by progress
    report.sort(key=lambda b: (not b['earned'], -b['progress']))
    return report


def seed_default_badges():
    """Insert the default badge catalogue, skipping names already present"""
    added = 0
    for definition in DEFAULT_BADGES:
        if insert_ignore(Badge, ['name'], id=generate_uuid(), is_active=True, **definition):
            added += 1
    db.session.commit()
    return added


# ---------------------------------------------------------------------------
# Challenges
# ---------------------------------------------------------------------------

def join_challenge(user_id, challenge_id):
    with atomic():
        _load_user(user_id)
        challenge = db.session.get(Challenge, challenge_id)
        if challenge is None or not challenge.is_active:
            raise NotFoundOrUnauthorized('Challenge not found or not active')

        now = utcnow()
        if challenge.start_date > now:
            raise ConflictError('Challenge has not started yet')
        if challenge.end_date < now:
            raise ConflictError('Challenge has already ended')

        joined = insert_ignore(
            UserChallengeProgress,
            ['user_id', 'challenge_id'],
            id=generate_uuid(),
            user_id=user_id,
            challenge_id=challenge_id,
            current_progress=0,
            completed=False,
            joined_at=now,
        )
        if not joined:
            raise ConflictError('You are already participating in this challenge')

    logger.info('User %s joined challenge "%s"', user_id, challenge.title)
    return {'challenge_id': challenge.id, 'title': challenge.title}


def advance_challenges(user_id, challenge_type, delta=1):
    """Add ``delta`` to the user's running challenges of a type.

    Completion is a latch: the flag flips with a conditional write, and only
    the write that flips it pays the reward. Returns completed challenges.
    """
    if isinstance(delta, bool) or not isinstance(delta, int) or delta <= 0:
        raise ValidationError('Challenge progress delta must be a positive integer')

    completed = []
    with atomic():
        now = utcnow()
        rows = db.session.execute(
            select(UserChallengeProgress.id, Challenge)
            .join(Challenge, UserChallengeProgress.challenge_id == Challenge.id)
            .where(
                UserChallengeProgress.user_id == user_id,
                UserChallengeProgress.completed.is_(False),
                Challenge.challenge_type == challenge_type,
                Challenge.is_active.is_(True),
                Challenge.start_date <= now,
                Challenge.end_date >= now,
            )
        ).all()

        for progress_id, challenge in rows:
            bumped = conditional_update(
                UserChallengeProgress,
                [UserChallengeProgress.id == progress_id, UserChallengeProgress.completed.is_(False)],
                current_progress=UserChallengeProgress.current_progress + delta,
            )
            if not bumped:
                continue

            latched = conditional_update(
                UserChallengeProgress,
                [
                    UserChallengeProgress.id == progress_id,
                    UserChallengeProgress.completed.is_(False),
                    UserChallengeProgress.current_progress >= challenge.target_value,
                ],
                completed=True,
                completed_at=now,
            )
            expire(UserChallengeProgress, progress_id)

            if latched:
                if challenge.reward_points:
                    credit_points(user_id, challenge.reward_points)
                logger.info('User %s completed challenge "%s"', user_id, challenge.title)
                completed.append({
                    'id': challenge.id,
                    'title': challenge.title,
                    'reward_points': challenge.reward_points,
                })
    return completed


def list_challenges(user_id, status='active'):
    if status not in CHALLENGE_FILTERS:
        raise ValidationError(f'status must be one of: {", ".join(CHALLENGE_FILTERS)}')

    now = utcnow()
    query = Challenge.query.filter(Challenge.is_active.is_(True))
    if status == 'active':
        query = query.filter(Challenge.start_date <= now, Challenge.end_date >= now)
    elif status == 'upcoming':
        query = query.filter(Challenge.start_date > now)
    elif status == 'completed':
        query = query.filter(Challenge.end_date < now)

    progress = {
        p.challenge_id: p
        for p in UserChallengeProgress.query.filter_by(user_id=user_id).all()
    }

    results = []
    for challenge in query.order_by(Challenge.end_date.asc()).all():
        mine = progress.get(challenge.id)
        data = challenge.to_dict()
        data.update({
            'is_participating': mine is not None,
            'user_progress': mine.current_progress if mine else 0,
            'user_completed': bool(mine.completed) if mine else False,
            'total_participants': challenge.participants.count(),
            'completed_participants': challenge.participants.filter_by(completed=True).count(),
        })
        results.append(data)
    return results


# ---------------------------------------------------------------------------
# Leaderboard
# ---------------------------------------------------------------------------

def _window_criteria(model, timeframe):
    if timeframe not in LEADERBOARD_WINDOWS:
        raise ValidationError(f'timeframe must be one of: {", ".join(LEADERBOARD_WINDOWS)}')
    criteria = [model.role == 'user', model.is_active.is_(True)]
    window = LEADERBOARD_WINDOWS[timeframe]
    if window is not None:
        criteria.append(model.created_at >= utcnow() - window)
    return criteria


def _rank_expression(timeframe):
    """1 + number of users in the window with strictly more points"""
    other = aliased(User)
    return 1 + (
        select(func.count(other.id))
        .where(*_window_criteria(other, timeframe), other.points > User.points)
        .correlate(User)
        .scalar_subquery()
    )


def leaderboard(timeframe='all', limit=20, offset=0):
    limit, offset = to_int(limit), to_int(offset)
    if limit is None or offset is None:
        raise ValidationError('limit and offset must be integers')
    limit = min(100, max(1, limit))
    offset = max(0, offset)

    devices_recycled = (
        select(func.count(Device.id))
        .where(Device.user_id == User.id, Device.status.in_(IMPACT_STATUSES))
        .correlate(User).scalar_subquery()
    )
    water_saved = (
        select(func.coalesce(func.sum(ImpactReport.water_saved_liters), 0.0))
        .where(ImpactReport.user_id == User.id)
        .correlate(User).scalar_subquery()
    )
    co2_saved = (
        select(func.coalesce(func.sum(ImpactReport.co2_saved_kg), 0.0))
        .where(ImpactReport.user_id == User.id)
        .correlate(User).scalar_subquery()
    )
    badges_earned = (
        select(func.count(UserBadge.badge_id))
        .where(UserBadge.user_id == User.id)
        .correlate(User).scalar_subquery()
    )

    rows = db.session.execute(
        select(
            User.id, User.name, User.points, User.level,
            _rank_expression(timeframe).label('rank'),
            devices_recycled.label('devices_recycled'),
            water_saved.label('water_saved'),
            co2_saved.label('co2_saved'),
            badges_earned.label('badges_earned'),
        )
        .where(*_window_criteria(User, timeframe))
        .order_by(User.points.desc(), User.name.asc())
        .limit(limit)
        .offset(offset)
    ).all()

    entries = [
        {
            'user_id': row.id,
            'name': row.name,
            'points': row.points,
            'level': row.level,
            'rank': row.rank,
            'devices_recycled': row.devices_recycled,
            'water_saved': float(row.water_saved),
            'co2_saved': float(row.co2_saved),
            'badges_earned': row.badges_earned,
        }
        for row in rows
    ]
    return {
        'leaderboard': entries,
        'timeframe': timeframe,
        'pagination': {
            'limit': limit,
            'offset': offset,
            'has_more': len(entries) == limit,
        },
    }


def rank_of(user_id, timeframe='all'):
    """Leaderboard position of a user, or None when outside the window"""
    row = db.session.execute(
        select(_rank_expression(timeframe))
        .where(User.id == user_id, *_window_criteria(User, timeframe))
    ).one_or_none()
    return row[0] if row else None


def gamification_snapshot(user_id):
    user = _load_user(user_id)
    points, level = _balance(user_id)

    total_users = db.session.scalar(
        select(func.count(User.id)).where(*_window_criteria(User, 'all'))
    )
    earned = (
        UserBadge.query.filter_by(user_id=user_id)
        .order_by(UserBadge.earned_at.desc())
        .all()
    )
    recent_cutoff = utcnow() - timedelta(days=30)
    target = next_level_points(level)

    return {
        'user_id': user.id,
        'points': points,
        'level': level,
        'rank': rank_of(user_id, 'all'),
        'total_users': total_users,
        'badges': [ub.to_dict() for ub in earned],
        'recent_achievements': [ub.to_dict() for ub in earned if ub.earned_at >= recent_cutoff][:5],
        'next_level_points': target,
        'points_to_next_level': max(0, target - points),
    }
