"""
Gamification routes: profile, leaderboard, badges and challenges.
"""
from flask import Blueprint, request, jsonify

from greencycle.services import gamification
from greencycle.utils.auth import require_auth, current_user

gamification_bp = Blueprint('gamification', __name__)


@gamification_bp.route('/profile', methods=['GET'])
@require_auth
def profile():
    user = current_user()
    return jsonify({
        'success': True,
        'profile': gamification.gamification_snapshot(user.id),
    }), 200


@gamification_bp.route('/leaderboard', methods=['GET'])
@require_auth
def leaderboard():
    """
    GET /api/gamification/leaderboard?timeframe=weekly&limit=20&offset=0
    """
    user = current_user()
    timeframe = request.args.get('timeframe', 'all')
    result = gamification.leaderboard(
        timeframe=timeframe,
        limit=request.args.get('limit', 20, type=int),
        offset=request.args.get('offset', 0, type=int),
    )
    result['user_rank'] = gamification.rank_of(user.id, timeframe)
    return jsonify({'success': True, **result}), 200


@gamification_bp.route('/badges', methods=['GET'])
@require_auth
def badges():
    user = current_user()
    report = gamification.badge_progress_report(user.id)
    return jsonify({
        'success': True,
        'badges': report,
        'earned_count': sum(1 for badge in report if badge['earned']),
        'total_count': len(report),
    }), 200


@gamification_bp.route('/challenges', methods=['GET'])
@require_auth
def challenges():
    """
    GET /api/gamification/challenges?status=active|upcoming|completed|all
    """
    user = current_user()
    result = gamification.list_challenges(user.id, status=request.args.get('status', 'active'))
    return jsonify({'success': True, 'challenges': result}), 200


@gamification_bp.route('/challenges/<challenge_id>/join', methods=['POST'])
@require_auth
def join_challenge(challenge_id):
    user = current_user()
    result = gamification.join_challenge(user.id, challenge_id)
    return jsonify({
        'success': True,
        'message': f"Joined challenge: {result['title']}",
        'challenge': result,
    }), 200
