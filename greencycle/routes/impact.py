"""
Environmental impact routes.
"""
from flask import Blueprint, jsonify

from greencycle.services import valuation
from greencycle.utils.auth import require_auth, require_role, current_user

impact_bp = Blueprint('impact', __name__)


@impact_bp.route('/dashboard', methods=['GET'])
@require_auth
@require_role('user')
def dashboard():
    return jsonify({
        'success': True,
        'impact': valuation.impact_summary(current_user()),
    }), 200


@impact_bp.route('/global', methods=['GET'])
def global_impact():
    return jsonify({
        'success': True,
        'impact': valuation.global_impact_summary(),
    }), 200
