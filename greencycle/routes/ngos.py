"""
Organization routes: public discovery, self-service profile and admin verification.
"""
from flask import Blueprint, request, jsonify

from greencycle.extensions import limiter
from greencycle.services import organizations, proximity
from greencycle.utils.auth import require_auth, require_role, current_user

ngos_bp = Blueprint('ngos', __name__)


@ngos_bp.route('', methods=['GET'])
def list_ngos():
    """
    Browse verified organizations
    GET /api/ngos?city=Pune&services=laptops,phones&latitude=18.5&longitude=73.8&radius=25
    """
    ngos = proximity.list_organizations(
        lat=request.args.get('latitude'),
        lon=request.args.get('longitude'),
        radius_km=request.args.get('radius'),
        services=request.args.get('services'),
        city=request.args.get('city'),
    )
    return jsonify({'success': True, 'ngos': ngos, 'total': len(ngos)}), 200


@ngos_bp.route('/nearest', methods=['POST'])
@limiter.limit("30 per minute")
def nearest_ngos():
    """
    Find the nearest organizations
    POST /api/ngos/nearest
    Body: {"latitude": 18.52, "longitude": 73.85, "radius": 50,
           "services": ["laptops"], "limit": 10}
    """
    data = request.get_json() or {}
    ngos = proximity.find_nearest(
        data.get('latitude'),
        data.get('longitude'),
        radius_km=data.get('radius'),
        services=data.get('services'),
        limit=data.get('limit'),
    )
    return jsonify({
        'success': True,
        'message': f'Found {len(ngos)} NGOs',
        'ngos': ngos,
    }), 200


@ngos_bp.route('/services/list', methods=['GET'])
def list_services():
    return jsonify({'success': True, 'services': proximity.list_services()}), 200


@ngos_bp.route('/<ngo_id>', methods=['GET'])
def get_ngo(ngo_id):
    return jsonify({'success': True, 'ngo': proximity.get_organization(ngo_id)}), 200


@ngos_bp.route('/profile/me', methods=['GET'])
@require_auth
@require_role('ngo')
def my_profile():
    return jsonify({'success': True, **organizations.organization_profile(current_user())}), 200


@ngos_bp.route('/profile/me', methods=['PUT'])
@require_auth
@require_role('ngo')
def update_my_profile():
    """
    Update the caller's organization profile
    PUT /api/ngos/profile/me
    Body: {"name": "...", "address": "...", "city": "Pune", "contact_phone": "...",
           "latitude": 18.52, "longitude": 73.85, "services": ["laptops"],
           "capacity_per_day": 12}
    """
    organization = organizations.update_organization_profile(current_user(), request.get_json() or {})
    return jsonify({
        'success': True,
        'message': 'NGO profile updated successfully',
        'ngo': organization.to_dict(),
    }), 200


@ngos_bp.route('/admin/<ngo_id>/verification', methods=['PUT'])
@require_auth
@require_role('admin')
def update_verification(ngo_id):
    """
    PUT /api/ngos/admin/<ngo_id>/verification
    Body: {"verification_status": "verified"}
    """
    data = request.get_json() or {}
    ngo = organizations.set_verification(current_user(), ngo_id, data.get('verification_status'))
    return jsonify({
        'success': True,
        'message': f"NGO verification status updated to {ngo['verification_status']}",
        'ngo': ngo,
    }), 200
