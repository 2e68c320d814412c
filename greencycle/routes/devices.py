"""
Device API routes: valuation, submission, reads, removal and status transitions.
"""
from flask import Blueprint, request, jsonify

from greencycle.extensions import limiter
from greencycle.services import inventory, lifecycle, valuation
from greencycle.utils.auth import require_auth, require_role, current_user
from greencycle.utils.validators import clean_text

devices_bp = Blueprint('devices', __name__)


@devices_bp.route('/valuate', methods=['POST'])
@require_auth
def valuate_device():
    """
    Price a device without storing it
    POST /api/devices/valuate
    Body: {"device_type": "laptop", "condition": "good", "age_years": 2}
    """
    data = request.get_json() or {}
    result = valuation.calculate_device_value(
        valuation.normalize_device_type(data.get('device_type')),
        data.get('condition'),
        data.get('age_years', valuation.DEFAULT_AGE_YEARS),
    )
    return jsonify({'success': True, 'valuation': result}), 200


@devices_bp.route('', methods=['POST'])
@require_auth
@require_role('user')
@limiter.limit("30 per minute")
def submit_device():
    """
    Submit a device
    POST /api/devices
    Body: {
        "device_type": "smartphone",
        "brand": "Acme",
        "model": "X1",
        "condition": "good",
        "weight_kg": 0.2,
        "age_years": 1,
        "description": "Cracked back glass",
        "pickup_address": "12 Green Street",
        "recognition": {"device_type": "smartphone", "condition": "fair", "confidence": 0.91}
    }
    """
    data = request.get_json() or {}
    hint = data.pop('recognition', None)
    if hint is not None and not isinstance(hint, dict):
        hint = None

    device, result = valuation.submit_device(current_user(), data, hint=hint)

    return jsonify({
        'success': True,
        'message': 'Device uploaded successfully',
        'device': device.to_dict(),
        'valuation': result,
    }), 201


@devices_bp.route('/my-devices', methods=['GET'])
@require_auth
@require_role('user')
def my_devices():
    """
    GET /api/devices/my-devices?status=uploaded&page=1&per_page=10
    """
    result = inventory.list_user_devices(
        current_user(),
        status=request.args.get('status'),
        page=request.args.get('page', 1, type=int),
        per_page=request.args.get('per_page', 10, type=int),
    )
    return jsonify({'success': True, **result}), 200


@devices_bp.route('/ngo/assigned', methods=['GET'])
@require_auth
@require_role('ngo')
def ngo_devices():
    """
    GET /api/devices/ngo/assigned?status=received&page=1&per_page=10
    """
    result = inventory.list_ngo_devices(
        current_user(),
        status=request.args.get('status'),
        page=request.args.get('page', 1, type=int),
        per_page=request.args.get('per_page', 10, type=int),
    )
    return jsonify({'success': True, **result}), 200


@devices_bp.route('/<device_id>', methods=['GET'])
@require_auth
def get_device(device_id):
    return jsonify({'success': True, 'device': inventory.get_device(current_user(), device_id)}), 200


@devices_bp.route('/<device_id>', methods=['DELETE'])
@require_auth
@require_role('user', 'admin')
def delete_device(device_id):
    inventory.delete_device(current_user(), device_id)
    return jsonify({'success': True, 'message': 'Device deleted successfully'}), 200


@devices_bp.route('/<device_id>/status', methods=['PUT'])
@require_auth
@require_role('ngo', 'admin')
def update_device_status(device_id):
    """
    Move a device along its lifecycle
    PUT /api/devices/<id>/status
    Body: {"status": "recycled", "notes": "Shredded at plant 2"}
    """
    data = request.get_json() or {}
    result = lifecycle.transition_device(
        current_user(),
        device_id,
        data.get('status'),
        notes=clean_text(data.get('notes')),
    )

    impact = result['impact']
    return jsonify({
        'success': True,
        'message': 'Device status updated successfully',
        'device': result['device'].to_dict(),
        'impact': impact.to_dict() if impact else None,
        'badges_awarded': result['badges'],
        'challenges_completed': result['challenges'],
    }), 200
