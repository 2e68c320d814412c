"""
Pickup API routes.
"""
from flask import Blueprint, request, jsonify

from greencycle.extensions import limiter
from greencycle.services import scheduler
from greencycle.utils.auth import require_auth, require_role, current_user

pickups_bp = Blueprint('pickups', __name__)


@pickups_bp.route('/schedule', methods=['POST'])
@require_auth
@require_role('user')
@limiter.limit("10 per minute")
def schedule_pickup():
    """
    Schedule a pickup
    POST /api/pickups/schedule
    Body: {
        "device_ids": ["uuid", "uuid"],
        "ngo_id": "uuid",
        "pickup_date": "2024-01-15",
        "pickup_time_slot": "09:00-12:00",
        "pickup_address": "12 Green Street",
        "pickup_instructions": "Ring twice"
    }
    """
    data = request.get_json() or {}
    result = scheduler.schedule_pickup(
        current_user(),
        data.get('device_ids'),
        data.get('ngo_id'),
        data.get('pickup_date'),
        data.get('pickup_address'),
        pickup_time_slot=data.get('pickup_time_slot'),
        pickup_instructions=data.get('pickup_instructions'),
    )
    return jsonify({
        'success': True,
        'message': 'Pickup scheduled successfully',
        'pickup': result,
    }), 201


@pickups_bp.route('/my-pickups', methods=['GET'])
@require_auth
@require_role('user')
def my_pickups():
    """
    GET /api/pickups/my-pickups?status=scheduled&page=1&per_page=10
    """
    result = scheduler.list_user_pickups(
        current_user(),
        status=request.args.get('status'),
        page=request.args.get('page', 1, type=int),
        per_page=request.args.get('per_page', 10, type=int),
    )
    return jsonify({'success': True, **result}), 200


@pickups_bp.route('/ngo/assigned', methods=['GET'])
@require_auth
@require_role('ngo')
def ngo_pickups():
    """
    GET /api/pickups/ngo/assigned?status=scheduled&date=2024-01-15
    """
    result = scheduler.list_ngo_pickups(
        current_user(),
        status=request.args.get('status'),
        pickup_date=request.args.get('date'),
        page=request.args.get('page', 1, type=int),
        per_page=request.args.get('per_page', 10, type=int),
    )
    return jsonify({'success': True, **result}), 200


@pickups_bp.route('/<pickup_id>', methods=['GET'])
@require_auth
def get_pickup(pickup_id):
    pickup = scheduler.get_pickup(current_user(), pickup_id)
    return jsonify({'success': True, 'pickup': pickup}), 200


@pickups_bp.route('/<pickup_id>/status', methods=['PUT'])
@require_auth
@require_role('ngo')
def update_pickup_status(pickup_id):
    """
    Update pickup status (organization only)
    PUT /api/pickups/<id>/status
    Body: {"status": "confirmed", "driver_name": "...", "driver_phone": "...",
           "vehicle_details": "...", "estimated_arrival": "10:30", "notes": "...",
           "pickup_date": "2024-01-16"}
    """
    data = request.get_json() or {}
    details = {
        field: data[field]
        for field in (*scheduler.LOGISTICS_FIELDS, 'pickup_date')
        if field in data
    }
    result = scheduler.update_pickup_status(current_user(), pickup_id, data.get('status'), **details)

    return jsonify({
        'success': True,
        'message': 'Pickup status updated successfully',
        'pickup': result['pickup'].to_dict(),
        'badges_awarded': result['badges'],
        'challenges_completed': result['challenges'],
    }), 200


@pickups_bp.route('/<pickup_id>/cancel', methods=['PUT'])
@require_auth
@require_role('user')
def cancel_pickup(pickup_id):
    data = request.get_json(silent=True) or {}
    pickup = scheduler.cancel_pickup(current_user(), pickup_id, reason=data.get('reason'))
    return jsonify({
        'success': True,
        'message': 'Pickup cancelled successfully',
        'pickup': pickup.to_dict(),
    }), 200


@pickups_bp.route('/<pickup_id>/rate', methods=['POST'])
@require_auth
@require_role('user')
def rate_pickup(pickup_id):
    """
    Rate a completed pickup
    POST /api/pickups/<id>/rate
    Body: {"rating": 5, "feedback": "On time and friendly"}
    """
    data = request.get_json() or {}
    result = scheduler.rate_pickup(
        current_user(),
        pickup_id,
        data.get('rating'),
        feedback=data.get('feedback'),
    )
    return jsonify({
        'success': True,
        'message': 'Pickup rated successfully',
        **result,
    }), 200
