"""
Blood request routes: discovery, creation, acceptance, status updates and chat.
"""
from flask import Blueprint, request, jsonify, g, current_app
from lifepulse.errors import BadInput
from lifepulse.services import get_matcher, get_workflow
from lifepulse.services.request_workflow import expire_overdue_requests
from lifepulse.utils.auth import token_required, role_required
from lifepulse.utils.activity_logger import log_activity, log_security
from lifepulse.utils.validators import (
    parse_point, parse_max_distance, parse_blood_group, json_body,
)

requests_bp = Blueprint('requests', __name__)


@requests_bp.route('', methods=['GET'])
@token_required
@role_required('DONOR')
def list_nearby_requests():
    """Open requests near a point, for the donor's blood group unless another is given."""
    args = request.args
    try:
        lon, lat = parse_point(args.get('longitude'), args.get('latitude'))
    except BadInput:
        log_security('requests_list_invalid_coordinates', {'user_id': g.user_id, 'query': dict(args)})
        raise
    max_distance = parse_max_distance(args.get('maxDistance'),
                                      current_app.config.get('MATCH_RADIUS_METERS', 20000))
    blood_group = parse_blood_group(args.get('bloodGroup')) or g.user.blood_group

    expire_overdue_requests()
    matches = get_matcher().find_nearby_requests(lon, lat, max_distance, blood_group=blood_group)

    log_activity('nearby_requests_searched', 'blood_request',
                 details={'search_location': [lon, lat], 'max_distance': max_distance,
                          'blood_group': blood_group, 'requests_found': len(matches)})

    results = []
    for match in matches:
        item = match.item.to_dict()
        item['distance'] = round(match.distance_m)
        results.append(item)
    return jsonify({'requests': results, 'count': len(results)}), 200


@requests_bp.route('', methods=['POST'])
@token_required
@role_required('REQUESTER')
def create_request():
    data = json_body(required=True)

    blood_request, result = get_workflow().create_request(g.user, data)

    return jsonify({
        'message': 'Blood request created successfully',
        'request': blood_request.to_dict(),
        'notificationsSent': result.success_count > 0,
        'notificationError': result.error,
        'notifications': result.to_dict(),
    }), 201


@requests_bp.route('/mine', methods=['GET'])
@token_required
def my_requests():
    """Requests created by a requester, or accepted by a donor."""
    workflow = get_workflow()
    expire_overdue_requests()
    if g.user.is_donor:
        items = workflow.requests_for_donor(g.user_id)
    else:
        items = workflow.requests_for_requester(g.user_id)
    return jsonify({'requests': [r.to_dict() for r in items], 'count': len(items)}), 200


@requests_bp.route('/<int:request_id>', methods=['GET'])
@token_required
def get_request(request_id):
    blood_request = get_workflow().load(request_id)
    return jsonify({'request': blood_request.to_dict()}), 200


@requests_bp.route('/<int:request_id>/accept', methods=['POST'])
@token_required
@role_required('DONOR')
def accept_request(request_id):
    data = json_body()
    blood_request, notification_sent = get_workflow().accept_donor(
        request_id, g.user, notes=str(data.get('notes') or ''))

    return jsonify({
        'message': 'Request accepted successfully',
        'request': blood_request.to_dict(),
        'notificationSent': notification_sent,
    }), 200


@requests_bp.route('/<int:request_id>/donors/<int:donor_id>/status', methods=['PUT'])
@token_required
def update_donor_status(request_id, donor_id):
    data = json_body()
    blood_request = get_workflow().update_donor_status(
        request_id, donor_id, data.get('status'), notes=str(data.get('notes') or ''), actor=g.user)
    return jsonify({'message': 'Donor status updated successfully',
                    'request': blood_request.to_dict()}), 200


@requests_bp.route('/<int:request_id>/cancel', methods=['POST'])
@token_required
def cancel_request(request_id):
    blood_request = get_workflow().cancel_request(request_id, g.user)
    return jsonify({'message': 'Request cancelled successfully',
                    'request': blood_request.to_dict()}), 200


@requests_bp.route('/<int:request_id>/chat', methods=['POST'])
@token_required
def post_chat_message(request_id):
    data = json_body()
    chat_message = get_workflow().post_chat_message(request_id, g.user, data.get('message'))
    return jsonify(chat_message.to_dict()), 201


@requests_bp.route('/<int:request_id>/chat', methods=['GET'])
@token_required
def chat_history(request_id):
    messages = get_workflow().chat_history(request_id, g.user)
    return jsonify([m.to_dict() for m in messages]), 200
