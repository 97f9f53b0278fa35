"""
User profile, location and donor discovery routes.
"""
from flask import Blueprint, request, jsonify, g, current_app
from lifepulse import db
from lifepulse.errors import BadInput, Forbidden, NotFound
from lifepulse.models import User, DonorAcceptance, ChatMessage, BloodRequest
from lifepulse.services import get_matcher, get_workflow
from lifepulse.utils.auth import token_required, role_required
from lifepulse.utils.activity_logger import log_activity, log_security
from lifepulse.utils.validators import (
    parse_point, parse_max_distance, parse_blood_group, validate_profile_update, json_body,
)

users_bp = Blueprint('users', __name__)


def _search_point(args):
    try:
        lon, lat = parse_point(args.get('longitude'), args.get('latitude'))
    except BadInput:
        log_security('nearby_search_invalid_coordinates', {'user_id': g.user_id, 'query': dict(args)})
        raise
    max_distance = parse_max_distance(args.get('maxDistance'),
                                      current_app.config.get('MATCH_RADIUS_METERS', 20000))
    return lon, lat, max_distance


@users_bp.route('/fcm-token', methods=['POST'])
@token_required
def register_push_token():
    data = json_body()
    token = str(data.get('fcmToken') or '').strip()
    if not token:
        raise BadInput('FCM token is required')

    g.user.push_token = token
    db.session.commit()

    log_activity('push_token_registered', 'user', resource_id=g.user_id)
    return jsonify({'message': 'FCM token registered successfully', 'success': True,
                    'userId': g.user_id}), 200


@users_bp.route('/me/location', methods=['PUT'])
@token_required
def update_location():
    """Update the caller's location and, optionally, their push token."""
    data = json_body()
    try:
        lon, lat = parse_point(data.get('longitude'), data.get('latitude'))
    except BadInput as e:
        log_security('location_update_validation_failed', {'user_id': g.user_id, 'error': e.message})
        raise

    old_location = g.user.location_dict()
    g.user.update_location(lon, lat)
    if data.get('fcmToken'):
        g.user.push_token = str(data['fcmToken'])
    db.session.commit()

    log_activity('location_updated', 'user', resource_id=g.user_id,
                 details={'old_location': old_location, 'new_location': [lon, lat],
                          'push_token_updated': bool(data.get('fcmToken'))})

    return jsonify({'message': 'Location updated successfully',
                    'location': g.user.location_dict()}), 200


@users_bp.route('/me/availability', methods=['PUT'])
@token_required
def toggle_availability():
    if not g.user.is_donor:
        log_security('availability_toggle_unauthorized', {'user_id': g.user_id, 'role': g.user.role})
        raise Forbidden('Only donors can toggle availability')

    availability = g.user.toggle_availability()
    db.session.commit()

    log_activity('availability_toggled', 'user', resource_id=g.user_id,
                 details={'availability': availability})
    return jsonify({
        'message': f"Availability {'enabled' if availability else 'disabled'} successfully",
        'availability': availability,
    }), 200


@users_bp.route('/me/profile', methods=['PUT'])
@token_required
def update_profile():
    data = json_body()
    errors = validate_profile_update(data)
    if errors:
        raise BadInput('Validation failed', details=errors)

    user = g.user
    updated = []
    if data.get('name') is not None:
        user.name = str(data['name']).strip()
        updated.append('name')

    contact = data.get('emergencyContact')
    if contact is not None:
        if 'name' in contact:
            user.emergency_contact_name = str(contact['name'] or '').strip() or None
        if 'phone' in contact:
            user.emergency_contact_phone = str(contact['phone'] or '').strip() or None
        if 'relationship' in contact:
            user.emergency_contact_relationship = str(contact['relationship'] or '').strip() or None
        updated.append('emergencyContact')

    db.session.commit()

    log_activity('profile_updated', 'user', resource_id=user.id, details={'fields': updated})
    return jsonify({'message': 'Profile updated successfully',
                    'user': user.to_dict(include_contact=True)}), 200


@users_bp.route('/me/donations', methods=['GET'])
@token_required
def donation_history():
    """Requests the caller accepted (donors) or created (requesters)."""
    workflow = get_workflow()
    if g.user.is_donor:
        donations = workflow.requests_for_donor(g.user_id)
    else:
        donations = workflow.requests_for_requester(g.user_id)

    last = g.user.last_donation_date
    return jsonify({
        'donations': [r.to_dict() for r in donations],
        'totalDonations': g.user.total_donations or 0,
        'lastDonatedAt': last.isoformat() if last else None,
    }), 200


@users_bp.route('/me/record-donation', methods=['POST'])
@token_required
@role_required('DONOR')
def record_donation():
    user = g.user
    old_total = user.total_donations or 0
    user.record_donation()
    db.session.commit()

    log_activity('donation_recorded', 'user', resource_id=user.id,
                 details={'old_total_donations': old_total,
                          'new_total_donations': user.total_donations})
    return jsonify({
        'message': 'Donation recorded successfully',
        'lastDonatedAt': user.last_donation_date.isoformat(),
        'totalDonations': user.total_donations,
    }), 200


@users_bp.route('/nearby-donors', methods=['GET'])
@token_required
def nearby_donors():
    lon, lat, max_distance = _search_point(request.args)
    blood_group = parse_blood_group(request.args.get('bloodGroup'))

    matches = get_matcher().find_nearby_donors(lon, lat, max_distance, blood_group=blood_group)

    log_activity('nearby_donors_searched', 'user',
                 details={'search_location': [lon, lat], 'max_distance': max_distance,
                          'blood_group': blood_group, 'donors_found': len(matches)})

    donors = []
    for match in matches:
        donor = match.item.to_dict()
        donor['distance'] = round(match.distance_m)
        donors.append(donor)
    return jsonify({'donors': donors, 'count': len(donors), 'searchRadius': max_distance}), 200


@users_bp.route('/nearby-requesters', methods=['GET'])
@token_required
def nearby_requesters():
    lon, lat, max_distance = _search_point(request.args)

    matches = get_matcher().find_nearby_requesters(lon, lat, max_distance)

    log_activity('nearby_requesters_searched', 'user',
                 details={'search_location': [lon, lat], 'max_distance': max_distance,
                          'requesters_found': len(matches)})

    requesters = []
    for match in matches:
        requester = match.item.to_dict()
        requester['distance'] = round(match.distance_m)
        requesters.append(requester)
    return jsonify({'requesters': requesters, 'count': len(requesters),
                    'searchRadius': max_distance}), 200


@users_bp.route('/me', methods=['DELETE'])
@token_required
def delete_account():
    """
    Delete the caller's account.
    Requesters with open requests are refused. Otherwise a requester's
    requests go with the account, and a donor's acceptances stay on the
    requests with the donor reference cleared.
    """
    user = g.user
    user_id = user.id
    if user.is_requester:
        active = len(get_workflow().active_requests_for(user.id))
        if active:
            log_security('account_deletion_blocked_active_requests',
                         {'user_id': user.id, 'active_requests': active})
            raise BadInput('Cannot delete account with active blood requests')

    snapshot = {'role': user.role, 'blood_group': user.blood_group,
                'total_donations': user.total_donations}

    DonorAcceptance.query.filter_by(donor_id=user.id).update(
        {DonorAcceptance.donor_id: None}, synchronize_session=False)
    ChatMessage.query.filter_by(sender_id=user.id).delete(synchronize_session=False)
    for blood_request in BloodRequest.query.filter_by(requester_id=user.id).all():
        db.session.delete(blood_request)
    db.session.delete(user)
    db.session.commit()

    log_activity('account_deleted', 'user', resource_id=user_id, details=snapshot,
                 user_id=user_id)
    return jsonify({'message': 'Account deleted successfully'}), 200


@users_bp.route('/<int:user_id>/eligibility', methods=['GET'])
def eligibility(user_id):
    user = db.session.get(User, user_id)
    if not user:
        raise NotFound('User not found')
    return jsonify(user.eligibility()), 200


@users_bp.route('/leaderboard', methods=['GET'])
def leaderboard():
    """Top ten donors by recorded donations."""
    top = (User.query.filter_by(role='DONOR')
           .order_by(User.total_donations.desc(), User.id.asc())
           .limit(10).all())
    return jsonify([
        {'name': u.name, 'bloodGroup': u.blood_group, 'totalDonations': u.total_donations or 0}
        for u in top
    ]), 200
