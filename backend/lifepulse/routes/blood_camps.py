"""
Blood camp routes: public listing and detail, admin create/update/delete.
"""
from flask import Blueprint, request, jsonify, g, current_app
from lifepulse import db
from lifepulse.errors import BadInput, NotFound
from lifepulse.models import BloodCamp, CAMP_STATUSES
from lifepulse.services import get_matcher
from lifepulse.services.matcher import open_camps_query
from lifepulse.utils.auth import token_required, admin_required
from lifepulse.utils.activity_logger import log_activity, log_security
from lifepulse.utils.validators import (
    json_body, parse_datetime, parse_max_distance, parse_point, validate_blood_camp,
)

blood_camps_bp = Blueprint('blood_camps', __name__)


def _load_camp(camp_id):
    camp = db.session.get(BloodCamp, camp_id)
    if camp is None:
        raise NotFound('Blood camp not found')
    return camp


def _apply_camp_fields(camp, data):
    location = data['location']
    organizer = data['organizer']
    lon, lat = parse_point(*location['coordinates'])

    camp.name = data['name'].strip()
    camp.description = data['description'].strip()
    camp.longitude = lon
    camp.latitude = lat
    camp.address = location['address'].strip()
    camp.city = location['city'].strip()
    camp.date = parse_datetime(data['date'])
    camp.start_time = data['startTime'].strip()
    camp.end_time = data['endTime'].strip()
    camp.organizer_name = organizer['name'].strip()
    camp.organizer_phone = organizer['phone'].strip()
    camp.organizer_email = str(organizer.get('email') or '').strip().lower() or None
    camp.capacity = data['capacity']
    camp.blood_groups = list(data['bloodGroups'])
    camp.requirements = list(data.get('requirements') or [])
    camp.notes = str(data.get('notes') or '').strip() or None


@blood_camps_bp.route('', methods=['GET'])
def list_camps():
    """Camps near a point when coordinates are given, otherwise the next upcoming camps."""
    args = request.args
    if args.get('longitude') or args.get('latitude'):
        max_distance = parse_max_distance(args.get('maxDistance'),
                                          current_app.config.get('MATCH_RADIUS_METERS', 20000))
        matches = get_matcher().find_nearby_camps(args.get('longitude'), args.get('latitude'),
                                                  max_distance)
        camps = []
        for match in matches:
            camp = match.item.to_dict()
            camp['distance'] = round(match.distance_m)
            camps.append(camp)
    else:
        limit = min(max(args.get('limit', 20, type=int), 1), 100)
        query = open_camps_query(BloodCamp.query).order_by(BloodCamp.date.asc(), BloodCamp.id.asc())
        camps = [camp.to_dict() for camp in query.limit(limit).all()]

    return jsonify({'camps': camps, 'count': len(camps)}), 200


@blood_camps_bp.route('/<int:camp_id>', methods=['GET'])
def get_camp(camp_id):
    return jsonify(_load_camp(camp_id).to_dict()), 200


@blood_camps_bp.route('', methods=['POST'])
@token_required
@admin_required
def create_camp():
    data = json_body(required=True)
    errors = validate_blood_camp(data)
    if errors:
        log_security('blood_camp_creation_validation_failed', {'errors': errors})
        raise BadInput('Validation failed', details=errors)

    camp = BloodCamp()
    _apply_camp_fields(camp, data)
    camp.status = 'UPCOMING'
    camp.advance_status()
    db.session.add(camp)
    db.session.commit()

    log_activity('blood_camp_created', 'blood_camp', resource_id=camp.id,
                 details={'name': camp.name, 'city': camp.city})
    return jsonify({'message': 'Blood camp created successfully', 'camp': camp.to_dict()}), 201


@blood_camps_bp.route('/<int:camp_id>', methods=['PUT'])
@token_required
@admin_required
def update_camp(camp_id):
    """Replace a camp's details. status and isActive may also be set here."""
    camp = _load_camp(camp_id)
    data = json_body(required=True)
    errors = validate_blood_camp(data)
    status = data.get('status')
    if status is not None and status not in CAMP_STATUSES:
        errors.append(f'Status must be one of {", ".join(CAMP_STATUSES)}')
    is_active = data.get('isActive')
    if is_active is not None and not isinstance(is_active, bool):
        errors.append('isActive must be true or false')
    if errors:
        log_security('blood_camp_update_validation_failed', {'camp_id': camp_id, 'errors': errors})
        raise BadInput('Validation failed', details=errors)

    _apply_camp_fields(camp, data)
    if status is not None:
        camp.status = status
    if is_active is not None:
        camp.is_active = is_active
    camp.advance_status()
    db.session.commit()

    log_activity('blood_camp_updated', 'blood_camp', resource_id=camp.id,
                 details={'name': camp.name, 'status': camp.status, 'admin_id': g.user_id})
    return jsonify({'message': 'Blood camp updated successfully', 'camp': camp.to_dict()}), 200


@blood_camps_bp.route('/<int:camp_id>', methods=['DELETE'])
@token_required
@admin_required
def delete_camp(camp_id):
    camp = _load_camp(camp_id)
    name = camp.name
    db.session.delete(camp)
    db.session.commit()

    log_activity('blood_camp_deleted', 'blood_camp', resource_id=camp_id, details={'name': name})
    return jsonify({'message': 'Blood camp deleted successfully'}), 200
