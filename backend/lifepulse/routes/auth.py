"""
Registration and current-user routes.
"""
from flask import Blueprint, jsonify, g
from sqlalchemy.exc import IntegrityError
from lifepulse import db
from lifepulse.errors import BadInput
from lifepulse.models import User
from lifepulse.utils.auth import generate_token, token_required
from lifepulse.utils.activity_logger import log_activity, log_security
from lifepulse.utils.validators import (
    validate_registration, parse_identifier, parse_point, json_body,
)
from lifepulse.utils.rate_limiter import rate_limit, registration_limiter

auth_bp = Blueprint('auth', __name__)


@auth_bp.route('/register', methods=['POST'])
@rate_limit(registration_limiter)
def register():
    """Register a donor or requester and issue an access token."""
    data = json_body(required=True)

    errors = validate_registration(data)
    if errors:
        log_security('registration_validation_failed', {'errors': errors})
        raise BadInput('Validation failed', details=errors)

    identifiers = [parse_identifier(data[key]) for key in ('email', 'phone') if data.get(key)]

    for identifier in identifiers:
        if User.find_by_identifier(identifier):
            log_security('registration_duplicate_identifier', {'kind': identifier.kind})
            return jsonify({'error': 'Conflict',
                            'message': f'A user with this {identifier.kind} already exists'}), 409

    user = User(
        name=data['name'].strip(),
        role=data['role'],
        blood_group=data['bloodGroup'],
        availability=data['role'] == 'DONOR',
    )
    for identifier in identifiers:
        setattr(user, identifier.kind, identifier.value)

    if data.get('longitude') is not None or data.get('latitude') is not None:
        user.update_location(*parse_point(data.get('longitude'), data.get('latitude')))

    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify({'error': 'Conflict', 'message': 'A user with these details already exists'}), 409

    log_activity('user_registered', 'user', resource_id=user.id,
                 details={'role': user.role, 'blood_group': user.blood_group,
                          'identifiers': [i.kind for i in identifiers]},
                 user_id=user.id)

    return jsonify({
        'token': generate_token(user.id, user.role),
        'user': user.to_dict(include_contact=True),
    }), 201


@auth_bp.route('/me', methods=['GET'])
@token_required
def me():
    return jsonify({'user': g.user.to_dict(include_contact=True)}), 200
