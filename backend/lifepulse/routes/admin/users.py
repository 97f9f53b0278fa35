"""Admin user management routes."""
import logging
from flask import request, jsonify, g
from sqlalchemy import or_
from lifepulse import db
from lifepulse.errors import BadInput, Forbidden, NotFound
from lifepulse.models import User, BloodRequest, DonorAcceptance, ROLES, BLOOD_GROUPS
from lifepulse.utils.auth import token_required, admin_required
from lifepulse.utils.activity_logger import log_activity
from lifepulse.utils.validators import json_body
from . import admin_bp

logger = logging.getLogger(__name__)


def _load_user(user_id):
    user = db.session.get(User, user_id)
    if not user:
        raise NotFound('User not found')
    return user


@admin_bp.route('/users', methods=['GET'])
@token_required
@admin_required
def list_users():
    """List users with role, blood group, active-state and text filters."""
    role = (request.args.get('role') or '').upper()
    blood_group = request.args.get('bloodGroup')
    status_filter = request.args.get('status')
    search = (request.args.get('search') or '').strip()
    limit = min(request.args.get('limit', 50, type=int), 200)
    offset = max(request.args.get('offset', 0, type=int), 0)

    if role and role not in ROLES:
        raise BadInput('Invalid role filter')
    if blood_group and blood_group not in BLOOD_GROUPS:
        raise BadInput('Invalid blood group filter')
    if status_filter and status_filter not in ('active', 'inactive'):
        raise BadInput('Status filter must be active or inactive')

    query = User.query
    if role:
        query = query.filter_by(role=role)
    if blood_group:
        query = query.filter_by(blood_group=blood_group)
    if status_filter:
        query = query.filter_by(is_active=status_filter == 'active')
    if search:
        pattern = f'%{search}%'
        query = query.filter(or_(User.name.ilike(pattern),
                                 User.email.ilike(pattern),
                                 User.phone.ilike(pattern)))

    query = query.order_by(User.created_at.desc(), User.id.desc())
    total_count = query.count()
    users = query.offset(offset).limit(limit).all()

    log_activity('admin_users_listed', 'user',
                 details={'count': len(users), 'role': role or None, 'search': search or None})

    return jsonify({
        'users': [u.to_dict(include_contact=True) for u in users],
        'total_count': total_count,
    }), 200


@admin_bp.route('/users/<int:user_id>', methods=['GET'])
@token_required
@admin_required
def get_user(user_id):
    """A user with the requests they created or accepted, newest first."""
    user = _load_user(user_id)

    accepted_ids = db.session.query(DonorAcceptance.request_id).filter_by(donor_id=user.id)
    requests = (BloodRequest.query
                .filter(or_(BloodRequest.requester_id == user.id,
                            BloodRequest.id.in_(accepted_ids)))
                .order_by(BloodRequest.created_at.desc(), BloodRequest.id.desc())
                .all())

    log_activity('admin_user_viewed', 'user', resource_id=user.id)

    return jsonify({
        'user': user.to_dict(include_contact=True),
        'requests': [r.to_dict(include_donors=False) for r in requests],
    }), 200


@admin_bp.route('/users/<int:user_id>/status', methods=['PUT'])
@token_required
@admin_required
def set_user_status(user_id):
    """Activate or deactivate an account. Deactivated users cannot use their tokens."""
    user = _load_user(user_id)
    data = json_body(required=True)
    is_active = data.get('isActive')
    if not isinstance(is_active, bool):
        raise BadInput('isActive must be true or false')

    if not is_active and user.is_admin:
        raise Forbidden('Cannot deactivate an admin user')

    old_status = user.is_active
    user.is_active = is_active
    db.session.commit()

    log_activity('admin_user_status_set', 'user', resource_id=user.id,
                 details={'old_is_active': old_status, 'new_is_active': is_active,
                          'admin_id': g.user_id})

    return jsonify({
        'message': f"User {'activated' if is_active else 'deactivated'} successfully",
        'user': user.to_dict(include_contact=True),
    }), 200
