"""Admin blood request routes."""
import logging
from flask import request, jsonify, g
from lifepulse.errors import BadInput
from lifepulse.models import BloodRequest, REQUEST_STATUSES, URGENCIES, BLOOD_GROUPS
from lifepulse.services import get_workflow
from lifepulse.services.request_workflow import expire_overdue_requests
from lifepulse.utils.auth import token_required, admin_required
from lifepulse.utils.activity_logger import log_activity
from lifepulse.utils.validators import json_body
from . import admin_bp

logger = logging.getLogger(__name__)


@admin_bp.route('/requests', methods=['GET'])
@token_required
@admin_required
def list_requests():
    """List blood requests with status, blood group and urgency filters."""
    status_filter = request.args.get('status')
    blood_group = request.args.get('bloodGroup')
    urgency = request.args.get('urgency')
    limit = min(request.args.get('limit', 50, type=int), 200)
    offset = max(request.args.get('offset', 0, type=int), 0)

    if status_filter and status_filter not in REQUEST_STATUSES:
        raise BadInput('Invalid status filter')
    if blood_group and blood_group not in BLOOD_GROUPS:
        raise BadInput('Invalid blood group filter')
    if urgency and urgency not in URGENCIES:
        raise BadInput('Invalid urgency filter')

    expire_overdue_requests()

    query = BloodRequest.query
    if status_filter:
        query = query.filter_by(status=status_filter)
    if blood_group:
        query = query.filter_by(blood_group=blood_group)
    if urgency:
        query = query.filter_by(urgency=urgency)

    query = query.order_by(BloodRequest.created_at.desc(), BloodRequest.id.desc())

    total_count = query.count()
    items = query.offset(offset).limit(limit).all()

    result = []
    for item in items:
        data = item.to_dict(include_donors=False)
        data['adminNotes'] = item.admin_notes
        result.append(data)

    summary = {status: BloodRequest.query.filter_by(status=status).count()
               for status in REQUEST_STATUSES}

    log_activity('admin_requests_listed', 'blood_request',
                 details={'count': len(result), 'status': status_filter})

    return jsonify({
        'requests': result,
        'total_count': total_count,
        'summary': summary,
    }), 200


@admin_bp.route('/requests/<int:request_id>', methods=['GET'])
@token_required
@admin_required
def get_request(request_id):
    blood_request = get_workflow().load(request_id)
    data = blood_request.to_dict()
    data['adminNotes'] = blood_request.admin_notes
    data['chatMessages'] = len(blood_request.chat_messages)
    return jsonify(data), 200


@admin_bp.route('/requests/<int:request_id>/status', methods=['PUT'])
@token_required
@admin_required
def set_request_status(request_id):
    """Override a request's status. The lifecycle still only moves forward."""
    data = json_body()
    new_status = data.get('status')
    if not new_status:
        raise BadInput('status is required')

    admin_notes = str(data.get('admin_notes') or '') or None
    blood_request = get_workflow().set_status(request_id, new_status, admin_notes=admin_notes)

    log_activity('admin_request_status_set', 'blood_request', resource_id=request_id,
                 details={'status': new_status, 'admin_id': g.user_id})

    result = blood_request.to_dict()
    result['adminNotes'] = blood_request.admin_notes
    return jsonify(result), 200
