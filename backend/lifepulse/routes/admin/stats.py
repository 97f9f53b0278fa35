"""Admin stats routes."""
from datetime import datetime
from flask import jsonify
from sqlalchemy import func
from lifepulse import db
from lifepulse.models import User, BloodRequest, DonorAcceptance, ACTIVE_STATUSES
from lifepulse.utils.auth import token_required, admin_required
from lifepulse.utils.activity_logger import log_activity
from . import admin_bp


@admin_bp.route('/stats', methods=['GET'])
@token_required
@admin_required
def get_stats():
    """Aggregate dashboard statistics."""
    total_donors = User.query.filter_by(role='DONOR').count()
    available_donors = User.query.filter_by(role='DONOR', availability=True).count()
    total_requesters = User.query.filter_by(role='REQUESTER').count()

    by_status = dict(
        db.session.query(BloodRequest.status, func.count(BloodRequest.id))
        .group_by(BloodRequest.status)
        .all()
    )
    active_requests = sum(by_status.get(s, 0) for s in ACTIVE_STATUSES)

    today_start = datetime.utcnow().replace(hour=0, minute=0, second=0, microsecond=0)
    requests_today = BloodRequest.query.filter(BloodRequest.created_at >= today_start).count()
    completed_donations = DonorAcceptance.query.filter_by(status='COMPLETED').count()

    log_activity('admin_stats_viewed', 'admin_stats')

    return jsonify({
        'total_donors': total_donors,
        'available_donors': available_donors,
        'total_requesters': total_requesters,
        'total_requests': sum(by_status.values()),
        'active_requests': active_requests,
        'requests_by_status': by_status,
        'requests_today': requests_today,
        'completed_donations': completed_donations,
    }), 200
