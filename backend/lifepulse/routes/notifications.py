"""
Manual push fan-out from a requester to chosen donors.
"""
from flask import Blueprint, jsonify, g
from lifepulse.errors import BadInput
from lifepulse.models import User
from lifepulse.services import get_dispatcher
from lifepulse.services.notifications import recipients_for
from lifepulse.utils.auth import token_required, role_required
from lifepulse.utils.activity_logger import log_activity, log_security
from lifepulse.utils.rate_limiter import rate_limit, push_limiter
from lifepulse.utils.validators import json_body

notifications_bp = Blueprint('notifications', __name__)


@notifications_bp.route('/push', methods=['POST'])
@token_required
@role_required('REQUESTER')
@rate_limit(push_limiter)
def push():
    """Send a custom notification to available donors by id."""
    data = json_body()
    donor_ids = data.get('donorIds')
    title = data.get('title')
    body = data.get('body')

    if not isinstance(donor_ids, list) or not donor_ids:
        log_security('push_notification_invalid_donor_ids', {'user_id': g.user_id, 'donor_ids': donor_ids})
        raise BadInput('donorIds array is required')
    if not isinstance(title, str) or not isinstance(body, str) or not title or not body:
        log_security('push_notification_missing_content', {'user_id': g.user_id})
        raise BadInput('title and body are required')

    try:
        donor_ids = [int(i) for i in donor_ids]
    except (TypeError, ValueError):
        raise BadInput('donorIds must be user ids')

    donors = (User.query
              .filter(User.id.in_(donor_ids),
                      User.role == 'DONOR',
                      User.availability.is_(True),
                      User.is_active.is_(True),
                      User.push_token.isnot(None))
              .order_by(User.id)
              .all())
    if not donors:
        log_security('push_notification_no_valid_tokens', {'user_id': g.user_id, 'donor_ids': donor_ids})
        raise BadInput('No valid FCM tokens found for available donors')

    extra = data.get('data') if isinstance(data.get('data'), dict) else {}
    result = get_dispatcher().notify_many(recipients_for(donors), title, body, extra)

    log_activity('push_notification_sent', 'notification',
                 details={'donor_ids': donor_ids,
                          'recipient_count': len(donors),
                          'success_count': result.success_count,
                          'failure_count': result.failure_count,
                          'notification_type': extra.get('type', 'custom')})

    return jsonify({
        'message': 'Notifications sent successfully',
        'successCount': result.success_count,
        'failureCount': result.failure_count,
        'totalTokens': len(donors),
        'error': result.error,
    }), 200
