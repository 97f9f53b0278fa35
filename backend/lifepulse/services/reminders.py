"""
Eligibility reminder job: tell donors when their 90-day cooldown is over.
"""
import logging
from datetime import datetime, timedelta
from sqlalchemy import or_
from lifepulse import db
from lifepulse.models import User, ELIGIBILITY_WINDOW_DAYS
from lifepulse.utils.activity_logger import log_system_event

logger = logging.getLogger(__name__)


def donors_due_for_reminder(now=None):
    """Donors with a push token whose last donation is at least 90 days old
    and who have not been reminded since that donation."""
    now = now or datetime.utcnow()
    cutoff = now - timedelta(days=ELIGIBILITY_WINDOW_DAYS)
    return User.query.filter(
        User.role == 'DONOR',
        User.is_active.is_(True),
        User.push_token.isnot(None),
        User.last_donation_date.isnot(None),
        User.last_donation_date <= cutoff,
        or_(
            User.last_eligibility_reminder_at.is_(None),
            User.last_eligibility_reminder_at < User.last_donation_date,
        ),
    ).order_by(User.id).all()


def send_eligibility_reminders(dispatcher, now=None):
    """Send one reminder per due donor. Returns {'sent': n, 'failed': m}."""
    now = now or datetime.utcnow()
    sent = 0
    failed = 0

    for user in donors_due_for_reminder(now):
        try:
            if dispatcher.eligibility_reminder(user):
                user.last_eligibility_reminder_at = now
                db.session.commit()
                sent += 1
                log_system_event('eligibility_reminder_sent', {'user_id': user.id})
            else:
                failed += 1
                log_system_event('eligibility_reminder_failed', {'user_id': user.id})
        except Exception as e:
            db.session.rollback()
            failed += 1
            logger.error("Eligibility reminder for user %s failed: %s", user.id, e)

    return {'sent': sent, 'failed': failed}
