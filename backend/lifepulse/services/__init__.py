from flask import current_app
from lifepulse import db
from .matcher import ProximityMatcher, Match
from .notifications import NotificationDispatcher, NotificationResult, Recipient
from .request_workflow import RequestWorkflow


def get_dispatcher() -> NotificationDispatcher:
    return current_app.extensions['notification_dispatcher']


def get_matcher() -> ProximityMatcher:
    return ProximityMatcher(db.session)


def get_workflow() -> RequestWorkflow:
    """Workflow bound to the current app's session, dispatcher and settings."""
    return RequestWorkflow(
        db.session,
        get_dispatcher(),
        get_matcher(),
        match_radius=current_app.config.get('MATCH_RADIUS_METERS', 20000),
        notify_limit=current_app.config.get('NOTIFY_DONOR_LIMIT', 20),
    )
