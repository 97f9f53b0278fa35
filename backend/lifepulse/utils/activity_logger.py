"""
Structured activity logging.
User actions, rejected input and system side effects are written as JSON lines.
"""
import os
import logging
import structlog
from datetime import datetime, timezone
from flask import current_app, g, has_app_context, has_request_context, request

ACTIVITY_LOGGER_NAME = 'activity'


def setup_activity_logging(app):
    """Configure structlog for JSON output and attach a file handler."""

    log_file = app.config.get('ACTIVITY_LOG_FILE', 'logs/activity.log')
    log_dir = os.path.dirname(log_file)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer()
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    activity_logger = logging.getLogger(ACTIVITY_LOGGER_NAME)
    activity_logger.setLevel(logging.INFO)

    # create_app may run several times in one process (tests); one file handler at a time
    target = os.path.abspath(log_file)
    for handler in list(activity_logger.handlers):
        if isinstance(handler, logging.FileHandler) and handler.baseFilename != target:
            activity_logger.removeHandler(handler)
            handler.close()
    if not any(isinstance(h, logging.FileHandler) for h in activity_logger.handlers):
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(logging.Formatter('%(message)s'))
        activity_logger.addHandler(file_handler)

    app.config['ACTIVITY_LOGGER'] = structlog.get_logger(ACTIVITY_LOGGER_NAME)


def get_activity_logger():
    if has_app_context():
        return current_app.config.get('ACTIVITY_LOGGER', structlog.get_logger(ACTIVITY_LOGGER_NAME))
    return structlog.get_logger(ACTIVITY_LOGGER_NAME)


def _request_info():
    if not has_request_context():
        return {}
    return {
        'client_ip': request.headers.get('X-Forwarded-For', request.remote_addr or 'unknown'),
        'user_agent': request.headers.get('User-Agent', 'unknown'),
        'method': request.method,
        'path': request.path,
    }


def log_activity(action: str, resource_type: str, resource_id=None,
                 details: dict = None, user_id=None):
    """
    Record something a user did.

    Args:
        action: What happened (e.g. blood_request_created, donation_recorded)
        resource_type: Kind of resource touched (user, blood_request, ...)
        resource_id: ID of the specific resource (optional)
        details: Extra context (optional)
        user_id: Acting user; falls back to g.user_id inside a request
    """
    if user_id is None and has_request_context():
        user_id = getattr(g, 'user_id', 'anonymous')

    get_activity_logger().info(
        "user_activity",
        timestamp=datetime.now(timezone.utc).isoformat(),
        action=action,
        resource_type=resource_type,
        resource_id=str(resource_id) if resource_id is not None else None,
        user_id=str(user_id) if user_id is not None else None,
        details=details or {},
        **_request_info()
    )


def log_security(event: str, details: dict = None):
    """Record rejected or suspicious input."""
    user_id = getattr(g, 'user_id', None) if has_request_context() else None
    get_activity_logger().warning(
        "security_event",
        timestamp=datetime.now(timezone.utc).isoformat(),
        event_name=event,
        user_id=str(user_id) if user_id is not None else None,
        details=details or {},
        **_request_info()
    )


def log_system_event(event: str, details: dict = None):
    """Record a side effect produced by the system itself (expiry, fan-out)."""
    get_activity_logger().info(
        "system_event",
        timestamp=datetime.now(timezone.utc).isoformat(),
        event_name=event,
        details=details or {},
    )
