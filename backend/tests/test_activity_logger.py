import json
import logging
import os

from lifepulse import create_app
from lifepulse.utils.activity_logger import (
    ACTIVITY_LOGGER_NAME, log_activity, log_security, log_system_event,
)


def _entries(app):
    for handler in logging.getLogger(ACTIVITY_LOGGER_NAME).handlers:
        handler.flush()
    with open(app.config['ACTIVITY_LOG_FILE']) as f:
        return [json.loads(line) for line in f if line.strip()]


def _file_handlers():
    return [h for h in logging.getLogger(ACTIVITY_LOGGER_NAME).handlers
            if isinstance(h, logging.FileHandler)]


def test_system_event_is_written(app):
    log_system_event('blood_requests_expired', {'count': 3})

    entry = _entries(app)[-1]
    assert entry['event'] == 'system_event'
    assert entry['event_name'] == 'blood_requests_expired'
    assert entry['details'] == {'count': 3}


def test_security_event_is_written_inside_a_request(app):
    with app.test_request_context('/api/users/me/location', method='PUT'):
        log_security('location_update_validation_failed', {'error': 'Invalid longitude'})

    entry = _entries(app)[-1]
    assert entry['event'] == 'security_event'
    assert entry['event_name'] == 'location_update_validation_failed'
    assert entry['level'] == 'warning'
    assert entry['path'] == '/api/users/me/location'


def test_user_activity_is_written(app):
    log_activity('donation_recorded', 'user', resource_id=7, user_id=7)

    entry = _entries(app)[-1]
    assert entry['action'] == 'donation_recorded'
    assert entry['resource_id'] == '7'
    assert entry['user_id'] == '7'


def test_new_app_replaces_previous_log_file_handler(app, tmp_path):
    second_log = tmp_path / 'second' / 'activity.log'
    create_app({
        'TESTING': True,
        'SECRET_KEY': 'test-secret',
        'JWT_SECRET_KEY': 'test-jwt-secret',
        'SQLALCHEMY_DATABASE_URI': 'sqlite://',
        'ACTIVITY_LOG_FILE': str(second_log),
    })

    handlers = _file_handlers()
    assert len(handlers) == 1
    assert handlers[0].baseFilename == os.path.abspath(second_log)
