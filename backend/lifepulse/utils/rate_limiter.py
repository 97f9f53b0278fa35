"""
Persistent DB-backed rate limiter for API endpoints.
"""
from datetime import datetime, timedelta
from functools import wraps
from flask import current_app, request, jsonify
from lifepulse import db


class DBRateLimiter:
    """Database-backed rate limiter that persists across server restarts."""

    def __init__(self, max_attempts=5, window_seconds=60, endpoint_name='default'):
        self.max_attempts = max_attempts
        self.window_seconds = window_seconds
        self.endpoint_name = endpoint_name

    def is_limited(self, key):
        from lifepulse.models import RateLimitEntry
        cutoff = datetime.utcnow() - timedelta(seconds=self.window_seconds)
        return RateLimitEntry.count_since(key, self.endpoint_name, cutoff) >= self.max_attempts

    def record(self, key):
        from lifepulse.models import RateLimitEntry
        db.session.add(RateLimitEntry(key=key, endpoint=self.endpoint_name,
                                      timestamp=datetime.utcnow()))
        db.session.commit()


# Registration: 5 attempts per 15 minutes per IP
registration_limiter = DBRateLimiter(max_attempts=5, window_seconds=900, endpoint_name='registration')

# Manual push fan-out: 10 per minute per IP
push_limiter = DBRateLimiter(max_attempts=10, window_seconds=60, endpoint_name='push')


def rate_limit(limiter):
    """Decorator factory to rate-limit an endpoint by client IP using a given limiter."""
    def decorator(f):
        @wraps(f)
        def wrapper(*args, **kwargs):
            if not current_app.config.get('RATELIMIT_ENABLED', True):
                return f(*args, **kwargs)
            client_ip = request.remote_addr or 'unknown'
            if limiter.is_limited(client_ip):
                return jsonify({'error': 'TooManyRequests',
                                'message': 'Too many requests. Try again later.'}), 429
            limiter.record(client_ip)
            return f(*args, **kwargs)
        return wrapper
    return decorator
