"""
Authentication utilities for JWT bearer tokens and role checks.
"""
import secrets
import jwt
from datetime import datetime, timedelta, timezone
from functools import wraps
from flask import current_app, request, jsonify, g
from lifepulse import db


def generate_token(user_id: int, role: str) -> str:
    """Issue an access token for a user."""
    secret = current_app.config['JWT_SECRET_KEY']
    expires = current_app.config.get('JWT_ACCESS_TOKEN_EXPIRES', 7 * 24 * 3600)
    now = datetime.now(timezone.utc)

    payload = {
        'user_id': user_id,
        'role': role,
        'jti': secrets.token_hex(16),
        'exp': now + timedelta(seconds=expires),
        'iat': now,
    }

    return jwt.encode(payload, secret, algorithm='HS256')


def decode_token(token: str):
    """Decode and validate a JWT token. Returns None when invalid or expired."""
    secret = current_app.config['JWT_SECRET_KEY']
    try:
        return jwt.decode(token, secret, algorithms=['HS256'])
    except jwt.ExpiredSignatureError:
        return None
    except jwt.InvalidTokenError:
        return None


def token_required(f):
    """Decorator to require a valid bearer token.

    Loads the user into g.user so handlers and role checks can use it.
    """
    @wraps(f)
    def wrapper(*args, **kwargs):
        auth_header = request.headers.get('Authorization')
        if not auth_header:
            return jsonify({'error': 'Unauthorized', 'message': 'Access denied. No token provided.'}), 401

        parts = auth_header.split()
        if len(parts) != 2 or parts[0].lower() != 'bearer':
            return jsonify({'error': 'Unauthorized', 'message': 'Invalid authorization header format'}), 401

        payload = decode_token(parts[1])
        if not payload:
            return jsonify({'error': 'Unauthorized', 'message': 'Invalid or expired token'}), 401

        from lifepulse.models import User
        user = db.session.get(User, payload.get('user_id'))
        if not user or not user.is_active:
            return jsonify({'error': 'Unauthorized',
                            'message': 'Invalid token - user not found or deactivated.'}), 401

        g.user = user
        g.user_id = user.id
        return f(*args, **kwargs)
    return wrapper


def role_required(*roles):
    """Decorator factory limiting a route to the given roles. Use after token_required."""
    def decorator(f):
        @wraps(f)
        def wrapper(*args, **kwargs):
            if g.user.role not in roles:
                return jsonify({'error': 'Forbidden',
                                'message': 'Access denied. Insufficient permissions.'}), 403
            return f(*args, **kwargs)
        return wrapper
    return decorator


def admin_required(f):
    """Decorator that requires the authenticated user to be an admin."""
    @wraps(f)
    def wrapper(*args, **kwargs):
        if not g.user.is_admin:
            return jsonify({'error': 'Forbidden', 'message': 'Admin access required'}), 403
        return f(*args, **kwargs)
    return wrapper
