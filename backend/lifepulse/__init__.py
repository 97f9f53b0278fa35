import os
import logging
from flask import Flask, request, redirect
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_cors import CORS
from dotenv import load_dotenv

load_dotenv()

db = SQLAlchemy()
migrate = Migrate()

logger = logging.getLogger(__name__)


def _env_flag(name, default='true'):
    return os.getenv(name, default).lower() in ('1', 'true', 'yes')


def create_app(config_overrides=None, push_backend=None):
    """Build the Flask application.

    config_overrides is applied on top of the environment so tests can run
    without a .env file. push_backend replaces the Firebase backend used by
    the notification dispatcher.
    """
    app = Flask(__name__)
    overrides = dict(config_overrides or {})

    is_production = os.getenv('FLASK_ENV') == 'production'

    app.config['SECRET_KEY'] = os.getenv('SECRET_KEY')
    app.config['JWT_SECRET_KEY'] = os.getenv('JWT_SECRET_KEY')
    app.config['JWT_ACCESS_TOKEN_EXPIRES'] = int(os.getenv('JWT_ACCESS_TOKEN_EXPIRES', 7 * 24 * 3600))
    app.config['SQLALCHEMY_DATABASE_URI'] = os.getenv('DATABASE_URL')
    app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
    app.config['ACTIVITY_LOG_FILE'] = os.getenv('ACTIVITY_LOG_FILE', 'logs/activity.log')
    app.config['MATCH_RADIUS_METERS'] = int(os.getenv('MATCH_RADIUS_METERS', 20000))
    app.config['NOTIFY_DONOR_LIMIT'] = int(os.getenv('NOTIFY_DONOR_LIMIT', 20))
    app.config['RATELIMIT_ENABLED'] = _env_flag('RATELIMIT_ENABLED')

    # Request size limit (1 MB)
    app.config['MAX_CONTENT_LENGTH'] = 1 * 1024 * 1024

    app.config.update(overrides)

    for key in ('SECRET_KEY', 'JWT_SECRET_KEY'):
        if not app.config.get(key):
            raise RuntimeError(f'{key} environment variable is required')

    database_url = app.config.get('SQLALCHEMY_DATABASE_URI')
    if not database_url:
        raise RuntimeError('DATABASE_URL environment variable is required')

    if not database_url.startswith('sqlite'):
        app.config.setdefault('SQLALCHEMY_ENGINE_OPTIONS', {
            'pool_pre_ping': True,
            'pool_recycle': 300,
        })

    db.init_app(app)
    migrate.init_app(app, db)

    # CORS: restrict origins
    allowed_origins = os.getenv('ALLOWED_ORIGINS', '')
    if allowed_origins:
        origins_list = [o.strip() for o in allowed_origins.split(',') if o.strip()]
    elif is_production:
        raise RuntimeError(
            'ALLOWED_ORIGINS environment variable is required in production'
        )
    else:
        # Development: allow localhost variants
        origins_list = [
            'http://localhost:*',
            'http://127.0.0.1:*',
        ]

    CORS(app, resources={
        r"/api/*": {"origins": origins_list},
        r"/admin/*": {"origins": origins_list}
    })

    # Redirect HTTP to HTTPS in production
    if is_production:
        @app.before_request
        def enforce_https():
            if not request.is_secure and request.headers.get('X-Forwarded-Proto', 'http') != 'https':
                url = request.url.replace('http://', 'https://', 1)
                return redirect(url, code=301)

    @app.after_request
    def add_security_headers(response):
        response.headers['X-Content-Type-Options'] = 'nosniff'
        response.headers['X-Frame-Options'] = 'DENY'
        response.headers['Cache-Control'] = 'no-store'
        if is_production or request.is_secure:
            response.headers['Strict-Transport-Security'] = 'max-age=31536000; includeSubDomains'
        return response

    # Validate Content-Type on POST/PUT requests
    @app.before_request
    def validate_content_type():
        if request.method in ('POST', 'PUT') and request.content_length:
            content_type = request.content_type or ''
            if 'application/json' not in content_type:
                from flask import jsonify
                return jsonify({'error': 'BadInput',
                                'message': 'Content-Type must be application/json'}), 415

    from lifepulse.utils.activity_logger import setup_activity_logging
    setup_activity_logging(app)

    from lifepulse.errors import register_error_handlers
    register_error_handlers(app)

    # Services are wired here and looked up by the routes through app.extensions
    from lifepulse.services.notifications import NotificationDispatcher, FCMBackend
    app.extensions['notification_dispatcher'] = NotificationDispatcher(
        push_backend if push_backend is not None else FCMBackend()
    )

    from lifepulse.routes.auth import auth_bp
    from lifepulse.routes.users import users_bp
    from lifepulse.routes.requests import requests_bp
    from lifepulse.routes.notifications import notifications_bp
    from lifepulse.routes.blood_camps import blood_camps_bp
    from lifepulse.routes.admin import admin_bp

    app.register_blueprint(auth_bp, url_prefix='/api/auth')
    app.register_blueprint(users_bp, url_prefix='/api/users')
    app.register_blueprint(requests_bp, url_prefix='/api/requests')
    app.register_blueprint(notifications_bp, url_prefix='/api/notifications')
    app.register_blueprint(blood_camps_bp, url_prefix='/api/blood-camps')
    app.register_blueprint(admin_bp, url_prefix='/admin')

    @app.route('/health')
    def health():
        return {'status': 'healthy'}, 200

    @app.cli.command('send-eligibility-reminders')
    def send_eligibility_reminders():
        """Push a reminder to donors whose 90-day cooldown has ended."""
        from lifepulse.services.reminders import send_eligibility_reminders as run
        summary = run(app.extensions['notification_dispatcher'])
        print(f"Reminded {summary['sent']} donor(s), {summary['failed']} failure(s).")

    @app.cli.command('expire-requests')
    def expire_requests():
        """Mark overdue PENDING requests as EXPIRED."""
        from lifepulse.services.request_workflow import expire_overdue_requests
        count = expire_overdue_requests()
        print(f'Expired {count} request(s).')

    @app.cli.command('cleanup-rate-limits')
    def cleanup_rate_limits():
        """Remove rate limit entries older than 5 minutes."""
        from lifepulse.models.rate_limit_entry import RateLimitEntry
        count = RateLimitEntry.cleanup_older_than(300)
        print(f'Removed {count} old rate limit entry/entries.')

    return app
