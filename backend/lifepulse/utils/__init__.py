from .activity_logger import log_activity, log_security, log_system_event
from .auth import generate_token, token_required, role_required, admin_required
from .rate_limiter import rate_limit, registration_limiter, push_limiter
