"""
Admin API routes.
"""
import logging
from flask import Blueprint

logger = logging.getLogger(__name__)

admin_bp = Blueprint('admin', __name__)


# Import submodules to register routes on admin_bp
from . import requests  # noqa: E402, F401
from . import stats     # noqa: E402, F401
from . import users     # noqa: E402, F401
