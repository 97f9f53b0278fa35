from .user import User, BLOOD_GROUPS, ROLES, ELIGIBILITY_WINDOW_DAYS
from .blood_request import (
    BloodRequest, DonorAcceptance, URGENCIES, REQUEST_STATUSES, ACCEPTANCE_STATUSES,
    ACTIVE_STATUSES, TERMINAL_STATUSES, MIN_UNITS, MAX_UNITS,
)
from .chat_message import ChatMessage
from .rate_limit_entry import RateLimitEntry
from .blood_camp import BloodCamp, CAMP_STATUSES, OPEN_CAMP_STATUSES
