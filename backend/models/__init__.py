"""SQLAlchemy ORM models."""

from .client import Client
from .firm import Firm
from .firm_integration import FirmIntegration
from .notification_log import NotificationLog
from .oauth_state import OAuthState
from .profile import Profile
from .qbo_connection import QBOConnection
from .rate_limit_window import RateLimitWindow
from .reconciliation_run import ReconciliationRun
from .utils import generate_uuid, utc_now

__all__ = [
    "Client",
    "Firm",
    "FirmIntegration",
    "NotificationLog",
    "OAuthState",
    "Profile",
    "QBOConnection",
    "RateLimitWindow",
    "ReconciliationRun",
    "generate_uuid",
    "utc_now",
]
