"""Constants and defaults.

Note: Keep constants here to avoid magic numbers spread across code.
"""

DEFAULT_SESSION_WINDOW_MINUTES = 30
DEFAULT_LATE_THRESHOLD_MINUTES = 15
DEFAULT_SESSION_CODE_BYTES = 4
DEFAULT_HISTORY_LIMIT = 50
MAX_HISTORY_LIMIT = 200
MIN_PASSWORD_LENGTH = 8
MAX_BIOMETRIC_TOKEN_LENGTH = 2048
SESSION_CODE_ATTEMPTS = 5
MAX_NOTES_LENGTH = 255
MAX_CLASS_NAME_LENGTH = 100
DEFAULT_BROWSE_LIMIT = 20
DASHBOARD_TREND_DAYS = 7
MAX_BROWSE_LIMIT = 100
