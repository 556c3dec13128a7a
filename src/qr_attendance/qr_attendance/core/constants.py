"""Constants and defaults.

Note: Keep constants here to avoid magic numbers spread across code.
"""

APP_NAME = "qr_attendance"

DEFAULT_ROTATION_SECONDS = 60
DEFAULT_CLOCK_SKEW_SECONDS = 5
DEFAULT_KEY_GRACE_SECONDS = 300

MIN_SECRET_BYTES = 16
NONCE_BYTES = 16
TOKEN_VERSION = 1

# Column widths in database/schema.sql.
MAX_SESSION_ID_LEN = 64
MAX_PRINCIPAL_ID_LEN = 128
