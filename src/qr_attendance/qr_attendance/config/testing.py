SIGNING_SECRET = "test-signing-secret-0123456789"
PREVIOUS_SIGNING_SECRETS: list[str] = []
KEY_GRACE_SECONDS = 60

ROTATION_INTERVAL_SECONDS = 60
CLOCK_SKEW_SECONDS = 0
RECORD_REJECTIONS = False

STORE_BACKEND = "memory"

DB_CONFIG = {
    "host": "localhost",
    "port": 3306,
    "user": "root",
    "password": "",
    "database": "qr_attendance_test",
}

DEBUG = False
TESTING = True
LOG_LEVEL = "WARNING"

AUTO_INIT_DB = False
