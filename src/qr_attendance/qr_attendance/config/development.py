import os

from . import split_secrets

# Khóa ký token QR (HMAC). Chỉ dùng cho môi trường dev.
SIGNING_SECRET = os.getenv("SIGNING_SECRET", "dev-signing-secret-change-me")
PREVIOUS_SIGNING_SECRETS = split_secrets(os.getenv("PREVIOUS_SIGNING_SECRETS"))
KEY_GRACE_SECONDS = int(os.getenv("KEY_GRACE_SECONDS", "300"))

ROTATION_INTERVAL_SECONDS = int(os.getenv("ROTATION_INTERVAL_SECONDS", "60"))
CLOCK_SKEW_SECONDS = int(os.getenv("CLOCK_SKEW_SECONDS", "5"))
RECORD_REJECTIONS = bool(int(os.getenv("RECORD_REJECTIONS", "1")))

STORE_BACKEND = os.getenv("STORE_BACKEND", "memory")

DB_CONFIG = {
    "host": os.getenv("DB_HOST", "localhost"),
    "port": int(os.getenv("DB_PORT", "3306")),
    "user": os.getenv("DB_USER", "root"),
    "password": os.getenv("DB_PASSWORD", ""),
    "database": os.getenv("DB_NAME", "qr_attendance"),
}

DEBUG = True
LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG")

# If enabled, the schema is applied on startup (idempotent: CREATE IF NOT EXISTS)
AUTO_INIT_DB = bool(int(os.getenv("AUTO_INIT_DB", "1")))
