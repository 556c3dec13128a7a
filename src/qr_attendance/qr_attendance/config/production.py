import os

from . import split_secrets

# Bắt buộc cấu hình qua biến môi trường; build_container báo lỗi nếu thiếu.
SIGNING_SECRET = os.getenv("SIGNING_SECRET")
PREVIOUS_SIGNING_SECRETS = split_secrets(os.getenv("PREVIOUS_SIGNING_SECRETS"))
KEY_GRACE_SECONDS = int(os.getenv("KEY_GRACE_SECONDS", "300"))

ROTATION_INTERVAL_SECONDS = int(os.getenv("ROTATION_INTERVAL_SECONDS", "60"))
CLOCK_SKEW_SECONDS = int(os.getenv("CLOCK_SKEW_SECONDS", "5"))
RECORD_REJECTIONS = bool(int(os.getenv("RECORD_REJECTIONS", "0")))

STORE_BACKEND = os.getenv("STORE_BACKEND", "mysql")

DB_CONFIG = {
    "host": os.getenv("DB_HOST", "localhost"),
    "port": int(os.getenv("DB_PORT", "3306")),
    "user": os.getenv("DB_USER", "root"),
    "password": os.getenv("DB_PASSWORD", ""),
    "database": os.getenv("DB_NAME", "qr_attendance"),
}

DEBUG = False
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

AUTO_INIT_DB = bool(int(os.getenv("AUTO_INIT_DB", "0")))
