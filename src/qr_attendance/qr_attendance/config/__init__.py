import os


def get_settings_module() -> str:
    # Lấy giá trị môi trường từ biến APP_ENV, mặc định là 'development'
    env = os.getenv("APP_ENV", "development").lower()

    if env in {"prod", "production"}:
        return "qr_attendance.config.production"

    if env in {"test", "testing"}:
        return "qr_attendance.config.testing"

    return "qr_attendance.config.development"


def split_secrets(value: str | None) -> list[str]:
    """Parse a comma separated list of retired signing secrets."""
    return [s.strip() for s in (value or "").split(",") if s.strip()]
