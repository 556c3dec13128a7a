from __future__ import annotations

import importlib

from dotenv import load_dotenv

from qr_attendance.config import get_settings_module
from qr_attendance.database.bootstrap import apply_schema, list_tables
from qr_attendance.database.connection import DBConfig


def main() -> None:
    load_dotenv(override=False)
    settings = importlib.import_module(get_settings_module())
    target = DBConfig.from_dict(dict(settings.DB_CONFIG))

    apply_schema(target)
    tables = list_tables(target)
    print(f"OK: Applied schema.sql -> {target.describe()} (tables={len(tables)})")


if __name__ == "__main__":
    main()
