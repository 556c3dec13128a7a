from __future__ import annotations

import importlib
import logging
from types import ModuleType
from typing import Optional

from dotenv import load_dotenv

from .common.clock import Clock
from .config import get_settings_module
from .container import Container, build_container
from .core.constants import APP_NAME
from .core.enums import StoreBackend
from .database.bootstrap import apply_schema, list_tables
from .database.connection import DBConfig
from .logging_config import configure_logging

_logger = logging.getLogger(f"{APP_NAME}.main")


def load_settings() -> ModuleType:
    load_dotenv(override=False)
    return importlib.import_module(get_settings_module())


def create_container(settings: Optional[ModuleType] = None, *, clock: Optional[Clock] = None) -> Container:
    """Build the engine from the settings module selected by ``APP_ENV``."""
    settings = settings or load_settings()
    configure_logging(getattr(settings, "LOG_LEVEL", "INFO"))

    backend = StoreBackend(getattr(settings, "STORE_BACKEND", StoreBackend.MEMORY.value))
    db_config = getattr(settings, "DB_CONFIG", None)
    _logger.info("settings=%s backend=%s", settings.__name__, backend.value)

    if backend == StoreBackend.MYSQL and bool(getattr(settings, "AUTO_INIT_DB", False)):
        target = DBConfig.from_dict(db_config)
        apply_schema(target)
        _logger.info("schema ready on %s (tables=%d)", target.describe(), len(list_tables(target)))

    container = build_container(
        signing_secret=getattr(settings, "SIGNING_SECRET"),
        previous_secrets=list(getattr(settings, "PREVIOUS_SIGNING_SECRETS", [])),
        key_grace_seconds=int(getattr(settings, "KEY_GRACE_SECONDS", 300)),
        rotation_interval_seconds=int(getattr(settings, "ROTATION_INTERVAL_SECONDS", 60)),
        clock_skew_seconds=int(getattr(settings, "CLOCK_SKEW_SECONDS", 5)),
        backend=backend,
        db_config=db_config,
        record_rejections=bool(getattr(settings, "RECORD_REJECTIONS", False)),
        clock=clock,
    )
    _logger.info("signer ready (retired_keys=%d)", container.signer.retired_count)
    return container
