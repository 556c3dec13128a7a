"""QR attendance token engine.

Organized by feature modules (sessions, tokens, redemptions, audit) with
Protocol-based repositories, in-memory and MySQL adapters, and thin services on
top. ``main.create_container`` wires everything from the active settings module.
"""
from __future__ import annotations

from .container import Container, build_container
from .core.enums import RedemptionOutcome
from .main import create_container

__all__ = ["Container", "RedemptionOutcome", "build_container", "create_container"]
