"""Runtime configuration and logging setup."""

from __future__ import annotations

import logging
import os
import sys
from datetime import tzinfo
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

load_dotenv()

config = {
    "store_path": os.getenv("MONTH_RULES_STORE_PATH", "month_rules.json"),
    "timezone": os.getenv("MONTH_RULES_TZ") or None,
    "log_level": os.getenv("MONTH_RULES_LOG_LEVEL", "INFO"),
}


def resolve_timezone(name: Optional[str]) -> Optional[tzinfo]:
    """Map an IANA zone name to a tzinfo; ``None`` keeps the process local zone."""

    if not name:
        return None
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"unknown timezone {name!r}") from exc


def setup_logging(level: str | int | None = None) -> logging.Logger:
    logger = logging.getLogger("month_rules")
    level = level or config["log_level"]
    logger.setLevel(level.upper() if isinstance(level, str) else level)

    # Prevent duplicate handlers if called repeatedly
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter("[%(levelname)s] %(name)s - %(message)s"))
        logger.addHandler(handler)
    return logger
