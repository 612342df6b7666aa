"""
CONFIG.PY: SINGLE SOURCE OF TRUTH (SSOT)

This module is the ONLY place allowed to read environment variables.

Values are loaded ONCE (on first use of ``get_config()``) and cached in a
frozen Config object. Secrets stored in the database (account passwords and
2FA keys) are NOT decrypted here: they are decrypted on demand by the Seller
Central run resolver using ``encryption_key``.

Run-level overrides (HEADLESS, TIMEOUT_MS, SELLER_CENTRAL_URL) are optional;
when unset the stored automation_config record, then the built-in defaults,
apply. To use a config value, import:

    from casepulse.config import get_config

Do not access os.getenv or os.environ directly from any other module.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv

from casepulse.errors import ConfigurationError


PROJECT_ROOT = Path(__file__).resolve().parents[1]

# OS env wins over .env values
load_dotenv(PROJECT_ROOT / ".env")


logger = logging.getLogger(__name__)

TRUE_VALUES = {"1", "true", "yes", "on"}
FALSE_VALUES = {"0", "false", "no", "off"}


def _optional_env(key: str) -> str | None:
    value = os.getenv(key)
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def _parse_bool(value: str, *, key: str) -> bool:
    normalized = value.strip().lower()
    if normalized in TRUE_VALUES:
        return True
    if normalized in FALSE_VALUES:
        return False
    message = f"Config key {key} must be a boolean string; got {value!r}"
    logger.error(message)
    raise ConfigurationError(message)


def _parse_int(value: str, *, key: str) -> int:
    try:
        return int(value.strip())
    except (TypeError, ValueError):
        message = f"Config key {key} must be an integer; got {value!r}"
        logger.error(message)
        raise ConfigurationError(message)


def _optional_bool(key: str) -> bool | None:
    raw = _optional_env(key)
    return None if raw is None else _parse_bool(raw, key=key)


def _optional_int(key: str) -> int | None:
    raw = _optional_env(key)
    if raw is None:
        return None
    parsed = _parse_int(raw, key=key)
    if parsed <= 0:
        message = f"Config key {key} must be a positive integer; got {raw!r}"
        logger.error(message)
        raise ConfigurationError(message)
    return parsed


@dataclass(slots=True, frozen=True)
class Config:
    run_env: str
    database_url: str
    encryption_key: str
    json_log_file: str
    alembic_config: str
    chrome_executable: str
    debug_artifact_dir: str

    headless_override: bool | None = None
    timeout_ms_override: int | None = None
    start_url_override: str | None = None
    brand_id: int | None = None
    account_id: int | None = None

    def __repr__(self) -> str:
        return f"Config(run_env={self.run_env!r}, database_url=<set:{bool(self.database_url)}>)"

    @classmethod
    def load_from_env(cls) -> Config:
        return cls(
            run_env=_optional_env("RUN_ENV") or "dev",
            database_url=_optional_env("DATABASE_URL") or "",
            encryption_key=_optional_env("ENCRYPTION_KEY") or "",
            json_log_file=_optional_env("JSON_LOG_FILE") or "",
            alembic_config=_optional_env("ALEMBIC_CONFIG") or str(PROJECT_ROOT / "alembic.ini"),
            chrome_executable=_optional_env("CHROME_EXECUTABLE") or "",
            debug_artifact_dir=_optional_env("DEBUG_ARTIFACT_DIR") or "",
            headless_override=_optional_bool("HEADLESS"),
            timeout_ms_override=_optional_int("TIMEOUT_MS"),
            start_url_override=_optional_env("SELLER_CENTRAL_URL"),
            brand_id=_optional_int("BRAND_ID"),
            account_id=_optional_int("ACCOUNT_ID"),
        )


@lru_cache(maxsize=1)
def get_config() -> Config:
    return Config.load_from_env()
