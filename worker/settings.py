"""
Environment-driven configuration for the notifiers.

Entry points call `load_dotenv(override=True)` first, then build one of the
settings objects below from `os.environ`.
"""
from __future__ import annotations

import math
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from core.db.base import ConfigError

# Helper script that starts Edge with --remote-debugging-port (lives outside the package).
DEFAULT_BAT_PATH = str(Path(__file__).resolve().parent.parent / "bat" / "start-edge-wa.bat")
DEFAULT_DEBUG_PORT = 9222

# OPEN_SPACING_MS stands in when SEND_GAP_MS is unset; a value that does not
# parse as a number falls back to FALLBACK_SEND_GAP_MS.
DEFAULT_OPEN_SPACING_MS = "1400"
FALLBACK_SEND_GAP_MS = 1200


def default_log_dir(environ: Mapping[str, str] | None = None) -> Path:
    env = os.environ if environ is None else environ
    override = env.get("NOTIFY_LOG_DIR")
    if override:
        return Path(override)
    if sys.platform == "win32":
        return Path(env.get("LOCALAPPDATA", str(Path.home()))) / "MedPlay" / "logs"
    return Path.home() / ".medplay" / "logs"


def _number(raw: str | None) -> float | None:
    if raw is None or not str(raw).strip():
        return None
    try:
        value = float(raw)
    except ValueError:
        return None
    return value if math.isfinite(value) else None


def _truthy(raw: str | None) -> bool:
    return (raw or "").strip().lower() == "true"


def _require_database_url(env: Mapping[str, str]) -> str:
    url = env.get("DATABASE_URL")
    if not url:
        raise ConfigError("DATABASE_URL is not set")
    if not (url.startswith("postgres://") or url.startswith("postgresql://")):
        raise ConfigError("DATABASE_URL must start with postgres:// or postgresql://")
    return url


@dataclass(frozen=True)
class PasswordNotifierSettings:
    database_url: str
    debug_port: int = DEFAULT_DEBUG_PORT
    spacing_ms: int = 8000
    bat_path: str = DEFAULT_BAT_PATH
    log_dir: Path = Path(".")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "PasswordNotifierSettings":
        env = os.environ if environ is None else environ
        port = _number(env.get("DEBUG_PORT"))
        spacing = _number(env.get("OPEN_SPACING_MS"))
        return cls(
            database_url=_require_database_url(env),
            debug_port=int(port) if port else DEFAULT_DEBUG_PORT,
            # 0 or garbage falls back to the default gap
            spacing_ms=int(spacing) if spacing else 8000,
            bat_path=env.get("WA_BAT_PATH") or DEFAULT_BAT_PATH,
            log_dir=default_log_dir(env),
        )


@dataclass(frozen=True)
class ExpiringNotifierSettings:
    database_url: str
    dry_run: bool = False
    debug_port: int = DEFAULT_DEBUG_PORT
    send_gap_ms: int = FALLBACK_SEND_GAP_MS
    jitter_pct: float = 0.12
    chat_ready_timeout_ms: int = 12000
    post_send_sleep_ms: int = 350
    qr_wait_seconds: int = 600
    cron_schedule: str = "0 18 * * *"
    timezone: str = "America/Bogota"
    bat_path: str = DEFAULT_BAT_PATH
    run_now: bool = False
    log_dir: Path = Path(".")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "ExpiringNotifierSettings":
        env = os.environ if environ is None else environ

        port = _number(env.get("DEBUG_PORT"))
        gap = _number(env.get("SEND_GAP_MS") or env.get("OPEN_SPACING_MS", DEFAULT_OPEN_SPACING_MS))
        jitter = _number(env.get("JITTER_PCT"))
        chat_timeout = _number(env.get("ENSURE_CHAT_TIMEOUT_MS"))
        post_send = _number(env.get("POST_SEND_SLEEP_MS"))
        qr_wait = _number(env.get("QR_WAIT_SECONDS"))

        return cls(
            database_url=_require_database_url(env),
            dry_run=_truthy(env.get("DRY_RUN")),
            debug_port=int(port) if port else DEFAULT_DEBUG_PORT,
            send_gap_ms=int(max(250, gap)) if gap is not None else FALLBACK_SEND_GAP_MS,
            jitter_pct=min(0.5, max(0.0, jitter)) if jitter is not None else 0.12,
            chat_ready_timeout_ms=int(max(3000, chat_timeout)) if chat_timeout is not None else 12000,
            post_send_sleep_ms=int(max(150, post_send)) if post_send is not None else 350,
            qr_wait_seconds=int(max(0, qr_wait)) if qr_wait is not None else 600,
            cron_schedule=env.get("CRON_SCHEDULE") or "0 18 * * *",
            timezone=env.get("TZ") or "America/Bogota",
            bat_path=env.get("BAT_PATH") or DEFAULT_BAT_PATH,
            run_now=_truthy(env.get("RUN_NOW")),
            log_dir=default_log_dir(env),
        )
