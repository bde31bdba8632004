"""
Per-run log file for the detached notifiers.

The notifiers run without a console, so the log file is the only record of
what happened. `build_run_logger` returns a regular `logging.Logger` that is
passed explicitly to every component; tests hand in their own logger instead.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


class _IsoFormatter(logging.Formatter):
    """`[2024-03-05T14:02:11.123Z] message` lines."""

    def formatTime(self, record, datefmt=None):
        dt = datetime.fromtimestamp(record.created, tz=timezone.utc)
        return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")

    def format(self, record):
        line = f"[{self.formatTime(record)}] {record.getMessage()}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def configure_logging() -> None:
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)


def build_run_logger(name: str, log_dir: Path) -> logging.Logger:
    """
    Return the logger for one notifier run, appending to `<log_dir>/<name>.log`.

    A log directory that cannot be created leaves the logger console-only.
    """
    log = logging.getLogger(f"worker.{name}")
    log.setLevel(logging.INFO)

    log_file = Path(log_dir) / f"{name}.log"
    try:
        log_file.parent.mkdir(parents=True, exist_ok=True)
    except OSError:
        return log

    # one file per run: drop the handler of a previous run in this process
    for h in [h for h in log.handlers if isinstance(h, logging.FileHandler)]:
        log.removeHandler(h)
        h.close()

    handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
    handler.setFormatter(_IsoFormatter())
    log.addHandler(handler)

    log.info("LOG_FILE=%s", log_file)
    return log
