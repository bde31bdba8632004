"""
Trigger for the password-change notifier.

The route only spawns the notifier as a detached process and returns its PID
and log path; the outcome of the run is visible in the log file only.
"""
from __future__ import annotations

import base64
import importlib.util
import json
import os
import subprocess
import sys
from pathlib import Path

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

router = APIRouter()

NOTIFIER_MODULE = "worker.notify_password_changes"
LOG_FILE_NAME = "notify-password-changes.log"


def _project_root() -> Path:
    return Path(__file__).resolve().parents[2]


def _log_dir() -> Path:
    return Path(os.getcwd()) / ".logs"


def _detach_kwargs() -> dict:
    if sys.platform == "win32":
        return {"creationflags": subprocess.CREATE_NEW_PROCESS_GROUP | subprocess.DETACHED_PROCESS}
    return {"start_new_session": True}


def encode_payload(items: list) -> str:
    return base64.b64encode(json.dumps({"items": items}).encode("utf-8")).decode("ascii")


def spawn_notifier(items: list, log_dir: Path) -> subprocess.Popen:
    env = {**os.environ, "NOTIFY_LOG_DIR": str(log_dir)}
    return subprocess.Popen(
        [sys.executable, "-m", NOTIFIER_MODULE, f"--payload={encode_payload(items)}"],
        cwd=str(_project_root()),
        env=env,
        stdin=subprocess.DEVNULL,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
        **_detach_kwargs(),
    )


@router.post("/api/cuentasvencidas")
async def notify_password_changes(request: Request):
    try:
        body = await request.json()
    except Exception:
        body = {}
    items = body.get("items") if isinstance(body, dict) else None
    if not isinstance(items, list) or not items:
        return JSONResponse({"error": "items vacío"}, status_code=400)

    if importlib.util.find_spec(NOTIFIER_MODULE) is None:
        return JSONResponse({"error": f"No existe el script: {NOTIFIER_MODULE}"}, status_code=500)

    log_dir = _log_dir()
    try:
        child = spawn_notifier(items, log_dir)
    except OSError as exc:
        return JSONResponse({"error": str(exc) or "Error lanzando script"}, status_code=500)

    return {"ok": True, "pid": child.pid, "logFile": str(log_dir / LOG_FILE_NAME)}
