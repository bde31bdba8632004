"""
Edge over CDP: launch the helper script, wait for the debug port, attach.

The helper `.bat` starts Edge with `--remote-debugging-port` and the WhatsApp
Web profile; this module never starts the browser binary directly.
"""
from __future__ import annotations

import asyncio
import logging
import subprocess
import sys
from typing import List

import httpx

from worker.polling import poll

log = logging.getLogger(__name__)

DEBUG_HOST = "127.0.0.1"
PROBE_TIMEOUT_SECONDS = 0.9
PROBE_INTERVAL_SECONDS = 0.5
EDGE_IMAGE_NAME = "msedge.exe"


class DebuggerUnavailable(RuntimeError):
    """The browser never exposed its debug port."""


def cdp_url(port: int) -> str:
    return f"http://{DEBUG_HOST}:{port}"


async def is_debugger_live(port: int, client: httpx.AsyncClient | None = None) -> bool:
    """One probe of /json/version; any error means "not ready yet"."""
    url = f"{cdp_url(port)}/json/version"
    try:
        if client is not None:
            resp = await client.get(url, timeout=PROBE_TIMEOUT_SECONDS)
        else:
            async with httpx.AsyncClient(trust_env=False) as c:
                resp = await c.get(url, timeout=PROBE_TIMEOUT_SECONDS)
    except httpx.HTTPError:
        return False
    return resp.status_code == 200


async def wait_for_debugger(port: int, max_ms: int = 25000, *, sleep=asyncio.sleep) -> bool:
    async with httpx.AsyncClient(trust_env=False) as client:
        return await poll(
            lambda: is_debugger_live(port, client),
            PROBE_INTERVAL_SECONDS,
            max_ms / 1000,
            sleep=sleep,
        )


def _launch_command(bat_path: str) -> List[str]:
    if sys.platform == "win32":
        return ["cmd.exe", "/c", bat_path]
    return [bat_path]


def _detach_kwargs() -> dict:
    if sys.platform == "win32":
        flags = subprocess.CREATE_NEW_PROCESS_GROUP | subprocess.DETACHED_PROCESS
        return {"creationflags": flags}
    return {"start_new_session": True}


async def start_bat_once(bat_path: str, grace_ms: int = 1200) -> subprocess.Popen:
    """
    Spawn the helper script detached and wait a fixed grace period.

    Readiness is checked separately with `wait_for_debugger`. Spawn errors
    (missing script, permissions) propagate.
    """
    proc = subprocess.Popen(
        _launch_command(bat_path),
        stdin=subprocess.DEVNULL,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
        **_detach_kwargs(),
    )
    await asyncio.sleep(grace_ms / 1000)
    return proc


async def kill_edge() -> None:
    """Force-close every Edge process. Best effort."""
    if sys.platform == "win32":
        cmd = ["taskkill", "/F", "/IM", EDGE_IMAGE_NAME]
    else:
        cmd = ["pkill", "-f", EDGE_IMAGE_NAME.removesuffix(".exe")]
    try:
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.DEVNULL,
        )
        await proc.wait()
    except Exception as exc:
        log.debug("kill_edge failed: %s", exc)


async def kill_process_tree(proc: subprocess.Popen | None) -> None:
    """Terminate the helper script process (and its children on Windows). Best effort."""
    if proc is None or proc.poll() is not None:
        return
    try:
        if sys.platform == "win32":
            killer = await asyncio.create_subprocess_exec(
                "taskkill", "/PID", str(proc.pid), "/T", "/F",
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
            await killer.wait()
        else:
            proc.kill()
    except Exception as exc:
        log.debug("kill_process_tree failed: %s", exc)


async def connect_over_cdp(playwright, port: int):
    """
    Attach to the running browser. Returns (browser, page), reusing the
    first existing context so the logged-in WhatsApp profile is kept.
    """
    browser = await playwright.chromium.connect_over_cdp(cdp_url(port))
    context = browser.contexts[0] if browser.contexts else await browser.new_context()
    page = await context.new_page()
    return browser, page
