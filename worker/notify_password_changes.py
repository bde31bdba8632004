"""
Notify customers of a password change over WhatsApp Web.

Spawned detached by the `/api/cuentasvencidas` route:

    python -m worker.notify_password_changes --payload=<base64 JSON>

Flow: read payload -> open Edge via the helper script and attach over CDP ->
query every future, non-cancelled subscription tied to the changed e-mails ->
one message per (phone, email) -> send sequentially with pacing -> clean up.
Everything is written to `<NOTIFY_LOG_DIR>/notify-password-changes.log`.
"""
from __future__ import annotations

import asyncio
import logging
import sys
from contextlib import suppress
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from dotenv import load_dotenv
from playwright.async_api import async_playwright

from core.db.base import get_conn
from core.db.subscriptions import fetch_by_correos
from worker.browser import (
    DebuggerUnavailable,
    connect_over_cdp,
    kill_edge,
    start_bat_once,
    wait_for_debugger,
)
from worker.messages import build_password_message
from worker.payload import extract_items, read_payload
from worker.recipients import build_clave_map, group_recipients
from worker.run_log import build_run_logger, configure_logging
from worker.settings import PasswordNotifierSettings, default_log_dir
from worker.whatsapp_engine import DeliveryStatus, send_via_whatsapp

LOG_NAME = "notify-password-changes"
DEBUGGER_WAIT_MS = 25000


@dataclass
class NotifierSession:
    """Handles opened during one run; closed by `finalize`."""

    playwright: Any = None
    browser: Any = None
    page: Any = None
    conn: Any = None
    attempted_any: bool = False


@dataclass
class RunSummary:
    items: int = 0
    recipients: int = 0
    sent: int = 0
    unconfirmed: int = 0
    failed: int = 0
    skipped_phone: int = 0
    skipped_no_clave: int = 0


async def open_browser(settings: PasswordNotifierSettings, session: NotifierSession, log: logging.Logger) -> None:
    log.info("BAT_PATH=%s", settings.bat_path)
    await start_bat_once(settings.bat_path)

    log.info("Esperando CDP en 127.0.0.1:%s...", settings.debug_port)
    ok = await wait_for_debugger(settings.debug_port, DEBUGGER_WAIT_MS)
    log.info("CDP ok: %s", ok)
    if not ok:
        raise DebuggerUnavailable(f"No se detectó CDP en 127.0.0.1:{settings.debug_port}")

    log.info("Conectando a Edge vía CDP...")
    session.playwright = await async_playwright().start()
    session.browser, session.page = await connect_over_cdp(session.playwright, settings.debug_port)
    log.info("CDP conectado.")


async def finalize(session: NotifierSession, log: logging.Logger) -> None:
    """Close every handle independently; kill Edge only if something was sent."""
    if session.page is not None:
        with suppress(Exception):
            await session.page.close()
    if session.browser is not None:
        with suppress(Exception):
            await session.browser.close()
    if session.playwright is not None:
        with suppress(Exception):
            await session.playwright.stop()
    if session.conn is not None:
        with suppress(Exception):
            session.conn.close()

    if session.attempted_any:
        await kill_edge()
        log.info("Edge cerrado.")
    else:
        log.info("No se intentó enviar; Edge queda abierto para depurar.")


async def run(
    items: Sequence[Dict[str, Any]],
    settings: PasswordNotifierSettings,
    log: logging.Logger,
    session: Optional[NotifierSession] = None,
) -> RunSummary:
    """
    Deliver one run. Setup errors propagate (after cleanup); per-recipient
    failures are logged and the loop moves on.
    """
    summary = RunSummary(items=len(items))
    log.info("items recibidos: %s", len(items))
    if not items:
        log.info("No hay items para notificar")
        return summary

    clave_by_correo = build_clave_map(items)
    correos: List[str] = list(clave_by_correo)
    log.info("Correos a consultar (lower): %s", len(correos))
    if not correos:
        log.info("Sin correos válidos; saliendo.")
        return summary

    session = session or NotifierSession()
    try:
        await open_browser(settings, session, log)

        session.conn = get_conn(settings.database_url)
        log.info("DB: conectado")

        try:
            rows = fetch_by_correos(session.conn, correos)
        except Exception as exc:
            log.error("Error fetchByCorreos: %s", exc)
            raise
        log.info("Filas desde fetchByCorreos (futuras): %s", len(rows))

        grouping = group_recipients(rows, clave_by_correo)
        summary.skipped_phone = grouping.skipped_phone
        summary.skipped_no_clave = grouping.skipped_no_clave
        recipients = grouping.recipients
        summary.recipients = len(recipients)
        log.info(
            "grouped.size=%s skippedPhone=%s skippedNoClave=%s",
            len(recipients),
            grouping.skipped_phone,
            grouping.skipped_no_clave,
        )

        if not recipients:
            log.info("No hay recipients; saliendo (revisa filtros de fecha y estado).")
            return summary

        log.info("Recipients: %s", len(recipients))
        log.info("gapEnv=%s", settings.spacing_ms)

        total = len(recipients)
        for i, r in enumerate(recipients, start=1):
            if not r.items:
                log.info("Skip sin items -> %s | %s", r.phone, r.correo)
                continue

            text = build_password_message(r.nombre, r.items, r.correo, r.nueva_clave)
            log.info("Enviando [%s/%s] %s | %s items=%s", i, total, r.phone, r.correo, len(r.items))
            session.attempted_any = True

            try:
                status = await send_via_whatsapp(session.page, r.phone, text, settings.spacing_ms, log=log)
            except Exception as exc:
                summary.failed += 1
                log.error("FAIL %s | %s: %s", r.phone, r.correo, exc)
                continue

            if status is DeliveryStatus.SENT:
                summary.sent += 1
            elif status is DeliveryStatus.UNCONFIRMED:
                summary.unconfirmed += 1
            else:
                summary.failed += 1
            log.info("%s %s | %s", status.value, r.phone, r.correo)

        log.info(
            "Notificaciones terminadas. ok=%s unconfirmed=%s fail=%s",
            summary.sent,
            summary.unconfirmed,
            summary.failed,
        )
        return summary
    finally:
        await finalize(session, log)


def main(argv: Sequence[str] | None = None) -> int:
    load_dotenv(override=True)
    configure_logging()
    log = build_run_logger(LOG_NAME, default_log_dir())
    log.info("== inicio notify-password-changes ==")

    try:
        settings = PasswordNotifierSettings.from_env()
        payload = read_payload(argv)
        asyncio.run(run(extract_items(payload), settings, log))
    except Exception:
        log.exception("Error notify-password-changes")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
