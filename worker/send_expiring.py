"""
Daily WhatsApp reminder for subscriptions expiring today or tomorrow.

Runs on a cron schedule (CRON_SCHEDULE, default 18:00 America/Bogota):

    python -m worker.send_expiring          # wait for the schedule
    python -m worker.send_expiring --now    # run immediately, keep scheduling
    python -m worker.send_expiring --once   # run immediately and exit
    python -m worker.send_expiring --log 573001112222   # print that phone's wa_logs

A phone gets at most one reminder per day (`wa_notificaciones`); every outcome
goes to `wa_logs`. DRY_RUN=true only logs the messages.
"""
from __future__ import annotations

import asyncio
import logging
import signal
import sys
from contextlib import suppress
from datetime import datetime
from typing import Sequence
from zoneinfo import ZoneInfo

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from dotenv import load_dotenv
from playwright.async_api import async_playwright

from core.db.base import ConfigError, get_conn
from core.db.notifications import (
    already_notified_today,
    get_delivery_log,
    log_delivery_result,
    mark_notified,
)
from core.db.subscriptions import fetch_expiring_rows
from worker.browser import (
    DebuggerUnavailable,
    connect_over_cdp,
    kill_edge,
    kill_process_tree,
    start_bat_once,
    wait_for_debugger,
)
from worker.messages import build_expiring_message
from worker.recipients import group_by_phone, to_e164
from worker.run_log import build_run_logger, configure_logging
from worker.settings import ExpiringNotifierSettings, default_log_dir
from worker.whatsapp_engine import (
    DeliveryStatus,
    jitter,
    send_expiring_notice,
    wa_me_link,
    wait_for_whatsapp_ready,
)

LOG_NAME = "send-expiring-wa"
JOB_ID = "send-expiring-wa"
DEBUGGER_WAIT_MS = 15000
BAT_GRACE_MS = 2000
DAYS_AHEAD = 1


async def _pause(ms: int) -> None:
    await asyncio.sleep(ms / 1000)


async def run_once(settings: ExpiringNotifierSettings, log: logging.Logger) -> int:
    """One pass over the expiring subscriptions. Returns how many messages were sent."""
    conn = get_conn(settings.database_url)
    bat_proc = None
    playwright = None
    page = None
    launched = False

    try:
        rows = fetch_expiring_rows(conn, DAYS_AHEAD)
        recipients = group_by_phone(rows)

        if not recipients:
            log.info("No hay contactos por notificar.")
            return 0

        log.info("Enviaré %s mensaje(s).", len(recipients))
        if settings.dry_run:
            for r in recipients:
                text = build_expiring_message(r.nombre, r.items)
                log.info("[DRY] %s\n%s\nURL: %s", r.phone, text, wa_me_link(r.phone, text))
            return 0

        launched = True
        bat_proc = await start_bat_once(settings.bat_path, BAT_GRACE_MS)
        ok = await wait_for_debugger(settings.debug_port, DEBUGGER_WAIT_MS)
        if not ok:
            raise DebuggerUnavailable(
                f"No se detectó CDP en 127.0.0.1:{settings.debug_port}. Verifica el .bat."
            )
        playwright = await async_playwright().start()
        _browser, page = await connect_over_cdp(playwright, settings.debug_port)

        log.info("Verificando sesión de WhatsApp...")
        await wait_for_whatsapp_ready(page, settings.qr_wait_seconds, log=log)
        log.info(
            "WhatsApp listo. gap base=%sms jitter=%s%% post-send=%sms chat-timeout=%sms",
            settings.send_gap_ms,
            round(settings.jitter_pct * 100),
            settings.post_send_sleep_ms,
            settings.chat_ready_timeout_ms,
        )

        sent = 0
        total = len(recipients)
        for i, r in enumerate(recipients, start=1):
            if already_notified_today(conn, r.phone):
                log.info("Ya notificado hoy: %s, salto.", r.phone)
                continue

            log.info("[%s/%s] %s", i, total, r.phone)
            text = build_expiring_message(r.nombre, r.items)
            try:
                status = await send_expiring_notice(
                    page,
                    r.phone,
                    text,
                    chat_timeout_ms=settings.chat_ready_timeout_ms,
                    post_send_sleep_ms=settings.post_send_sleep_ms,
                    log=log,
                )
                log_delivery_result(conn, r.phone, status.value)
                if status is DeliveryStatus.SENT:
                    mark_notified(conn, r.phone)
                    sent += 1
            except Exception as exc:
                log.error("Error con %s: %s", r.phone, exc)
                with suppress(Exception):
                    log_delivery_result(conn, r.phone, "ERROR", str(exc))

            wait = jitter(settings.send_gap_ms, settings.jitter_pct)
            log.info("Esperando %s ms antes del próximo...", wait)
            await _pause(wait)

        log.info("Listo. Mensajes enviados: %s", sent)
        return sent
    finally:
        if page is not None:
            with suppress(Exception):
                await page.close()
        if launched:
            await kill_edge()
            await kill_process_tree(bat_proc)
        if playwright is not None:
            with suppress(Exception):
                await playwright.stop()
        with suppress(Exception):
            conn.close()


class ExpiringNotifier:
    """Serialises scheduled and manual runs; a run never overlaps another."""

    def __init__(self, settings: ExpiringNotifierSettings, log: logging.Logger):
        self.settings = settings
        self.log = log
        self._running = False
        self.last_error: Exception | None = None

    def _now(self) -> str:
        return datetime.now(ZoneInfo(self.settings.timezone)).strftime("%Y-%m-%d %H:%M:%S")

    async def safe_run(self) -> int | None:
        if self._running:
            self.log.info("Ya hay una ejecución en curso.")
            return None

        self._running = True
        self.last_error = None
        self.log.info("Iniciando run_once() a las %s (%s)", self._now(), self.settings.timezone)
        try:
            return await run_once(self.settings, self.log)
        except Exception as exc:
            self.last_error = exc
            self.log.exception("Error en run_once")
            return None
        finally:
            self._running = False
            self.log.info("Finalizó run_once() a las %s", self._now())


def print_delivery_log(settings: ExpiringNotifierSettings, phone: str, limit: int = 50) -> int:
    """Print the latest `wa_logs` entries for a phone, newest first. Returns how many."""
    conn = get_conn(settings.database_url)
    try:
        entries = get_delivery_log(conn, to_e164(phone), limit)
    finally:
        conn.close()
    for e in entries:
        print(f"{e['created_at']}  {e['status']:<8}  {e['phone']}  {e.get('message') or ''}")
    return len(entries)


def build_trigger(settings: ExpiringNotifierSettings) -> CronTrigger:
    """Raises ValueError for an invalid cron expression or timezone."""
    return CronTrigger.from_crontab(settings.cron_schedule, timezone=settings.timezone)


async def serve(notifier: ExpiringNotifier, trigger: CronTrigger, run_now: bool) -> None:
    scheduler = AsyncIOScheduler(timezone=notifier.settings.timezone)
    scheduler.add_job(notifier.safe_run, trigger=trigger, id=JOB_ID, max_instances=1, coalesce=True)
    scheduler.start()
    notifier.log.info("Tarea programada: %s (%s).", notifier.settings.cron_schedule, notifier.settings.timezone)
    notifier.log.info("Espera máxima QR: %ss", notifier.settings.qr_wait_seconds)

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        # Not available on Windows; Ctrl+C still raises KeyboardInterrupt there.
        with suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop.set)

    try:
        if run_now:
            notifier.log.info("RUN_NOW: ejecutando inmediatamente...")
            await notifier.safe_run()
        await stop.wait()
        notifier.log.info("Señal recibida. Cerrando recursos...")
    finally:
        scheduler.shutdown(wait=False)


def main(argv: Sequence[str] | None = None) -> int:
    load_dotenv(override=True)
    configure_logging()
    args = list(sys.argv[1:] if argv is None else argv)

    try:
        settings = ExpiringNotifierSettings.from_env()
    except ConfigError as exc:
        build_run_logger(LOG_NAME, default_log_dir()).error("%s", exc)
        return 1

    if "--log" in args:
        i = args.index("--log")
        if i + 1 >= len(args):
            print("Uso: --log <telefono>", file=sys.stderr)
            return 1
        print_delivery_log(settings, args[i + 1])
        return 0

    log = build_run_logger(LOG_NAME, settings.log_dir)
    try:
        trigger = build_trigger(settings)
    except (ValueError, LookupError) as exc:
        log.error("CRON inválido: %s (%s)", settings.cron_schedule, exc)
        return 1

    notifier = ExpiringNotifier(settings, log)

    if "--once" in args:
        asyncio.run(notifier.safe_run())
        return 1 if notifier.last_error else 0

    try:
        asyncio.run(serve(notifier, trigger, run_now="--now" in args or settings.run_now))
    except KeyboardInterrupt:
        log.info("SIGINT recibido. Saliendo.")
        return 130
    return 0


if __name__ == "__main__":
    sys.exit(main())
