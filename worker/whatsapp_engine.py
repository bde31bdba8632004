"""
WhatsApp Web delivery on an attached Playwright page.

Every function takes the page it drives plus a logger; nothing here owns the
browser. Two senders exist:

- `send_via_whatsapp`: password-change notices. Types into the chat opened by
  the deep link, then watches for a new outgoing bubble.
- `send_expiring_notice`: expiring notices. Waits for any of the known editor
  selectors, prefers the send button, and falls back to a wa.me link.
"""
from __future__ import annotations

import asyncio
import enum
import logging
import random
import time
from urllib.parse import quote

from worker.polling import RetryPolicy, poll, retry

log = logging.getLogger(__name__)

WHATSAPP_HOME = "https://web.whatsapp.com/"
EDITOR_SELECTOR = 'div[role="textbox"][contenteditable="true"]'
OUTGOING_SELECTOR = "div.message-out"
SENT_BUBBLE_SELECTORS = (
    "div.message-out",
    "div._amk9.selectable-text",
    'div[data-testid="msg-out"]',
)
EDITOR_SELECTORS = (
    '[data-testid="conversation-compose-box-input"] div[contenteditable="true"]',
    'div[role="textbox"][contenteditable="true"]',
    'div[contenteditable="true"][data-tab]',
)
CHAT_HEADER_SELECTOR = '[data-testid="conversation-info-header"], header[data-testid="conversation-header"]'
SEND_BUTTON_SELECTOR = '[data-testid="compose-btn-send"], [aria-label="Enviar"], [data-icon="send"]'
CHAT_LIST_SELECTOR = '[data-testid="chat-list"]'
QR_SELECTOR = 'canvas[aria-label*="QR"], canvas[aria-label*="Scan"], [data-testid="qrcode"]'

NAV_TIMEOUT_MS = 30000
EDITOR_TIMEOUT_MS = 60000
SENT_CONFIRM_SECONDS = 10.0
SENT_POLL_SECONDS = 0.25
NETWORK_IDLE_TIMEOUT_MS = 3000
UNCONFIRMED_PAUSE_SECONDS = 2.5
MIN_SPACING_MS = 500
DEFAULT_SPACING_MS = 8000

PASSWORD_RETRY = RetryPolicy(max_attempts=3, delay=1.5)
EXPIRING_RETRY = RetryPolicy(max_attempts=3, delay=0.8)


class DeliveryStatus(str, enum.Enum):
    SENT = "OK"
    UNCONFIRMED = "UNCONFIRMED"
    FALLBACK = "FALLBACK"
    FAILED = "FAIL"


class WhatsAppLoginTimeout(RuntimeError):
    """The QR code was not scanned in time."""


def deep_link(phone: str, text: str) -> str:
    return f"https://web.whatsapp.com/send?phone={quote(phone, safe='')}&text={quote(text, safe='')}"


def wa_me_link(phone: str, text: str) -> str:
    return f"https://wa.me/{quote(phone, safe='')}?text={quote(text, safe='')}"


def jitter(ms: int, pct: float = 0.15, rng: random.Random | None = None) -> int:
    """`ms` +/- up to `pct` of itself."""
    delta = int(ms * pct)
    r = (rng or random).random()
    return ms + int((r * 2 - 1) * delta)


async def _count(page, selector: str) -> int:
    return await page.locator(selector).count()


async def wait_sent_bubble(
    page,
    prev_count: int,
    timeout: float = SENT_CONFIRM_SECONDS,
    *,
    sleep=asyncio.sleep,
) -> bool:
    """True once any outgoing-bubble selector counts more than `prev_count`."""

    async def _grew() -> bool:
        for sel in SENT_BUBBLE_SELECTORS:
            try:
                if await _count(page, sel) > prev_count:
                    return True
            except Exception:
                continue
        return False

    return await poll(_grew, SENT_POLL_SECONDS, timeout, sleep=sleep)


async def _deliver_once(page, phone: str, text: str, *, sleep=asyncio.sleep) -> bool:
    """One attempt: open chat, replace editor contents, send. Returns confirmation."""
    await page.goto(deep_link(phone, text), wait_until="domcontentloaded", timeout=NAV_TIMEOUT_MS)
    await page.wait_for_selector(EDITOR_SELECTOR, timeout=EDITOR_TIMEOUT_MS)
    editor = page.locator(EDITOR_SELECTOR).last

    prev_count = 0
    try:
        prev_count = await _count(page, OUTGOING_SELECTOR)
    except Exception:
        pass

    await editor.click(delay=60)
    await editor.press("ControlOrMeta+A")
    await editor.press("Backspace")
    await page.keyboard.insert_text(text)
    await page.keyboard.press("Enter")

    confirmed = await wait_sent_bubble(page, prev_count, sleep=sleep)
    if not confirmed:
        try:
            await page.wait_for_load_state("networkidle", timeout=NETWORK_IDLE_TIMEOUT_MS)
        except Exception:
            pass
        await sleep(UNCONFIRMED_PAUSE_SECONDS)
    return confirmed


async def send_via_whatsapp(
    page,
    phone: str,
    text: str,
    spacing_ms: int = DEFAULT_SPACING_MS,
    *,
    policy: RetryPolicy = PASSWORD_RETRY,
    log: logging.Logger = log,
    sleep=asyncio.sleep,
) -> DeliveryStatus:
    """
    Deliver one message, retrying per `policy`. Pacing (`spacing_ms`, floor
    500) is applied after every send that did not fail.
    """

    def _on_error(attempt: int, exc: Exception) -> None:
        log.warning("sendViaWhatsApp intento %s falló (%s): %s", attempt, phone, exc)

    try:
        confirmed = await retry(
            lambda _attempt: _deliver_once(page, phone, text, sleep=sleep),
            policy,
            on_error=_on_error,
            sleep=sleep,
        )
    except Exception:
        return DeliveryStatus.FAILED

    gap = max(MIN_SPACING_MS, int(spacing_ms or DEFAULT_SPACING_MS))
    await sleep(gap / 1000)
    return DeliveryStatus.SENT if confirmed else DeliveryStatus.UNCONFIRMED


async def _is_visible(locator) -> bool:
    try:
        return await locator.is_visible()
    except Exception:
        return False


async def wait_for_whatsapp_ready(
    page,
    qr_wait_seconds: int = 600,
    *,
    log: logging.Logger = log,
    sleep=asyncio.sleep,
    clock=None,
) -> bool:
    """
    Open WhatsApp Web and, if it shows a QR code, wait for the login.

    `qr_wait_seconds=0` waits forever. Raises WhatsAppLoginTimeout otherwise.
    """
    loop_clock = clock or time.monotonic
    await page.goto(WHATSAPP_HOME, wait_until="domcontentloaded", timeout=60000)

    if not await _is_visible(page.locator(QR_SELECTOR).first):
        return True

    log.info("WhatsApp requiere autenticación. Espera máxima para escanear el QR: %ss", qr_wait_seconds)
    start = loop_clock()
    while True:
        still_qr = await _is_visible(page.locator(QR_SELECTOR).first)
        has_list = await _is_visible(page.locator(CHAT_LIST_SELECTOR).first)
        if not still_qr and has_list:
            log.info("Sesión de WhatsApp autenticada.")
            return True
        if qr_wait_seconds > 0 and loop_clock() - start >= qr_wait_seconds:
            raise WhatsAppLoginTimeout("No se escaneó el QR a tiempo.")
        await sleep(1)


async def ensure_chat_ready(page, timeout_ms: int = 12000, *, sleep=asyncio.sleep):
    """Return the first visible message editor, or raise TimeoutError."""
    try:
        await page.wait_for_selector(CHAT_HEADER_SELECTOR, timeout=timeout_ms)
    except Exception:
        pass

    async def _find():
        for sel in EDITOR_SELECTORS:
            el = page.locator(sel).last
            try:
                if await el.count() > 0 and await el.is_visible():
                    return el
            except Exception:
                continue
        return None

    found: list = []

    async def _ready() -> bool:
        el = await _find()
        if el is not None:
            found.append(el)
            return True
        return False

    if await poll(_ready, 0.2, timeout_ms / 1000, sleep=sleep):
        return found[-1]
    raise TimeoutError("No se encontró el editor de mensaje en el chat.")


async def type_and_send(
    page,
    text: str,
    *,
    chat_timeout_ms: int = 12000,
    post_send_sleep_ms: int = 350,
    sleep=asyncio.sleep,
) -> None:
    editor = await ensure_chat_ready(page, chat_timeout_ms, sleep=sleep)
    await editor.click(delay=40)
    try:
        await editor.press("ControlOrMeta+A")
        await editor.press("Backspace")
    except Exception:
        pass
    await page.keyboard.insert_text(text)

    send_btn = page.locator(SEND_BUTTON_SELECTOR).first
    try:
        if await send_btn.count() > 0:
            await send_btn.click(delay=40)
        else:
            await page.keyboard.press("Enter")
    except Exception:
        await page.keyboard.press("Enter")
    await sleep(post_send_sleep_ms / 1000)


async def open_via_wa_link(
    page,
    phone: str,
    text: str,
    *,
    chat_timeout_ms: int = 12000,
    post_send_sleep_ms: int = 350,
    sleep=asyncio.sleep,
) -> None:
    """Fallback route through wa.me's landing page."""
    await page.goto(wa_me_link(phone, text), wait_until="domcontentloaded", timeout=NAV_TIMEOUT_MS)

    action_btn = page.locator("#action-button")
    if await _is_visible(action_btn):
        await action_btn.click()

    use_web = page.locator('a[href*="web.whatsapp.com"], a:has-text("WhatsApp Web")')
    if await _is_visible(use_web):
        try:
            async with page.expect_navigation(wait_until="domcontentloaded", timeout=45000):
                await use_web.click()
        except Exception:
            pass

    await type_and_send(
        page,
        text,
        chat_timeout_ms=chat_timeout_ms,
        post_send_sleep_ms=post_send_sleep_ms,
        sleep=sleep,
    )


async def send_expiring_notice(
    page,
    phone: str,
    text: str,
    *,
    chat_timeout_ms: int = 12000,
    post_send_sleep_ms: int = 350,
    policy: RetryPolicy = EXPIRING_RETRY,
    log: logging.Logger = log,
    sleep=asyncio.sleep,
) -> DeliveryStatus:
    """SENT on success (direct or via wa.me), FALLBACK when both routes failed."""

    async def _attempt(_attempt: int) -> None:
        await page.goto(deep_link(phone, text), wait_until="domcontentloaded", timeout=NAV_TIMEOUT_MS)
        await type_and_send(
            page,
            text,
            chat_timeout_ms=chat_timeout_ms,
            post_send_sleep_ms=post_send_sleep_ms,
            sleep=sleep,
        )

    def _on_error(attempt: int, exc: Exception) -> None:
        log.warning("intento %s falló para %s: %s", attempt, phone, exc)

    try:
        await retry(_attempt, policy, on_error=_on_error, sleep=sleep)
        return DeliveryStatus.SENT
    except Exception:
        pass

    try:
        await open_via_wa_link(
            page,
            phone,
            text,
            chat_timeout_ms=chat_timeout_ms,
            post_send_sleep_ms=post_send_sleep_ms,
            sleep=sleep,
        )
        return DeliveryStatus.SENT
    except Exception as exc:
        log.warning("Fallback también falló para %s: %s", phone, exc)
        return DeliveryStatus.FALLBACK
