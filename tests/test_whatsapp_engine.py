import asyncio
import logging
import random

import pytest

import worker.whatsapp_engine as engine
from worker.whatsapp_engine import DeliveryStatus, WhatsAppLoginTimeout


def test_links_are_url_encoded():
    assert engine.deep_link("573001112222", "Hola Ana\n*x*") == (
        "https://web.whatsapp.com/send?phone=573001112222&text=Hola%20Ana%0A%2Ax%2A"
    )
    assert engine.wa_me_link("573001112222", "a&b") == "https://wa.me/573001112222?text=a%26b"


def test_jitter_stays_within_bounds():
    rng = random.Random(7)
    values = [engine.jitter(1000, 0.12, rng) for _ in range(200)]
    assert all(880 <= v <= 1120 for v in values)
    assert engine.jitter(1000, 0.0, rng) == 1000


def test_confirmed_send_is_paced(clock, fake_page):
    page = fake_page()

    status = asyncio.run(engine.send_via_whatsapp(page, "573001112222", "hola", 8000, sleep=clock.sleep))

    assert status is DeliveryStatus.SENT
    assert page.gotos == [engine.deep_link("573001112222", "hola")]
    assert ("press", "ControlOrMeta+A") in page.events
    assert ("insert_text", "hola") in page.events
    assert page.events[-1] == ("key", "Enter")
    assert clock.sleeps == [8.0]


def test_unconfirmed_send_waits_then_reports(clock, fake_page):
    page = fake_page(confirm=False)

    status = asyncio.run(engine.send_via_whatsapp(page, "573001112222", "hola", 1000, sleep=clock.sleep))

    assert status is DeliveryStatus.UNCONFIRMED
    assert ("load_state", "networkidle") in page.events
    assert clock.sleeps[-2:] == [2.5, 1.0]
    assert sum(clock.sleeps[:-2]) == pytest.approx(engine.SENT_CONFIRM_SECONDS)


def test_spacing_floor_and_default(clock, fake_page):
    asyncio.run(engine.send_via_whatsapp(fake_page(), "573001112222", "a", 100, sleep=clock.sleep))
    asyncio.run(engine.send_via_whatsapp(fake_page(), "573001112222", "b", 0, sleep=clock.sleep))
    assert clock.sleeps == [0.5, 8.0]


def test_send_retries_then_succeeds(clock, fake_page, caplog):
    page = fake_page(fail_goto=2)

    with caplog.at_level(logging.WARNING):
        status = asyncio.run(engine.send_via_whatsapp(page, "573001112222", "hola", 8000, sleep=clock.sleep))

    assert status is DeliveryStatus.SENT
    assert len(page.gotos) == 3
    assert clock.sleeps == [1.5, 1.5, 8.0]
    assert sum("intento" in r.getMessage() for r in caplog.records) == 2


def test_send_fails_after_three_attempts_without_pacing(clock, fake_page):
    page = fake_page(fail_goto=5)

    status = asyncio.run(engine.send_via_whatsapp(page, "573001112222", "hola", 8000, sleep=clock.sleep))

    assert status is DeliveryStatus.FAILED
    assert len(page.gotos) == 3
    assert clock.sleeps == [1.5, 1.5]


def test_sent_bubble_detected_by_alternate_selector(clock, fake_page):
    page = fake_page()
    page.counts["div._amk9.selectable-text"] = 3
    assert asyncio.run(engine.wait_sent_bubble(page, 2, sleep=clock.sleep)) is True
    assert clock.sleeps == []


def test_whatsapp_ready_without_qr(fake_page):
    page = fake_page()
    assert asyncio.run(engine.wait_for_whatsapp_ready(page, 5)) is True
    assert page.gotos == [engine.WHATSAPP_HOME]


def test_whatsapp_ready_after_qr_scan(clock, fake_page):
    page = fake_page()
    page.visible[engine.QR_SELECTOR] = lambda: clock.value < 3
    page.visible[engine.CHAT_LIST_SELECTOR] = lambda: clock.value >= 3

    ok = asyncio.run(engine.wait_for_whatsapp_ready(page, 600, sleep=clock.sleep, clock=clock.now))

    assert ok is True
    assert clock.sleeps == [1, 1, 1]


def test_whatsapp_login_timeout(clock, fake_page):
    page = fake_page()
    page.visible[engine.QR_SELECTOR] = True

    with pytest.raises(WhatsAppLoginTimeout):
        asyncio.run(engine.wait_for_whatsapp_ready(page, 5, sleep=clock.sleep, clock=clock.now))
    assert len(clock.sleeps) == 5


def test_ensure_chat_ready_returns_visible_editor(clock, fake_page):
    page = fake_page()
    sel = engine.EDITOR_SELECTORS[2]
    page.counts[sel] = 1
    page.visible[sel] = True

    editor = asyncio.run(engine.ensure_chat_ready(page, 3000, sleep=clock.sleep))

    assert editor.selector == sel


def test_ensure_chat_ready_times_out(clock, fake_page):
    with pytest.raises(TimeoutError):
        asyncio.run(engine.ensure_chat_ready(fake_page(), 3000, sleep=clock.sleep))


def _with_editor(page):
    sel = engine.EDITOR_SELECTORS[1]
    page.counts[sel] = 1
    page.visible[sel] = True
    return page


def test_type_and_send_prefers_send_button(clock, fake_page):
    page = _with_editor(fake_page())
    page.counts[engine.SEND_BUTTON_SELECTOR] = 1

    asyncio.run(engine.type_and_send(page, "hola", post_send_sleep_ms=350, sleep=clock.sleep))

    assert ("click", engine.SEND_BUTTON_SELECTOR) in page.events
    assert ("key", "Enter") not in page.events
    assert clock.sleeps == [0.35]


def test_type_and_send_falls_back_to_enter(clock, fake_page):
    page = _with_editor(fake_page())

    asyncio.run(engine.type_and_send(page, "hola", sleep=clock.sleep))

    assert page.events[-1] == ("key", "Enter")


def test_expiring_notice_direct_route(clock, fake_page):
    page = _with_editor(fake_page())

    status = asyncio.run(engine.send_expiring_notice(page, "573001112222", "hola", sleep=clock.sleep))

    assert status is DeliveryStatus.SENT
    assert page.gotos == [engine.deep_link("573001112222", "hola")]


def test_expiring_notice_uses_wa_me_after_retries(clock, fake_page):
    page = _with_editor(fake_page(fail_goto=3))

    status = asyncio.run(engine.send_expiring_notice(page, "573001112222", "hola", sleep=clock.sleep))

    assert status is DeliveryStatus.SENT
    assert len(page.gotos) == 4
    assert page.gotos[-1] == engine.wa_me_link("573001112222", "hola")
    assert clock.sleeps[:2] == [0.8, 0.8]


def test_expiring_notice_reports_fallback_when_everything_fails(clock, fake_page):
    page = fake_page(fail_goto=10)

    status = asyncio.run(engine.send_expiring_notice(page, "573001112222", "hola", sleep=clock.sleep))

    assert status is DeliveryStatus.FALLBACK
    assert len(page.gotos) == 4
