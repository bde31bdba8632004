import logging
import types

import pytest

import worker.polling as polling


class FakeClock:
    """Monotonic clock advanced only by the fake sleep."""

    def __init__(self):
        self.value = 0.0
        self.sleeps = []

    def now(self):
        return self.value

    async def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.value += seconds


@pytest.fixture
def clock(monkeypatch):
    c = FakeClock()
    monkeypatch.setattr(polling, "time", types.SimpleNamespace(monotonic=c.now))
    return c


class FakeLocator:
    def __init__(self, page, selector):
        self.page = page
        self.selector = selector

    @property
    def last(self):
        return self

    @property
    def first(self):
        return self

    async def count(self):
        return self.page.counts.get(self.selector, 0)

    async def is_visible(self):
        value = self.page.visible.get(self.selector, False)
        return value() if callable(value) else value

    async def click(self, **kwargs):
        self.page.events.append(("click", self.selector))

    async def press(self, key):
        self.page.events.append(("press", key))


class FakeKeyboard:
    def __init__(self, page):
        self.page = page

    async def insert_text(self, text):
        self.page.events.append(("insert_text", text))

    async def press(self, key):
        self.page.events.append(("key", key))
        if key == "Enter" and self.page.confirm:
            sel = "div.message-out"
            self.page.counts[sel] = self.page.counts.get(sel, 0) + 1


class FakePage:
    """Just enough of a Playwright page for the WhatsApp helpers."""

    def __init__(self, fail_goto=0, confirm=True):
        self.fail_goto = fail_goto
        self.confirm = confirm
        self.counts = {}
        self.visible = {}
        self.events = []
        self.gotos = []
        self.closed = False
        self.keyboard = FakeKeyboard(self)

    async def goto(self, url, **kwargs):
        self.gotos.append(url)
        if self.fail_goto > 0:
            self.fail_goto -= 1
            raise RuntimeError("navigation failed")

    async def wait_for_selector(self, selector, timeout=None):
        return None

    async def wait_for_load_state(self, state, timeout=None):
        self.events.append(("load_state", state))

    def locator(self, selector):
        return FakeLocator(self, selector)

    async def close(self):
        self.closed = True


@pytest.fixture
def fake_page():
    return FakePage


@pytest.fixture
def run_log():
    log = logging.getLogger("tests.run")
    log.setLevel(logging.INFO)
    return log
