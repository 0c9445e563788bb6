from io import BytesIO
from types import SimpleNamespace

import pytest
from PIL import Image
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError


class FakeElement:
    """Records every call made through the locator API; methods listed in `fail_on` raise."""

    def __init__(self, name="element", text="", fail_on=()):
        self.name = name
        self.text = text
        self.fail_on = set(fail_on)
        self.calls = []
        self.style = {"background": "", "outline": ""}

    def _record(self, method, *args):
        self.calls.append((method,) + args)
        if method in self.fail_on:
            raise RuntimeError(f"{method} blew up on {self.name}")

    def methods(self):
        return [c[0] for c in self.calls]

    def scroll_into_view_if_needed(self):
        self._record("scroll_into_view_if_needed")

    def evaluate(self, script, arg=None):
        self._record("evaluate", script, arg)
        if "previous" in script and arg is None:
            saved = dict(self.style)
            self.style = {"background": "rgba(255, 0, 0, 0.3)", "outline": "2px solid red"}
            return saved
        if "previous" in script:
            self.style = dict(arg)
        return None

    def click(self):
        self._record("click")

    def focus(self):
        self._record("focus")

    def fill(self, value):
        self._record("fill", value)

    def press_sequentially(self, text):
        self._record("press_sequentially", text)

    def dispatch_event(self, event):
        self._record("dispatch_event", event)

    def select_option(self, value):
        self._record("select_option", value)


class FakeLocator:
    def __init__(self, page, query):
        self.page = page
        self.query = query

    def _matches(self):
        if self.query in self.page.bad_queries:
            raise PlaywrightError(f"Unexpected token in selector {self.query!r}")
        return self.page.current_dom().get(self.query, [])

    def count(self):
        return len(self._matches())

    @property
    def first(self):
        return self._matches()[0]

    def all_text_contents(self):
        return [e.text for e in self._matches()]


class FakePage:
    """Just enough of playwright.sync_api.Page for the capture pipeline."""

    def __init__(self, scroll_height=2000):
        self.url = "about:blank"
        self.dom = {}
        self.dom_by_url = {}
        self.bad_queries = set()
        self.fail_urls = set()
        self.scroll_height = scroll_height
        # Content height as laid out at a given viewport width.
        self.scroll_height_by_width = {}
        self.visited = []
        self.waits = []
        self.evaluations = []
        self.viewports = []
        self.listeners = {}
        self.console_on_load = {}
        self.wait_hooks = []

    def current_dom(self):
        merged = dict(self.dom)
        merged.update(self.dom_by_url.get(self.url, {}))
        return merged

    def goto(self, url, wait_until=None, timeout=None):
        self.visited.append(url)
        if url in self.fail_urls:
            raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded navigating to {url}")
        self.url = url
        for msg_type, text in self.console_on_load.get(url, []):
            self.emit_console(msg_type, text)

    def wait_for_timeout(self, ms):
        self.waits.append(ms)
        for hook in list(self.wait_hooks):
            hook(self, ms)

    def locator(self, query):
        return FakeLocator(self, query)

    def evaluate(self, script, arg=None):
        self.evaluations.append((script, arg))
        if "scrollHeight" in script:
            width = self.viewports[-1]["width"] if self.viewports else None
            return self.scroll_height_by_width.get(width, self.scroll_height)
        return None

    def set_viewport_size(self, size):
        self.viewports.append(size)

    def on(self, event, handler):
        self.listeners.setdefault(event, []).append(handler)

    def remove_listener(self, event, handler):
        self.listeners.get(event, []).remove(handler)

    def emit_console(self, msg_type, text):
        for handler in list(self.listeners.get("console", [])):
            handler(SimpleNamespace(type=msg_type, text=text))

    def captured_urls(self):
        return [u for u in self.visited if u != "about:blank"]


class FakeRasterizer:
    """Produces a plain PNG of the requested size and remembers each call."""

    def __init__(self):
        self.calls = []

    def __call__(self, page, width, height):
        self.calls.append((page.url, width, height))
        buf = BytesIO()
        Image.new("RGB", (width, height), "white").save(buf, format="PNG")
        return buf.getvalue()


@pytest.fixture
def page():
    return FakePage()


@pytest.fixture
def rasterizer():
    return FakeRasterizer()


@pytest.fixture
def messages():
    return []


@pytest.fixture
def element_factory():
    return FakeElement
