import pytest

from tabwarden import PageDriver


class FakeDriver(PageDriver):
    """in-memory page: a url and the set of selectors currently on screen."""

    def __init__(self, url: str = "about:blank", present=()):
        self.url = url
        self.present = set(present)
        self.typed: list[tuple[str, str]] = []
        self.clicked: list[str] = []
        self.probed: list[str] = []
        self.actions: list[tuple[str, str]] = []

    async def current_url(self):
        return self.url

    async def wait_for_control(self, selector, timeout=3.0):
        self.probed.append(selector)
        return selector if selector in self.present else None

    async def type_into(self, control, text, delay=0.1):
        self.typed.append((control, text))
        self.actions.append(("type", text))

    async def click(self, control):
        self.clicked.append(control)
        self.actions.append(("click", control))


class FakeConnection:
    def __init__(self):
        self.handlers: dict[type, list] = {}
        self.sent: list = []
        self.send_result = None

    def add_handler(self, event_type, handler):
        self.handlers.setdefault(event_type, []).append(handler)

    def remove_handler(self, event_type=None, handler=None):
        self.handlers[event_type].remove(handler)
        if not self.handlers[event_type]:
            del self.handlers[event_type]

    async def send(self, cmd):
        self.sent.append(cmd)
        if callable(self.send_result):
            return self.send_result(cmd)
        return self.send_result

    async def emit(self, event_type, ev):
        for handler in list(self.handlers.get(event_type, [])):
            await handler(ev, self)


class FakeTab(FakeConnection):
    def __init__(self, target_id: str = "T1", url: str = "https://example.com/"):
        super().__init__()
        self.target_id = target_id
        self.url = url

    def __repr__(self):
        return f"<FakeTab {self.target_id}>"


class FakeBrowser:
    def __init__(self, tabs=()):
        self.tabs = list(tabs)
        self.connection = FakeConnection()
        self.stopped = False
        self._process = None

    @property
    def main_tab(self):
        return self.tabs[0]

    async def update_targets(self):
        pass

    def stop(self):
        self.stopped = True


@pytest.fixture
def fake_driver():
    return FakeDriver()


@pytest.fixture
def fake_tab():
    return FakeTab()


@pytest.fixture
def fake_browser(fake_tab):
    return FakeBrowser([fake_tab])
