import logging
from typing import Callable, Iterable

from nodriver import Tab

from ..addon import Addon
from ...driver import NodriverPageDriver, PageDriver
from ...login import (
    Credentials,
    LoginStateMachine,
    LoginStep,
    LoginUrlSet,
    X_LOGIN_STEPS,
    X_LOGIN_URLS,
)
from ...watcher import PageWatcher, TICK_INTERVAL

logger = logging.getLogger("tabwarden.LoginAddon")


class LoginAddon(Addon):
    """watch every page and log in whenever one lands on a login url.

    one `PageWatcher` per page, keyed by target id.
    """

    name = "LoginAddon"
    description = "auto login on login pages"

    def __init__(
        self,
        credentials: Credentials,
        login_urls: Iterable[str] = X_LOGIN_URLS,
        steps: Iterable[LoginStep] = X_LOGIN_STEPS,
        *,
        interval: float = TICK_INTERVAL,
        driver_factory: Callable[[Tab], PageDriver] = NodriverPageDriver,
        state_machine: LoginStateMachine | None = None,
    ):
        self.login_urls = login_urls if isinstance(login_urls, LoginUrlSet) else LoginUrlSet(login_urls)
        self.state_machine = state_machine or LoginStateMachine(credentials, steps)
        self.interval = interval
        self.driver_factory = driver_factory
        self.watchers: dict[str, PageWatcher] = {}

    async def register(self, tab: Tab):
        page_id = tab.target_id
        existing = self.watchers.get(page_id)
        if existing is not None and not existing.stopped:
            logger.debug("tab <%s> already watched", page_id)
            return
        watcher = PageWatcher(
            self.driver_factory(tab),
            self.login_urls,
            self.state_machine,
            interval=self.interval,
            name=f"tab <{page_id}>",
        )
        self.watchers[page_id] = watcher
        watcher.start()

    async def unregister(self, tab: Tab | None):
        if tab is None:
            return
        watcher = self.watchers.pop(tab.target_id, None)
        if watcher is not None:
            watcher.stop()

    def stop_timers(self):
        for watcher in self.watchers.values():
            watcher.stop()


__all__ = [
    "LoginAddon",
]
