import asyncio
import logging

from .driver import PageDriver
from .errors import LoginOperationError
from .login import LoginResult, LoginStateMachine, LoginUrlSet

logger = logging.getLogger("tabwarden.PageWatcher")

TICK_INTERVAL = 1.0


class PageWatcher:
    """poll one page's url and run the login flow whenever it sits on a login url.

    lifecycle:
    - `start()`: schedule the polling task on the running loop
    - `tick()`: one sample; runs at most one login attempt at a time
    - `stop()`: cancel token. no tick starts afterwards, an in-flight
      attempt is left to finish. safe to call any number of times
    - `wait_stopped()`: await the polling task

    failures inside an attempt are logged and polling carries on, the user may
    bounce back to the login url and we want to try again then.
    a stopped watcher can't be restarted; make a new one.
    """

    def __init__(
        self,
        driver: PageDriver,
        login_urls: LoginUrlSet,
        state_machine: LoginStateMachine,
        *,
        interval: float = TICK_INTERVAL,
        name: str | None = None,
    ):
        """
        :param driver: driver bound to the watched page.
        :param login_urls: urls that trigger a login attempt.
        :param state_machine: login flow to run on a match.
        :param interval: seconds between ticks.
        :param name: used in log messages; defaults to the driver repr.
        """
        self.driver = driver
        self.login_urls = login_urls
        self.state_machine = state_machine
        self.interval = interval
        self.name = name or repr(driver)
        self.attempts = 0
        self.last_result: LoginResult | None = None
        self.last_error: BaseException | None = None
        self._cancel = asyncio.Event()
        self._task: asyncio.Task | None = None
        self._in_flight = False

    def __repr__(self):
        return f"<PageWatcher {self.name} attempts={self.attempts} stopped={self.stopped}>"

    @property
    def stopped(self) -> bool:
        return self._cancel.is_set()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    def start(self):
        """schedule polling. ignored while already running.

        :raises RuntimeError: watcher was stopped, or no running event loop.
        """
        if self.stopped:
            raise RuntimeError(f"{self.name} watcher was stopped; create a new one")
        if self.running:
            logger.debug("watcher for %s already running", self.name)
            return
        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._run(), name=f"PageWatcher {self.name}")
        logger.debug("started watcher for %s (interval=%.2fs)", self.name, self.interval)

    def stop(self):
        if self.stopped:
            return
        self._cancel.set()
        logger.debug("stopped watcher for %s (in_flight=%s)", self.name, self._in_flight)

    async def wait_stopped(self, timeout: float | None = None):
        """wait for the polling task to exit. cancels it after `timeout` seconds."""
        task = self._task
        if task is None or task.done():
            return
        try:
            await asyncio.wait_for(asyncio.shield(task), timeout)
        except asyncio.TimeoutError:
            logger.warning("timeout waiting for watcher %s to stop. cancelling task", self.name)
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def _run(self):
        while not self.stopped:
            try:
                await asyncio.wait_for(self._cancel.wait(), self.interval)
            except asyncio.TimeoutError:
                pass
            if self.stopped:
                break
            await self.tick()
        logger.debug("watcher loop for %s exited", self.name)

    async def tick(self) -> LoginResult | None:
        """sample the url once and run a login attempt on a match.

        :return: the attempt's result, or `None` if nothing ran or it failed.
        """
        if self._in_flight:
            logger.debug("login attempt still in flight on %s, skipping tick", self.name)
            return None
        try:
            url = await self.driver.current_url()
        except Exception:
            logger.warning("failed sampling url for %s", self.name, exc_info=True)
            return None
        if not self.login_urls.matches(url):
            return None

        self._in_flight = True
        self.attempts += 1
        logger.info("login page detected on %s <%s>, attempting to log in", self.name, url)
        try:
            result = await self.state_machine.run(self.driver)
        except LoginOperationError as e:
            self.last_error = e
            logger.error("login operation error on %s (step=%s): %s", self.name, e.step, e)
            return None
        except Exception as e:
            self.last_error = e
            logger.exception("unexpected error during login attempt on %s", self.name)
            return None
        finally:
            self._in_flight = False

        self.last_result = result
        self.last_error = None
        if self.stopped:
            logger.info("login attempt on %s finished after its watcher was stopped", self.name)
        return result


__all__ = [
    "PageWatcher",
    "TICK_INTERVAL",
]
