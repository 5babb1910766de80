"""process runner: start chrome, attach everything, wait for a reason to stop.

every way out (signals, restart timer, browser exit) funnels into
`Tabwarden.request_shutdown()`; the first reason wins and decides the exit code.
"""

import asyncio
import enum
import logging
import signal

import nodriver

from ..config import Settings
from .browser import open_with_timeout, stop as stop_browser, NAVIGATION_TIMEOUT
from .handlers import (
    Addon,
    PageObserver,
    ResponseCapture,
    ConsoleLogging,
    LoginAddon,
    CookieExport,
    ViewportPatch,
)
from .lifecycle import ObserverLifecycleManager
from .login import Credentials

logger = logging.getLogger("tabwarden.Tabwarden")


class ShutdownReason(enum.Enum):
    SIGINT = "SIGINT"
    SIGTERM = "SIGTERM"
    RESTART_INTERVAL = "RESTART_INTERVAL"
    BROWSER_DISCONNECTED = "BROWSER_DISCONNECTED"


# non-zero asks the supervisor to relaunch us
EXIT_CODES: dict[ShutdownReason, int] = {
    ShutdownReason.SIGINT: 0,
    ShutdownReason.SIGTERM: 0,
    ShutdownReason.RESTART_INTERVAL: 1,
    ShutdownReason.BROWSER_DISCONNECTED: 1,
}


class RestartTimer:
    """call `callback` once after `interval` seconds unless stopped first."""

    def __init__(self, interval: float, callback):
        self.interval = interval
        self.callback = callback
        self._handle: asyncio.TimerHandle | None = None

    @property
    def active(self) -> bool:
        return self._handle is not None

    def start(self):
        if self._handle is not None:
            return
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self.interval, self._fire)
        logger.info("scheduled restart in %ss", self.interval)

    def _fire(self):
        self._handle = None
        self.callback()

    def stop(self):
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None


class ProcessWatch:
    """call `callback` when the browser process exits on its own."""

    def __init__(self, browser: nodriver.Browser, callback):
        self.browser = browser
        self.callback = callback
        self._task: asyncio.Task | None = None

    def start(self):
        process = getattr(self.browser, "_process", None)
        if process is None:
            logger.debug("no browser process to watch")
            return
        self._task = asyncio.get_running_loop().create_task(self._watch(process))

    async def _watch(self, process):
        returncode = await process.wait()
        logger.warning("browser process exited (returncode=%s)", returncode)
        self.callback()

    async def stop(self):
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass


class Tabwarden:
    """the long-running process.

    usage:
    ```python
    code = await Tabwarden(Settings()).run()
    ```
    """

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or Settings()
        self.browser: nodriver.Browser | None = None
        self.manager: ObserverLifecycleManager | None = None
        self.restart_timer: RestartTimer | None = None
        self.process_watch: ProcessWatch | None = None
        self.shutdown_reason: ShutdownReason | None = None
        self._shutdown_requested: asyncio.Event | None = None

    def browser_args(self) -> list[str]:
        s = self.settings
        width, height = s.screen_size
        args = [
            "--disable-dev-shm-usage",
            "--disable-gpu",
            "--no-first-run",
            f"--window-size={width},{height}",
            f"--lang={s.browser_lang}",
        ]
        if s.open_devtools:
            args.append("--auto-open-devtools-for-tabs")
        if s.browser_user_agent:
            args.append(f"--user-agent={s.browser_user_agent}")
        return args

    def build_observers(self) -> list[PageObserver]:
        s = self.settings
        return [
            ResponseCapture(s.target_url_patterns, s.responses_dir),
            ConsoleLogging(s.console_log_dir),
        ]

    def build_addons(self) -> list[Addon]:
        s = self.settings
        addons: list[Addon] = [ViewportPatch(*s.viewport)]
        if s.login_enabled:
            addons.append(LoginAddon(Credentials.from_settings(s)))
        if s.cookie_file_path:
            addons.append(CookieExport(s.cookie_file_path, s.cookie_url_prefix))
        return addons

    def request_shutdown(self, reason: ShutdownReason):
        if self.shutdown_reason is not None:
            logger.debug("shutdown already requested (%s), ignoring %s", self.shutdown_reason.value, reason.value)
            return
        logger.info("shutdown requested: %s", reason.value)
        self.shutdown_reason = reason
        if self._shutdown_requested is not None:
            self._shutdown_requested.set()

    def install_signal_handlers(self):
        loop = asyncio.get_running_loop()
        for sig, reason in (
            (signal.SIGINT, ShutdownReason.SIGINT),
            (signal.SIGTERM, ShutdownReason.SIGTERM),
        ):
            try:
                loop.add_signal_handler(sig, self.request_shutdown, reason)
            except NotImplementedError:
                logger.warning("signal handlers not supported on this platform; %s ignored", sig.name)

    async def start(self):
        """launch chrome and attach observers + addons to every page."""
        s = self.settings
        self._shutdown_requested = asyncio.Event()
        if self.shutdown_reason is not None:
            self._shutdown_requested.set()
        logger.info("starting browser (%s)", s.chromium_path)
        self.browser = await nodriver.start(
            user_data_dir=s.user_data_dir,
            headless=s.headless,
            browser_executable_path=s.chromium_path,
            browser_args=self.browser_args(),
            sandbox=False,
            lang=s.browser_lang,
        )
        self.manager = ObserverLifecycleManager(
            self.browser,
            self.build_observers(),
            self.build_addons(),
        )
        await self.manager.start()

        if s.restart_interval_seconds > 0:
            self.restart_timer = RestartTimer(
                s.restart_interval_seconds,
                lambda: self.request_shutdown(ShutdownReason.RESTART_INTERVAL),
            )
            self.restart_timer.start()
        self.process_watch = ProcessWatch(
            self.browser,
            lambda: self.request_shutdown(ShutdownReason.BROWSER_DISCONNECTED),
        )
        self.process_watch.start()

    async def open_startup_urls(self):
        """first url in the main tab, the rest in new tabs."""
        for i, url in enumerate(self.settings.startup_url_list):
            if self.shutdown_reason is not None:
                return
            try:
                tab = await open_with_timeout(
                    self.browser,
                    url,
                    new_tab=i > 0,
                    navigation_timeout=NAVIGATION_TIMEOUT,
                )
            except Exception:
                logger.exception("failed to open startup url %s", url)
                continue
            if tab is None:
                continue
            # new tabs usually register through TargetCreated already
            if self.manager is not None:
                await self.manager.register(tab)

    async def shutdown(self):
        timers = [t for t in (self.restart_timer, self.process_watch) if t is not None]
        if self.manager is not None:
            await self.manager.shutdown(timers=timers)
        elif self.browser is not None:
            await stop_browser(self.browser)

    async def run(self) -> int:
        """start, open startup urls, block until shutdown is requested, clean up.

        :return: process exit code for the shutdown reason.
        """
        self.install_signal_handlers()
        try:
            await self.start()
            await self.open_startup_urls()
            await self._shutdown_requested.wait()
        finally:
            await self.shutdown()
        code = EXIT_CODES[self.shutdown_reason]
        logger.info("exiting (reason=%s code=%d)", self.shutdown_reason.value, code)
        return code


__all__ = [
    "Tabwarden",
    "ShutdownReason",
    "EXIT_CODES",
    "RestartTimer",
    "ProcessWatch",
]
