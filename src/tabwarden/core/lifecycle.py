"""observer bookkeeping for pages and the browser.

`ObserverLifecycleManager` is the only thing that adds or removes CDP handlers.
everything it attaches is tracked as a `Subscription` and grouped per page in an
`ObserverRegistry` keyed by the page's target id, so tearing a page down is one
idempotent call no matter how the page went away.
"""

import inspect
import logging
import os
import traceback
from typing import Any, Awaitable, Callable, Iterable

import websockets
import nodriver
from nodriver import cdp, Tab

from .browser import stop as stop_browser
from .errors import CleanupFailure
from .handlers.addon import Addon
from .handlers.observer import PAGE_EVENTS, PAGE_OBSERVER_HOOKS, PageObserver

logger = logging.getLogger("tabwarden.ObserverLifecycleManager")

PageHandler = Callable[[Tab, Any], Awaitable[None] | None]


def _log_cleanup_failure(stage: str, target: object, e: Exception):
    logger.error("%s", CleanupFailure(stage, target, e), exc_info=True)


class Subscription:
    """handle for one `(event_type, handler)` pair attached to an emitter.

    `cancel()` detaches it. safe to call any number of times, and safe
    after the emitter (page) is gone.
    """

    def __init__(self, emitter, event_type: type, handler: Callable):
        self.emitter = emitter
        self.event_type = event_type
        self.handler = handler
        self._active = True

    def __repr__(self):
        return f"<Subscription {self.event_type.__name__} active={self._active}>"

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self):
        if not self._active:
            return
        self._active = False
        try:
            self.emitter.remove_handler(self.event_type, self.handler)
        except Exception as e:
            _log_cleanup_failure("detach", self, e)


def subscribe(emitter, event_type: type, handler: Callable) -> Subscription:
    """attach `handler` for `event_type` on a nodriver `Tab`/`Connection`.

    :return: the handle that detaches it again.
    """
    emitter.add_handler(event_type, handler)
    return Subscription(emitter, event_type, handler)


class ObserverRegistry:
    """page id -> detach callbacks.

    a page has at most one registration set; adding a second one without
    detaching the first is a bug and raises.
    """

    def __init__(self):
        self._entries: dict[str, list[Callable[[], Any]]] = {}

    def __contains__(self, page_id):
        return page_id in self._entries

    def __len__(self):
        return len(self._entries)

    def __iter__(self):
        return iter(list(self._entries))

    def add(self, page_id: str, callbacks: Iterable[Callable[[], Any]]) -> list:
        """store the set for `page_id`.

        :return: the stored set; pass it to `is_current()` to tell this
        registration apart from a later one for the same page.
        """
        if page_id in self._entries:
            raise RuntimeError(f"page {page_id} already has a registration set")
        entry = self._entries[page_id] = list(callbacks)
        return entry

    def is_current(self, page_id: str, entry: list) -> bool:
        return self._entries.get(page_id) is entry

    def detach(self, page_id: str) -> bool:
        """run and drop every callback for `page_id`.

        the entry is removed before anything runs, so re-entrant or repeated
        calls are no-ops. a failing callback doesn't stop the rest.

        :return: `True` if there was anything to detach.
        """
        callbacks = self._entries.pop(page_id, None)
        if callbacks is None:
            return False
        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                _log_cleanup_failure("detach", page_id, e)
        return True

    def detach_all(self):
        for page_id in list(self._entries):
            self.detach(page_id)


class ObserverLifecycleManager:
    """attach observers + addons to every page of a browser and tear them down.

    lifecycle:
    1. `start()`: hook browser-level target events and register existing pages
    - `register(tab)`: enable domains, subscribe page events, register addons
    - `unregister(tab)`: detach the page set and unregister addons (idempotent)
    2. `shutdown()`: timers -> pages -> browser-level handlers -> observers -> browser

    every shutdown stage is isolated; a failure is logged as `CleanupFailure`
    and the next stage still runs.
    """

    def __init__(
        self,
        browser: nodriver.Browser,
        observers: list[PageObserver] | None = None,
        addons: list[Addon] | None = None,
        *,
        extra_handlers: list[tuple[str, PageHandler]] | None = None,
    ):
        """
        :param browser: started nodriver browser.
        :param observers: page observers that receive every page event.
        :param addons: per-page addons.
        :param extra_handlers: additional `(event_name, handler)` pairs; names are
        keys of `PAGE_EVENTS`, handlers are called as `handler(tab, ev)`.
        """
        self.browser = browser
        self.connection = browser.connection if browser is not None else None
        self.observers = observers or []
        self.addons = addons or []
        self.extra_handlers = extra_handlers or []
        for event_name, _ in self.extra_handlers:
            if event_name not in PAGE_EVENTS:
                raise ValueError(f"unknown page event {event_name!r}")
        self.registry = ObserverRegistry()
        self.tabs: dict[str, Tab] = {}
        self._browser_subscriptions: list[Subscription] = []
        self._started = False
        self._stopped = False

    @property
    def stopped(self) -> bool:
        return self._stopped

    async def _call(self, handler: Callable, msg: str, *args):
        """call a sync or async handler with consistent exception handling."""
        def _log_exc_debug(msg, *a):
            logger.debug(msg, *a, exc_info=True)
        def _log_exc_warning(msg, *a):
            logger.warning(msg, *a, exc_info=logger.getEffectiveLevel() <= logging.DEBUG)
        try:
            try:
                res = handler(*args)
                if inspect.isawaitable(res):
                    await res
            except Exception as e:
                current_file = os.path.normcase(os.path.normpath(__file__))
                extracted = traceback.extract_tb(e.__traceback__)
                for frame in extracted:
                    frame_file = os.path.normcase(os.path.normpath(frame.filename))
                    if frame_file != current_file:
                        msg += f"\n  {frame.filename}:{frame.lineno}:\n"
                        break
                msg += f"    {e}\n"
                raise e
        except (
            websockets.exceptions.ConnectionClosedOK,
            websockets.exceptions.ConnectionClosedError,
        ):
            _log_exc_debug("%s target already moved/closed.", msg)
        except websockets.exceptions.InvalidStatus as e:
            if e.response.body.startswith(b"No such target id:"):
                _log_exc_debug("%s target already moved/closed.", msg)
            else:
                logger.exception(msg)
        except (EOFError, websockets.exceptions.InvalidMessage):
            _log_exc_debug("%s websocket handshake/parse already closed.", msg)
        except Exception as e:
            se = str(e)
            if "-32000" in se or "-32001" in se or "-32601" in se:
                _log_exc_warning(msg)
            else:
                logger.exception(msg)

    async def _dispatch_event(self, tab: Tab, event_name: str, ev: object):
        """fan one page event out to every observer hook and extra handler."""
        if self._stopped:
            return
        hook = PAGE_OBSERVER_HOOKS[event_name]
        for observer in self.observers:
            msg = f"failed to run {type(observer).__name__}.{hook} on tab <{tab.target_id}>:"
            await self._call(getattr(observer, hook), msg, tab, ev)
        for name, handler in self.extra_handlers:
            if name == event_name:
                msg = f"failed to run {event_name} handler {handler!r} on tab <{tab.target_id}>:"
                await self._call(handler, msg, tab, ev)

    def _make_dispatcher(self, tab: Tab, event_name: str):
        # nodriver may call handlers with (event) or (event, connection)
        async def _dispatch(ev, *_):
            await self._dispatch_event(tab, event_name, ev)
        _dispatch.__name__ = f"dispatch_{event_name}"
        return _dispatch

    async def register(self, tab: Tab):
        """attach all page observers and addons to `tab`.

        a page that is already registered is left untouched.
        """
        if self._stopped:
            logger.debug("not registering %s, manager stopped", tab)
            return
        page_id = tab.target_id
        if page_id in self.registry:
            logger.debug("tab <%s> already registered", page_id)
            return

        subscriptions = [
            subscribe(tab, ev_type, self._make_dispatcher(tab, name))
            for name, ev_type in PAGE_EVENTS.items()
        ]
        # claim the slot before awaiting anything so concurrent calls bail out above
        entry = self.registry.add(page_id, [s.cancel for s in subscriptions])
        self.tabs[page_id] = tab

        for enable in (cdp.network.enable, cdp.runtime.enable, cdp.log.enable):
            msg = f"failed to enable {enable.__module__.rsplit('.', 1)[-1]} for tab <{page_id}>:"
            await self._call(tab.send, msg, enable())

        for addon in self.addons:
            # the page may have closed while we were awaiting
            if not self.registry.is_current(page_id, entry):
                logger.debug("tab <%s> went away during registration", page_id)
                return
            try:
                await addon.register(tab)
            except Exception:
                logger.exception("failed to register addon %s on tab <%s>", addon.name, page_id)
                continue
            if not self.registry.is_current(page_id, entry):
                # unregister already ran for this addon; undo what register just did
                await self._stage(f"unregister {addon.name}", page_id, addon.unregister, tab)
        if not self.registry.is_current(page_id, entry):
            return
        logger.info("registered observers for tab <%s> %s", page_id, getattr(tab, "url", ""))

    async def unregister(self, tab: Tab | str):
        """detach everything attached to a page. no-op if it isn't registered.

        :param tab: the `Tab` or its target id.
        """
        page_id = tab if isinstance(tab, str) else tab.target_id
        if not self.registry.detach(page_id):
            logger.debug("tab <%s> not registered, nothing to clean up", page_id)
            return
        tab_obj = self.tabs.pop(page_id, None)
        if tab_obj is None and not isinstance(tab, str):
            tab_obj = tab
        for addon in self.addons:
            try:
                await addon.unregister(tab_obj)
            except Exception as e:
                _log_cleanup_failure(f"unregister {addon.name}", page_id, e)
        for observer in self.observers:
            try:
                await observer.forget(page_id)
            except Exception as e:
                _log_cleanup_failure(f"forget {type(observer).__name__}", page_id, e)
        logger.info("cleaned up event listeners for tab <%s>", page_id)

    async def _on_target_created(self, ev: cdp.target.TargetCreated, *_):
        if self._stopped or ev.target_info.type_ != "page":
            return
        target_id = ev.target_info.target_id
        logger.debug("new target created: %s <%s>", ev.target_info.type_, ev.target_info.url)
        await self._call(self.browser.update_targets, f"failed to update targets for <{target_id}>:")
        tab = next((t for t in self.browser.tabs if t.target_id == target_id), None)
        if tab is None:
            logger.debug("no tab found for new target %s", target_id)
            return
        await self._call(self.register, f"failed to register new tab <{target_id}>:", tab)

    async def _on_target_destroyed(self, ev: cdp.target.TargetDestroyed, *_):
        if self._stopped:
            return
        await self._call(self.unregister, f"failed to unregister tab <{ev.target_id}>:", ev.target_id)

    async def start(self):
        """hook browser-level target events and register every open page."""
        if self._started:
            return
        self._started = True
        self._browser_subscriptions = [
            subscribe(self.connection, cdp.target.TargetCreated, self._on_target_created),
            subscribe(self.connection, cdp.target.TargetDestroyed, self._on_target_destroyed),
        ]
        await self._call(
            self.connection.send,
            "failed to enable target discovery:",
            cdp.target.set_discover_targets(discover=True),
        )
        for tab in list(self.browser.tabs):
            await self.register(tab)

    async def _stage(self, stage: str, target: object, fn: Callable, *args):
        try:
            res = fn(*args)
            if inspect.isawaitable(res):
                await res
        except Exception as e:
            _log_cleanup_failure(stage, target, e)

    async def shutdown(self, timers: Iterable[Any] = (), *, close_browser: bool = True):
        """ordered teardown.

        1. stop timers (`timers` + every addon's `stop_timers()`) so nothing new
           gets scheduled against a closing target
        2. detach every page set and unregister addons
        3. detach browser-level handlers
        4. stop observers
        5. close the browser

        :param timers: objects with a sync or async `stop()`.
        :param close_browser: skip stage 5 when `False`.
        """
        if self._stopped:
            return
        self._stopped = True
        logger.info("shutting down (pages=%d)", len(self.registry))

        for timer in timers:
            await self._stage("timers", timer, timer.stop)
        for addon in self.addons:
            await self._stage("timers", addon, addon.stop_timers)

        for page_id in self.registry:
            await self._stage("pages", page_id, self.unregister, page_id)

        for sub in self._browser_subscriptions:
            await self._stage("browser handlers", sub, sub.cancel)
        self._browser_subscriptions = []

        for observer in self.observers:
            await self._stage("observers", observer, observer.stop)

        if close_browser and self.browser is not None:
            await self._stage("browser", self.browser, stop_browser, self.browser)
            logger.info("browser closed successfully.")


__all__ = [
    "Subscription",
    "subscribe",
    "ObserverRegistry",
    "ObserverLifecycleManager",
]
