from nodriver import cdp, Tab

# page-level event names -> CDP event types.
# `consoleApiCalled` is the raw Runtime domain feed, `console` is the Log domain
# (browser-side entries: violations, network errors, interventions).
PAGE_EVENTS: dict[str, type] = {
    "console": cdp.log.EntryAdded,
    "pageerror": cdp.runtime.ExceptionThrown,
    "requestfailed": cdp.network.LoadingFailed,
    "response": cdp.network.ResponseReceived,
    "request": cdp.network.RequestWillBeSent,
    "loadingfinished": cdp.network.LoadingFinished,
    "consoleApiCalled": cdp.runtime.ConsoleAPICalled,
}

# event name -> `PageObserver` hook
PAGE_OBSERVER_HOOKS: dict[str, str] = {
    "console": "on_console",
    "pageerror": "on_page_error",
    "requestfailed": "on_request_failed",
    "response": "on_response",
    "request": "on_request",
    "loadingfinished": "on_loading_finished",
    "consoleApiCalled": "on_console_api_called",
}


class PageObserver:
    """base class for a page observer managed by `ObserverLifecycleManager`

    override methods to handle different page events.

    **NOTE**: observers never subscribe themselves. the manager owns every
    subscription and fans events out to all observers.

    hooks:
    - on_request
    - on_response
    - on_loading_finished
    - on_request_failed
    - on_console
    - on_console_api_called
    - on_page_error
    - forget
    """

    async def on_request(self, tab: Tab, ev: cdp.network.RequestWillBeSent):
        """handle a `RequestWillBeSent` event"""
        pass

    async def on_response(self, tab: Tab, ev: cdp.network.ResponseReceived):
        """handle a `ResponseReceived` event

        the body isn't available yet; wait for `on_loading_finished()`.
        """
        pass

    async def on_loading_finished(self, tab: Tab, ev: cdp.network.LoadingFinished):
        """handle a `LoadingFinished` event"""
        pass

    async def on_request_failed(self, tab: Tab, ev: cdp.network.LoadingFailed):
        """handle a `LoadingFailed` event"""
        pass

    async def on_console(self, tab: Tab, ev: cdp.log.EntryAdded):
        """handle a `Log.entryAdded` event"""
        pass

    async def on_console_api_called(self, tab: Tab, ev: cdp.runtime.ConsoleAPICalled):
        """handle a `Runtime.consoleAPICalled` event"""
        pass

    async def on_page_error(self, tab: Tab, ev: cdp.runtime.ExceptionThrown):
        """handle an uncaught page exception"""
        pass

    async def forget(self, page_id: str):
        """hook for dropping per-page state once the page is unregistered

        :param page_id: target id of the page that went away.
        """
        pass

    async def stop(self):
        """hook for stopping/cleaning up the observer if needed"""
        pass


__all__ = [
    "PAGE_EVENTS",
    "PAGE_OBSERVER_HOOKS",
    "PageObserver",
]
