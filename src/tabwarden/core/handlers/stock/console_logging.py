import json
import logging
import os
import time
from datetime import datetime, timezone
from typing import Callable

from nodriver import cdp, Tab

from ..observer import PageObserver
from ....utils import storage_path

logger = logging.getLogger("tabwarden.ConsoleLogging")


def _call_frames(stack_trace: cdp.runtime.StackTrace | None) -> list[dict]:
    if stack_trace is None:
        return []
    return [
        {
            "functionName": f.function_name,
            "url": f.url,
            "lineNumber": f.line_number,
            "columnNumber": f.column_number,
        }
        for f in stack_trace.call_frames
    ]


def _arg_value(arg: cdp.runtime.RemoteObject):
    if arg.value is not None:
        return arg.value
    if arg.unserializable_value is not None:
        return str(arg.unserializable_value)
    return arg.description


class ConsoleLogging(PageObserver):
    """append page console output, page errors and failed requests as json lines.

    one file per page load: `<log_dir>/<host>/<path>/<epoch ms>.jsonl`, where
    the timestamp is when the tab was first seen on that url. only the current
    file of each tab is remembered, and everything about a tab is dropped in
    `forget()`.
    """

    def __init__(self, log_dir: str | None, *, clock: Callable[[], float] = time.time):
        self.log_dir = log_dir
        self.clock = clock
        # target id -> (url, path)
        self.files: dict[str, tuple[str, str]] = {}
        # (target id, request id) -> request
        self.requests: dict[tuple[str, str], cdp.network.Request] = {}
        self._warned = False

    def _path_for(self, tab: Tab) -> str | None:
        if not self.log_dir:
            if not self._warned:
                logger.warning("console log dir is not set, console events won't be recorded")
                self._warned = True
            return None
        url = tab.url or ""
        current = self.files.get(tab.target_id)
        if current is not None and current[0] == url:
            return current[1]
        host, rel = storage_path(url)
        path = os.path.join(self.log_dir, host, rel, f"{int(self.clock() * 1000)}.jsonl")
        self.files[tab.target_id] = (url, path)
        return path

    def write(self, tab: Tab, event_name: str, type_: str, message: str, extra: dict):
        path = self._path_for(tab)
        if path is None:
            return
        record = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "eventName": event_name,
            "type": type_,
            "message": message,
            "extra": extra,
        }
        try:
            os.makedirs(os.path.dirname(path), exist_ok=True)
            with open(path, "a", encoding="utf-8") as f:
                f.write(json.dumps(record, ensure_ascii=False, default=str) + "\n")
        except OSError:
            logger.exception("failed writing console log %s", path)

    async def on_console(self, tab, ev: cdp.log.EntryAdded):
        entry = ev.entry
        self.write(tab, "console", entry.level, entry.text, {
            "source": entry.source,
            "url": entry.url,
            "lineNumber": entry.line_number,
            "stackTrace": _call_frames(entry.stack_trace),
        })

    async def on_page_error(self, tab, ev: cdp.runtime.ExceptionThrown):
        details = ev.exception_details
        message = details.text
        if details.exception is not None and details.exception.description:
            message = details.exception.description
        self.write(tab, "pageerror", "error", message, {
            "url": details.url,
            "lineNumber": details.line_number,
            "columnNumber": details.column_number,
            "stackTrace": _call_frames(details.stack_trace),
        })

    async def on_request(self, tab, ev: cdp.network.RequestWillBeSent):
        self.requests[(tab.target_id, str(ev.request_id))] = ev.request

    async def on_loading_finished(self, tab, ev: cdp.network.LoadingFinished):
        self.requests.pop((tab.target_id, str(ev.request_id)), None)

    async def on_request_failed(self, tab, ev: cdp.network.LoadingFailed):
        request = self.requests.pop((tab.target_id, str(ev.request_id)), None)
        self.write(tab, "requestfailed", "error", ev.error_text, {
            "url": request.url if request is not None else None,
            "method": request.method if request is not None else None,
            "resourceType": ev.type_.value if ev.type_ is not None else None,
            "canceled": ev.canceled,
        })

    async def on_console_api_called(self, tab, ev: cdp.runtime.ConsoleAPICalled):
        values = [_arg_value(a) for a in ev.args]
        self.write(tab, "consoleApiCalled", ev.type_, " ".join(str(v) for v in values), {
            "args": values,
            "stackTrace": _call_frames(ev.stack_trace),
        })

    async def forget(self, page_id):
        self.files.pop(page_id, None)
        for key in [k for k in self.requests if k[0] == page_id]:
            del self.requests[key]

    async def stop(self):
        self.requests.clear()
        self.files.clear()


__all__ = [
    "ConsoleLogging",
]
