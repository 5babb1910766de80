import asyncio
import base64
import itertools
import json
import logging
import os
import re
import time
from dataclasses import dataclass
from typing import Callable, Iterable

from nodriver import cdp

from ..observer import PageObserver
from ....utils import storage_path

logger = logging.getLogger("tabwarden.ResponseCapture")

WRITE_TIMEOUT = 30

# method directory used when the request event was never seen
UNKNOWN_METHOD = "UNKNOWN"


@dataclass
class CapturedResponse:
    """a matched response waiting for its body."""
    url: str
    method: str
    response: cdp.network.Response
    request: cdp.network.Request | None
    received_at: float


def _headers(headers) -> dict:
    if headers is None:
        return {}
    return dict(headers)


def _make_capture_dir(base: str, request_id: str) -> str:
    """create and return a fresh directory for one response.

    `base` is tried first, then `base-<request id>`, then numbered variants of
    that. `os.mkdir` fails on an existing directory, so two writers can never
    end up sharing one.
    """
    os.makedirs(os.path.dirname(base), exist_ok=True)
    suffixed = f"{base}-{request_id}"
    candidates = itertools.chain(
        (base, suffixed),
        (f"{suffixed}-{n}" for n in itertools.count(1)),
    )
    for candidate in candidates:
        try:
            os.mkdir(candidate)
        except FileExistsError:
            continue
        return candidate


def _write_detail(base: str, request_id: str, detail: dict) -> str:
    directory = _make_capture_dir(base, request_id)
    with open(os.path.join(directory, "detail.json"), "w", encoding="utf-8") as f:
        json.dump(detail, f, ensure_ascii=False, indent=2)
    return directory


def _write_body(directory: str, body: bytes):
    with open(os.path.join(directory, "data.raw"), "wb") as f:
        f.write(body)


class ResponseCapture(PageObserver):
    """persist responses whose url matches one of `patterns`.

    layout: `<root>/<host>/<path>/<METHOD>/<epoch ms>/{detail.json,data.raw}`

    the body is only readable after `LoadingFinished`, so a match is remembered
    at `ResponseReceived` and written out then. `detail.json` is always written;
    `data.raw` only when chrome still has the body. an empty pattern list
    captures nothing.

    per-request state is keyed by `(target id, request id)` and dropped when the
    request ends or its page is forgotten.
    """

    def __init__(
        self,
        patterns: Iterable[str | re.Pattern],
        root: str = "/responses",
        *,
        write_timeout: float = WRITE_TIMEOUT,
        clock: Callable[[], float] = time.time,
    ):
        """
        :param patterns: regexes searched against each response url.
        :param root: output directory.
        :param write_timeout: seconds allowed for each file write of one response.
        :param clock: wall clock used for the directory timestamp.
        """
        self.patterns = [re.compile(p) if isinstance(p, str) else p for p in patterns]
        self.root = root
        self.write_timeout = write_timeout
        self.clock = clock
        self.requests: dict[tuple[str, str], cdp.network.RequestWillBeSent] = {}
        self.pending: dict[tuple[str, str], CapturedResponse] = {}
        self.saved = 0

    def matches(self, url: str) -> bool:
        return any(p.search(url) for p in self.patterns)

    async def on_request(self, tab, ev):
        if not self.matches(ev.request.url):
            return
        self.requests[(tab.target_id, str(ev.request_id))] = ev

    async def on_response(self, tab, ev):
        key = (tab.target_id, str(ev.request_id))
        url = ev.response.url
        if not self.matches(url):
            return
        sent = self.requests.get(key)
        request = sent.request if sent is not None else None
        method = request.method.upper() if request is not None else UNKNOWN_METHOD
        if method == "OPTIONS":
            self.requests.pop(key, None)
            return
        logger.info("matched response %s %s (status=%s)", method, url, ev.response.status)
        self.pending[key] = CapturedResponse(
            url=url,
            method=method,
            response=ev.response,
            request=request,
            received_at=self.clock(),
        )

    async def on_request_failed(self, tab, ev):
        key = (tab.target_id, str(ev.request_id))
        self.requests.pop(key, None)
        if self.pending.pop(key, None) is not None:
            logger.warning("matched request <%s> failed: %s", ev.request_id, ev.error_text)

    async def on_loading_finished(self, tab, ev):
        key = (tab.target_id, str(ev.request_id))
        self.requests.pop(key, None)
        captured = self.pending.pop(key, None)
        if captured is None:
            return
        data = None
        try:
            body, base64_encoded = await tab.send(cdp.network.get_response_body(ev.request_id))
        except Exception:
            logger.warning("failed to get response body for %s", captured.url, exc_info=True)
        else:
            if base64_encoded:
                data = base64.b64decode(body)
            else:
                data = (body or "").encode("utf-8")
        await self.save(str(ev.request_id), captured, data)

    def directory_for(self, captured: CapturedResponse) -> str:
        """timestamp directory a response is filed under, before de-duplication."""
        host, path = storage_path(captured.url)
        return os.path.join(
            self.root,
            host,
            path,
            captured.method,
            str(int(captured.received_at * 1000)),
        )

    def detail(self, captured: CapturedResponse) -> dict:
        response = captured.response
        request = captured.request
        timing = response.timing.to_json() if response.timing is not None else None
        return {
            "url": captured.url,
            "status": response.status,
            "statusText": response.status_text,
            "headers": _headers(response.headers),
            "timing": timing,
            "request": {
                "method": captured.method,
                "headers": _headers(request.headers) if request is not None else {},
                "postData": request.post_data if request is not None else None,
            },
        }

    async def _offload(self, what: str, url: str, fn, *args):
        try:
            return await asyncio.wait_for(asyncio.to_thread(fn, *args), self.write_timeout)
        except asyncio.TimeoutError:
            logger.error("timed out writing %s for %s", what, url)
        except OSError:
            logger.exception("failed writing %s for %s", what, url)
        return None

    async def save(self, request_id: str, captured: CapturedResponse, body: bytes | None) -> str | None:
        """write one response. failures only abandon this response.

        `detail.json` goes first; without it nothing else is written.
        `data.raw` is skipped when `body` is `None`.

        :return: the directory written to, or `None` if `detail.json` failed.
        """
        directory = await self._offload(
            "detail.json",
            captured.url,
            _write_detail,
            self.directory_for(captured),
            request_id,
            self.detail(captured),
        )
        if directory is None:
            return None
        self.saved += 1
        if body is None:
            logger.info("saved response %s to %s (no body)", captured.url, directory)
            return directory
        await self._offload("data.raw", captured.url, _write_body, directory, body)
        logger.info("saved response %s to %s (bytes=%d)", captured.url, directory, len(body))
        return directory

    async def forget(self, page_id):
        for store in (self.requests, self.pending):
            for key in [k for k in store if k[0] == page_id]:
                del store[key]

    async def stop(self):
        if self.pending:
            logger.debug("dropping %d pending responses", len(self.pending))
        self.requests.clear()
        self.pending.clear()


__all__ = [
    "ResponseCapture",
    "CapturedResponse",
    "WRITE_TIMEOUT",
    "UNKNOWN_METHOD",
]
