import json
import logging
from types import SimpleNamespace

import pytest

from tabwarden import ConsoleLogging, CookieExport, ResponseCapture, ViewportPatch
from tabwarden.core.handlers.stock.response_capture import UNKNOWN_METHOD
from conftest import FakeTab

pytestmark = pytest.mark.capture

API_URL = "https://api.x.com/graphql/abc/UserTweets?variables=1"
NOW = 1_700_000_000.0


def _request(request_id, url, method="GET"):
    return SimpleNamespace(
        request_id=request_id,
        request=SimpleNamespace(url=url, method=method, headers={"accept": "*/*"}, post_data=None),
    )


def _response(request_id, url, status=200):
    return SimpleNamespace(
        request_id=request_id,
        response=SimpleNamespace(
            url=url,
            status=status,
            status_text="OK",
            headers={"content-type": "application/json"},
            timing=None,
        ),
    )


def _finished(request_id):
    return SimpleNamespace(request_id=request_id)


async def _load(capture, tab, request_id, url, method="GET"):
    await capture.on_request(tab, _request(request_id, url, method))
    await capture.on_response(tab, _response(request_id, url))
    await capture.on_loading_finished(tab, _finished(request_id))


@pytest.mark.asyncio
async def test_matching_response_is_written(tmp_path):
    tab = FakeTab()
    tab.send_result = ("aGVsbG8=", True)
    capture = ResponseCapture([r"/graphql/.+/UserTweets"], str(tmp_path), clock=lambda: NOW)

    await _load(capture, tab, "r1", API_URL)

    out = tmp_path / "api.x.com" / "graphql" / "abc" / "UserTweets" / "GET" / "1700000000000"
    assert (out / "data.raw").read_bytes() == b"hello"
    detail = json.loads((out / "detail.json").read_text())
    assert detail["url"] == API_URL
    assert detail["status"] == 200
    assert detail["statusText"] == "OK"
    assert detail["headers"] == {"content-type": "application/json"}
    assert detail["request"] == {"method": "GET", "headers": {"accept": "*/*"}, "postData": None}
    assert capture.saved == 1
    assert capture.pending == {} and capture.requests == {}


@pytest.mark.asyncio
async def test_plain_text_body(tmp_path):
    tab = FakeTab()
    tab.send_result = ('{"ok": true}', False)
    capture = ResponseCapture([r"api\.x\.com"], str(tmp_path), clock=lambda: NOW)

    await _load(capture, tab, "r1", "https://api.x.com/")

    out = tmp_path / "api.x.com" / "__root__" / "GET" / "1700000000000"
    assert (out / "data.raw").read_text() == '{"ok": true}'


@pytest.mark.asyncio
async def test_same_millisecond_gets_request_id_suffix(tmp_path):
    tab = FakeTab()
    tab.send_result = ("", False)
    capture = ResponseCapture([r"api\.x\.com"], str(tmp_path), clock=lambda: NOW)

    await _load(capture, tab, "r1", API_URL)
    await _load(capture, tab, "r2", API_URL)

    base = tmp_path / "api.x.com" / "graphql" / "abc" / "UserTweets" / "GET"
    assert sorted(p.name for p in base.iterdir()) == ["1700000000000", "1700000000000-r2"]


@pytest.mark.asyncio
async def test_non_matching_and_preflight_ignored(tmp_path):
    tab = FakeTab()
    capture = ResponseCapture([r"api\.x\.com"], str(tmp_path), clock=lambda: NOW)

    await _load(capture, tab, "r1", "https://example.com/app.js")
    await _load(capture, tab, "r2", API_URL, method="OPTIONS")

    assert tab.sent == []
    assert list(tmp_path.iterdir()) == []


@pytest.mark.asyncio
async def test_empty_pattern_list_captures_nothing(tmp_path):
    tab = FakeTab()
    capture = ResponseCapture([], str(tmp_path))

    await _load(capture, tab, "r1", API_URL)

    assert tab.sent == []


@pytest.mark.asyncio
async def test_failed_request_drops_pending(tmp_path):
    tab = FakeTab()
    capture = ResponseCapture([r"api\.x\.com"], str(tmp_path))

    await capture.on_request(tab, _request("r1", API_URL))
    await capture.on_response(tab, _response("r1", API_URL))
    await capture.on_request_failed(tab, SimpleNamespace(request_id="r1", error_text="net::ERR_ABORTED"))
    await capture.on_loading_finished(tab, _finished("r1"))

    assert capture.pending == {}
    assert tab.sent == []


@pytest.mark.asyncio
async def test_body_fetch_failure_still_writes_detail(tmp_path):
    tab = FakeTab()

    def fail(cmd):
        raise RuntimeError("No resource with given identifier found")

    tab.send_result = fail
    capture = ResponseCapture([r"api\.x\.com"], str(tmp_path), clock=lambda: NOW)

    await _load(capture, tab, "r1", API_URL)

    assert capture.saved == 1
    assert capture.pending == {}
    out = tmp_path / "api.x.com" / "graphql" / "abc" / "UserTweets" / "GET" / "1700000000000"
    assert json.loads((out / "detail.json").read_text())["url"] == API_URL
    assert not (out / "data.raw").exists()


@pytest.mark.asyncio
async def test_response_without_request_is_filed_as_unknown(tmp_path):
    tab = FakeTab()
    tab.send_result = ("aGVsbG8=", True)
    capture = ResponseCapture([r"api\.x\.com"], str(tmp_path), clock=lambda: NOW)

    await capture.on_response(tab, _response("r1", API_URL))
    await capture.on_loading_finished(tab, _finished("r1"))

    base = tmp_path / "api.x.com" / "graphql" / "abc" / "UserTweets"
    assert [p.name for p in base.iterdir()] == [UNKNOWN_METHOD]
    out = base / UNKNOWN_METHOD / "1700000000000"
    assert (out / "data.raw").read_bytes() == b"hello"
    detail = json.loads((out / "detail.json").read_text())
    assert detail["request"] == {"method": UNKNOWN_METHOD, "headers": {}, "postData": None}


@pytest.mark.asyncio
async def test_taken_suffix_directory_gets_numbered(tmp_path):
    tab = FakeTab()
    tab.send_result = ("", False)
    capture = ResponseCapture([r"api\.x\.com"], str(tmp_path), clock=lambda: NOW)
    base = tmp_path / "api.x.com" / "graphql" / "abc" / "UserTweets" / "GET"
    (base / "1700000000000").mkdir(parents=True)
    (base / "1700000000000-r2").mkdir()

    await _load(capture, tab, "r2", API_URL)
    await _load(capture, tab, "r2", API_URL)

    assert sorted(p.name for p in base.iterdir()) == [
        "1700000000000",
        "1700000000000-r2",
        "1700000000000-r2-1",
        "1700000000000-r2-2",
    ]
    assert not list((base / "1700000000000-r2").iterdir())
    assert (base / "1700000000000-r2-1" / "detail.json").exists()


@pytest.mark.asyncio
async def test_state_is_kept_per_tab_and_forgotten(tmp_path):
    first, second = FakeTab("T1"), FakeTab("T2")
    capture = ResponseCapture([r"api\.x\.com"], str(tmp_path), clock=lambda: NOW)

    # same request id on two tabs, neither finishes
    for tab in (first, second):
        await capture.on_request(tab, _request("r1", API_URL))
        await capture.on_response(tab, _response("r1", API_URL))
    assert len(capture.pending) == 2

    await capture.forget("T1")

    assert set(capture.pending) == {("T2", "r1")}
    assert set(capture.requests) == {("T2", "r1")}
    await capture.on_loading_finished(first, _finished("r1"))
    assert first.sent == []

    await capture.forget("T2")
    assert capture.pending == {} and capture.requests == {}


@pytest.mark.asyncio
async def test_console_api_called_is_recorded(tmp_path):
    tab = FakeTab("T1", "https://x.com/home")
    console = ConsoleLogging(str(tmp_path), clock=lambda: NOW)
    ev = SimpleNamespace(
        type_="log",
        args=[
            SimpleNamespace(value="hello", unserializable_value=None, description=None),
            SimpleNamespace(value=None, unserializable_value=None, description="Object"),
        ],
        stack_trace=None,
    )

    await console.on_console_api_called(tab, ev)
    await console.on_console_api_called(tab, ev)

    path = tmp_path / "x.com" / "home" / "1700000000000.jsonl"
    lines = [json.loads(line) for line in path.read_text().splitlines()]
    assert len(lines) == 2
    assert lines[0]["eventName"] == "consoleApiCalled"
    assert lines[0]["type"] == "log"
    assert lines[0]["message"] == "hello Object"
    assert lines[0]["extra"]["args"] == ["hello", "Object"]


@pytest.mark.asyncio
async def test_failed_request_uses_tracked_url(tmp_path):
    tab = FakeTab("T1", "https://x.com/home")
    console = ConsoleLogging(str(tmp_path), clock=lambda: NOW)

    await console.on_request(tab, _request("r1", API_URL, "POST"))
    await console.on_request_failed(tab, SimpleNamespace(
        request_id="r1",
        error_text="net::ERR_FAILED",
        type_=None,
        canceled=False,
    ))

    record = json.loads((tmp_path / "x.com" / "home" / "1700000000000.jsonl").read_text())
    assert record["eventName"] == "requestfailed"
    assert record["message"] == "net::ERR_FAILED"
    assert record["extra"]["url"] == API_URL
    assert record["extra"]["method"] == "POST"


@pytest.mark.asyncio
async def test_console_entry_is_recorded(tmp_path):
    tab = FakeTab("T1", "https://x.com/home")
    console = ConsoleLogging(str(tmp_path), clock=lambda: NOW)
    frame = SimpleNamespace(function_name="load", url="https://x.com/main.js", line_number=3, column_number=7)
    ev = SimpleNamespace(entry=SimpleNamespace(
        level="warning",
        text="Failed to load resource",
        source="network",
        url="https://x.com/favicon.ico",
        line_number=12,
        stack_trace=SimpleNamespace(call_frames=[frame]),
    ))

    await console.on_console(tab, ev)

    record = json.loads((tmp_path / "x.com" / "home" / "1700000000000.jsonl").read_text())
    assert record["eventName"] == "console"
    assert record["type"] == "warning"
    assert record["message"] == "Failed to load resource"
    assert record["extra"] == {
        "source": "network",
        "url": "https://x.com/favicon.ico",
        "lineNumber": 12,
        "stackTrace": [{
            "functionName": "load",
            "url": "https://x.com/main.js",
            "lineNumber": 3,
            "columnNumber": 7,
        }],
    }


@pytest.mark.asyncio
async def test_page_error_prefers_exception_description(tmp_path):
    tab = FakeTab("T1", "https://x.com/home")
    console = ConsoleLogging(str(tmp_path), clock=lambda: NOW)

    def thrown(exception):
        return SimpleNamespace(exception_details=SimpleNamespace(
            text="Uncaught",
            exception=exception,
            url="https://x.com/main.js",
            line_number=40,
            column_number=2,
            stack_trace=None,
        ))

    await console.on_page_error(tab, thrown(SimpleNamespace(description="Error: boom")))
    await console.on_page_error(tab, thrown(None))

    path = tmp_path / "x.com" / "home" / "1700000000000.jsonl"
    first, second = [json.loads(line) for line in path.read_text().splitlines()]
    assert first["eventName"] == "pageerror"
    assert first["type"] == "error"
    assert first["message"] == "Error: boom"
    assert first["extra"] == {
        "url": "https://x.com/main.js",
        "lineNumber": 40,
        "columnNumber": 2,
        "stackTrace": [],
    }
    assert second["message"] == "Uncaught"


@pytest.mark.asyncio
async def test_console_state_is_bounded_per_tab(tmp_path):
    tab = FakeTab("T1", "https://x.com/home")
    ticks = iter(range(1000))
    console = ConsoleLogging(str(tmp_path), clock=lambda: NOW + next(ticks))
    ev = SimpleNamespace(type_="log", args=[], stack_trace=None)

    for i, url in enumerate(["https://x.com/home", "https://x.com/explore", "https://x.com/a"]):
        tab.url = url
        await console.on_console_api_called(tab, ev)
        # left unfinished on purpose
        await console.on_request(tab, _request(f"r{i}", API_URL))
        assert len(console.files) == 1

    assert console.files["T1"][0] == "https://x.com/a"
    assert len(console.requests) == 3

    await console.forget("T1")

    assert console.files == {}
    assert console.requests == {}


@pytest.mark.asyncio
async def test_console_without_dir_warns_once(caplog):
    tab = FakeTab()
    console = ConsoleLogging(None)
    ev = SimpleNamespace(type_="log", args=[], stack_trace=None)

    with caplog.at_level(logging.WARNING, logger="tabwarden.ConsoleLogging"):
        await console.on_console_api_called(tab, ev)
        await console.on_console_api_called(tab, ev)

    assert caplog.text.count("console log dir is not set") == 1


@pytest.mark.asyncio
async def test_cookie_export(tmp_path):
    tab = FakeTab("T1", "https://x.com/home")
    cookie = SimpleNamespace(to_json=lambda: {"name": "auth_token", "value": "abc"})
    tab.send_result = [cookie]
    path = tmp_path / "nested" / "cookies.json"

    await CookieExport(str(path), url_prefix="https://x.com").register(tab)

    assert json.loads(path.read_text()) == [{"name": "auth_token", "value": "abc"}]


@pytest.mark.asyncio
async def test_cookie_export_respects_prefix(tmp_path):
    tab = FakeTab("T1", "https://example.com/")
    path = tmp_path / "cookies.json"

    await CookieExport(str(path), url_prefix="https://x.com").register(tab)

    assert not path.exists()
    assert tab.sent == []


def test_cookie_export_requires_path():
    with pytest.raises(ValueError):
        CookieExport(None)


@pytest.mark.asyncio
async def test_viewport_patch_sends_override():
    tab = FakeTab()
    await ViewportPatch(800, 600).register(tab)
    assert len(tab.sent) == 1
