import json

import pytest
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

import metrics_collector
from metrics_collector import (
    LAYOUT_SHIFTS_JS,
    LCP_JS,
    NAV_TIMING_JS,
    RunRecorder,
    collect_metrics,
    navigate,
    write_run_artifacts,
)
from probe_config import DEFAULT_TIMEOUT_MS, Config


class FakePage:
    """Answers page.evaluate by script, records listeners and navigation."""

    def __init__(self, goto_error=None, video=None):
        self.handlers = {}
        self.evaluated = []
        self.goto_error = goto_error
        self.video = video
        self.context = FakeContext()
        self.screenshots = []

    def evaluate(self, script, arg=None):
        self.evaluated.append((script, arg))
        if script == NAV_TIMING_JS:
            return {"navigationStart": 0, "responseStart": 120}
        if script == LCP_JS:
            return [{"startTime": 900, "url": "https://example.com/hero.jpg"}]
        if script == LAYOUT_SHIFTS_JS:
            return [{"startTime": 300, "value": 0.02}]
        if arg == "paint":
            return [{"name": "first-paint", "startTime": 100}]
        if arg == "resource":
            return [{"name": "https://example.com/app.js"}]
        return None

    def on(self, event, handler):
        self.handlers[event] = handler

    def goto(self, url, wait_until=None, timeout=None):
        self.goto_args = (url, wait_until, timeout)
        if self.goto_error:
            raise self.goto_error

    def screenshot(self, path):
        self.screenshots.append(path)


class FakeContext:
    def __init__(self):
        self.offline = False

    def set_offline(self, offline):
        self.offline = offline


class FakeVideo:
    def __init__(self, path):
        self._path = path

    def path(self):
        return self._path


class FakeMessage:
    type = "warning"
    text = "deprecated"
    location = {"url": "https://example.com/app.js", "lineNumber": 10, "columnNumber": 4}


class FakeRequest:
    url = "https://example.com/app.js"
    timing = {"startTime": 5, "requestStart": 12, "responseStart": 40, "responseEnd": 60}


def test_collect_metrics_shape():
    page = FakePage()
    metrics = collect_metrics(page, settle_ms=10)

    assert set(metrics) == {
        "navigationTiming", "paintTiming", "userTiming", "largestContentfulPaint", "layoutShifts",
    }
    assert metrics["navigationTiming"]["responseStart"] == 120
    assert metrics["paintTiming"][0]["name"] == "first-paint"
    assert metrics["userTiming"] == []
    assert metrics["largestContentfulPaint"][0]["startTime"] == 900
    assert metrics["layoutShifts"][0]["value"] == 0.02
    assert (LCP_JS, 10) in page.evaluated


def test_recorder_collects_console_and_samples():
    page = FakePage()
    recorder = RunRecorder()
    recorder.attach(page)

    page.handlers["console"](FakeMessage())
    page.handlers["requestfinished"](FakeRequest())

    assert recorder.console_messages == [{
        "type": "warning",
        "text": "deprecated",
        "location": {"url": "https://example.com/app.js", "lineNumber": 10, "columnNumber": 4},
    }]
    assert recorder.samples == [{"url": FakeRequest.url, "timing": FakeRequest.timing}]


def test_write_run_artifacts(tmp_path):
    recorder = RunRecorder()
    recorder.samples.append({"url": "u", "timing": {}})
    target = tmp_path / "run"

    write_run_artifacts(str(target), {"paintTiming": []}, recorder, resource_timings=[])

    assert json.loads((target / "metrics.json").read_text()) == {"paintTiming": []}
    assert json.loads((target / "console.json").read_text()) == []
    assert json.loads((target / "requests.json").read_text()) == [{"url": "u", "timing": {}}]
    assert json.loads((target / "resources.json").read_text()) == []


def test_navigate_returns_relative_video(tmp_path):
    page = FakePage(video=FakeVideo(str(tmp_path / "abc.webm")))
    config = Config(timeout=5000)
    assert navigate(page, "https://example.com/", str(tmp_path), config) == "abc.webm"
    assert page.goto_args == ("https://example.com/", "networkidle", 5000)
    assert page.screenshots == [str(tmp_path / "screenshot.png")]
    assert page.context.offline is False


def test_navigate_timeout_goes_offline_and_continues(tmp_path):
    page = FakePage(goto_error=PlaywrightTimeoutError("Timeout 30000ms exceeded"))
    assert navigate(page, "https://example.com/", str(tmp_path)) is None
    assert page.context.offline is True
    assert page.screenshots
    assert page.goto_args[2] == DEFAULT_TIMEOUT_MS


def test_navigate_other_errors_propagate(tmp_path):
    page = FakePage(goto_error=RuntimeError("net::ERR_NAME_NOT_RESOLVED"))
    with pytest.raises(RuntimeError):
        navigate(page, "https://nope.invalid/", str(tmp_path))


def test_scripts_use_buffered_observers():
    for script in (metrics_collector.LCP_JS, metrics_collector.LAYOUT_SHIFTS_JS):
        assert "buffered: true" in script
