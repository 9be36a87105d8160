"""Shared builders for HAR entries, metrics blobs and results directories."""
import json

import pytest


def har_entry(url, started="2024-01-01T00:00:00.000Z", time=0, mime="text/html",
              status=200, size=0, transfer_size=None, method="GET", **private):
    response = {"status": status, "content": {"size": size, "mimeType": mime}}
    if transfer_size is not None:
        response["_transferSize"] = transfer_size
    entry = {
        "request": {"url": url, "method": method},
        "response": response,
        "startedDateTime": started,
        "time": time,
    }
    entry.update(private)
    return entry


def timing_sample(url, **overrides):
    timing = {
        "startTime": 0,
        "domainLookupStart": 10,
        "domainLookupEnd": 20,
        "connectStart": 20,
        "secureConnectionStart": -1,
        "connectEnd": 40,
        "requestStart": 40,
        "responseStart": 90,
        "responseEnd": 120,
    }
    timing.update(overrides)
    return {"url": url, "timing": timing}


def write_har(path, entries, pages=None):
    har = {"log": {"pages": pages if pages is not None else [{"pageTimings": {}}], "entries": entries}}
    path.write_text(json.dumps(har))
    return path


@pytest.fixture
def nav_timing() -> dict:
    return {
        "navigationStart": 0,
        "domainLookupStart": 5,
        "domainLookupEnd": 25,
        "connectStart": 25,
        "secureConnectionStart": 45,
        "connectEnd": 75,
        "requestStart": 75,
        "responseStart": 175,
        "responseEnd": 275,
        "domLoading": 280,
        "domInteractive": 600,
        "domContentLoadedEventEnd": 700,
        "domComplete": 1000,
    }


@pytest.fixture
def metrics(nav_timing) -> dict:
    return {
        "navigationTiming": nav_timing,
        "paintTiming": [
            {"name": "first-paint", "startTime": 310.4},
            {"name": "first-contentful-paint", "startTime": 320.9},
        ],
        "userTiming": [],
        "largestContentfulPaint": [
            {"startTime": 800, "url": "https://example.com/small.png"},
            {"startTime": 3000, "url": "https://example.com/hero.jpg"},
        ],
        "layoutShifts": [
            {"startTime": 400, "value": 0.01, "sources": []},
            {"startTime": 500, "value": 0.02, "sources": []},
            {"startTime": 600, "value": 0.005, "sources": []},
        ],
    }


@pytest.fixture
def results_dir(tmp_path, metrics):
    """A results directory laid out the way a finished run leaves it."""
    (tmp_path / "metrics.json").write_text(json.dumps(metrics))
    (tmp_path / "console.json").write_text(json.dumps([
        {"type": "error", "text": "boom", "location": {"url": "https://example.com/app.js", "lineNumber": 3, "columnNumber": 7}},
    ]))
    write_har(tmp_path / "pageload.har", [
        har_entry("https://example.com/", started="2024-01-01T00:00:00.000Z", time=200, transfer_size=5000),
        har_entry("https://example.com/hero.jpg", started="2024-01-01T00:00:00.100Z", time=300,
                  mime="image/jpeg", size=2048),
    ])
    (tmp_path / "requests.json").write_text(json.dumps([
        timing_sample("https://example.com/"),
        timing_sample("https://example.com/hero.jpg", secureConnectionStart=30),
    ]))
    return tmp_path
