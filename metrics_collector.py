"""
In-page collection of performance entries for one page-load.

Works on a Playwright (sync API) page after navigation has finished. The
browser/context lifecycle belongs to the caller.
"""
import os
import time

from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

from probe_config import Config
from probe_helpers import log, log_timer, write_json_file


# Buffered observers deliver asynchronously; give them this long to flush
OBSERVER_SETTLE_MS = 500

ENTRIES_BY_TYPE_JS = """
(type) => JSON.parse(JSON.stringify(performance.getEntriesByType(type)))
"""

USER_TIMING_JS = """
() => JSON.parse(JSON.stringify([
  ...performance.getEntriesByType('mark'),
  ...performance.getEntriesByType('measure'),
]))
"""

NAV_TIMING_JS = """
(settleMs) => new Promise(resolve => {
  const done = entries => {
    const nav = entries.length ? entries[0].toJSON() : {}
    // performance.timing carries the legacy fields (navigationStart, domLoading)
    const legacy = performance.timing ? performance.timing.toJSON() : {}
    if (legacy.navigationStart) {
      nav.navigationStart = 0
      nav.domLoading = Math.max(0, legacy.domLoading - legacy.navigationStart)
    }
    resolve(nav)
  }
  const buffered = performance.getEntriesByType('navigation')
  if (buffered.length) return done(buffered)
  new PerformanceObserver(list => done(list.getEntries()))
    .observe({ type: 'navigation', buffered: true })
  setTimeout(() => done([]), settleMs)
})
"""

LCP_JS = """
(settleMs) => new Promise(resolve => {
  const events = []
  try {
    new PerformanceObserver(list => {
      for (const entry of list.getEntries()) {
        try {
          const event = {
            name: entry.name,
            entryType: entry.entryType,
            startTime: entry.startTime,
            size: entry.size,
            url: entry.url,
            id: entry.id,
            loadTime: entry.loadTime,
            renderTime: entry.renderTime,
          }
          if (entry.element) {
            event.element = {
              nodeName: entry.element.nodeName,
              boundingRect: entry.element.getBoundingClientRect().toJSON(),
              outerHTML: entry.element.outerHTML,
            }
            if (entry.element.src) event.element.src = entry.element.src
            if (entry.element.currentSrc) event.element.currentSrc = entry.element.currentSrc
            const style = window.getComputedStyle(entry.element)
            if (style.backgroundImage && style.backgroundImage !== 'none') {
              event.element['background-image'] = style.backgroundImage
            }
          }
          events.push(event)
        } catch (err) {}
      }
    }).observe({ type: 'largest-contentful-paint', buffered: true })
  } catch (err) {}
  setTimeout(() => resolve(events), settleMs)
})
"""

LAYOUT_SHIFTS_JS = """
(settleMs) => new Promise(resolve => {
  const shifts = []
  try {
    new PerformanceObserver(list => {
      for (const entry of list.getEntries()) {
        const event = {
          name: entry.name,
          entryType: entry.entryType,
          startTime: entry.startTime,
          value: entry.value,
          hadRecentInput: entry.hadRecentInput,
          lastInputTime: entry.lastInputTime,
        }
        if (entry.sources) {
          event.sources = entry.sources.map(s => ({
            previousRect: s.previousRect.toJSON(),
            currentRect: s.currentRect.toJSON(),
          }))
        }
        shifts.push(event)
      }
    }).observe({ type: 'layout-shift', buffered: true })
  } catch (err) {}
  setTimeout(() => resolve(shifts), settleMs)
})
"""


# ================= COLLECTORS =================

def collect_nav_timing(page, settle_ms=OBSERVER_SETTLE_MS):
    return page.evaluate(NAV_TIMING_JS, settle_ms) or {}


def collect_paint_timing(page):
    return page.evaluate(ENTRIES_BY_TYPE_JS, "paint") or []


def collect_resource_timing(page):
    return page.evaluate(ENTRIES_BY_TYPE_JS, "resource") or []


def collect_user_timing(page):
    return page.evaluate(USER_TIMING_JS) or []


def collect_lcp(page, settle_ms=OBSERVER_SETTLE_MS):
    return page.evaluate(LCP_JS, settle_ms) or []


def collect_layout_shifts(page, settle_ms=OBSERVER_SETTLE_MS):
    return page.evaluate(LAYOUT_SHIFTS_JS, settle_ms) or []


def collect_metrics(page, settle_ms=OBSERVER_SETTLE_MS, debug=False):
    start = time.perf_counter()
    metrics = {
        "navigationTiming": collect_nav_timing(page, settle_ms),
        "paintTiming": collect_paint_timing(page),
        "userTiming": collect_user_timing(page),
        "largestContentfulPaint": collect_lcp(page, settle_ms),
        "layoutShifts": collect_layout_shifts(page, settle_ms),
    }
    log_timer("Collect Metrics", start, debug)
    return metrics


# ================= LISTENERS =================

class RunRecorder:
    """
    Keeps what the page reports while it loads: console output and the
    per-request timing Playwright hands over on `requestfinished`.
    """

    def __init__(self):
        self.console_messages = []
        self.samples = []

    def attach(self, page):
        page.on("console", self.on_console)
        page.on("requestfinished", self.on_request_finished)

    def on_console(self, msg):
        location = msg.location or {}
        self.console_messages.append({
            "type": msg.type,
            "text": msg.text,
            "location": {
                "url": location.get("url", ""),
                "lineNumber": location.get("lineNumber", 0),
                "columnNumber": location.get("columnNumber", 0),
            },
        })

    def on_request_finished(self, request):
        self.samples.append({"url": request.url, "timing": dict(request.timing)})


# ================= ARTIFACTS =================

def write_run_artifacts(results_dir, metrics, recorder, resource_timings=None):
    """Dump the raw capture next to the HAR so the report can be rebuilt later."""
    os.makedirs(results_dir, exist_ok=True)
    write_json_file(os.path.join(results_dir, "metrics.json"), metrics)
    write_json_file(os.path.join(results_dir, "console.json"), recorder.console_messages)
    write_json_file(os.path.join(results_dir, "requests.json"), recorder.samples)
    if resource_timings is not None:
        write_json_file(os.path.join(results_dir, "resources.json"), resource_timings)


# ================= NAVIGATION =================

def navigate(page, url, results_dir, config=None):
    """
    Load `url` until the network is idle, then grab the final screenshot.

    A navigation timeout is not fatal: the context is taken offline so late
    requests stop and whatever loaded so far is measured. The wait is
    bounded by `config.timeout` milliseconds. Returns the video file name
    relative to `results_dir`, if the context records one.
    """
    config = config or Config()
    try:
        page.goto(url, wait_until="networkidle", timeout=config.timeout)
    except PlaywrightTimeoutError as e:
        log(f"Navigation timed out, measuring what loaded: {e}")
        page.context.set_offline(True)

    page.screenshot(path=os.path.join(results_dir, "screenshot.png"))

    video = page.video
    if video is None:
        return None
    return os.path.relpath(video.path(), results_dir)
