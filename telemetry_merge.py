"""
Fold the per-request timings Playwright reports on `requestfinished` into
the HAR entries it recorded separately, and stamp page-level TTFB/LCP.
"""
import json
import os
import time

from probe_helpers import load_json_file, log, log_error, log_timer, write_json_file
from timing_phases import time_to_first_byte


NOT_APPLICABLE = -1


def winning_lcp(lcp_events):
    """The last reported LCP candidate is the one that counts."""
    if not lcp_events:
        return None
    return lcp_events[-1] or None


def sample_to_fields(timing):
    secure_start = timing.get("secureConnectionStart") or 0
    has_tls = secure_start > 0

    return {
        "_dns_start": timing.get("domainLookupStart"),
        "_dns_end": timing.get("domainLookupEnd"),
        "_connect_start": timing.get("connectStart"),
        # TLS negotiation is carved out of connect, not counted twice
        "_connect_end": secure_start if has_tls else timing.get("connectEnd"),
        "_secure_start": secure_start if has_tls else NOT_APPLICABLE,
        "_secure_end": timing.get("connectEnd") if has_tls else NOT_APPLICABLE,
        "_request_start": timing.get("requestStart"),
        # no request-sent boundary is exposed, so send collapses to 0
        "_request_end": timing.get("requestStart"),
        "_response_start": timing.get("responseStart"),
        "_response_end": timing.get("responseEnd"),
    }


def merge_entries(har_entries, samples, lcp_url=None):
    """
    Attach live timing samples to HAR entries.

    Each sample lands on the first entry with the same URL that has not
    already taken a sample, so repeated URLs are paired in capture order.
    At most one entry is flagged `_is_lcp`. Returns a new list; the inputs
    are left as they were.
    """
    merged = list(har_entries)
    updated = set()
    lcp_marked = False

    for sample in samples:
        if not isinstance(sample, dict):
            continue
        url = sample.get("url")
        index = next(
            (
                i for i, entry in enumerate(merged)
                if i not in updated and isinstance(entry, dict)
                and (entry.get("request") or {}).get("url") == url
            ),
            None,
        )
        if index is None:
            continue

        entry = dict(merged[index])
        entry.update(sample_to_fields(sample.get("timing") or {}))

        if lcp_url and url == lcp_url and not lcp_marked:
            entry["_is_lcp"] = True
            lcp_marked = True

        merged[index] = entry
        updated.add(index)

    return merged


def fill_out_har(har_path, metrics, samples, debug=False):
    """
    Rewrite the HAR at `har_path` with page TTFB/LCP and merged request timings.

    Returns the updated HAR dict, or None when there was no readable HAR.
    Failing to write the file back is not swallowed.
    """
    start = time.perf_counter()

    if not os.path.exists(har_path):
        log(f"No HAR file at {har_path}, skipping timing merge")
        return None

    try:
        har_data = load_json_file(har_path)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        log_error(f"Error parsing HAR file {har_path}: {e}")
        return None

    har_log = har_data.get("log") if isinstance(har_data, dict) else None
    if not isinstance(har_log, dict):
        log_error(f"Error parsing HAR file {har_path}: no log object")
        return None

    pages = har_log.get("pages") or []
    if pages and isinstance(pages[0], dict):
        page_timings = pages[0].setdefault("pageTimings", {})
    else:
        page_timings = {}
    metrics = metrics if isinstance(metrics, dict) else {}

    nav_timing = metrics.get("navigationTiming")
    if nav_timing:
        page_timings["_TTFB"] = time_to_first_byte(nav_timing)

    lcp_url = None
    lcp = winning_lcp(metrics.get("largestContentfulPaint"))
    if lcp:
        page_timings["_LCP"] = lcp.get("startTime")
        lcp_url = lcp.get("url") or None

    entries = har_log.get("entries")
    if not isinstance(entries, list):
        entries = []
    if not isinstance(samples, list):
        samples = []
    har_log["entries"] = merge_entries(entries, samples, lcp_url)

    write_json_file(har_path, har_data)
    log_timer("Har Edit", start, debug)
    return har_data
