"""
Turn chains of browser timestamps into named phase durations.

Every phase is `later - earlier`. A missing boundary counts as 0 on its own
(so a phase can come out negative when the capture is inconsistent; that is
passed through untouched). Percentages never divide by zero.
"""
import math


# (phase, start boundary, end boundary) on HAR entries after merging
REQUEST_PHASES = [
    ("dns", "_dns_start", "_dns_end"),
    ("connect", "_connect_start", "_connect_end"),
    ("ssl", "_secure_start", "_secure_end"),
    ("send", "_request_start", "_request_end"),
    ("wait", "_request_end", "_response_start"),
    ("receive", "_response_start", "_response_end"),
]

# Often legitimately absent (reused connections, plain http)
OPTIONAL_REQUEST_PHASES = ("dns", "connect", "ssl")

# (phase, start boundary, end boundary) on a navigation timing entry
PAGE_PHASES = [
    ("dns_time", "domainLookupStart", "domainLookupEnd"),
    ("tcp_time", "connectStart", "connectEnd"),
    ("ssl_time", "secureConnectionStart", "connectEnd"),
    ("request_time", "requestStart", "responseStart"),
    ("response_time", "responseStart", "responseEnd"),
    ("dom_processing", "domLoading", "domInteractive"),
    ("dom_content_loaded", "domInteractive", "domContentLoadedEventEnd"),
    ("complete_load", "domContentLoadedEventEnd", "domComplete"),
]

PAGE_PCT_KEYS = {
    "dns_time": "dns_pct",
    "tcp_time": "tcp_pct",
    "ssl_time": "ssl_pct",
    "request_time": "request_pct",
    "response_time": "response_pct",
    "dom_processing": "processing_pct",
    "dom_content_loaded": "dom_content_pct",
    "complete_load": "complete_pct",
}

OPTIONAL_PAGE_PHASES = ("dns_time", "tcp_time", "ssl_time")


def boundary(timings, key):
    value = timings.get(key) or 0
    try:
        value = float(value)
    except (TypeError, ValueError):
        return 0
    return value if math.isfinite(value) else 0


def phase_duration(timings, start_key, end_key):
    return boundary(timings, end_key) - boundary(timings, start_key)


def percent_of(duration, total, suppress_nonpositive=False):
    if not total > 0 or not math.isfinite(total):
        return 0
    if suppress_nonpositive and not duration > 0:
        return 0
    pct = duration / total * 100
    return pct if math.isfinite(pct) else 0


# ================= REQUEST LEVEL =================

def calculate_request_phases(entry):
    """
    Per-request network phases from the private `_*` fields of a HAR entry.

    Returns the dict stored under `timings` on a parsed request record.
    """
    fields = {
        key: boundary(entry, key)
        for _, start, end in REQUEST_PHASES
        for key in (start, end)
    }
    # Not every archive writer splits send from wait
    if not fields["_request_end"]:
        fields["_request_end"] = fields["_request_start"]

    total = fields["_response_end"] - fields["_request_start"]

    timings = {}
    for name, start, end in REQUEST_PHASES:
        duration = phase_duration(fields, start, end)
        timings[f"{name}_time"] = duration
        timings[f"{name}_pct"] = percent_of(
            duration, total, suppress_nonpositive=name in OPTIONAL_REQUEST_PHASES
        )

    timings["total_time"] = total
    timings["response_start"] = fields["_response_start"]
    timings["response_end"] = fields["_response_end"]
    return timings


# ================= PAGE LEVEL =================

def calculate_timing_phases(nav_timing):
    nav_timing = nav_timing or {}

    phases = {}
    for name, start, end in PAGE_PHASES:
        phases[name] = phase_duration(nav_timing, start, end)

    # TLS is carved out of the TCP phase; without a handshake there is no SSL phase
    if boundary(nav_timing, "secureConnectionStart") > 0:
        phases["tcp_time"] = phase_duration(nav_timing, "connectStart", "secureConnectionStart")
    else:
        phases["ssl_time"] = 0

    total = phase_duration(nav_timing, "navigationStart", "domComplete")
    phases["total_time"] = total

    for name, pct_key in PAGE_PCT_KEYS.items():
        phases[pct_key] = percent_of(
            phases[name], total, suppress_nonpositive=name in OPTIONAL_PAGE_PHASES
        )
    return phases


def time_to_first_byte(nav_timing):
    return phase_duration(nav_timing or {}, "navigationStart", "responseStart")
