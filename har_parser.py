"""
Read a HAR capture and normalise each entry into a request record with
per-phase network timings.
"""
import json
import os
from datetime import datetime, timedelta

from probe_helpers import load_json_file, log_error
from timing_phases import calculate_request_phases


# Checked in order, first substring hit wins
MIME_TYPE_RULES = [
    ("document", ("html",)),
    ("stylesheet", ("css", "stylesheet")),
    ("script", ("javascript", "ecmascript")),
    ("image", ("image", "svg")),
    ("font", ("font", "woff", "ttf")),
    ("json", ("json",)),
    ("media", ("video",)),
]


def get_resource_type(mime_type):
    if not mime_type:
        return "other"

    mime = mime_type.lower()
    for resource_type, needles in MIME_TYPE_RULES:
        if any(n in mime for n in needles):
            return resource_type
    return "other"


def parse_started(value):
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (TypeError, ValueError):
        return None


def find_har_file(base_path):
    try:
        names = sorted(f for f in os.listdir(base_path) if f.endswith(".har"))
    except FileNotFoundError:
        return None
    return os.path.join(base_path, names[0]) if names else None


def known_size(value):
    """Byte count, or 0 when absent. Writers use -1 for an unknown size."""
    if isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0:
        return value
    return 0


def entry_to_request(entry, page_start):
    request = entry.get("request") or {}
    response = entry.get("response") or {}
    content = response.get("content") or {}

    size = known_size(response.get("_transferSize")) or known_size(content.get("size"))
    mime_type = content.get("mimeType") or ""

    relative_start = 0
    started = parse_started(entry.get("startedDateTime"))
    if started and page_start:
        try:
            relative_start = (started - page_start) / timedelta(milliseconds=1)
        except TypeError:
            # one side carries a UTC offset, the other does not
            relative_start = 0

    return {
        "url": request.get("url") or "",
        "method": request.get("method") or "GET",
        "status": response.get("status") or 0,
        "size": size,
        "type": get_resource_type(mime_type),
        "start_time": relative_start,
        "duration": entry.get("time") or 0,
        "mime_type": mime_type,
        "is_lcp": bool(entry.get("_is_lcp")),
        "timings": calculate_request_phases(entry),
    }


def parse_har_entries(entries):
    if not entries:
        return None

    # The first entry defines t=0 for the whole run
    page_start = parse_started(entries[0].get("startedDateTime"))
    return [entry_to_request(e, page_start) for e in entries]


def parse_har_file(har_path):
    """
    Parse a HAR file into request records.

    Returns None when there is no usable network data: the file is missing,
    holds no entries, or is not valid JSON.
    """
    if not har_path or not os.path.exists(har_path):
        return None

    try:
        har_data = load_json_file(har_path)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        log_error(f"Error parsing HAR file: {e}")
        return None

    if not isinstance(har_data, dict):
        log_error(f"Error parsing HAR file: unexpected top-level {type(har_data).__name__}")
        return None

    har_log = har_data.get("log")
    entries = har_log.get("entries") if isinstance(har_log, dict) else None
    if not isinstance(entries, list):
        return None
    return parse_har_entries([e for e in entries if isinstance(e, dict)])
