"""
Build the data model behind the visual report from one run's artifacts.

Everything here is plain computation over dicts that were already loaded
from the results directory; the only I/O is listing optional media files.
"""
import math
import os
import re

from probe_config import SHIFT_VIEWPORT_HEIGHT, SHIFT_VIEWPORT_WIDTH
from telemetry_merge import winning_lcp
from timing_phases import calculate_timing_phases, time_to_first_byte


# ================= RATINGS =================

# metric -> (good upper bound, needs-improvement upper bound)
RATING_THRESHOLDS = {
    "TTFB": (800, 1800),
    "FP": (1800, 3000),
    "FCP": (1800, 3000),
    "LCP": (2500, 4000),
    "CLS": (0.1, 0.25),
    "TBT": (200, 600),
}

GOOD = "Good"
NEEDS_IMPROVEMENT = "Needs Improvement"
POOR = "Poor"


def get_rating(metric, value):
    thresholds = RATING_THRESHOLDS.get(metric)
    if thresholds is None:
        return "N/A"

    good, needs_improvement = thresholds
    if value <= good:
        return GOOD
    if value <= needs_improvement:
        return NEEDS_IMPROVEMENT
    return POOR


def rating_class(rating):
    return rating.lower().replace(" ", "-")


def calculate_cls(layout_shifts):
    return sum(shift.get("value") or 0 for shift in layout_shifts or [])


# ================= FORMATTING =================

SIZE_UNITS = [
    (1024, "KB"),
    (1024 ** 2, "MB"),
    (1024 ** 3, "GB"),
]


def format_number(num):
    if isinstance(num, (int, float)) and math.isfinite(num):
        return f"{math.floor(num):,}"
    return str(num)


def format_size(num_bytes):
    value, unit = num_bytes or 0, "B"
    for threshold, suffix in SIZE_UNITS:
        if (num_bytes or 0) > threshold:
            value, unit = num_bytes / threshold, suffix
    return f"{format_number(value)} {unit}"


def fixed(value, digits):
    return f"{value or 0:.{digits}f}"


def request_filename(url):
    parts = url.split("?")[0].split("/")
    name = parts[-1] or (parts[-2] if len(parts) > 1 else url)
    return name[:60]


# ================= PAGE TIMELINE =================

PAGE_PHASE_LABELS = [
    ("dns", "DNS Lookup", "dns_time", "dns_pct"),
    ("tcp", "TCP Connection", "tcp_time", "tcp_pct"),
    ("ssl", "SSL/TLS", "ssl_time", "ssl_pct"),
    ("request", "Request", "request_time", "request_pct"),
    ("response", "Response", "response_time", "response_pct"),
    ("processing", "DOM Processing", "dom_processing", "processing_pct"),
    ("domContentLoaded", "DOM Content Loaded", "dom_content_loaded", "dom_content_pct"),
    ("complete", "Complete Load", "complete_load", "complete_pct"),
]

REQUEST_PHASE_LABELS = [
    ("dns", "DNS Lookup", "dns_time", "dns_pct"),
    ("connect", "Connect", "connect_time", "connect_pct"),
    ("ssl", "SSL/TLS", "ssl_time", "ssl_pct"),
    ("send", "Send", "send_time", "send_pct"),
    ("wait", "Wait", "wait_time", "wait_pct"),
    ("receive", "Receive", "receive_time", "receive_pct"),
]


def build_phase_segments(timing, labels):
    return [
        {
            "color_class": color_class,
            "label": label,
            "timing": fixed(timing.get(time_key), 0),
            "width_pct": fixed(timing.get(pct_key), 2),
        }
        for color_class, label, time_key, pct_key in labels
    ]


def build_legend(timing):
    return [
        {k: v for k, v in segment.items() if k != "width_pct"}
        for segment in build_timeline_phases(timing)
    ]


def build_timeline_phases(timing):
    return build_phase_segments(timing, PAGE_PHASE_LABELS)


def build_request_timeline_phases(timings):
    return build_phase_segments(timings, REQUEST_PHASE_LABELS)


def build_server_timing_data(nav_timing):
    return [
        {
            "name": st.get("name") or "",
            "description": st.get("description") or "",
            "timing": fixed(st.get("duration"), 1),
        }
        for st in (nav_timing or {}).get("serverTiming") or []
    ]


# ================= LAYOUT SHIFTS =================

def shift_viewport(layout_shifts, default_width=SHIFT_VIEWPORT_WIDTH,
                   default_height=SHIFT_VIEWPORT_HEIGHT):
    """Smallest viewport that holds the default size and every shifted rect."""
    width, height = default_width, default_height
    for shift in layout_shifts:
        for source in shift.get("sources") or []:
            for rect in (source.get("previousRect") or {}, source.get("currentRect") or {}):
                width = max(width, rect.get("right") or 0)
                height = max(height, rect.get("bottom") or 0)
    return width, height


def rect_visual(rect, prefix, viewport_width, viewport_height):
    def pct(value, extent):
        return fixed((value or 0) / extent * 100 if extent > 0 else 0, 2)

    return {
        f"{prefix}_left_pct": pct(rect.get("left"), viewport_width),
        f"{prefix}_top_pct": pct(rect.get("top"), viewport_height),
        f"{prefix}_width_pct": pct(rect.get("width"), viewport_width),
        f"{prefix}_height_pct": pct(rect.get("height"), viewport_height),
        f"{prefix}_x": math.floor(rect.get("x") or 0),
        f"{prefix}_y": math.floor(rect.get("y") or 0),
        f"{prefix}_width": math.floor(rect.get("width") or 0),
        f"{prefix}_height": math.floor(rect.get("height") or 0),
    }


def build_layout_visuals(layout_shifts, default_width=SHIFT_VIEWPORT_WIDTH,
                         default_height=SHIFT_VIEWPORT_HEIGHT):
    layout_shifts = layout_shifts or []
    viewport_width, viewport_height = shift_viewport(
        layout_shifts, default_width, default_height
    )

    visuals = []
    for shift in layout_shifts:
        source_visuals = []
        for source in shift.get("sources") or []:
            prev_rect = source.get("previousRect") or {}
            curr_rect = source.get("currentRect") or {}
            if not curr_rect.get("width") or not curr_rect.get("height"):
                continue

            visual = rect_visual(prev_rect, "prev", viewport_width, viewport_height)
            visual.update(rect_visual(curr_rect, "curr", viewport_width, viewport_height))
            source_visuals.append(visual)

        if source_visuals:
            visuals.append({
                "time": fixed(shift.get("startTime"), 1),
                "value": fixed(shift.get("value"), 6),
                "sources": len(source_visuals),
                "source_visual_data": source_visuals,
            })
    return visuals


# ================= NETWORK WATERFALL =================

def build_network_data(requests):
    if not requests:
        return []

    start_time = min(r["start_time"] for r in requests)
    span = max(max(r["start_time"] + r["duration"] for r in requests), 0) - start_time

    rows = []
    for r in requests:
        offset = r["start_time"] - start_time
        rows.append({
            "url": request_filename(r["url"]),
            "full_url": r["url"],
            "method": r["method"],
            "status": str(r["status"]),
            "size": format_size(r["size"]),
            "type": r["type"],
            "start_time": fixed(r["start_time"], 0),
            "duration": fixed(r["duration"], 0),
            "start_pct": fixed(offset / span * 100 if span > 0 else 0, 2),
            "duration_pct": fixed(r["duration"] / span * 100 if span > 0 else 0, 2),
            "is_lcp": r.get("is_lcp", False),
            "timeline_phases": build_request_timeline_phases(r["timings"]),
        })
    return rows


# ================= MEDIA =================

FRAME_NAME = re.compile(r"^frame_(?P<stamp>[\d_]+)\.(png|jpg)$")


def frame_timestamp(filename):
    """frame_1234_5.png -> 1234.5 (ms); None when the name carries no timestamp."""
    match = FRAME_NAME.match(filename)
    if not match:
        return None
    try:
        return float(match.group("stamp").replace("_", ".", 1))
    except ValueError:
        return None


def find_filmstrip_images(base_path):
    filmstrip_path = os.path.join(base_path, "filmstrip")
    if not os.path.isdir(filmstrip_path):
        return []

    files = [f for f in os.listdir(filmstrip_path) if f.endswith((".png", ".jpg"))]
    files.sort(key=lambda f: (frame_timestamp(f) is None, frame_timestamp(f) or 0, f))
    return [{"path": f"filmstrip/{f}", "filename": f} for f in files]


def format_ms(value):
    return f"{value:.3f}".rstrip("0").rstrip(".") + "ms"


def build_filmstrip_data(images):
    data = []
    for image in images:
        stamp = frame_timestamp(image["filename"])
        data.append({
            "image_path": image["path"],
            "timestamp": format_ms(stamp) if stamp is not None else "",
        })
    return data


def find_final_screenshot(base_path):
    return "screenshot.png" if os.path.exists(os.path.join(base_path, "screenshot.png")) else None


def find_video_file(base_path):
    try:
        files = sorted(os.listdir(base_path))
    except FileNotFoundError:
        return None

    for ext in ("webm", "mp4"):
        matches = [f for f in files if f.endswith(f".{ext}")]
        if matches:
            return matches[0]
    return None


# ================= CONSOLE =================

def build_console_data(console_messages):
    if not isinstance(console_messages, list):
        return []

    data = []
    for message in console_messages:
        if not isinstance(message, dict):
            continue
        location = message.get("location")
        if not isinstance(location, dict):
            location = {}
        data.append({
            "type": message.get("type") or "",
            "text": message.get("text") or "",
            "location_url": location.get("url") or "",
            "location_line_number": location.get("lineNumber") or "",
            "location_column_number": location.get("columnNumber") or "",
        })
    return data


# ================= MODEL =================

def paint_time(paint_timing, name):
    for entry in paint_timing:
        if name in (entry.get("name") or ""):
            return entry.get("startTime") or 0
    return 0


def build_vitals(values):
    vitals = []
    for key, label, digits in (
        ("ttfb", "Time to First Byte", 0),
        ("fp", "First Paint", 0),
        ("fcp", "First Contentful Paint", 0),
        ("lcp", "Largest Contentful Paint", 0),
        ("cls", "Cumulative Layout Shift", 4),
        ("tbt", "Total Blocking Time", 0),
    ):
        rating = get_rating(key.upper(), values[key])
        vitals.append({
            "key": key,
            "label": label,
            "value": fixed(values[key], digits),
            "rating": rating,
            "rating_class": rating_class(rating),
        })
    return vitals


def build_report_model(metrics, console_messages, base_path, requests=None, config=None):
    """
    Assemble the report model for one run.

    `requests` are parsed HAR records (None when the run has no network
    data). `config` only supplies the layout-shift default viewport.
    """
    metrics = metrics or {}
    nav_timing = metrics.get("navigationTiming") or {}
    timing = calculate_timing_phases(nav_timing)

    paint_timing = metrics.get("paintTiming") or []
    layout_shifts = metrics.get("layoutShifts") or []
    lcp = winning_lcp(metrics.get("largestContentfulPaint")) or {}

    values = {
        "ttfb": time_to_first_byte(nav_timing),
        "fp": paint_time(paint_timing, "first-paint"),
        "fcp": paint_time(paint_timing, "first-contentful-paint"),
        "lcp": lcp.get("startTime") or 0,
        "cls": calculate_cls(layout_shifts),
        # no long-task tracking yet, so this is always 0
        "tbt": 0,
    }
    vitals = build_vitals(values)

    if config is not None:
        default_width, default_height = config.shift_viewport_width, config.shift_viewport_height
    else:
        default_width, default_height = SHIFT_VIEWPORT_WIDTH, SHIFT_VIEWPORT_HEIGHT

    filmstrip = find_filmstrip_images(base_path)
    screenshot = find_final_screenshot(base_path)
    video = find_video_file(base_path)
    server_timing_data = build_server_timing_data(nav_timing)
    console_data = build_console_data(console_messages)
    network_data = build_network_data(requests)

    model = {
        "values": values,
        "vitals": vitals,
        "timing": timing,
        "legend_data": build_legend(timing),
        "timeline_data": build_timeline_phases(timing),
        "has_server_timings": bool(server_timing_data),
        "server_timing_data": server_timing_data,
        "layout_visual_data": build_layout_visuals(layout_shifts, default_width, default_height),
        "has_filmstrip": bool(filmstrip),
        "filmstrip_data": build_filmstrip_data(filmstrip),
        "has_final_screenshot": screenshot is not None,
        "final_screenshot_path": screenshot,
        "final_screenshot_timestamp": timing["total_time"],
        "has_video": video is not None,
        "video_path": video,
        "has_console": bool(console_data),
        "console_data": console_data,
        "has_network_requests": bool(network_data),
        "network_data": network_data,
    }
    for vital in vitals:
        model[vital["key"]] = vital["value"]
        model[f"{vital['key']}_rating"] = vital["rating"]
        model[f"{vital['key']}_rating_class"] = vital["rating_class"]
    return model
