"""
Write the report artifacts for a run: the HTML page, the model it was
rendered from, and a flat CSV of the network waterfall.
"""
import os

import pandas as pd
from jinja2 import Environment

from probe_helpers import log, write_json_file


REPORT_HTML = "visual_report.html"
REPORT_MODEL = "report_model.json"
NETWORK_CSV = "network_requests.csv"

NETWORK_COLUMNS = [
    "url", "full_url", "method", "status", "size", "type",
    "start_time", "duration", "start_pct", "duration_pct", "is_lcp",
]

REPORT_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<title>Page load report</title>
<style>
body { font-family: sans-serif; margin: 2em; }
.good { color: #0a7d32; } .needs-improvement { color: #b36b00; } .poor { color: #c5221f; }
.bar { display: flex; height: 18px; background: #eee; }
.bar span { display: block; height: 100%; }
.dns { background: #4e79a7; } .tcp, .connect { background: #f28e2b; } .ssl { background: #e15759; }
.request, .send { background: #76b7b2; } .response, .wait { background: #59a14f; }
.receive { background: #edc948; } .processing { background: #b07aa1; }
.domContentLoaded { background: #ff9da7; } .complete { background: #9c755f; }
.viewport { position: relative; width: 480px; padding-top: 38.4%; border: 1px solid #999; }
.viewport div { position: absolute; border: 1px solid; }
.prev { border-color: #c5221f; } .curr { border-color: #0a7d32; }
.lcp { font-weight: bold; }
</style>
</head>
<body>
<h1>Page load report</h1>

<h2>Web vitals</h2>
<table>
{% for vital in vitals %}
<tr><th>{{ vital.label }}</th><td>{{ vital.value }}</td><td class="{{ vital.rating_class }}">{{ vital.rating }}</td></tr>
{% endfor %}
</table>

<h2>Timeline</h2>
<div class="bar">
{% for phase in timeline_data %}<span class="{{ phase.color_class }}" style="width: {{ phase.width_pct }}%"></span>{% endfor %}
</div>
<ul>
{% for item in legend_data %}<li class="{{ item.color_class }}-legend">{{ item.label }}: {{ item.timing }} ms</li>{% endfor %}
</ul>

{% if has_server_timings %}
<h2>Server timing</h2>
<table>
{% for st in server_timing_data %}<tr><td>{{ st.name }}</td><td>{{ st.description }}</td><td>{{ st.timing }} ms</td></tr>{% endfor %}
</table>
{% endif %}

{% if layout_visual_data %}
<h2>Layout shifts</h2>
{% for shift in layout_visual_data %}
<h3>{{ shift.time }} ms (value {{ shift.value }}, {{ shift.sources }} source{{ "s" if shift.sources != 1 }})</h3>
<div class="viewport">
{% for src in shift.source_visual_data %}
<div class="prev" style="left: {{ src.prev_left_pct }}%; top: {{ src.prev_top_pct }}%; width: {{ src.prev_width_pct }}%; height: {{ src.prev_height_pct }}%" title="{{ src.prev_x }},{{ src.prev_y }} {{ src.prev_width }}x{{ src.prev_height }}"></div>
<div class="curr" style="left: {{ src.curr_left_pct }}%; top: {{ src.curr_top_pct }}%; width: {{ src.curr_width_pct }}%; height: {{ src.curr_height_pct }}%" title="{{ src.curr_x }},{{ src.curr_y }} {{ src.curr_width }}x{{ src.curr_height }}"></div>
{% endfor %}
</div>
{% endfor %}
{% endif %}

{% if has_filmstrip %}
<h2>Filmstrip</h2>
{% for frame in filmstrip_data %}<figure><img src="{{ frame.image_path }}" width="160"><figcaption>{{ frame.timestamp }}</figcaption></figure>{% endfor %}
{% endif %}

{% if has_final_screenshot %}
<h2>Final screenshot</h2>
<img src="{{ final_screenshot_path }}" width="480">
{% endif %}

{% if has_video %}
<h2>Recording</h2>
<video src="{{ video_path }}" controls width="480"></video>
{% endif %}

{% if has_network_requests %}
<h2>Network</h2>
<table>
{% for row in network_data %}
<tr{% if row.is_lcp %} class="lcp"{% endif %}>
<td title="{{ row.full_url }}">{{ row.url }}</td><td>{{ row.method }}</td><td>{{ row.status }}</td>
<td>{{ row.type }}</td><td>{{ row.size }}</td><td>{{ row.duration }} ms</td>
<td style="width: 40%"><div class="bar" style="margin-left: {{ row.start_pct }}%; width: {{ row.duration_pct }}%">
{% for phase in row.timeline_phases %}<span class="{{ phase.color_class }}" style="width: {{ phase.width_pct }}%"></span>{% endfor %}
</div></td>
</tr>
{% endfor %}
</table>
{% endif %}

{% if has_console %}
<h2>Console</h2>
<table>
{% for msg in console_data %}<tr><td>{{ msg.type }}</td><td>{{ msg.text }}</td><td>{{ msg.location_url }}:{{ msg.location_line_number }}:{{ msg.location_column_number }}</td></tr>{% endfor %}
</table>
{% endif %}
</body>
</html>
"""

_env = Environment(autoescape=True, trim_blocks=True, lstrip_blocks=True)


def render_html(model):
    return _env.from_string(REPORT_TEMPLATE).render(**model)


def network_frame(model):
    return pd.DataFrame(model.get("network_data") or [], columns=NETWORK_COLUMNS)


def write_report(model, base_path):
    """
    Write the HTML report, the model and the network CSV into `base_path`.

    Returns the HTML path. Write errors propagate to the caller.
    """
    html_path = os.path.join(base_path, REPORT_HTML)
    with open(html_path, "w", encoding="utf-8") as f:
        f.write(render_html(model))

    write_json_file(os.path.join(base_path, REPORT_MODEL), model)

    if model.get("has_network_requests"):
        network_frame(model).to_csv(os.path.join(base_path, NETWORK_CSV), index=False)

    log(f"Visual report generated: {html_path}")
    return html_path
