import argparse
import os
import sys
import time

from har_parser import find_har_file, parse_har_file
from probe_config import Config
from probe_helpers import load_json_file, load_optional_json, log, log_error, log_timer
from report_builder import build_report_model
from report_render import write_report
from telemetry_merge import fill_out_har


# ================= CLI =================

def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        "generate-report",
        description="Build the visual report for one page-load results directory",
    )
    parser.add_argument("directory", help="results directory of a single test run")
    parser.add_argument(
        "--merge", action="store_true",
        help="fold requests.json timings into the HAR before reporting",
    )
    parser.add_argument("--debug", action="store_true")
    return parser.parse_args(argv)


# ================= PIPELINE =================

def generate(base_path, config, merge=False):
    """
    Run the processing pipeline over one results directory.

    Missing or broken network/console data only drops those report
    sections; failures writing the report are raised.
    """
    start = time.perf_counter()

    metrics = load_json_file(os.path.join(base_path, "metrics.json"))
    console_messages = load_optional_json(os.path.join(base_path, "console.json"), "console")

    har_path = find_har_file(base_path)
    if merge and har_path:
        samples = load_optional_json(os.path.join(base_path, "requests.json"), "requests") or []
        fill_out_har(har_path, metrics, samples, debug=config.debug)

    requests = parse_har_file(har_path)
    if requests is None:
        log("No network data found, skipping the waterfall")

    model = build_report_model(metrics, console_messages, base_path, requests, config)
    html_path = write_report(model, base_path)
    log_timer("Generate Report", start, config.debug)
    return html_path


def main(argv=None):
    args = parse_args(argv)
    config = Config.from_env().with_args(args)

    base_path = os.path.abspath(args.directory)
    if not os.path.isdir(base_path):
        log_error(f"Error: Directory '{base_path}' does not exist")
        return 1

    log(f"Loading data from {base_path}...")
    try:
        generate(base_path, config, merge=args.merge)
    except (OSError, ValueError) as e:
        log_error(f"Error: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
