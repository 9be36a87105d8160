import json
import sys
import time


# ================= LOGGING =================

def log(msg):
    print(f"[+] {msg}", flush=True)


def log_error(msg):
    print(f"[!] {msg}", file=sys.stderr, flush=True)


def log_timer(label, start, debug=False):
    """Report how long a step took since `start` (a time.perf_counter value)."""
    if not debug:
        return
    elapsed = (time.perf_counter() - start) * 1000
    log(f"TIMING::{label} {elapsed:.2f} ms")


# ================= FILES =================

def load_json_file(file_path):
    with open(file_path, encoding="utf-8") as f:
        return json.load(f)


def load_optional_json(file_path, label):
    """
    Load a JSON artifact that may be missing or broken.
    Returns None (and reports why) instead of raising.
    """
    try:
        return load_json_file(file_path)
    except FileNotFoundError:
        return None
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        log_error(f"Error parsing {label} file {file_path}: {e}")
        return None


def write_json_file(file_path, data):
    with open(file_path, "w", encoding="utf-8") as f:
        json.dump(data, f)
