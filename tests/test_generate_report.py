import json

import pandas as pd

from generate_report import generate, main
from probe_config import Config


def test_end_to_end(results_dir, capsys):
    assert main([str(results_dir), "--merge"]) == 0

    model = json.loads((results_dir / "report_model.json").read_text())
    assert model["cls"] == "0.0350"
    assert model["lcp_rating"] == "Needs Improvement"
    assert model["has_console"] is True
    assert [row["is_lcp"] for row in model["network_data"]] == [False, True]

    document = model["network_data"][0]
    labels = {p["color_class"]: p["timing"] for p in document["timeline_phases"]}
    assert labels == {"dns": "10", "connect": "20", "ssl": "0", "send": "0", "wait": "50", "receive": "30"}

    har = json.loads((results_dir / "pageload.har").read_text())
    assert har["log"]["pages"][0]["pageTimings"]["_LCP"] == 3000

    csv = pd.read_csv(results_dir / "network_requests.csv")
    assert len(csv) == 2
    assert "Visual report generated" in capsys.readouterr().out


def test_without_merge_leaves_har_untouched(results_dir):
    before = (results_dir / "pageload.har").read_text()
    generate(str(results_dir), Config())
    assert (results_dir / "pageload.har").read_text() == before
    assert (results_dir / "visual_report.html").exists()


def test_missing_network_and_console(results_dir):
    (results_dir / "pageload.har").unlink()
    (results_dir / "console.json").write_text("{broken")

    generate(str(results_dir), Config())

    model = json.loads((results_dir / "report_model.json").read_text())
    assert model["has_network_requests"] is False
    assert model["has_console"] is False
    assert not (results_dir / "network_requests.csv").exists()


def test_console_object_drops_console_section(results_dir):
    (results_dir / "console.json").write_text(json.dumps({"type": "log", "text": "hi"}))

    assert main([str(results_dir), "--merge"]) == 0

    model = json.loads((results_dir / "report_model.json").read_text())
    assert model["has_console"] is False
    assert model["has_network_requests"] is True


def test_undecodable_console_drops_console_section(results_dir, capsys):
    (results_dir / "console.json").write_bytes(b"[\xff\xfe]")

    assert main([str(results_dir)]) == 0

    model = json.loads((results_dir / "report_model.json").read_text())
    assert model["has_console"] is False
    assert "Error parsing console file" in capsys.readouterr().err


def test_merge_with_unusable_har_still_reports(results_dir, capsys):
    (results_dir / "pageload.har").write_text(json.dumps({"log": None}))
    (results_dir / "requests.json").write_text(json.dumps({"url": "https://a/"}))

    assert main([str(results_dir), "--merge"]) == 0

    model = json.loads((results_dir / "report_model.json").read_text())
    assert model["has_network_requests"] is False
    assert "Error parsing HAR file" in capsys.readouterr().err


def test_missing_directory(tmp_path, capsys):
    assert main([str(tmp_path / "nope")]) == 1
    assert "does not exist" in capsys.readouterr().err


def test_missing_metrics(tmp_path, capsys):
    assert main([str(tmp_path)]) == 1
    assert "Error" in capsys.readouterr().err
