"""Smoke tests for the simulated receiving run."""

import json

from main import main


def test_full_run_writes_reports(tmp_path, capsys):
    report = tmp_path / "scan_log.csv"
    summary = tmp_path / "summary.json"

    exit_code = main([
        "--config", str(tmp_path / "none.ini"),
        "--items", "3",
        "--seed", "11",
        "--report", str(report),
        "--summary", str(summary),
    ])

    assert exit_code == 0
    assert report.exists()
    data = json.loads(summary.read_text(encoding="utf-8"))
    assert data['state'] == "completed"
    assert data['progress']['scanned'] == 3
    assert "complete: 3 items received" in capsys.readouterr().out


def test_partial_run_with_exception(tmp_path, capsys):
    summary = tmp_path / "summary.json"

    exit_code = main([
        "--config", str(tmp_path / "none.ini"),
        "--items", "4",
        "--scan", "1",
        "--exception", "Three boxes missing",
        "--summary", str(summary),
    ])

    assert exit_code == 0
    data = json.loads(summary.read_text(encoding="utf-8"))
    assert data['state'] == "exception"
    assert data['exception']['message'] == "Three boxes missing"
    assert data['exception']['missing_count'] == 3
    assert "Final state: exception (1/4)" in capsys.readouterr().out
