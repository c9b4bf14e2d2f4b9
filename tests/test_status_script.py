from __future__ import annotations

import argparse
import importlib.util
import json
from datetime import date
from pathlib import Path


def _load_module():
    module_path = Path(__file__).resolve().parents[1] / "scripts" / "repo_sync_status.py"
    spec = importlib.util.spec_from_file_location("repo_sync_status_test_module", module_path)
    assert spec and spec.loader
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def _write_status(path: Path, *, today: str, status: str = "success") -> Path:
    payload = {
        "last_run": {
            "date": f"{today}T02:00:42+00:00",
            "status": status,
            "dry_run": False,
            "duration_seconds": 42.0,
            "message": "",
        },
        "summary": {
            "total": 3,
            "counts": {"SUCCESS": 1, "FAILED": 1, "SKIPPED": 0, "TIMEOUT": 1, "UNKNOWN": 0},
            "repositories": {"api": "SUCCESS", "web": "FAILED", "docs": "TIMEOUT"},
            "durations": {"api": 1.5, "docs": 300.0},
            "exit_code": 1,
        },
        "today": today,
        "version": "0.3.0",
    }
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


def _args(path: Path, **overrides) -> argparse.Namespace:
    values = {"status_file": path, "check_today": False, "format": "text", "failures": False}
    values.update(overrides)
    return argparse.Namespace(**values)


def test_succeeded_today() -> None:
    module = _load_module()
    status = {"today": "2024-05-01", "last_run": {"status": "success"}}

    assert module.succeeded_today(status, today=date(2024, 5, 1))
    assert not module.succeeded_today(status, today=date(2024, 5, 2))
    assert not module.succeeded_today({**status, "last_run": {"status": "failed"}}, today=date(2024, 5, 1))


def test_check_today_uses_exit_code(tmp_path: Path, capsys) -> None:
    module = _load_module()
    fresh = _write_status(tmp_path / "fresh.json", today=date.today().isoformat())
    stale = _write_status(tmp_path / "stale.json", today="2000-01-01")

    assert module.report_status(_args(fresh, check_today=True)) == 0
    assert module.report_status(_args(stale, check_today=True)) == 1
    out = capsys.readouterr().out
    assert "already completed successfully" in out
    assert "No successful git update recorded today" in out


def test_text_report_lists_failures(tmp_path: Path, capsys) -> None:
    module = _load_module()
    path = _write_status(tmp_path / "status.json", today="2024-05-01", status="failed")

    exit_code = module.report_status(_args(path, failures=True))

    lines = capsys.readouterr().out.splitlines()
    assert exit_code == 0
    assert lines[0].startswith("status=failed | date=2024-05-01")
    assert "failed=1" in lines[0]
    assert lines[1:] == ["docs: TIMEOUT after 300.0s", "web: FAILED"]


def test_json_report_and_custom_formatter(tmp_path: Path, capsys) -> None:
    module = _load_module()
    path = _write_status(tmp_path / "status.json", today="2024-05-01")

    module.report_status(_args(path, format="json"))
    assert json.loads(capsys.readouterr().out)["today"] == "2024-05-01"

    module.report_status(_args(path), formatter=lambda status: f"custom {status['version']}")
    assert capsys.readouterr().out.strip() == "custom 0.3.0"


def test_missing_or_corrupt_status_file(tmp_path: Path, capsys) -> None:
    module = _load_module()
    corrupt = tmp_path / "corrupt.json"
    corrupt.write_text("{not json", encoding="utf-8")

    assert module.report_status(_args(tmp_path / "missing.json")) == 1
    assert module.report_status(_args(corrupt)) == 1
    err = capsys.readouterr().err
    assert "No status file" in err
    assert "is not valid JSON" in err
