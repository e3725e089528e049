"""Integration test: CLI subcommands against a temporary database."""

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from main import main


def _write_config(tmp_path: Path) -> Path:
    cfg = tmp_path / "settings.yaml"
    cfg.write_text(
        f"database:\n  path: {tmp_path / 'jobs.db'}\n"
        "analytics:\n  enabled: false\n"
    )
    return cfg


def _write_jobs(tmp_path: Path) -> Path:
    posted = (datetime.now(timezone.utc) - timedelta(days=1)).isoformat()
    docs = [
        {
            "job_id": "1",
            "title": "Senior Python Engineer",
            "company": {"id": "c1", "name": "Acme"},
            "location": {"city": "Pune", "country": "India"},
            "skills": ["python"],
            "posted_at": posted,
        },
        {
            "job_id": "2",
            "title": "Go Engineer",
            "company": {"id": "c2", "name": "Globex"},
            "location": {"city": "Delhi", "country": "India"},
            "posted_at": posted,
        },
        {"job_id": "3"},
    ]
    path = tmp_path / "jobs.json"
    path.write_text(json.dumps(docs))
    return path


def _write_request(tmp_path: Path, request: dict) -> Path:
    path = tmp_path / "request.json"
    path.write_text(json.dumps(request))
    return path


class TestCli:
    def test_load_then_search(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        cfg = _write_config(tmp_path)
        main(["load-jobs", "--input", str(_write_jobs(tmp_path)), "--config", str(cfg)])
        out = capsys.readouterr().out
        assert "Loaded 2 jobs (2 new, 1 skipped)" in out

        request = _write_request(tmp_path, {"q": "python", "sortBy": "date"})
        main(["search", "--filters", str(request), "--config", str(cfg), "--export", "json"])
        out = capsys.readouterr().out
        assert "Page 1/1 of 1 results sorted by most recent first" in out
        assert "Senior Python Engineer @ Acme (Pune)" in out
        assert '"totalPages": 1' in out

    def test_reload_counts_updates(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        cfg = _write_config(tmp_path)
        jobs = _write_jobs(tmp_path)
        main(["load-jobs", "--input", str(jobs), "--config", str(cfg)])
        main(["load-jobs", "--input", str(jobs), "--config", str(cfg)])
        assert "Loaded 2 jobs (0 new, 1 skipped)" in capsys.readouterr().out

    def test_dry_run(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        cfg = _write_config(tmp_path)
        request = _write_request(tmp_path, {"skills": "Go", "sortBy": "views", "sortOrder": "asc"})
        main(["search", "--filters", str(request), "--config", str(cfg), "--dry-run"])
        out = capsys.readouterr().out
        assert "[DRY RUN] Sort: views (asc)" in out
        assert '"skills": [\n    "go"\n  ]' in out
        assert "[DRY RUN] Predicate:" in out

    def test_invalid_request_exit_code(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        cfg = _write_config(tmp_path)
        request = _write_request(tmp_path, {"page": 0, "sortBy": "nope"})
        with pytest.raises(SystemExit) as exc:
            main(["search", "--filters", str(request), "--config", str(cfg)])
        assert exc.value.code == 2
        err = capsys.readouterr().err
        assert "page:" in err
        assert "sortBy:" in err

    def test_missing_request_file(self, tmp_path: Path) -> None:
        cfg = _write_config(tmp_path)
        with pytest.raises(SystemExit) as exc:
            main(["search", "--filters", str(tmp_path / "nope.yaml"), "--config", str(cfg)])
        assert exc.value.code == 1

    def test_missing_config(self, tmp_path: Path) -> None:
        with pytest.raises(SystemExit) as exc:
            main(["search", "--filters", "x.yaml", "--config", str(tmp_path / "nope.yaml")])
        assert exc.value.code == 1
