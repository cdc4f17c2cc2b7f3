"""Tests for the readguard command line."""

from __future__ import annotations

import json
from pathlib import Path

import httpx
import pytest
from click.testing import CliRunner

import main
from wiki.client import WikiClient

BASE = "https://wiki.test/api"


def _config_dir(tmp_path: Path, audit_db: Path | None = None) -> Path:
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    audit_db = audit_db or tmp_path / "data" / "audit.db"
    (config_dir / "settings.yaml").write_text(
        "storage:\n"
        f"  cache_file: {json.dumps(str(tmp_path / 'cache.json'))}\n"
        f"  audit_db: {json.dumps(str(audit_db))}\n",
        encoding="utf-8",
    )
    return config_dir


@pytest.fixture
def sent(monkeypatch) -> list[httpx.Request]:
    monkeypatch.setattr(main, "_setup_logging", lambda verbose=False, log_file=None: None)
    return []


def _serve(monkeypatch, seen: list[httpx.Request], handler) -> None:
    def _recording(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return handler(request)

    monkeypatch.setattr(
        main,
        "_client",
        lambda cfg: WikiClient(BASE, token="tok", transport=httpx.MockTransport(_recording)),
    )


def _unreachable(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("connection refused", request=request)


def _invoke(config_dir: Path, *args: str):
    return CliRunner().invoke(main.main, ["--config-dir", str(config_dir), *args])


def test_progress_with_unreachable_server_keeps_local(tmp_path, monkeypatch, sent):
    _serve(monkeypatch, sent, _unreachable)
    (tmp_path / "cache.json").write_text(json.dumps({"usogui-reading-progress": "42"}))

    result = _invoke(_config_dir(tmp_path), "progress")

    assert result.exit_code == 0, result.output
    assert "Chapter 42 (local)" in result.output
    assert [r.method for r in sent] == ["GET"]


def test_progress_survives_unwritable_audit_log(tmp_path, monkeypatch, sent):
    _serve(monkeypatch, sent, lambda r: httpx.Response(200, json={"userProgress": 90}))
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")

    result = _invoke(_config_dir(tmp_path, audit_db=blocker / "audit.db"), "progress")

    assert result.exit_code == 0, result.output
    assert "Chapter 90 (server)" in result.output
    cache = json.loads((tmp_path / "cache.json").read_text())
    assert cache["usogui-reading-progress"] == "90"


def test_check_with_unreachable_server_hides_spoiler(tmp_path, monkeypatch, sent):
    _serve(monkeypatch, sent, _unreachable)

    result = _invoke(_config_dir(tmp_path), "check", "--spoiler", "7", "--read", "5,80")

    assert result.exit_code == 0, result.output
    assert "hidden (unknown spoiler)" in result.output


def test_timeline_with_unreachable_server_reports_error(tmp_path, monkeypatch, sent):
    _serve(monkeypatch, sent, _unreachable)

    result = _invoke(_config_dir(tmp_path), "timeline", "--arc", "3")

    assert result.exit_code == 1
    assert "Could not load events" in result.output
    assert not isinstance(result.exception, httpx.HTTPError)


def test_timeline_gates_with_server_progress(tmp_path, monkeypatch, sent):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/users/profile/progress"):
            return httpx.Response(200, json={"userProgress": 100})
        return httpx.Response(200, json={"data": [
            {"id": "1", "chapterNumber": 50, "type": "other", "title": "Early"},
            {"id": "2", "chapterNumber": 150, "type": "other", "title": "Late"},
        ]})

    _serve(monkeypatch, sent, handler)
    (tmp_path / "cache.json").write_text(json.dumps({"usogui-reading-progress": "3"}))

    result = _invoke(_config_dir(tmp_path), "timeline", "--arc", "3")

    assert result.exit_code == 0, result.output
    assert "Early" in result.output
    assert "Late" not in result.output
    assert "Read up to Chapter 150" in result.output
