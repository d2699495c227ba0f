"""Tests for wooai init command."""

from __future__ import annotations

import stat
from pathlib import Path

import yaml
from typer.testing import CliRunner

from wooai.cli.main import app
from wooai.db.connection import Database
from wooai.db.schema import CURRENT_VERSION

runner = CliRunner()


def _run_init(tmp_path: Path, *extra: str) -> object:
    global_cfg = tmp_path / "home" / "config.yaml"
    return runner.invoke(
        app, ["init", str(tmp_path / "shop"), "--global-config", str(global_cfg), *extra]
    )


# ---------------------------------------------------------------------------
# Scaffold
# ---------------------------------------------------------------------------


def test_init_creates_database(tmp_path: Path) -> None:
    result = _run_init(tmp_path)

    assert result.exit_code == 0, result.output
    db_path = tmp_path / "shop" / ".wooai.db"
    assert db_path.exists()
    with Database(db_path) as conn:
        version = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()[0]
    assert version == CURRENT_VERSION


def test_init_writes_project_config(tmp_path: Path) -> None:
    _run_init(tmp_path, "--store-name", "Acme Outdoor")

    data = yaml.safe_load((tmp_path / "shop" / "wooai.yaml").read_text())
    assert data["store"]["name"] == "Acme Outdoor"
    assert data["license"]["plan"] == "free"
    assert data["generation"]["offline"] is False


def test_init_creates_private_global_config(tmp_path: Path) -> None:
    _run_init(tmp_path)

    global_cfg = tmp_path / "home" / "config.yaml"
    assert global_cfg.exists()
    assert stat.S_IMODE(global_cfg.stat().st_mode) == 0o600
    assert "api_key" not in yaml.safe_load(global_cfg.read_text())


def test_init_is_idempotent(tmp_path: Path) -> None:
    _run_init(tmp_path, "--store-name", "First")
    result = _run_init(tmp_path, "--store-name", "Second")

    assert result.exit_code == 0
    assert "already exists" in result.output
    data = yaml.safe_load((tmp_path / "shop" / "wooai.yaml").read_text())
    assert data["store"]["name"] == "First"


def test_init_prints_next_steps(tmp_path: Path) -> None:
    result = _run_init(tmp_path)

    assert "wooai initialized" in result.output
    assert "wooai index --source" in result.output
