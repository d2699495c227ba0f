"""Tests for wooai status command."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from wooai.cli.main import app

runner = CliRunner()


@pytest.fixture(autouse=True)
def _in_tmp(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)


def test_status_without_database(tmp_path: Path) -> None:
    result = runner.invoke(app, ["status", "--db", str(tmp_path / ".wooai.db")])

    assert result.exit_code == 0, result.output
    assert "Configuration" in result.output
    assert "No database found" in result.output


def test_status_reads_project_config(tmp_path: Path) -> None:
    (tmp_path / "wooai.yaml").write_text(
        "store:\n  name: Acme Outdoor\nlicense:\n  plan: pro\n", encoding="utf-8"
    )

    result = runner.invoke(app, ["status", "--db", str(tmp_path / ".wooai.db")])

    assert "Acme Outdoor" in result.output
    assert "pro" in result.output


def test_status_empty_knowledge_base(tmp_path: Path) -> None:
    runner.invoke(app, ["init", str(tmp_path), "--global-config", str(tmp_path / "g.yaml")])

    result = runner.invoke(app, ["status", "--db", str(tmp_path / ".wooai.db")])

    assert result.exit_code == 0, result.output
    assert "No content indexed yet" in result.output
    assert "Usage" in result.output


def test_status_lists_indexed_types(tmp_path: Path) -> None:
    source = tmp_path / "export.json"
    source.write_text(
        json.dumps([{"id": "faq-1", "type": "faq", "content": "We ship worldwide."}]),
        encoding="utf-8",
    )
    db = tmp_path / ".wooai.db"
    runner.invoke(app, ["index", "--source", str(source), "--db", str(db), "--offline"])

    result = runner.invoke(app, ["status", "--db", str(db)])

    assert result.exit_code == 0, result.output
    assert "faq" in result.output
    assert "Messages:" in result.output


def test_status_invalid_config(tmp_path: Path) -> None:
    (tmp_path / "wooai.yaml").write_text("license:\n  plan: platinum\n", encoding="utf-8")

    result = runner.invoke(app, ["status", "--db", str(tmp_path / ".wooai.db")])

    assert result.exit_code == 1
    assert "Invalid configuration" in result.output
