"""Tests for the wooai config loader."""

from __future__ import annotations

import stat
import warnings
from pathlib import Path

import pytest
import yaml

from wooai.config import ConfigError, ensure_global_config, load_config


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _write_yaml(path: Path, data: dict) -> None:
    path.write_text(yaml.dump(data), encoding="utf-8")


def _load(tmp_path: Path, global_cfg: Path | None = None):
    return load_config(
        project_dir=tmp_path,
        global_config_path=global_cfg or tmp_path / "missing" / "config.yaml",
    )


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------


def test_load_config_defaults_no_files(tmp_path: Path) -> None:
    cfg = _load(tmp_path)

    assert cfg.embedding.model == "openai/text-embedding-3-small"
    assert cfg.embedding.dimensions == 1536
    assert cfg.license.plan == "free"
    assert cfg.retrieval.top_k == 5
    assert cfg.retrieval.threshold == pytest.approx(0.3)
    assert cfg.chunking.max_chunk_size == 1_000
    assert cfg.chunking.min_chunk_size == 100
    assert cfg.health.outdated_days == 30
    assert cfg.generation.offline is False
    assert set(cfg.generation.plan_models) == {"free", "pro", "unlimited"}


def test_load_config_global_empty_file(tmp_path: Path) -> None:
    global_cfg = tmp_path / "config.yaml"
    global_cfg.write_text("# nothing here\n", encoding="utf-8")

    cfg = _load(tmp_path, global_cfg)
    assert cfg.embedding.model == "openai/text-embedding-3-small"


# ---------------------------------------------------------------------------
# Layering
# ---------------------------------------------------------------------------


def test_load_config_global_overrides_defaults(tmp_path: Path) -> None:
    global_cfg = tmp_path / "config.yaml"
    _write_yaml(global_cfg, {"embedding": {"model": "openai/text-embedding-3-large"}})

    cfg = _load(tmp_path, global_cfg)
    assert cfg.embedding.model == "openai/text-embedding-3-large"
    assert cfg.embedding.dimensions == 1536


def test_load_config_project_overrides_global(tmp_path: Path) -> None:
    global_cfg = tmp_path / "global.yaml"
    _write_yaml(global_cfg, {"retrieval": {"top_k": 8, "threshold": 0.5}})
    _write_yaml(tmp_path / "wooai.yaml", {"retrieval": {"top_k": 3}})

    cfg = _load(tmp_path, global_cfg)
    assert cfg.retrieval.top_k == 3
    assert cfg.retrieval.threshold == pytest.approx(0.5)


def test_load_config_project_store_and_plan(tmp_path: Path) -> None:
    _write_yaml(
        tmp_path / "wooai.yaml",
        {"store": {"name": "Acme Outdoor"}, "license": {"plan": "pro"}},
    )

    cfg = _load(tmp_path)
    assert cfg.store.name == "Acme Outdoor"
    assert cfg.store.assistant_name == "Shopping Assistant"
    assert cfg.license.plan == "pro"


def test_plan_models_are_merged_not_replaced(tmp_path: Path) -> None:
    _write_yaml(
        tmp_path / "wooai.yaml",
        {"generation": {"plan_models": {"pro": "openai/gpt-4o-mini"}}},
    )

    cfg = _load(tmp_path)
    assert cfg.generation.plan_models["pro"] == "openai/gpt-4o-mini"
    assert "unlimited" in cfg.generation.plan_models


def test_monthly_limit_null_means_unlimited(tmp_path: Path) -> None:
    _write_yaml(tmp_path / "wooai.yaml", {"license": {"monthly_limits": {"free": None}}})

    cfg = _load(tmp_path)
    assert cfg.license.monthly_limits["free"] is None
    assert cfg.license.monthly_limits["pro"] == 1_000


def test_string_booleans_are_parsed(tmp_path: Path) -> None:
    _write_yaml(tmp_path / "wooai.yaml", {"generation": {"offline": "yes"}})

    assert _load(tmp_path).generation.offline is True


def test_chunking_per_type_defaults(tmp_path: Path) -> None:
    chunking = _load(tmp_path).chunking

    assert chunking.overlap == 0
    assert chunking.for_type("product") == (800, 80)
    assert chunking.for_type("post") == (1_200, 120)
    assert chunking.for_type("faq") == (1_000, 0)


def test_chunking_per_type_overrides_merge(tmp_path: Path) -> None:
    _write_yaml(
        tmp_path / "wooai.yaml",
        {
            "chunking": {
                "overlap": 50,
                "content_types": {"faq": {"chunk_size": 500}, "product": {"overlap": 0}},
            }
        },
    )

    chunking = _load(tmp_path).chunking
    assert chunking.for_type("faq") == (500, 50)
    assert chunking.for_type("product") == (800, 0)
    assert chunking.for_type("page") == (1_000, 100)


@pytest.mark.parametrize(
    "chunking,match",
    [
        ({"content_types": {"product": {"overlap": 500}}}, "overlap"),
        ({"content_types": {"faq": {"chunk_size": 50}}}, "chunk size"),
        ({"overlap": -1}, "overlap"),
        ({"content_types": {"faq": 300}}, "mapping"),
    ],
)
def test_chunking_invalid_values_raise(tmp_path: Path, chunking: dict, match: str) -> None:
    _write_yaml(tmp_path / "wooai.yaml", {"chunking": chunking})

    with pytest.raises(ConfigError, match=match):
        _load(tmp_path)


# ---------------------------------------------------------------------------
# Env var overrides
# ---------------------------------------------------------------------------


def test_env_generation_model_applies_to_every_plan(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("WOOAI_GENERATION_MODEL", "ollama/llama3")

    cfg = _load(tmp_path)
    assert set(cfg.generation.plan_models.values()) == {"ollama/llama3"}


def test_env_offline_sets_both_sections(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("WOOAI_OFFLINE", "1")

    cfg = _load(tmp_path)
    assert cfg.embedding.offline is True
    assert cfg.generation.offline is True


def test_env_plan_overrides_project(tmp_path: Path, monkeypatch) -> None:
    _write_yaml(tmp_path / "wooai.yaml", {"license": {"plan": "free"}})
    monkeypatch.setenv("WOOAI_PLAN", "unlimited")

    assert _load(tmp_path).license.plan == "unlimited"


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def test_unknown_plan_raises(tmp_path: Path) -> None:
    _write_yaml(tmp_path / "wooai.yaml", {"license": {"plan": "enterprise"}})

    with pytest.raises(ConfigError, match="license.plan"):
        _load(tmp_path)


@pytest.mark.parametrize("key", ["api_key", "openai_api_key", "token", "license_key", "password"])
def test_global_config_rejects_secrets(tmp_path: Path, key: str) -> None:
    global_cfg = tmp_path / "config.yaml"
    _write_yaml(global_cfg, {"license": {key: "secret-value"}})

    with pytest.raises(ConfigError, match="forbidden key"):
        _load(tmp_path, global_cfg)


def test_token_budget_keys_are_not_secrets(tmp_path: Path) -> None:
    global_cfg = tmp_path / "config.yaml"
    _write_yaml(global_cfg, {"retrieval": {"context_token_budget": 1_000}})

    assert _load(tmp_path, global_cfg).retrieval.context_token_budget == 1_000


def test_unknown_top_level_key_warns(tmp_path: Path) -> None:
    _write_yaml(tmp_path / "wooai.yaml", {"widget": {"color": "blue"}})

    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        _load(tmp_path)

    assert any("widget" in str(w.message) for w in caught)


def test_invalid_yaml_raises(tmp_path: Path) -> None:
    (tmp_path / "wooai.yaml").write_text("store: [unclosed\n", encoding="utf-8")

    with pytest.raises(ConfigError, match="not valid YAML"):
        _load(tmp_path)


def test_non_mapping_yaml_raises(tmp_path: Path) -> None:
    (tmp_path / "wooai.yaml").write_text("- just\n- a list\n", encoding="utf-8")

    with pytest.raises(ConfigError, match="mapping"):
        _load(tmp_path)


def test_empty_project_file_uses_defaults(tmp_path: Path) -> None:
    (tmp_path / "wooai.yaml").write_text("", encoding="utf-8")

    assert _load(tmp_path).retrieval.top_k == 5


# ---------------------------------------------------------------------------
# ensure_global_config
# ---------------------------------------------------------------------------


def test_ensure_global_config_creates_private_file(tmp_path: Path) -> None:
    target = tmp_path / ".wooai" / "config.yaml"

    path = ensure_global_config(target)

    assert path == target
    assert target.exists()
    assert stat.S_IMODE(target.stat().st_mode) == 0o600
    data = yaml.safe_load(target.read_text(encoding="utf-8"))
    assert data["license"]["plan"] == "free"


def test_ensure_global_config_keeps_existing(tmp_path: Path) -> None:
    target = tmp_path / "config.yaml"
    target.write_text("store:\n  name: Mine\n", encoding="utf-8")

    ensure_global_config(target)

    assert "Mine" in target.read_text(encoding="utf-8")
