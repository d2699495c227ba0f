"""Shared pytest fixtures."""

from __future__ import annotations

import pytest

import wooai.config as config_module
from wooai.config import WooAiConfig
from wooai.db.connection import Database
from wooai.db.schema import initialize
from wooai.services import build_services

_ENV_VARS = (
    "WOOAI_GENERATION_MODEL",
    "WOOAI_EMBEDDING_MODEL",
    "WOOAI_PLAN",
    "WOOAI_OFFLINE",
    "WOOAI_LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def _isolate_config(tmp_path, monkeypatch):
    """Keep tests away from ~/.wooai and WOOAI_* variables of the developer shell."""
    monkeypatch.setattr(config_module, "_GLOBAL_CONFIG_PATH", tmp_path / "home" / "config.yaml")
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def tmp_db(tmp_path):
    """File-based DB in tmp_path with schema initialized, closed after test."""
    db = Database(tmp_path / ".wooai.db")
    conn = db.connect()
    initialize(conn)
    yield conn
    conn.close()


@pytest.fixture
def offline_config():
    """Config that never calls a provider; small vectors keep tests fast."""
    cfg = WooAiConfig()
    cfg.embedding.offline = True
    cfg.embedding.dimensions = 32
    cfg.generation.offline = True
    cfg.retrieval.threshold = 0.0
    cfg.store.name = "Acme Outdoor"
    return cfg


@pytest.fixture
def services(tmp_db, offline_config):
    """Fully wired offline service graph on the tmp_db connection."""
    return build_services(offline_config, conn=tmp_db)
