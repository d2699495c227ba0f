"""Tests for wooai rich error messages."""

from __future__ import annotations

import pytest

from wooai.cli.errors import (
    err_bad_source,
    err_chat_failed,
    err_config,
    err_index_failed,
    err_no_api_key,
    err_no_db,
    err_source_not_found,
    err_unknown_template,
    warn_no_content,
)


def _has_action(msg: str) -> bool:
    """Every error must contain an actionable instruction."""
    lower = msg.lower()
    return any(kw in lower for kw in ["run:", "set:", "export ", "fix ", "supported:", "rephrase", "wait"])


# ---------------------------------------------------------------------------
# err_no_api_key
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "model,provider,env_var",
    [
        ("openrouter/google/gemini-2.5-flash", "openrouter", "OPENROUTER_API_KEY"),
        ("anthropic/claude-3-5-haiku", "anthropic", "ANTHROPIC_API_KEY"),
        ("gpt-4o-mini", "openai", "OPENAI_API_KEY"),
        ("acme/some-model", "acme", "ACME_API_KEY"),
    ],
)
def test_err_no_api_key(model, provider, env_var) -> None:
    msg = err_no_api_key(model)

    assert f"'{provider}'" in msg
    assert f"export {env_var}=" in msg
    assert "--offline" in msg


# ---------------------------------------------------------------------------
# Other errors
# ---------------------------------------------------------------------------


def test_err_no_db() -> None:
    msg = err_no_db("shop/.wooai.db")

    assert "shop/.wooai.db" in msg
    assert "wooai init" in msg


def test_err_source_not_found() -> None:
    assert "export.json" in err_source_not_found("export.json")


def test_err_bad_source_includes_reason() -> None:
    msg = err_bad_source("export.json", "Expecting value: line 1 column 1")

    assert "Expecting value" in msg


def test_err_index_failed_explains_resume() -> None:
    msg = err_index_failed("Failed to store chunks for product/1: disk I/O error")

    assert "disk I/O error" in msg
    assert "resume" in msg
    assert _has_action(msg)


def test_err_unknown_template_lists_supported() -> None:
    msg = err_unknown_template("product", ["faq", "contact_info"])

    assert "'product'" in msg
    assert "faq, contact_info" in msg


@pytest.mark.parametrize(
    "code,hint",
    [
        ("rate_limited", "requests_per_minute"),
        ("upstream_unavailable", "--offline"),
        ("safety_filter", "Rephrase"),
        ("persistence_error", "WOOAI_LOG_LEVEL=DEBUG"),
    ],
)
def test_err_chat_failed_hints(code, hint) -> None:
    msg = err_chat_failed(code, "boom")

    assert code in msg
    assert "boom" in msg
    assert hint in msg


@pytest.mark.parametrize(
    "msg",
    [
        err_no_api_key("openai/gpt-4o"),
        err_no_db(),
        err_config(ValueError("bad")),
        err_unknown_template("x", ["faq"]),
        err_chat_failed("rate_limited", "slow down"),
        warn_no_content(),
    ],
)
def test_messages_are_actionable(msg) -> None:
    assert _has_action(msg)
