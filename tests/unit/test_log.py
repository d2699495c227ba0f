"""Tests for wooai.log."""

from __future__ import annotations

import logging

import pytest
from rich.logging import RichHandler

from wooai.log import configure_logging


@pytest.fixture
def clean_logger():
    logger = logging.getLogger("wooai")
    saved = (logger.handlers[:], logger.level, logger.propagate)
    logger.handlers.clear()
    yield logger
    logger.handlers[:] = saved[0]
    logger.setLevel(saved[1])
    logger.propagate = saved[2]


def test_attaches_single_rich_handler(clean_logger) -> None:
    configure_logging()
    configure_logging()

    assert sum(isinstance(h, RichHandler) for h in clean_logger.handlers) == 1
    assert clean_logger.propagate is False


def test_level_by_name(clean_logger) -> None:
    assert configure_logging("debug").level == logging.DEBUG


def test_numeric_level(clean_logger) -> None:
    assert configure_logging(logging.WARNING).level == logging.WARNING


def test_unknown_level_falls_back_to_info(clean_logger) -> None:
    assert configure_logging("LOUD").level == logging.INFO
