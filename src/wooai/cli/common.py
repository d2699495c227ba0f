"""Helpers shared by the wooai commands: config loading and service wiring."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console

from wooai.config import ConfigError, WooAiConfig, load_config
from wooai.log import configure_logging
from wooai.services import DEFAULT_DB, Services, build_services

from wooai.cli.errors import err_config, err_no_db

console = Console()

DEFAULT_DB_PATH = Path(DEFAULT_DB)


def load_cli_config(offline: bool = False) -> WooAiConfig:
    """Load config, print an actionable error and exit on a bad file."""
    try:
        cfg = load_config()
    except ConfigError as exc:
        console.print(err_config(exc))
        raise typer.Exit(1) from exc
    if offline:
        cfg.embedding.offline = cfg.generation.offline = True
    configure_logging(cfg.logging.level)
    return cfg


def open_services(db: Path, offline: bool = False, must_exist: bool = True) -> Services:
    """Build the service graph on *db*.

    Exits with an actionable message when *must_exist* and the file is missing.
    """
    if must_exist and not db.exists():
        console.print(err_no_db(str(db)))
        raise typer.Exit(1)
    return build_services(load_cli_config(offline), db)
