"""wooai database layer."""

from wooai.db.connection import Database
from wooai.db.migrations import MIGRATIONS, run_migrations
from wooai.db.repository import Repository
from wooai.db.schema import initialize

__all__ = [
    "Database",
    "Repository",
    "initialize",
    "run_migrations",
    "MIGRATIONS",
]
