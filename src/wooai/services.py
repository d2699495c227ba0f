"""Composition root: build one instance of every service and wire them up."""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from pathlib import Path

from wooai.cache import Cache
from wooai.config import WooAiConfig, load_config
from wooai.db.connection import Database
from wooai.db.repository import Repository
from wooai.db.schema import initialize
from wooai.events import EventBus
from wooai.ingest.indexer import Indexer
from wooai.kb.health import HealthScorer
from wooai.license import PlanService
from wooai.rag.conversation import ConversationStore
from wooai.rag.embeddings import EmbeddingClient
from wooai.rag.orchestrator import ResponseOrchestrator
from wooai.rag.search import VectorSearch
from wooai.storefront import Storefront, StorefrontActions, UnconfiguredStorefront

DEFAULT_DB = ".wooai.db"


@dataclass
class Services:
    config: WooAiConfig
    conn: sqlite3.Connection
    repo: Repository
    cache: Cache
    events: EventBus
    embeddings: EmbeddingClient
    search: VectorSearch
    indexer: Indexer
    health: HealthScorer
    plans: PlanService
    conversations: ConversationStore
    orchestrator: ResponseOrchestrator
    storefront: StorefrontActions

    def close(self) -> None:
        self.conn.close()


def build_services(
    config: WooAiConfig | None = None,
    db_path: Path | str | None = None,
    *,
    conn: sqlite3.Connection | None = None,
    storefront: Storefront | None = None,
) -> Services:
    """Open the database (unless *conn* is given) and assemble the services.

    Args:
        config:     Loaded configuration; ``load_config()`` when omitted.
        db_path:    Knowledge base file; ``.wooai.db`` in the CWD by default.
        conn:       An already open connection (schema is initialised on it).
        storefront: Commerce backend for chat actions.
    """
    config = config or load_config()
    if conn is None:
        conn = Database(db_path or DEFAULT_DB).connect()
    initialize(conn)

    repo = Repository(conn)
    cache = Cache(conn)
    events = EventBus()
    embeddings = EmbeddingClient(config.embedding, cache)
    search = VectorSearch(repo, embeddings)
    plans = PlanService(config.license, config.generation, cache)
    conversations = ConversationStore(cache)
    return Services(
        config=config,
        conn=conn,
        repo=repo,
        cache=cache,
        events=events,
        embeddings=embeddings,
        search=search,
        indexer=Indexer(repo, embeddings, events, cache, config.chunking),
        health=HealthScorer(repo, cache, config.health, events, store_name=config.store.name),
        plans=plans,
        conversations=conversations,
        orchestrator=ResponseOrchestrator(search, plans, conversations, config),
        storefront=StorefrontActions(storefront or UnconfiguredStorefront(), plans),
    )
