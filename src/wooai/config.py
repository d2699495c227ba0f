"""wooai configuration loader.

Later layers win:

  defaults < ~/.wooai/config.yaml < ./wooai.yaml < WOOAI_* env vars < CLI flags

CLI flags are applied by the commands themselves. The global file is shared
across stores and may not hold credentials; keys come from the environment.
"""

from __future__ import annotations

import os
import re
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".wooai"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "wooai.yaml"

# Matches: api_key, apikey, api-key, api_secret, _token (suffix), standalone token,
# standalone secret, _secret (suffix), password, passwd, credential(s).
# Does NOT match legitimate config keys like context_token_budget or max_tokens.
_API_KEY_RE: re.Pattern[str] = re.compile(
    r"api[_\-]?(?:key|secret)"
    r"|_token$"
    r"|^token$"
    r"|_secret$"
    r"|^secret$"
    r"|passw(?:ord|d)"
    r"|credential|license_key",
    re.IGNORECASE,
)

_KNOWN_SECTIONS: frozenset[str] = frozenset(
    ["store", "embedding", "generation", "retrieval", "chunking", "health", "license", "logging"]
)

_PLANS: frozenset[str] = frozenset(["free", "pro", "unlimited"])

_TRUTHY = {"1", "true", "yes", "on"}


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(ValueError):
    """Raised when a config file contains an invalid or forbidden value."""


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class StoreCfg:
    """Storefront identity used in prompts (wooai.yaml: store:)."""

    name: str = "our store"
    assistant_name: str = "Shopping Assistant"
    currency: str = "USD"


@dataclass
class EmbeddingCfg:
    """Embedding model configuration (wooai.yaml: embedding:).

    Attributes:
        model: LiteLLM embedding model string.
        dimensions: Vector dimension; also the size of offline fallback vectors.
        batch_size: Texts per embedding request in batch mode.
        offline: Never call the service; use deterministic fallback vectors.
        cache_ttl: Seconds an embedding stays in the shared cache.
    """

    model: str = "openai/text-embedding-3-small"
    dimensions: int = 1536
    batch_size: int = 20
    offline: bool = False
    cache_ttl: int = 86_400


@dataclass
class GenerationCfg:
    """LLM generation configuration (wooai.yaml: generation:)."""

    plan_models: dict[str, str] = field(
        default_factory=lambda: {
            "free": "openrouter/google/gemini-2.5-flash",
            "pro": "openrouter/google/gemini-2.5-flash",
            "unlimited": "openrouter/google/gemini-2.5-pro",
        }
    )
    max_tokens: int = 2_000
    temperature: float = 0.7
    max_history_messages: int = 10
    history_token_budget: int = 1_500
    offline: bool = False
    num_retries: int = 3


@dataclass
class RetrievalCfg:
    """Retrieval configuration (wooai.yaml: retrieval:)."""

    top_k: int = 5
    threshold: float = 0.3
    context_token_budget: int = 2_000


@dataclass
class ChunkingCfg:
    """Indexer chunking configuration (wooai.yaml: chunking:).

    ``content_types`` maps a source type to its own ``chunk_size`` and
    ``overlap``; types not listed use ``max_chunk_size`` and ``overlap``.
    """

    max_chunk_size: int = 1_000
    min_chunk_size: int = 100
    preserve_sentences: bool = True
    batch_size: int = 10
    overlap: int = 0
    content_types: dict[str, dict[str, int]] = field(
        default_factory=lambda: {
            "product": {"chunk_size": 800, "overlap": 80},
            "page": {"chunk_size": 1_000, "overlap": 100},
            "post": {"chunk_size": 1_200, "overlap": 120},
            "settings": {"chunk_size": 600, "overlap": 60},
            "product_cat": {"chunk_size": 400, "overlap": 40},
            "product_tag": {"chunk_size": 300, "overlap": 30},
        }
    )

    def for_type(self, source_type: str) -> tuple[int, int]:
        """Return ``(chunk_size, overlap)`` for *source_type*."""
        entry = self.content_types.get(source_type, {})
        return (
            int(entry.get("chunk_size", self.max_chunk_size)),
            int(entry.get("overlap", self.overlap)),
        )


@dataclass
class HealthCfg:
    """Knowledge base health scoring (wooai.yaml: health:)."""

    cache_ttl: int = 3_600
    outdated_days: int = 30


@dataclass
class LicenseCfg:
    """Subscription plan (wooai.yaml: license:). Keys live in env vars only."""

    plan: str = "free"
    requests_per_minute: int = 60
    monthly_limits: dict[str, int | None] = field(
        default_factory=lambda: {"free": 50, "pro": 1_000, "unlimited": None}
    )


@dataclass
class LoggingCfg:
    level: str = "INFO"


@dataclass
class WooAiConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    store: StoreCfg = field(default_factory=StoreCfg)
    embedding: EmbeddingCfg = field(default_factory=EmbeddingCfg)
    generation: GenerationCfg = field(default_factory=GenerationCfg)
    retrieval: RetrievalCfg = field(default_factory=RetrievalCfg)
    chunking: ChunkingCfg = field(default_factory=ChunkingCfg)
    health: HealthCfg = field(default_factory=HealthCfg)
    license: LicenseCfg = field(default_factory=LicenseCfg)
    logging: LoggingCfg = field(default_factory=LoggingCfg)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _forbidden_keys(data: Any, prefix: str = "") -> list[str]:
    """Dotted paths of every credential-looking key in *data*."""
    if not isinstance(data, dict):
        return []
    found: list[str] = []
    for key, value in data.items():
        dotted = f"{prefix}.{key}" if prefix else str(key)
        if _API_KEY_RE.search(str(key)):
            found.append(dotted)
        found.extend(_forbidden_keys(value, dotted))
    return found


def _check_no_api_keys(data: dict[str, Any], source: Path) -> None:
    forbidden = _forbidden_keys(data)
    if not forbidden:
        return
    first = forbidden[0]
    env_name = first.rsplit(".", 1)[-1].upper().replace("-", "_")
    raise ConfigError(
        f"{source} holds a forbidden key '{first}'; credentials are read from the "
        f"environment only.\n"
        f"  Delete it from {source.name} and set:  export {env_name}=<value>"
    )


def _validate_plan(plan: str) -> None:
    if plan not in _PLANS:
        raise ConfigError(
            f"license.plan must be one of {sorted(_PLANS)}, got '{plan}'."
        )


def _validate_chunking(chunking: ChunkingCfg) -> None:
    for source_type in [None, *chunking.content_types]:
        size, overlap = (
            (chunking.max_chunk_size, chunking.overlap)
            if source_type is None
            else chunking.for_type(source_type)
        )
        where = "chunking" if source_type is None else f"chunking.content_types.{source_type}"
        if not 100 <= size <= 4_000:
            raise ConfigError(f"{where}: chunk size must be between 100 and 4000, got {size}.")
        if overlap < 0 or overlap * 2 > size:
            raise ConfigError(
                f"{where}: overlap must be between 0 and 50% of the chunk size, got {overlap}."
            )


def _warn_unknown_keys(data: dict[str, Any], source: Path) -> None:
    unknown = sorted(str(k) for k in data if k not in _KNOWN_SECTIONS)
    if unknown:
        warnings.warn(
            f"{source}: ignoring unknown section(s) {', '.join(unknown)}",
            UserWarning,
            stacklevel=4,
        )


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in _TRUTHY
    return bool(value)


def _read_layer(path: Path) -> dict[str, Any]:
    """Parse one YAML layer; an empty file is an empty mapping."""
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ConfigError(f"{path} is not valid YAML: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping at the top level.")
    return data


# ---------------------------------------------------------------------------
# Merge + build
# ---------------------------------------------------------------------------


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Merge *override* into a copy of *base*; nested mappings merge key by key."""
    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            value = _deep_merge(current, value)
        merged[key] = value
    return merged


def _cfg_from_dict(data: dict[str, Any]) -> WooAiConfig:
    """Build a *WooAiConfig* from a merged raw YAML dict."""
    cfg = WooAiConfig()

    if "store" in data:
        s = data["store"]
        cfg.store = StoreCfg(
            name=str(s.get("name", cfg.store.name)),
            assistant_name=str(s.get("assistant_name", cfg.store.assistant_name)),
            currency=str(s.get("currency", cfg.store.currency)),
        )

    if "embedding" in data:
        e = data["embedding"]
        cfg.embedding = EmbeddingCfg(
            model=str(e.get("model", cfg.embedding.model)),
            dimensions=int(e.get("dimensions", cfg.embedding.dimensions)),
            batch_size=int(e.get("batch_size", cfg.embedding.batch_size)),
            offline=_as_bool(e.get("offline", cfg.embedding.offline)),
            cache_ttl=int(e.get("cache_ttl", cfg.embedding.cache_ttl)),
        )

    if "generation" in data:
        g = data["generation"]
        plan_models = dict(cfg.generation.plan_models)
        plan_models.update({str(k): str(v) for k, v in (g.get("plan_models") or {}).items()})
        cfg.generation = GenerationCfg(
            plan_models=plan_models,
            max_tokens=int(g.get("max_tokens", cfg.generation.max_tokens)),
            temperature=float(g.get("temperature", cfg.generation.temperature)),
            max_history_messages=int(
                g.get("max_history_messages", cfg.generation.max_history_messages)
            ),
            history_token_budget=int(
                g.get("history_token_budget", cfg.generation.history_token_budget)
            ),
            offline=_as_bool(g.get("offline", cfg.generation.offline)),
            num_retries=int(g.get("num_retries", cfg.generation.num_retries)),
        )

    if "retrieval" in data:
        r = data["retrieval"]
        cfg.retrieval = RetrievalCfg(
            top_k=int(r.get("top_k", cfg.retrieval.top_k)),
            threshold=float(r.get("threshold", cfg.retrieval.threshold)),
            context_token_budget=int(
                r.get("context_token_budget", cfg.retrieval.context_token_budget)
            ),
        )

    if "chunking" in data:
        c = data["chunking"]
        content_types = dict(cfg.chunking.content_types)
        for source_type, entry in (c.get("content_types") or {}).items():
            if not isinstance(entry, dict):
                raise ConfigError(
                    f"chunking.content_types.{source_type} must be a mapping with "
                    f"chunk_size and/or overlap."
                )
            merged = dict(content_types.get(str(source_type), {}))
            merged.update({str(k): int(v) for k, v in entry.items()})
            content_types[str(source_type)] = merged
        cfg.chunking = ChunkingCfg(
            max_chunk_size=int(c.get("max_chunk_size", cfg.chunking.max_chunk_size)),
            min_chunk_size=int(c.get("min_chunk_size", cfg.chunking.min_chunk_size)),
            preserve_sentences=_as_bool(
                c.get("preserve_sentences", cfg.chunking.preserve_sentences)
            ),
            batch_size=int(c.get("batch_size", cfg.chunking.batch_size)),
            overlap=int(c.get("overlap", cfg.chunking.overlap)),
            content_types=content_types,
        )
        _validate_chunking(cfg.chunking)

    if "health" in data:
        h = data["health"]
        cfg.health = HealthCfg(
            cache_ttl=int(h.get("cache_ttl", cfg.health.cache_ttl)),
            outdated_days=int(h.get("outdated_days", cfg.health.outdated_days)),
        )

    if "license" in data:
        lic = data["license"]
        limits = dict(cfg.license.monthly_limits)
        for plan, limit in (lic.get("monthly_limits") or {}).items():
            limits[str(plan)] = None if limit is None else int(limit)
        cfg.license = LicenseCfg(
            plan=str(lic.get("plan", cfg.license.plan)),
            requests_per_minute=int(
                lic.get("requests_per_minute", cfg.license.requests_per_minute)
            ),
            monthly_limits=limits,
        )

    if "logging" in data:
        cfg.logging = LoggingCfg(level=str(data["logging"].get("level", cfg.logging.level)))

    return cfg


def _apply_env_overrides(cfg: WooAiConfig) -> WooAiConfig:
    """Apply WOOAI_* environment variable overrides."""
    if model := os.environ.get("WOOAI_GENERATION_MODEL"):
        cfg.generation.plan_models = {plan: model for plan in cfg.generation.plan_models}
    if model := os.environ.get("WOOAI_EMBEDDING_MODEL"):
        cfg.embedding.model = model
    if plan := os.environ.get("WOOAI_PLAN"):
        cfg.license.plan = plan
    if (offline := os.environ.get("WOOAI_OFFLINE")) is not None:
        cfg.embedding.offline = cfg.generation.offline = _as_bool(offline)
    if level := os.environ.get("WOOAI_LOG_LEVEL"):
        cfg.logging.level = level
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> WooAiConfig:
    """Load and return a merged *WooAiConfig*.

    Layers apply global, then project, then environment. Command-line flags
    are the caller's job.

    Args:
        project_dir: Directory to search for *wooai.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Returns:
        Fully merged *WooAiConfig* with env var overrides applied.

    Raises:
        ConfigError: On unreadable YAML, credentials in the global file, or an
            unknown ``license.plan``.
    """
    global_path = global_config_path or _GLOBAL_CONFIG_PATH
    project_path = (project_dir or Path.cwd()) / _PROJECT_CONFIG_NAME

    merged: dict[str, Any] = {}
    for path, is_global in ((global_path, True), (project_path, False)):
        if not path.is_file():
            continue
        layer = _read_layer(path)
        if is_global:
            _check_no_api_keys(layer, path)
        _warn_unknown_keys(layer, path)
        merged = _deep_merge(merged, layer)

    cfg = _apply_env_overrides(_cfg_from_dict(merged))
    _validate_plan(cfg.license.plan)
    return cfg


_GLOBAL_TEMPLATE = """\
# wooai defaults shared by every store on this machine.
# Credentials are never read from this file. Set them in the environment:
#   export OPENROUTER_API_KEY=sk-or-...
#   export OPENAI_API_KEY=sk-...

embedding:
  model: openai/text-embedding-3-small

license:
  plan: free
"""


def ensure_global_config(global_config_path: Path | None = None) -> Path:
    """Write the default global config unless one already exists.

    The directory is created 0o700 and the file 0o600.
    """
    target = global_config_path or _GLOBAL_CONFIG_PATH
    if target.exists():
        return target
    target.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
    target.write_text(_GLOBAL_TEMPLATE, encoding="utf-8")
    target.chmod(0o600)
    return target
