"""Knowledge base health scoring.

overall = round(0.40 × completeness + 0.30 × freshness + 0.30 × quality)

completeness  share of expected content categories that meet their minimum
              number of distinct sources (10 products, 1 of everything else).
freshness     100 × max(0, 1 − average_age / (2 × outdated_days)); fresh is
              ≤ 7 days, stale ≤ outdated_days, outdated beyond.
quality       100 − Σ weight × affected_fraction over short content (30),
              missing embeddings (30), missing metadata (15) and duplicated
              chunks (25).

Reports are cached in the ``health`` cache group and dropped whenever content
changes.
"""

from __future__ import annotations

import logging
import sqlite3
import time
from collections import Counter
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable

from wooai.cache import Cache
from wooai.config import HealthCfg
from wooai.db.models import KnowledgeChunk
from wooai.db.repository import Repository
from wooai.errors import PersistenceError
from wooai.events import ContentChanged, EventBus
from wooai.kb.templates import ContentTemplate, generate_content_template

logger = logging.getLogger(__name__)

EXPECTED_CONTENT: dict[str, int] = {
    "product": 10,
    "settings": 1,
    "shipping_policy": 1,
    "return_policy": 1,
    "faq": 1,
    "contact_info": 1,
}

WEIGHT_COMPLETENESS = 0.40
WEIGHT_FRESHNESS = 0.30
WEIGHT_QUALITY = 0.30

FRESH_DAYS = 7
SHORT_CONTENT_CHARS = 50

QUALITY_WEIGHTS: dict[str, int] = {
    "short_content": 30,
    "missing_embedding": 30,
    "missing_metadata": 15,
    "duplicate_content": 25,
}

_QUALITY_DESCRIPTIONS = {
    "short_content": f"Chunks shorter than {SHORT_CONTENT_CHARS} characters carry little information",
    "missing_embedding": "Chunks without an embedding cannot be found by similarity search",
    "missing_metadata": "Chunks without a title or metadata give the assistant less to cite",
    "duplicate_content": "Identical chunks stored more than once crowd out other results",
}

_STATUS_BANDS: tuple[tuple[int, str], ...] = (
    (85, "Excellent"),
    (65, "Good"),
    (40, "Needs Improvement"),
    (20, "Poor"),
)

PRIORITY_ORDER = {"critical": 0, "high": 1, "medium": 2, "low": 3}

_CACHE_GROUP = "health"
_CACHE_KEY = "health_score"
_MAX_OUTDATED_ITEMS = 20


def health_status(score: int) -> str:
    for floor, label in _STATUS_BANDS:
        if score >= floor:
            return label
    return "Critical"


@dataclass
class Suggestion:
    priority: str  # critical | high | medium | low
    category: str  # completeness | freshness | quality
    title: str
    description: str
    action: str
    impact: str  # high | medium | low

    def to_dict(self) -> dict[str, str]:
        return asdict(self)


@dataclass
class HealthReport:
    overall_score: int
    health_status: str
    completeness_score: int
    freshness_score: int
    quality_score: int
    breakdown: dict[str, Any] = field(default_factory=dict)
    suggestions: list[Suggestion] = field(default_factory=list)
    last_calculated: str = ""
    calculation_time: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["suggestions"] = [s.to_dict() for s in self.suggestions]
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HealthReport:
        return cls(
            overall_score=data["overall_score"],
            health_status=data["health_status"],
            completeness_score=data["completeness_score"],
            freshness_score=data["freshness_score"],
            quality_score=data["quality_score"],
            breakdown=data.get("breakdown", {}),
            suggestions=[Suggestion(**s) for s in data.get("suggestions", [])],
            last_calculated=data.get("last_calculated", ""),
            calculation_time=data.get("calculation_time", 0.0),
        )


def _parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class HealthScorer:
    """Score the knowledge base and suggest improvements.

    Args:
        repo:       Knowledge chunk repository.
        cache:      Shared cache for computed reports.
        config:     Cache TTL and the outdated threshold.
        events:     When given, the scorer clears its cache on ContentChanged.
        store_name: Substituted into generated content templates.
        clock:      Time source in epoch seconds (injectable for tests).
    """

    def __init__(
        self,
        repo: Repository,
        cache: Cache,
        config: HealthCfg | None = None,
        events: EventBus | None = None,
        store_name: str | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._repo = repo
        self._cache = cache
        self._config = config or HealthCfg()
        self._store_name = store_name
        self._clock = clock
        if events is not None:
            events.subscribe(ContentChanged, self.on_content_updated)

    # ------------------------------------------------------------------
    # Composite score
    # ------------------------------------------------------------------

    def get_health_score(self, force_recalculate: bool = False) -> HealthReport:
        """Return the (possibly cached) health report.

        Raises:
            PersistenceError: If the knowledge base cannot be read.
        """
        try:
            if not force_recalculate:
                cached = self._cache.get(_CACHE_KEY, _CACHE_GROUP)
                if cached:
                    return HealthReport.from_dict(cached)
            report = self._calculate()
            self._cache.set(_CACHE_KEY, report.to_dict(), _CACHE_GROUP, self._config.cache_ttl)
        except sqlite3.Error as exc:
            logger.error("Health score calculation failed: %s", exc)
            raise PersistenceError(f"Failed to calculate health score: {exc}") from exc
        return report

    def _calculate(self) -> HealthReport:
        started = time.perf_counter()
        completeness = self.analyze_completeness()
        freshness = self.analyze_freshness()
        quality = self.analyze_quality()
        overall = round(
            WEIGHT_COMPLETENESS * completeness["score"]
            + WEIGHT_FRESHNESS * freshness["score"]
            + WEIGHT_QUALITY * quality["score"]
        )
        overall = max(0, min(100, overall))
        breakdown = {"completeness": completeness, "freshness": freshness, "quality": quality}
        report = HealthReport(
            overall_score=overall,
            health_status=health_status(overall),
            completeness_score=completeness["score"],
            freshness_score=freshness["score"],
            quality_score=quality["score"],
            breakdown=breakdown,
            suggestions=self.generate_improvement_suggestions(overall, breakdown),
            last_calculated=datetime.fromtimestamp(self._clock(), tz=timezone.utc).isoformat(),
            calculation_time=round(time.perf_counter() - started, 4),
        )
        logger.info("Knowledge base health: %d (%s)", overall, report.health_status)
        return report

    def recalculate_health_score(self) -> HealthReport:
        return self.get_health_score(force_recalculate=True)

    def clear_cache(self) -> int:
        return self._cache.flush_group(_CACHE_GROUP)

    def on_content_updated(self, event: ContentChanged) -> None:
        removed = self.clear_cache()
        logger.debug(
            "Health cache cleared after %s of %s/%s (%d entries)",
            event.action,
            event.source_type,
            event.source_id,
            removed,
        )

    # ------------------------------------------------------------------
    # Sub-analyses
    # ------------------------------------------------------------------

    def analyze_completeness(self) -> dict[str, Any]:
        counts = self._repo.count_sources_by_type()
        present: list[dict[str, Any]] = []
        missing: list[dict[str, Any]] = []
        recommendations: list[str] = []
        for content_type, required in EXPECTED_CONTENT.items():
            count = counts.get(content_type, 0)
            entry = {"content_type": content_type, "count": count, "required": required}
            if count >= required:
                present.append(entry)
                continue
            missing.append(entry)
            if count == 0:
                recommendations.append(f"Add {content_type.replace('_', ' ')} content")
            else:
                recommendations.append(
                    f"Add {required - count} more {content_type.replace('_', ' ')} item(s) "
                    f"(have {count}, need {required})"
                )
        return {
            "score": round(100 * len(present) / len(EXPECTED_CONTENT)),
            "present_content": present,
            "missing_content": missing,
            "recommendations": recommendations,
        }

    def _ages(self, chunks: list[KnowledgeChunk]) -> list[tuple[KnowledgeChunk, float | None]]:
        now = datetime.fromtimestamp(self._clock(), tz=timezone.utc)
        aged: list[tuple[KnowledgeChunk, float | None]] = []
        for chunk in chunks:
            stamp = _parse_timestamp(chunk.updated_at) or _parse_timestamp(chunk.indexed_at)
            age = max(0.0, (now - stamp).total_seconds() / 86_400) if stamp else None
            aged.append((chunk, age))
        return aged

    def _freshness_score(self, average_age: float) -> int:
        return round(100 * max(0.0, 1 - average_age / (2 * self._config.outdated_days)))

    def analyze_freshness(self) -> dict[str, Any]:
        aged = self._ages(self._repo.list_chunks())
        known = [(c, a) for c, a in aged if a is not None]
        result: dict[str, Any] = {
            "score": 0,
            "fresh_content": 0,
            "stale_content": 0,
            "outdated_content": 0,
            "never_updated": len(aged) - len(known),
            "average_age_days": 0,
            "outdated_items": [],
        }
        if not known:
            return result

        outdated_days = self._config.outdated_days
        outdated: list[tuple[KnowledgeChunk, float]] = []
        for chunk, age in known:
            if age <= FRESH_DAYS:
                result["fresh_content"] += 1
            elif age <= outdated_days:
                result["stale_content"] += 1
            else:
                result["outdated_content"] += 1
                outdated.append((chunk, age))

        average = sum(a for _, a in known) / len(known)
        outdated.sort(key=lambda pair: pair[1], reverse=True)
        result["average_age_days"] = round(average, 1)
        result["score"] = self._freshness_score(average)
        result["outdated_items"] = [
            {
                "id": c.id,
                "title": c.title,
                "source_type": c.source_type,
                "source_id": c.source_id,
                "age_days": round(a, 1),
            }
            for c, a in outdated[:_MAX_OUTDATED_ITEMS]
        ]
        return result

    def analyze_quality(self) -> dict[str, Any]:
        chunks = self._repo.list_chunks()
        total = len(chunks)
        if total == 0:
            return {
                "score": 0,
                "total_items": 0,
                "quality_issues": [],
                "content_statistics": {
                    "total_sources": 0,
                    "avg_length": 0,
                    "min_length": 0,
                    "max_length": 0,
                    "with_embedding": 0,
                    "by_type": {},
                },
            }

        lengths = [len(c.chunk_content.strip()) for c in chunks]
        hash_counts = Counter(c.content_hash for c in chunks)
        affected = {
            "short_content": sum(1 for n in lengths if n < SHORT_CONTENT_CHARS),
            "missing_embedding": sum(1 for c in chunks if not c.embedding),
            "missing_metadata": sum(1 for c in chunks if not c.title.strip() or not c.metadata),
            "duplicate_content": sum(n - 1 for n in hash_counts.values() if n > 1),
        }

        issues: list[dict[str, Any]] = []
        penalty = 0.0
        for issue_type, count in affected.items():
            if count == 0:
                continue
            fraction = count / total
            penalty += QUALITY_WEIGHTS[issue_type] * fraction
            severity = "high" if fraction > 0.30 else "medium" if fraction > 0.10 else "low"
            issues.append(
                {
                    "type": issue_type,
                    "severity": severity,
                    "count": count,
                    "percentage": round(100 * fraction, 1),
                    "description": _QUALITY_DESCRIPTIONS[issue_type],
                }
            )

        return {
            "score": max(0, min(100, round(100 - penalty))),
            "total_items": total,
            "quality_issues": issues,
            "content_statistics": {
                "total_sources": len({(c.source_type, c.source_id) for c in chunks}),
                "avg_length": round(sum(lengths) / total, 1),
                "min_length": min(lengths),
                "max_length": max(lengths),
                "with_embedding": total - affected["missing_embedding"],
                "by_type": dict(Counter(c.source_type for c in chunks)),
            },
        }

    # ------------------------------------------------------------------
    # Suggestions, templates, per-type freshness
    # ------------------------------------------------------------------

    def generate_improvement_suggestions(
        self,
        current_score: int,
        analysis: dict[str, Any] | None = None,
    ) -> list[Suggestion]:
        """Return suggestions ordered critical → low.

        Lower scores select more urgent generic advice; scores of 85 and above
        never produce critical entries. With an *analysis* (the report
        breakdown), missing categories and detected issues add targeted items.
        """
        suggestions = list(_baseline_suggestions(current_score))
        if analysis:
            suggestions.extend(self._targeted_suggestions(current_score, analysis))

        seen: set[str] = set()
        unique: list[Suggestion] = []
        for s in suggestions:
            if s.title not in seen:
                seen.add(s.title)
                unique.append(s)
        unique.sort(key=lambda s: PRIORITY_ORDER[s.priority])
        return unique

    def _targeted_suggestions(
        self, current_score: int, analysis: dict[str, Any]
    ) -> list[Suggestion]:
        out: list[Suggestion] = []
        for entry in analysis.get("completeness", {}).get("missing_content", []):
            label = entry["content_type"].replace("_", " ")
            out.append(
                Suggestion(
                    priority="critical" if current_score < 40 else "high",
                    category="completeness",
                    title=f"Add {label} content",
                    description=(
                        f"The knowledge base has {entry['count']} {label} source(s); "
                        f"at least {entry['required']} expected."
                    ),
                    action=f"Create or publish {label} content, then re-index",
                    impact="high",
                )
            )

        freshness = analysis.get("freshness", {})
        if freshness.get("outdated_content"):
            out.append(
                Suggestion(
                    priority="high" if freshness.get("score", 0) < 50 else "medium",
                    category="freshness",
                    title="Re-index outdated content",
                    description=(
                        f"{freshness['outdated_content']} chunk(s) are older than "
                        f"{self._config.outdated_days} days."
                    ),
                    action="Run a bulk re-index or update the affected pages",
                    impact="medium",
                )
            )

        for issue in analysis.get("quality", {}).get("quality_issues", []):
            out.append(
                Suggestion(
                    priority=issue["severity"],
                    category="quality",
                    title=f"Fix {issue['type'].replace('_', ' ')}",
                    description=f"{issue['description']} ({issue['count']} affected).",
                    action=_QUALITY_ACTIONS[issue["type"]],
                    impact="high" if issue["severity"] == "high" else "medium",
                )
            )
        return out

    def generate_content_template(self, content_type: str) -> ContentTemplate:
        return generate_content_template(content_type, self._store_name)

    def test_freshness(self, content_types: list[str] | None = None) -> dict[str, dict[str, Any]]:
        """Per-type freshness report; an empty list covers every known type."""
        types = list(content_types or [])
        if not types:
            types = list(EXPECTED_CONTENT)
            types.extend(t for t in self._repo.count_sources_by_type() if t not in types)

        outdated_days = self._config.outdated_days
        report: dict[str, dict[str, Any]] = {}
        for content_type in types:
            aged = self._ages(self._repo.list_chunks(source_type=content_type))
            ages = [a for _, a in aged if a is not None]
            label = content_type.replace("_", " ")
            if not ages:
                report[content_type] = {
                    "total_items": 0,
                    "avg_age_days": 0,
                    "oldest_days": 0,
                    "newest_days": 0,
                    "outdated_count": 0,
                    "freshness_score": 0,
                    "status": "outdated",
                    "recommendation": f"No {label} content is indexed yet; add and index it.",
                }
                continue
            average = sum(ages) / len(ages)
            if average <= FRESH_DAYS:
                status, advice = "fresh", f"{label.capitalize()} content is up to date."
            elif average <= outdated_days:
                status, advice = "moderate", f"Review {label} content in the coming weeks."
            elif average <= 2 * outdated_days:
                status, advice = "stale", f"Update and re-index {label} content soon."
            else:
                status, advice = "outdated", f"{label.capitalize()} content is outdated; re-index it now."
            report[content_type] = {
                "total_items": len({c.source_id for c, _ in aged}),
                "avg_age_days": round(average, 1),
                "oldest_days": round(max(ages), 1),
                "newest_days": round(min(ages), 1),
                "outdated_count": sum(1 for a in ages if a > outdated_days),
                "freshness_score": self._freshness_score(average),
                "status": status,
                "recommendation": advice,
            }
        return report


_QUALITY_ACTIONS = {
    "short_content": "Expand short product descriptions and pages",
    "missing_embedding": "Re-index once the embedding service is reachable",
    "missing_metadata": "Give every product and page a title and attributes",
    "duplicate_content": "Remove repeated boilerplate from descriptions",
}


def _baseline_suggestions(score: int) -> list[Suggestion]:
    if score < 20:
        return [
            Suggestion("critical", "completeness", "Build your knowledge base",
                       "The assistant has almost nothing to answer from.",
                       "Index your products, policies and contact details", "high"),
            Suggestion("critical", "quality", "Index your product catalog",
                       "Product questions are the most common shopper requests.",
                       "Run a full index of all published products", "high"),
            Suggestion("high", "freshness", "Schedule regular re-indexing",
                       "Content changes are not reaching the assistant.",
                       "Enable automatic re-indexing on content updates", "medium"),
        ]
    if score < 40:
        return [
            Suggestion("critical", "completeness", "Fill essential content gaps",
                       "Key store information is missing from the knowledge base.",
                       "Add shipping, returns, FAQ and contact pages", "high"),
            Suggestion("high", "quality", "Improve content quality",
                       "Short or unembedded content limits answer quality.",
                       "Expand descriptions and re-index", "high"),
            Suggestion("high", "freshness", "Refresh outdated content",
                       "Old content can lead to wrong answers about prices and stock.",
                       "Re-index content that changed recently", "medium"),
        ]
    if score < 65:
        return [
            Suggestion("high", "completeness", "Add missing policy pages",
                       "Shoppers often ask about shipping and returns before buying.",
                       "Publish the missing policies using the provided templates", "high"),
            Suggestion("medium", "quality", "Expand short descriptions",
                       "Richer descriptions give the assistant more to work with.",
                       "Add details such as materials, sizes and use cases", "medium"),
            Suggestion("medium", "freshness", "Re-index regularly",
                       "Keep answers in line with the current catalogue.",
                       "Run a bulk re-index after large catalogue changes", "medium"),
        ]
    if score < 85:
        return [
            Suggestion("medium", "completeness", "Add FAQ entries",
                       "Answering common questions up front improves accuracy.",
                       "Add FAQ entries for your most frequent support questions", "medium"),
            Suggestion("low", "freshness", "Review older content",
                       "Some content has not changed in a while.",
                       "Check pages older than a month for accuracy", "low"),
        ]
    return [
        Suggestion("low", "quality", "Keep content current",
                   "The knowledge base is in good shape.",
                   "Review new products and policy changes as they happen", "low"),
    ]
