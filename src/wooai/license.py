"""Subscription plans: feature flags, model selection and message quotas.

Counters live in the shared cache so every worker sees the same usage:

  usage:<YYYY-MM>:messages   monthly chat messages (expires after ~40 days)
  usage:<YYYY-MM>:tokens     monthly tokens
  rate:<epoch minute>        requests in the current minute
"""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Any, Callable

from wooai.cache import Cache
from wooai.config import GenerationCfg, LicenseCfg
from wooai.errors import InvalidArgument, RateLimited

_CACHE_GROUP = "license"
_MONTH_TTL = 40 * 86_400

FEATURE_BASIC_CHAT = "basic_chat"
FEATURE_PROACTIVE_TRIGGERS = "proactive_triggers"
FEATURE_CUSTOM_MESSAGES = "custom_messages"
FEATURE_ADD_TO_CART = "add_to_cart"
FEATURE_AUTO_COUPON = "auto_coupon"
FEATURE_UPSELL_CROSSSELL = "upsell_crosssell"
FEATURE_WHITE_LABEL = "white_label"
FEATURE_ADVANCED_AI = "advanced_ai"

_ALL_FEATURES = (
    FEATURE_BASIC_CHAT,
    FEATURE_PROACTIVE_TRIGGERS,
    FEATURE_CUSTOM_MESSAGES,
    FEATURE_ADD_TO_CART,
    FEATURE_AUTO_COUPON,
    FEATURE_UPSELL_CROSSSELL,
    FEATURE_WHITE_LABEL,
    FEATURE_ADVANCED_AI,
)

PLAN_FEATURES: dict[str, frozenset[str]] = {
    "free": frozenset([FEATURE_BASIC_CHAT]),
    "pro": frozenset([FEATURE_BASIC_CHAT, FEATURE_PROACTIVE_TRIGGERS, FEATURE_CUSTOM_MESSAGES]),
    "unlimited": frozenset(_ALL_FEATURES),
}


class PlanService:
    """Answer plan questions and enforce message quotas.

    Args:
        license_cfg: Plan and limits.
        generation:  Source of the plan → model mapping.
        cache:       Shared cache holding the usage counters.
        clock:       Time source in epoch seconds (injectable for tests).
    """

    def __init__(
        self,
        license_cfg: LicenseCfg,
        generation: GenerationCfg,
        cache: Cache,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if license_cfg.plan not in PLAN_FEATURES:
            raise InvalidArgument(f"Unknown plan: {license_cfg.plan}")
        self._license = license_cfg
        self._generation = generation
        self._cache = cache
        self._clock = clock

    @property
    def plan(self) -> str:
        return self._license.plan

    @property
    def features(self) -> dict[str, bool]:
        enabled = PLAN_FEATURES[self.plan]
        return {name: name in enabled for name in _ALL_FEATURES}

    def has_feature(self, feature: str) -> bool:
        return feature in PLAN_FEATURES[self.plan]

    def model_for_plan(self, plan: str | None = None) -> str:
        plan = plan or self.plan
        try:
            return self._generation.plan_models[plan]
        except KeyError:
            raise InvalidArgument(f"No model configured for plan '{plan}'") from None

    @property
    def monthly_limit(self) -> int | None:
        return self._license.monthly_limits.get(self.plan)

    # ------------------------------------------------------------------
    # Quotas
    # ------------------------------------------------------------------

    def _month(self) -> str:
        return datetime.fromtimestamp(self._clock(), tz=timezone.utc).strftime("%Y-%m")

    def _minute_key(self) -> str:
        return f"rate:{int(self._clock() // 60)}"

    def check_quota(self) -> None:
        """Admit one request or raise RateLimited.

        Counts the request against the per-minute limit when admitted.
        """
        limit = self.monthly_limit
        used = self._cache.get(f"usage:{self._month()}:messages", _CACHE_GROUP, 0)
        if limit is not None and used >= limit:
            raise RateLimited(
                f"Monthly message limit of {limit} reached for the {self.plan} plan"
            )
        minute_key = self._minute_key()
        in_minute = self._cache.get(minute_key, _CACHE_GROUP, 0)
        if in_minute >= self._license.requests_per_minute:
            raise RateLimited(
                f"Too many requests: limit is {self._license.requests_per_minute} per minute"
            )
        self._cache.incr(minute_key, _CACHE_GROUP, 1, ttl=120)

    def record_usage(self, tokens: int = 0) -> None:
        """Count one answered message and its tokens against the month."""
        month = self._month()
        self._cache.incr(f"usage:{month}:messages", _CACHE_GROUP, 1, ttl=_MONTH_TTL)
        if tokens > 0:
            self._cache.incr(f"usage:{month}:tokens", _CACHE_GROUP, tokens, ttl=_MONTH_TTL)

    def usage(self) -> dict[str, Any]:
        month = self._month()
        return {
            "plan": self.plan,
            "month": month,
            "messages_used": self._cache.get(f"usage:{month}:messages", _CACHE_GROUP, 0),
            "messages_limit": self.monthly_limit,
            "tokens_used": self._cache.get(f"usage:{month}:tokens", _CACHE_GROUP, 0),
            "requests_this_minute": self._cache.get(self._minute_key(), _CACHE_GROUP, 0),
        }
