"""Storefront actions offered from the chat widget (add to cart, apply coupon).

The commerce backend is external: anything implementing ``Storefront`` can be
plugged in. Input validation and plan gating happen here, before the backend
is called.
"""

from __future__ import annotations

import logging
import re
from dataclasses import asdict, dataclass, field
from typing import Any, Protocol

from wooai.errors import InvalidArgument
from wooai.license import FEATURE_ADD_TO_CART, PlanService

logger = logging.getLogger(__name__)

MAX_QUANTITY = 99
_COUPON_RE = re.compile(r"^[A-Z0-9][A-Z0-9_-]{2,49}$")


@dataclass
class ActionResult:
    success: bool
    message: str
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class Storefront(Protocol):
    """Commerce backend operations the assistant may trigger."""

    def add_to_cart(
        self, product_id: int, quantity: int, variation_id: int | None = None
    ) -> ActionResult: ...

    def apply_coupon(self, code: str) -> ActionResult: ...


class UnconfiguredStorefront:
    """Backend used when no store is connected; every action fails cleanly."""

    _MESSAGE = "The store backend is not connected"

    def add_to_cart(
        self, product_id: int, quantity: int, variation_id: int | None = None
    ) -> ActionResult:
        return ActionResult(False, self._MESSAGE, {"error_code": "storefront_unavailable"})

    def apply_coupon(self, code: str) -> ActionResult:
        return ActionResult(False, self._MESSAGE, {"error_code": "storefront_unavailable"})


def _positive_int(value: Any, name: str) -> int:
    if isinstance(value, bool):
        raise InvalidArgument(f"{name} must be a positive integer")
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise InvalidArgument(f"{name} must be a positive integer") from None
    if number != value and not (isinstance(value, str) and value.strip().isdigit()):
        raise InvalidArgument(f"{name} must be a positive integer")
    if number <= 0:
        raise InvalidArgument(f"{name} must be a positive integer")
    return number


def validate_cart_request(
    product_id: Any, quantity: Any = 1, variation_id: Any = None
) -> tuple[int, int, int | None]:
    """Return cleaned (product_id, quantity, variation_id).

    Raises:
        InvalidArgument: For a non-positive id or a quantity outside 1..99.
    """
    pid = _positive_int(product_id, "product_id")
    qty = _positive_int(quantity, "quantity")
    if qty > MAX_QUANTITY:
        raise InvalidArgument(f"quantity must be between 1 and {MAX_QUANTITY}")
    vid = None if variation_id in (None, "", 0) else _positive_int(variation_id, "variation_id")
    return pid, qty, vid


def normalize_coupon_code(code: Any) -> str:
    """Upper-case and validate a coupon code.

    Raises:
        InvalidArgument: For empty codes or codes with unexpected characters.
    """
    if not isinstance(code, str) or not code.strip():
        raise InvalidArgument("Coupon code cannot be empty")
    cleaned = code.strip().upper()
    if not _COUPON_RE.match(cleaned):
        raise InvalidArgument("Invalid coupon code")
    return cleaned


class StorefrontActions:
    """Validate, gate by plan, then delegate to the storefront backend."""

    def __init__(self, storefront: Storefront, plans: PlanService) -> None:
        self._storefront = storefront
        self._plans = plans

    def add_to_cart(self, product_id: Any, quantity: Any = 1, variation_id: Any = None) -> ActionResult:
        pid, qty, vid = validate_cart_request(product_id, quantity, variation_id)
        if not self._plans.has_feature(FEATURE_ADD_TO_CART):
            return ActionResult(
                False,
                f"Adding to cart from chat is not available on the {self._plans.plan} plan",
                {"error_code": "feature_unavailable"},
            )
        result = self._storefront.add_to_cart(pid, qty, vid)
        logger.info("add_to_cart product=%d qty=%d success=%s", pid, qty, result.success)
        return result

    def apply_coupon(self, code: Any) -> ActionResult:
        cleaned = normalize_coupon_code(code)
        result = self._storefront.apply_coupon(cleaned)
        logger.info("apply_coupon code=%s success=%s", cleaned, result.success)
        return result
