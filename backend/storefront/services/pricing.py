# Overview: Offer evaluation; turns a base price and offer snapshots into the price a customer pays.

"""
Storefront Pricing Invariants (authoritative)

- An offer counts only if: active is True, discount_percent is a real
  number > 0, start_date is absent or <= as_of, end_date is absent or
  >= as_of. Both date bounds are inclusive. An aware as_of is compared
  in UTC.
- Valid offers stack multiplicatively: price * PRODUCT(max(1 - d/100, 0)),
  in stored order. A single factor never goes negative.
- Total discount is capped at 90%: the multiplier never drops below 0.1.
- With no valid offer the base price is returned untouched (no rounding).
- Results are rounded to 2 decimals, half away from zero, after adding
  machine epsilon to the magnitude.
- Nothing here raises. Malformed offers are simply not valid.

The same functions price the catalog on read and lock prices at checkout;
only as_of differs.
"""

from __future__ import annotations

import math
import sys
from collections.abc import Iterable, Mapping
from datetime import datetime
from numbers import Real
from typing import Any

from storefront.time_utils import as_utc_naive, coerce_datetime, utcnow


MIN_MULTIPLIER = 0.1

_MISSING = object()


def round2(value: float) -> float:
    """Round to cents, half away from zero, on the epsilon-corrected value."""
    scaled = (abs(value) + sys.float_info.epsilon) * 100
    return math.copysign(math.floor(scaled + 0.5) / 100, value)


def to_cents(amount: float) -> int:
    return round(round2(amount) * 100)


def _field(offer: Any, name: str) -> Any:
    if isinstance(offer, Mapping):
        return offer.get(name, _MISSING)
    return getattr(offer, name, _MISSING)


def _bound(offer: Any, name: str) -> datetime | None | object:
    """
    Resolve a date bound. Returns None when unbounded, _MISSING when the
    value is present but unusable.
    """
    raw = _field(offer, name)
    if raw is _MISSING or raw is None or raw == "":
        return None
    parsed = coerce_datetime(raw)
    return parsed if parsed is not None else _MISSING


def _discount(offer: Any) -> float | None:
    raw = _field(offer, "discount_percent")
    if isinstance(raw, bool) or not isinstance(raw, Real):
        return None
    value = float(raw)
    if math.isnan(value) or value <= 0:
        return None
    return value


def is_offer_valid(offer: Any, as_of: datetime) -> bool:
    if offer is None or not isinstance(as_of, datetime):
        return False
    as_of = as_utc_naive(as_of)
    if _field(offer, "active") is not True:
        return False
    if _discount(offer) is None:
        return False

    start = _bound(offer, "start_date")
    end = _bound(offer, "end_date")
    if start is _MISSING or end is _MISSING:
        return False
    if start is not None and as_of < start:
        return False
    if end is not None and as_of > end:
        return False
    return True


def valid_offers(offers: Iterable[Any] | None, as_of: datetime | None = None) -> list:
    """Valid subset of `offers` at `as_of`, in stored order."""
    if as_of is None:
        as_of = utcnow()
    if offers is None or isinstance(offers, (str, bytes, Mapping)):
        return []
    try:
        candidates = list(offers)
    except TypeError:
        return []
    return [o for o in candidates if is_offer_valid(o, as_of)]


def stacked_multiplier(offers: Iterable[Any]) -> float:
    multiplier = 1.0
    for offer in offers:
        multiplier *= max(1 - _discount(offer) / 100, 0.0)
    return max(multiplier, MIN_MULTIPLIER)


def effective_price(base_price: float, offers: Iterable[Any] | None, as_of: datetime | None = None) -> float:
    """Price payable at `as_of` after stacking every valid offer."""
    valid = valid_offers(offers, as_of)
    if not valid:
        return base_price
    return round2(base_price * stacked_multiplier(valid))


def discounted_price(base_price: float, offers: Iterable[Any] | None, as_of: datetime | None = None) -> float | None:
    """Like effective_price, but None when no offer applies (catalog display)."""
    valid = valid_offers(offers, as_of)
    if not valid:
        return None
    return round2(base_price * stacked_multiplier(valid))
