"""Price/sticker matching and resale profit estimation."""

import math
import re
from decimal import Decimal, ROUND_HALF_UP, localcontext
from functools import lru_cache
from typing import Any, Optional, Pattern, Sequence

from sticker_scout.models import FilterConfig, ProfitEstimate, ProfitModel, RawItem


def price_match(price: Optional[float], min_price: Optional[float], max_price: Optional[float]) -> bool:
    """Return True when a known price lies within the optional bounds."""
    if price is None:
        return False
    if min_price is not None and price < min_price:
        return False
    if max_price is not None and price > max_price:
        return False
    return True


@lru_cache(maxsize=32)
def compile_sticker_regex(pattern: str) -> Optional[Pattern]:
    """Compile a case-insensitive sticker pattern, None when invalid."""
    try:
        return re.compile(pattern, re.IGNORECASE)
    except re.error:
        return None


def sticker_match(sticker_names: Sequence[str], config: FilterConfig) -> bool:
    """Check sticker count and terms/regex rules against sticker names."""
    names = [str(n) for n in (sticker_names or [])]
    if len(names) < (config.min_sticker_count or 0):
        return False

    if config.sticker_mode == "regex" and config.sticker_regex:
        rx = compile_sticker_regex(config.sticker_regex)
        if rx is None:
            # Broken patterns never block a hit.
            return True
        return any(rx.search(name) for name in names)

    terms = [str(t).lower() for t in (config.sticker_terms or [])]
    if not terms:
        return True
    lowered = [name.lower() for name in names]
    if config.sticker_mode == "all":
        return all(any(term in name for name in lowered) for term in terms)
    return any(any(term in name for name in lowered) for term in terms)


def matches(item: RawItem, config: FilterConfig) -> bool:
    """Apply the price predicate (when any bound is set) and sticker predicate."""
    if config.min_price is not None or config.max_price is not None:
        if not price_match(item.price, config.min_price, config.max_price):
            return False
    return sticker_match(item.sticker_names, config)


# Wide enough to quantize any finite float to 4 places.
ROUNDING_PRECISION = 400


def _round_half_up(value: float, places: int) -> Optional[float]:
    if not math.isfinite(value):
        return None
    quantum = Decimal(1).scaleb(-places)
    with localcontext() as ctx:
        ctx.prec = ROUNDING_PRECISION
        return float(Decimal(repr(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def round2(value: float) -> Optional[float]:
    return _round_half_up(value, 2)


def round4(value: float) -> Optional[float]:
    return _round_half_up(value, 4)


def _is_finite_number(value: Any) -> bool:
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        return False
    try:
        return math.isfinite(value)
    except OverflowError:
        return False


def estimate_profit(price: Any, model: Optional[ProfitModel]) -> Optional[ProfitEstimate]:
    """Run a purchase price through the five-step resale model.

    Returns None when the model is disabled or the price is not a finite
    number. ROI is None for a zero price; absolute and ROI are None when the
    chain overflows.
    """
    if model is None or not model.enabled or not _is_finite_number(price):
        return None

    target = price * (1 + model.base_spread_gain + model.sticker_uplift)
    net_after_steam = target * (1 - model.steam_fee)
    after_discounts = net_after_steam * (1 - model.sale_discount)
    after_hardcut = after_discounts * (1 - model.hardcode_cut)
    roi = round4((after_hardcut - price) / price) if price != 0 else None
    return ProfitEstimate(
        target=target,
        net_after_steam=net_after_steam,
        after_discounts=after_discounts,
        after_hardcut=after_hardcut,
        absolute=round2(after_hardcut - price),
        roi=roi,
    )
