"""Deduplicating accumulator for scanned hits."""

import math
from typing import Callable, List, Optional, Sequence, Set

from loguru import logger

from sticker_scout.models import ScannedHit, Sticker

DEDUP_MODES = {"strict", "permissive"}
SORT_KEYS = {"roi", "price", "none"}


def _sticker_name(sticker) -> str:
    return sticker.name if isinstance(sticker, Sticker) else str(sticker)


def identity_key(name: str, price: Optional[float], stickers: Sequence) -> str:
    """Build the membership key used to detect repeated records."""
    price_part = "" if price is None else repr(price)
    return f"{name}::{price_part}::{'|'.join(_sticker_name(s) for s in stickers or [])}"


class HitSink:
    """Keeps accepted hits in discovery order and rejects repeats.

    In ``permissive`` mode every offered hit is accepted; this is meant for
    strategies whose keys already guarantee uniqueness.
    """

    def __init__(self, mode: str = "strict", on_accept: Optional[Callable[[ScannedHit], None]] = None):
        mode = (mode or "strict").lower()
        if mode not in DEDUP_MODES:
            raise ValueError(f"Unknown dedup mode '{mode}': use strict or permissive")
        self.mode = mode
        self.on_accept = on_accept
        self._seen: Set[str] = set()
        self._hits: List[ScannedHit] = []
        self.rejected = 0

    def offer(self, hit: ScannedHit, key: Optional[str] = None) -> bool:
        """Accept the hit unless its key was already seen (strict mode)."""
        if key is None:
            key = identity_key(hit.name, hit.price, hit.stickers)
        if self.mode == "strict":
            if key in self._seen:
                self.rejected += 1
                return False
            self._seen.add(key)
        self._hits.append(hit)
        if self.on_accept is not None:
            self.on_accept(hit)
        return True

    @property
    def hits(self) -> List[ScannedHit]:
        return list(self._hits)

    def __len__(self) -> int:
        return len(self._hits)


def sort_hits(hits: Sequence[ScannedHit], sort_by: str = "roi") -> List[ScannedHit]:
    """Order hits by ROI (descending), price (ascending) or keep discovery order."""
    sort_by = (sort_by or "none").lower()
    if sort_by == "roi":
        return sorted(hits, key=lambda h: h.roi if h.roi is not None else -math.inf, reverse=True)
    if sort_by == "price":
        return sorted(hits, key=lambda h: h.price if h.price is not None else math.inf)
    if sort_by != "none":
        logger.warning("Unknown sort key '{}', keeping discovery order", sort_by)
    return list(hits)
