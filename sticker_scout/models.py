"""Data model for Sticker Scout scan results."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional


STICKER_MODES = ("any", "all", "regex")


@dataclass
class Sticker:
    name: str
    type: Optional[str] = None
    price: Optional[float] = None


@dataclass
class RawItem:
    """Canonical item produced by the record mapper."""

    name: str
    price: Optional[float]
    stickers: List[Sticker] = field(default_factory=list)

    @property
    def sticker_names(self) -> List[str]:
        return [s.name for s in self.stickers]


def _optional_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


@dataclass
class FilterConfig:
    """Price range and sticker rules an item must satisfy to become a hit."""

    min_price: Optional[float] = None
    max_price: Optional[float] = None
    sticker_mode: str = "any"
    sticker_terms: List[str] = field(default_factory=list)
    sticker_regex: Optional[str] = None
    min_sticker_count: int = 0

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "FilterConfig":
        """Build a filter config from the ``filters`` config section.

        Unknown sticker modes fall back to ``any``.
        """
        data = data if isinstance(data, dict) else {}
        mode = str(data.get("sticker_mode") or "any").lower()
        if mode not in STICKER_MODES:
            mode = "any"
        terms = data.get("sticker_terms") or []
        if isinstance(terms, str):
            terms = [terms]
        return cls(
            min_price=_optional_float(data.get("min_price")),
            max_price=_optional_float(data.get("max_price")),
            sticker_mode=mode,
            sticker_terms=[str(t) for t in terms if str(t).strip()],
            sticker_regex=data.get("sticker_regex") or None,
            min_sticker_count=max(0, int(data.get("min_sticker_count") or 0)),
        )


@dataclass
class ProfitModel:
    """Sequential multiplicative adjustments applied to a purchase price."""

    enabled: bool = True
    base_spread_gain: float = 0.35
    sticker_uplift: float = 0.25
    steam_fee: float = 0.15
    sale_discount: float = 0.35
    hardcode_cut: float = 0.10

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ProfitModel":
        data = data if isinstance(data, dict) else {}
        defaults = cls()
        return cls(
            enabled=bool(data.get("enabled", defaults.enabled)),
            base_spread_gain=float(data.get("base_spread_gain", defaults.base_spread_gain)),
            sticker_uplift=float(data.get("sticker_uplift", defaults.sticker_uplift)),
            steam_fee=float(data.get("steam_fee", defaults.steam_fee)),
            sale_discount=float(data.get("sale_discount", defaults.sale_discount)),
            hardcode_cut=float(data.get("hardcode_cut", defaults.hardcode_cut)),
        )


@dataclass
class ProfitEstimate:
    target: float
    net_after_steam: float
    after_discounts: float
    after_hardcut: float
    absolute: Optional[float]
    roi: Optional[float]


@dataclass
class ScannedHit:
    """A filtered, scored item kept in the result set."""

    name: str
    price: Optional[float]
    stickers: List[Sticker]
    profit: Optional[ProfitEstimate] = None

    @property
    def roi(self) -> Optional[float]:
        return self.profit.roi if self.profit else None

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ScanStats:
    records_seen: int = 0
    unmapped: int = 0
    filtered_out: int = 0
    duplicates: int = 0
    pages_fetched: int = 0
    batches: int = 0

    def as_dict(self) -> Dict[str, int]:
        return asdict(self)


@dataclass
class ScanResult:
    """Outcome of one scan run."""

    status: str
    strategy: Optional[str]
    hits: List[ScannedHit]
    stats: ScanStats
    stop_reason: Optional[str] = None
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.status == "failed"
