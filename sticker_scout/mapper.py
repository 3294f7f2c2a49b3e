"""Map raw upstream records of unknown shape into canonical items.

Every field is looked up through an ordered tuple of candidate paths. The
first path that yields a usable value wins; candidates are never merged.
"""

import math
import re
from typing import Any, Iterable, List, Optional, Sequence, Tuple

from sticker_scout.models import RawItem, Sticker

Path = Tuple[str, ...]

NAME_PATHS: Tuple[Path, ...] = (
    ("asset", "market_hash_name"),
    ("asset", "name"),
    ("item", "market_hash_name"),
    ("item", "name"),
    ("market_hash_name",),
    ("marketName",),
    ("name",),
    ("title",),
    ("fullName",),
)

# Always denominated in the upstream's native unit (cents).
CENTS_PRICE_PATHS: Tuple[Path, ...] = (
    ("price_cents",),
    ("priceCents",),
)

# Numbers above the threshold are taken as cents, anything else as dollars.
AMBIGUOUS_PRICE_PATHS: Tuple[Path, ...] = (
    ("price",),
    ("list_price",),
    ("sell_price",),
)
CENTS_THRESHOLD = 100

TEXT_PRICE_PATHS: Tuple[Path, ...] = (
    ("priceText",),
    ("price_text",),
    ("displayPrice",),
)

STICKER_CONTAINER_PATHS: Tuple[Path, ...] = (
    ("stickers",),
    ("appliedStickers",),
    ("applied_stickers",),
    ("attributes", "applied_stickers"),
    ("asset", "stickers"),
    ("details", "stickers"),
    ("meta", "stickers"),
)

STICKER_NAME_PATHS: Tuple[Path, ...] = (("name",), ("title",), ("text",), ("stickerName",))
STICKER_TYPE_PATHS: Tuple[Path, ...] = (("type",), ("stickerType",), ("kind",))
STICKER_CENTS_PATHS: Tuple[Path, ...] = (("price_cents",), ("priceCents",))
STICKER_PRICE_PATHS: Tuple[Path, ...] = (("price",), ("value",))

_PRICE_CHARS_RE = re.compile(r"[^\d.,]")
_TRAILING_SEPARATORS_RE = re.compile(r"[.,]+$")
_WHITESPACE_RE = re.compile(r"\s+")


def normalize_spaces(text: Optional[str]) -> str:
    """Collapse runs of whitespace and strip the ends."""
    return _WHITESPACE_RE.sub(" ", text or "").strip()


def parse_price(text: Any) -> Optional[float]:
    """Parse a display price such as ``$12.50`` or ``1.234,56``.

    The last ``.`` or ``,`` is the decimal separator, any earlier ones are
    thousands separators. Returns None for empty or malformed input.
    """
    if text is None:
        return None
    cleaned = _PRICE_CHARS_RE.sub("", str(text)).strip()
    cleaned = _TRAILING_SEPARATORS_RE.sub("", cleaned)
    if not cleaned or not any(ch.isdigit() for ch in cleaned):
        return None

    decimal_idx = max(cleaned.rfind("."), cleaned.rfind(","))
    if decimal_idx == -1:
        candidate = cleaned
    else:
        int_part = cleaned[:decimal_idx].replace(".", "").replace(",", "")
        candidate = f"{int_part}.{cleaned[decimal_idx + 1:]}"
    try:
        value = float(candidate)
    except ValueError:
        return None
    return value if math.isfinite(value) else None


def lookup(obj: Any, path: Sequence[str]) -> Any:
    """Follow a key path through nested dicts, None when any hop is missing."""
    current = obj
    for key in path:
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current


def _is_number(value: Any) -> bool:
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        return False
    try:
        return math.isfinite(value)
    except OverflowError:
        return False


def first_text(obj: Any, paths: Iterable[Path]) -> str:
    for path in paths:
        value = lookup(obj, path)
        if isinstance(value, str) and value.strip():
            return value
    return ""


def first_sequence(obj: Any, paths: Iterable[Path]) -> Optional[list]:
    for path in paths:
        value = lookup(obj, path)
        if isinstance(value, (list, tuple)):
            return list(value)
    return None


def extract_price(obj: Any, price_factor: float = 100) -> Optional[float]:
    """Resolve the item price in decimal units."""
    factor = price_factor or 100
    for path in CENTS_PRICE_PATHS:
        value = lookup(obj, path)
        if _is_number(value) and value:
            return value / factor

    for path in AMBIGUOUS_PRICE_PATHS:
        value = lookup(obj, path)
        if _is_number(value) and value > CENTS_THRESHOLD:
            return value / factor

    for path in AMBIGUOUS_PRICE_PATHS:
        value = lookup(obj, path)
        if _is_number(value):
            return float(value)
        if isinstance(value, str):
            parsed = parse_price(value)
            if parsed is not None:
                return parsed

    for path in TEXT_PRICE_PATHS:
        parsed = parse_price(lookup(obj, path))
        if parsed is not None:
            return parsed
    return None


def map_sticker(entry: Any, price_factor: float = 100) -> Optional[Sticker]:
    """Map one sticker entry; bare strings carry only a name."""
    if isinstance(entry, str):
        name = normalize_spaces(entry)
        return Sticker(name=name) if name else None
    if not isinstance(entry, dict):
        return None

    name = normalize_spaces(first_text(entry, STICKER_NAME_PATHS))
    if not name:
        return None
    sticker_type = first_text(entry, STICKER_TYPE_PATHS) or None

    price = None
    for path in STICKER_CENTS_PATHS:
        value = lookup(entry, path)
        if _is_number(value):
            price = value / (price_factor or 100)
            break
    if price is None:
        for path in STICKER_PRICE_PATHS:
            value = lookup(entry, path)
            if _is_number(value):
                price = float(value)
                break
    return Sticker(name=name, type=sticker_type, price=price)


def extract_stickers(obj: Any, price_factor: float = 100) -> List[Sticker]:
    entries = first_sequence(obj, STICKER_CONTAINER_PATHS) or []
    stickers = []
    for entry in entries:
        sticker = map_sticker(entry, price_factor)
        if sticker is not None:
            stickers.append(sticker)
    return stickers


def map_record(raw: Any, price_factor: float = 100) -> Optional[RawItem]:
    """Map a raw record into a RawItem, or None when it has no usable name."""
    if not isinstance(raw, dict):
        return None
    name = normalize_spaces(first_text(raw, NAME_PATHS))
    if not name:
        return None
    return RawItem(
        name=name,
        price=extract_price(raw, price_factor),
        stickers=extract_stickers(raw, price_factor),
    )
