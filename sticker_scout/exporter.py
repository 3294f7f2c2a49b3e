"""Export module for Sticker Scout."""

import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

import pandas as pd
from loguru import logger

from sticker_scout.models import ScannedHit

CSV_COLUMNS = ["name", "price", "stickers", "roi", "absoluteProfit"]
FILE_PREFIX = "skinsmonkey"


def hit_to_dict(hit: ScannedHit) -> Dict[str, Any]:
    """Structured form of a hit, stickers kept as objects."""
    return hit.as_dict()


def hit_to_row(hit: ScannedHit) -> Dict[str, Any]:
    """Flattened form of a hit for tabular output."""
    return {
        "name": hit.name,
        "price": hit.price,
        "stickers": " | ".join(s.name for s in hit.stickers),
        "roi": hit.profit.roi if hit.profit else None,
        "absoluteProfit": hit.profit.absolute if hit.profit else None,
    }


def export_to_json(hits: Sequence[ScannedHit], path: Path) -> str:
    payload = [hit_to_dict(hit) for hit in hits]
    path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
    logger.info(f"Exported {len(payload)} hits to {path}")
    return str(path)


def export_to_csv(hits: Sequence[ScannedHit], path: Path) -> str:
    df = pd.DataFrame([hit_to_row(hit) for hit in hits], columns=CSV_COLUMNS)
    df.to_csv(path, index=False)
    logger.info(f"Exported {len(df)} hits to {path}")
    return str(path)


def export_hits(
    hits: Sequence[ScannedHit],
    output_config: Optional[Dict[str, Any]] = None,
    strategy: Optional[str] = None,
    output_dir: Optional[str] = None,
) -> Dict[str, str]:
    """Persist the final hit list as JSON and/or CSV.

    Args:
        hits: Ordered hits to persist
        output_config: ``output`` section of the configuration
        strategy: Strategy that produced the hits, used in file names
        output_dir: Output directory (uses config default if None)

    Returns:
        Dictionary with paths to exported files
    """
    output_config = output_config or {}
    if output_dir is None:
        output_dir = output_config.get("dir", "out")
    out_path = Path(output_dir)
    out_path.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    stem = f"{FILE_PREFIX}_{strategy}_{timestamp}" if strategy else f"{FILE_PREFIX}_{timestamp}"
    paths: Dict[str, str] = {}

    if output_config.get("save_json", True):
        paths["json"] = export_to_json(hits, out_path / f"{stem}.json")
    if output_config.get("save_csv", True):
        paths["csv"] = export_to_csv(hits, out_path / f"{stem}.csv")
    return paths
