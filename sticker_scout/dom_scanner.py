"""Playwright DOM strategy: scroll a virtualized trade grid and read item cards."""

import re
from typing import Any, Callable, Dict, List, Optional, Sequence

from loguru import logger
from playwright.sync_api import TimeoutError as PlaywrightTimeout

from sticker_scout.config_loader import get_scroll_config, get_selectors, get_target_config

DEFAULT_SELECTORS = {
    "card": ".item-card",
    "gun_img": ".item-card__image, .item-image.item-card__image, .item-thumb img",
    "name": ".item-card__title, .itemName",
    "sticker_imgs": ".item-card__stickers img[alt], .item-card-stickers img[alt]",
    "price": ".item-card__price.item-price, .item-price.item-card__price",
    "scroll_container": ".inventory-grid-row, .vue-recycle-scroller__item-view",
}

URL_HINT_WEIGHT = 5
TARGET_PATTERN_WEIGHT = 3
MANY_CARDS_WEIGHT = 4
SOME_CARDS_WEIGHT = 2
MANY_CARDS_THRESHOLD = 8

COUNT_CARDS_JS = "(sel) => document.querySelectorAll(sel).length"

SCROLL_REGION_JS = """(sel) => {
    const cands = document.querySelectorAll(sel);
    for (const el of cands) {
        const style = getComputedStyle(el);
        if (/(auto|scroll)/.test(style.overflowY)) return el;
    }
    return document.scrollingElement || document.body;
}"""

EXTRACT_VISIBLE_JS = """(sel) => {
    const cards = Array.from(document.querySelectorAll(sel.card));
    return cards.map((card) => {
        const img = card.querySelector(sel.gun_img);
        const nameEl = card.querySelector(sel.name);
        const priceEl = card.querySelector(sel.price);
        const stickerImgs = Array.from(card.querySelectorAll(sel.sticker_imgs));
        const name =
            (img && (img.getAttribute('alt') || '').trim()) ||
            (nameEl && (nameEl.textContent || '').trim()) ||
            '';
        const priceText = priceEl && priceEl.textContent ? priceEl.textContent.trim() : '';
        const stickers = stickerImgs
            .map((im) => (im.getAttribute('alt') || '').trim())
            .filter(Boolean);
        return { name, priceText, stickers };
    });
}"""

SCROLL_BY_JS = """([container, dy]) => {
    const target = container || window;
    if (target.scrollBy) target.scrollBy(0, dy);
    else target.scrollTop = (target.scrollTop || 0) + dy;
}"""


class SurfaceNotFoundError(Exception):
    """Raised when no open page looks like the trade inventory."""


def record_signature(record: Dict[str, Any]) -> str:
    """Identity of a DOM card built from name, raw price text and stickers."""
    stickers = record.get("stickers") or []
    return f"{record.get('name', '')}::{record.get('priceText', '')}::{'|'.join(stickers)}"


class DomScanner:
    """Reads item cards from a rendered trade page, batch by batch."""

    def __init__(self, config: Dict[str, Any]):
        target_cfg = get_target_config(config)
        scroll_cfg = get_scroll_config(config)

        self.url_hint = str(target_cfg.get("url_hint", "skinsmonkey.com/trade"))
        self.target_pattern = re.compile(str(target_cfg.get("url_pattern", r"skinsmonkey\.com/trade")))
        self.item_wait_ms = int(target_cfg.get("item_wait_ms", 15000))

        self.selectors = dict(DEFAULT_SELECTORS)
        self.selectors.update({k: v for k, v in get_selectors(config).items() if v})

        self.max_batches = int(scroll_cfg.get("max_batches", 40))
        self.per_batch_px = int(scroll_cfg.get("per_batch_px", 1100))
        self.wait_between_ms = int(scroll_cfg.get("wait_between_ms", 500))
        self.early_stop_if_no_new = max(1, int(scroll_cfg.get("early_stop_if_no_new", 4)))

    def _count_cards(self, page) -> int:
        try:
            return int(page.evaluate(COUNT_CARDS_JS, self.selectors["card"]) or 0)
        except Exception as e:
            logger.debug(f"Card count failed on {getattr(page, 'url', '?')}: {e}")
            return 0

    def score_surface(self, page) -> int:
        """Score one candidate page by URL hints and visible card count."""
        url = page.url or ""
        score = 0
        if self.url_hint and self.url_hint in url:
            score += URL_HINT_WEIGHT
        if self.target_pattern.search(url):
            score += TARGET_PATTERN_WEIGHT
        count = self._count_cards(page)
        if count > MANY_CARDS_THRESHOLD:
            score += MANY_CARDS_WEIGHT
        elif count > 0:
            score += SOME_CARDS_WEIGHT
        return score

    def select_surface(self, pages: Sequence[Any]):
        """Pick the page that most likely shows the trade inventory.

        Raises:
            SurfaceNotFoundError: If no page scores above zero
        """
        best = None
        best_score = 0
        for page in pages:
            score = self.score_surface(page)
            logger.debug(f"Surface candidate {page.url!r} scored {score}")
            if score > best_score:
                best, best_score = page, score

        if best is None:
            raise SurfaceNotFoundError(
                f"No usable surface found - open the trade page ({self.url_hint}) in a tab first."
            )
        try:
            best.bring_to_front()
        except Exception as e:
            logger.debug(f"bring_to_front failed: {e}")
        logger.info(f"Selected surface {best.url} (score={best_score})")
        return best

    def wait_for_items(self, page) -> bool:
        """Wait for the first item card; a timeout is not fatal."""
        try:
            page.wait_for_selector(self.selectors["card"], timeout=self.item_wait_ms)
            return True
        except PlaywrightTimeout:
            logger.warning(f"No item cards after {self.item_wait_ms}ms, continuing with what is present")
            return False

    def locate_scroll_region(self, page):
        return page.evaluate_handle(SCROLL_REGION_JS, self.selectors["scroll_container"])

    def extract_visible(self, page) -> List[Dict[str, Any]]:
        """Read every rendered card and attach its signature."""
        records = page.evaluate(EXTRACT_VISIBLE_JS, self.selectors) or []
        for record in records:
            record["_sig"] = record_signature(record)
        return records

    def scroll_and_stream(self, page, region, on_batch: Callable[[List[Dict[str, Any]]], None]) -> int:
        """Scroll until the batch cap or until content stops growing.

        Returns:
            Number of scroll steps performed
        """
        last_seen_count = 0
        no_new = 0
        steps = 0

        for _ in range(self.max_batches):
            page.evaluate(SCROLL_BY_JS, [region, self.per_batch_px])
            page.wait_for_timeout(self.wait_between_ms)
            steps += 1

            batch = self.extract_visible(page)
            on_batch(batch)

            current_count = len(batch)
            if current_count <= last_seen_count:
                no_new += 1
            else:
                no_new = 0
                last_seen_count = current_count

            if no_new >= self.early_stop_if_no_new:
                logger.info(f"No new cards for {no_new} batches, stopping after {steps} steps")
                break
        return steps

    def scan(self, page, on_record: Callable[..., None]) -> int:
        """Stream the first screen and every scroll batch to ``on_record``."""
        self.wait_for_items(page)

        def _emit(batch: List[Dict[str, Any]]) -> None:
            for record in batch:
                on_record(record, key=record.get("_sig"))

        _emit(self.extract_visible(page))
        region = self.locate_scroll_region(page)
        return self.scroll_and_stream(page, region, _emit)
