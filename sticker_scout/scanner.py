"""Scan orchestration: pick a strategy, stream records through mapper, filter and sink."""

import json
import time
from typing import Any, Callable, Dict, Optional

import requests
from loguru import logger
from playwright.sync_api import Error as PlaywrightError

from sticker_scout.api_scanner import (
    BODY_SAMPLE_CHARS,
    ApiScanner,
    EndpointNotFoundError,
    ScanHalted,
    discover_endpoint,
)
from sticker_scout.browser import BrowserSession
from sticker_scout.config_loader import (
    get_browser_config,
    get_fetch_config,
    get_filters_config,
    get_output_config,
    get_politeness_config,
    get_profit_config,
    get_scan_config,
    get_target_config,
    load_config,
)
from sticker_scout.dedup import HitSink, sort_hits
from sticker_scout.dom_scanner import DomScanner, SurfaceNotFoundError
from sticker_scout.filters import estimate_profit, matches
from sticker_scout.mapper import map_record
from sticker_scout.models import FilterConfig, ProfitModel, ScanResult, ScanStats, ScannedHit
from sticker_scout.pacing import PacingGovernor

SCAN_MODES = {"auto", "api", "dom"}
DEFAULT_DISCOVERY_PATTERN = r"/api/inventory"


class StickerScanner:
    """Runs one cold scan and returns the sorted hits."""

    def __init__(
        self,
        config: Dict[str, Any],
        mode: Optional[str] = None,
        headless: Optional[bool] = None,
        connect_endpoint: Optional[str] = None,
        dry_run: Optional[bool] = None,
        sort_by: Optional[str] = None,
        on_hit: Optional[Callable[[ScannedHit], None]] = None,
        session_factory: Callable[..., Any] = BrowserSession,
        governor: Optional[PacingGovernor] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config
        scan_cfg = get_scan_config(config)
        fetch_cfg = get_fetch_config(config)
        discovery_cfg = fetch_cfg.get("discovery", {}) if isinstance(fetch_cfg.get("discovery"), dict) else {}
        output_cfg = get_output_config(config)

        self.mode = str(mode or scan_cfg.get("mode") or "auto").lower()
        if self.mode not in SCAN_MODES:
            raise ValueError(f"Unknown scan mode '{self.mode}': use auto, api or dom")

        self.headless = headless
        self.connect_endpoint = connect_endpoint
        self.dry_run = dry_run
        self.target_url = get_target_config(config).get("url")

        self.base_url = fetch_cfg.get("base_url") or None
        self.discovery_pattern = str(discovery_cfg.get("match_pattern", DEFAULT_DISCOVERY_PATTERN))
        self.discovery_window_ms = int(discovery_cfg.get("window_ms", 6000))
        self.discovery_reload = bool(discovery_cfg.get("reload", False))
        self.session_fallback = bool(fetch_cfg.get("session_fallback", False))
        self.use_session_cookies = bool(fetch_cfg.get("use_session_cookies", False))
        self.price_factor = float(fetch_cfg.get("price_factor", 100))

        self.filters = FilterConfig.from_dict(get_filters_config(config))
        self.profit = ProfitModel.from_dict(get_profit_config(config))
        self.sort_by = str(sort_by or output_cfg.get("sort_by", "roi")).lower()
        self.stream_hits = bool(output_cfg.get("stream_hits", True))
        self.on_hit = on_hit

        self.session_factory = session_factory
        self.governor = governor or PacingGovernor.from_config(get_politeness_config(config))
        self._sleep = sleep
        self.dom = DomScanner(config)

        self.stats = ScanStats()
        self.sink = HitSink(output_cfg.get("dedup", "strict"), on_accept=self._on_accept)
        self.strategy: Optional[str] = None

    def _on_accept(self, hit: ScannedHit) -> None:
        if not self.stream_hits:
            return
        if self.on_hit is not None:
            self.on_hit(hit)
        else:
            logger.info("HIT {}", json.dumps(hit.as_dict(), ensure_ascii=False))

    def handle_record(self, raw: Any, key: Optional[str] = None) -> bool:
        """Map, filter, score and offer one raw record. Returns True if kept."""
        self.stats.records_seen += 1
        item = map_record(raw, self.price_factor)
        if item is None:
            self.stats.unmapped += 1
            return False
        if not matches(item, self.filters):
            self.stats.filtered_out += 1
            return False

        hit = ScannedHit(
            name=item.name,
            price=item.price,
            stickers=item.stickers,
            profit=estimate_profit(item.price, self.profit),
        )
        if not self.sink.offer(hit, key):
            self.stats.duplicates += 1
            return False
        return True

    def _needs_browser(self) -> bool:
        return not (
            self.mode in ("auto", "api")
            and self.base_url
            and not self.session_fallback
            and not self.use_session_cookies
        )

    def _acquire_surface(self, session):
        try:
            return self.dom.select_surface(session.pages())
        except SurfaceNotFoundError:
            if not self.target_url:
                raise
        logger.info(f"No open trade page, navigating to {self.target_url}")
        session.open(self.target_url)
        return self.dom.select_surface(session.pages())

    def _resolve_endpoint(self, page) -> Optional[str]:
        if self.base_url:
            logger.info(f"Using configured endpoint {self.base_url}")
            return self.base_url
        if page is None:
            return None
        endpoint = discover_endpoint(
            page,
            self.discovery_pattern,
            self.discovery_window_ms,
            reload=self.discovery_reload,
        )
        return endpoint.url if endpoint else None

    def _run_api(self, endpoint_url: str, page) -> str:
        self.strategy = "api"
        api = ApiScanner(self.config, self.governor, page=page, dry_run=self.dry_run, sleep=self._sleep)
        try:
            return api.scan(endpoint_url, self.handle_record)
        finally:
            self.stats.pages_fetched = api.pages_fetched

    def _run_dom(self, page) -> str:
        self.strategy = "dom"
        steps = self.dom.scan(page, self.handle_record)
        self.stats.batches = steps
        return "max_batches" if steps >= self.dom.max_batches else "no_new_content"

    def _run_with_session(self, session) -> str:
        try:
            page = self._acquire_surface(session)
        except SurfaceNotFoundError:
            if self.mode == "dom" or not self.base_url:
                raise
            logger.warning("No usable surface, using the configured endpoint without a browser page")
            page = None

        if self.mode in ("auto", "api"):
            endpoint_url = self._resolve_endpoint(page)
            if endpoint_url:
                return self._run_api(endpoint_url, page)
            if self.mode == "api":
                raise EndpointNotFoundError(
                    f"No endpoint matching {self.discovery_pattern!r} seen within {self.discovery_window_ms}ms"
                )
            logger.info("No endpoint discovered, falling back to DOM scrolling")
        return self._run_dom(page)

    @staticmethod
    def _describe_failure(exc: Exception) -> str:
        if isinstance(exc, ScanHalted):
            detail = f"{exc} [reason={exc.reason}, status={exc.status}]"
            if exc.body:
                detail += f" body: {exc.body[:BODY_SAMPLE_CHARS]}"
            return detail
        return str(exc)

    def run(self) -> ScanResult:
        """Run the scan; fatal conditions keep the hits gathered so far."""
        logger.info(
            "Starting scan: mode={}, filters={}, sort_by={}",
            self.mode,
            self.filters,
            self.sort_by,
        )
        stop_reason = None
        error = None
        try:
            if self._needs_browser():
                with self.session_factory(
                    get_browser_config(self.config),
                    headless=self.headless,
                    connect_endpoint=self.connect_endpoint,
                ) as session:
                    stop_reason = self._run_with_session(session)
            else:
                stop_reason = self._run_api(self.base_url, None)
        except (SurfaceNotFoundError, EndpointNotFoundError, ScanHalted) as exc:
            error = self._describe_failure(exc)
            stop_reason = getattr(exc, "reason", "discovery_failed")
            logger.error(f"Scan aborted: {error}")
        except (PlaywrightError, requests.RequestException) as exc:
            error = f"{type(exc).__name__}: {exc}"
            stop_reason = "aborted"
            logger.error(f"Scan interrupted, keeping {len(self.sink)} hits: {error}")

        hits = sort_hits(self.sink.hits, self.sort_by)
        status = "failed" if error else "completed"
        logger.info(
            "Scan {}: strategy={}, hits={}, stop_reason={}, stats={}",
            status,
            self.strategy,
            len(hits),
            stop_reason,
            self.stats.as_dict(),
        )
        return ScanResult(
            status=status,
            strategy=self.strategy,
            hits=hits,
            stats=self.stats,
            stop_reason=stop_reason,
            error=error,
        )


def run_scan(
    config_path: Optional[str] = None,
    config: Optional[Dict[str, Any]] = None,
    **kwargs,
) -> ScanResult:
    """Load configuration (unless given) and run a complete scan.

    Args:
        config_path: Path to config file
        config: Already loaded configuration, takes precedence over the path
        **kwargs: Forwarded to StickerScanner

    Returns:
        ScanResult with sorted hits and run statistics
    """
    if config is None:
        config = load_config(config_path)
    return StickerScanner(config, **kwargs).run()
