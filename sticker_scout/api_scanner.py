"""Paginated JSON endpoint strategy.

The endpoint is either configured or discovered by watching the trade page's
own network traffic. Pages are then requested directly with ``requests``,
paced by a PacingGovernor, with an optional replay through the browser
session when the direct request is blocked.
"""

import json
import math
import re
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import requests
from loguru import logger
from tenacity import Retrying, retry_if_exception, stop_after_attempt, wait_fixed

from sticker_scout.config_loader import get_fetch_config, get_filters_config, get_politeness_config
from sticker_scout.mapper import lookup
from sticker_scout.models import FilterConfig
from sticker_scout.pacing import PacingGovernor

DEFAULT_ORIGIN = "https://skinsmonkey.com"

DEFAULT_HEADERS = {
    "Accept": "application/json, text/plain, */*",
    "User-Agent": "StickerScout/1.0",
    "Referer": "https://skinsmonkey.com/trade",
    "Origin": "https://skinsmonkey.com",
    "Accept-Language": "en-US,en;q=0.9",
}

# Checked in order; the source-specific ``assets`` container comes first.
ITEM_CONTAINER_PATHS: Tuple[Tuple[str, ...], ...] = (
    ("assets",),
    (),
    ("items",),
    ("data",),
    ("data", "items"),
    ("results",),
    ("inventory",),
)

NESTED_LIST_KEYS = ("variants", "subItems", "children", "assets")
CONTAINER_ID_KEYS = ("id", "assetId", "_id")

BODY_KEEP_CHARS = 2000
BODY_SAMPLE_CHARS = 160

SESSION_FETCH_JS = """async ([url, headers]) => {
    const res = await fetch(url, { credentials: 'include', headers });
    const text = await res.text();
    return { status: res.status, ok: res.ok, text };
}"""


class EndpointNotFoundError(Exception):
    """Raised when no JSON endpoint could be discovered or configured."""


class FetchError(Exception):
    """A single failed page request."""

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        url: Optional[str] = None,
        body: str = "",
        timed_out: bool = False,
    ):
        super().__init__(message)
        self.status = status
        self.url = url
        self.body = (body or "")[:BODY_KEEP_CHARS]
        self.timed_out = timed_out


class ScanHalted(Exception):
    """Pagination stopped for good: halt-listed status or error budget spent."""

    def __init__(self, message: str, reason: str, status: Optional[int] = None, body: str = ""):
        super().__init__(message)
        self.reason = reason
        self.status = status
        self.body = body or ""


@dataclass
class DiscoveredEndpoint:
    url: str
    sample: Any = None


def _looks_textual(content_type: str) -> bool:
    content_type = (content_type or "").lower()
    return "json" in content_type or "text" in content_type


def discover_endpoint(page, match_pattern: str, window_ms: int, reload: bool = False) -> Optional[DiscoveredEndpoint]:
    """Watch the page's responses for a bounded window and keep the last match.

    Args:
        page: Playwright page to observe
        match_pattern: Regex the response URL must match
        window_ms: Observation window in milliseconds
        reload: Reload the page after subscribing to provoke fresh traffic

    Returns:
        The last matching endpoint with its parsed body, or None
    """
    pattern = re.compile(match_pattern)
    matched = []

    def on_response(response):
        if not pattern.search(response.url or ""):
            return
        headers = response.headers or {}
        if _looks_textual(headers.get("content-type", "")):
            matched.append(response)

    page.on("response", on_response)
    try:
        if reload:
            try:
                page.reload(wait_until="domcontentloaded")
            except Exception as e:
                logger.warning(f"Reload during endpoint discovery failed: {e}")
        page.wait_for_timeout(window_ms)
    finally:
        page.remove_listener("response", on_response)

    if not matched:
        logger.info(f"No response matching {match_pattern!r} within {window_ms}ms")
        return None

    last = matched[-1]
    sample = None
    try:
        sample = last.json()
    except Exception as e:
        logger.debug(f"Discovered endpoint body is not JSON: {e}")
    logger.info(f"Discovered endpoint {last.url} ({len(matched)} matching responses)")
    return DiscoveredEndpoint(url=last.url, sample=sample)


def normalize_base_url(text: Optional[str], origin: str = DEFAULT_ORIGIN) -> Optional[str]:
    """Turn absolute, protocol-relative, root-relative or bare-host URLs absolute."""
    if not text:
        return None
    value = str(text).strip()
    if not value:
        return None
    if re.match(r"^https?://", value, re.IGNORECASE):
        return value
    if value.startswith("//"):
        return "https:" + value
    if value.startswith("/"):
        return origin.rstrip("/") + value
    return "https://" + value


def to_native_price(value: Any, factor: float = 100) -> Optional[int]:
    """Convert a decimal price into the endpoint's integer unit."""
    if value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return int(math.floor(number * factor + 0.5))


def build_page_url(
    base_url: str,
    index: int,
    page_size: int,
    price_bounds: Tuple[Optional[float], Optional[float]] = (None, None),
    extra_params: Optional[Dict[str, Any]] = None,
    *,
    price_factor: float = 100,
    index_param: str = "offset",
    size_param: str = "limit",
    min_price_param: str = "priceMin",
    max_price_param: str = "priceMax",
) -> str:
    """Build the request URL for one page.

    Query parameters already present on ``base_url`` are kept unless
    overridden. Price bounds are given in decimal units and converted with
    ``price_factor``.
    """
    parts = urlsplit(base_url)
    query = dict(parse_qsl(parts.query, keep_blank_values=True))
    for key, value in (extra_params or {}).items():
        if value is not None:
            query[str(key)] = str(value)
    query[size_param] = str(page_size)
    query[index_param] = str(index)

    min_native = to_native_price(price_bounds[0], price_factor)
    max_native = to_native_price(price_bounds[1], price_factor)
    if min_native is not None:
        query[min_price_param] = str(min_native)
    if max_native is not None:
        query[max_price_param] = str(max_native)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))


def extract_items_array(payload: Any) -> List[Any]:
    """Return the first non-empty item list found in a page response."""
    for path in ITEM_CONTAINER_PATHS:
        value = lookup(payload, path) if path else payload
        if isinstance(value, list) and value:
            return value
    return []


def container_key(entry: Any, page_number: int, position: int) -> str:
    if isinstance(entry, dict):
        for key in CONTAINER_ID_KEYS:
            value = entry.get(key)
            if value not in (None, ""):
                return str(value)
    return f"p{page_number}:{position}"


def expand_entry(entry: Any, key: str) -> Iterator[Tuple[Any, Optional[str]]]:
    """Yield (record, identity key) pairs for one container entry.

    Entries holding a nested list of sub-entries yield one record per
    sub-entry, with the sub-entry's fields overriding the container's.
    """
    if isinstance(entry, dict):
        for nested_key in NESTED_LIST_KEYS:
            subs = entry.get(nested_key)
            if isinstance(subs, list) and subs and all(isinstance(s, dict) for s in subs):
                base = {k: v for k, v in entry.items() if k != nested_key}
                for idx, sub in enumerate(subs):
                    yield {**base, **sub}, f"{key}#{idx}"
                return
    yield entry, None


class ApiScanner:
    """Walks a paginated inventory endpoint under politeness rules."""

    def __init__(
        self,
        config: Dict[str, Any],
        governor: Optional[PacingGovernor] = None,
        page=None,
        http: Optional[requests.Session] = None,
        dry_run: Optional[bool] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        fetch_cfg = get_fetch_config(config)
        politeness = get_politeness_config(config)
        filters = FilterConfig.from_dict(get_filters_config(config))

        self.origin = str(fetch_cfg.get("origin", DEFAULT_ORIGIN))
        self.pagination = str(fetch_cfg.get("pagination", "offset")).lower()
        self.index_param = (
            str(fetch_cfg.get("page_param", "page"))
            if self.pagination == "page"
            else str(fetch_cfg.get("offset_param", "offset"))
        )
        self.size_param = str(fetch_cfg.get("size_param", "limit"))
        self.page_size = max(1, int(fetch_cfg.get("limit", 60)))
        self.start_offset = int(fetch_cfg.get("start_offset", 0))
        self.max_pages = max(
            0,
            min(int(fetch_cfg.get("max_pages", 50)), int(politeness.get("max_pages_per_run", 30))),
        )
        self.price_factor = float(fetch_cfg.get("price_factor", 100))
        self.server_price_filter = bool(fetch_cfg.get("server_price_filter", True))
        self.min_price_param = str(fetch_cfg.get("min_price_param", "priceMin"))
        self.max_price_param = str(fetch_cfg.get("max_price_param", "priceMax"))
        self.price_bounds = (filters.min_price, filters.max_price) if self.server_price_filter else (None, None)
        self.extra_params = dict(fetch_cfg.get("params") or {})
        self.headers = {**DEFAULT_HEADERS, **(fetch_cfg.get("headers") or {})}
        self.timeout = float(fetch_cfg.get("timeout_seconds", 20))

        self.session_fallback = bool(fetch_cfg.get("session_fallback", False))
        self.session_fallback_statuses = {int(s) for s in fetch_cfg.get("session_fallback_statuses", [401, 403, 429])}
        self.use_session_cookies = bool(fetch_cfg.get("use_session_cookies", False))

        self.halt_on_status = {int(s) for s in politeness.get("stop_on_http", [401, 403])}
        self.transient_statuses = {int(s) for s in politeness.get("transient_statuses", [429])}
        self.backoff_ms = max(0, int(politeness.get("backoff_ms", 30000)))
        self.max_consecutive_errors = max(0, int(politeness.get("max_consecutive_errors", 3)))
        self.dry_run = bool(politeness.get("dry_run", False)) if dry_run is None else bool(dry_run)

        self.governor = governor or PacingGovernor.from_config(politeness)
        self.page = page
        self.http = http or requests.Session()
        self._sleep = sleep

        self.pages_fetched = 0
        self.consecutive_errors = 0

    def page_index(self, page_number: int) -> int:
        if self.pagination == "page":
            return self.start_offset + page_number
        return self.start_offset + page_number * self.page_size

    def page_url(self, base_url: str, page_number: int) -> str:
        return build_page_url(
            base_url,
            self.page_index(page_number),
            self.page_size,
            self.price_bounds,
            self.extra_params,
            price_factor=self.price_factor,
            index_param=self.index_param,
            size_param=self.size_param,
            min_price_param=self.min_price_param,
            max_price_param=self.max_price_param,
        )

    def _surface_cookies(self, url: str) -> Optional[Dict[str, str]]:
        if not (self.use_session_cookies and self.page is not None):
            return None
        try:
            cookies = self.page.context.cookies(url)
        except Exception as e:
            logger.debug(f"Could not read surface cookies: {e}")
            return None
        return {c["name"]: c["value"] for c in cookies if "name" in c and "value" in c}

    def _direct_fetch(self, url: str) -> Any:
        logger.info("GET {}", url)
        try:
            response = self.http.get(
                url,
                headers=self.headers,
                cookies=self._surface_cookies(url),
                timeout=self.timeout,
            )
        except requests.Timeout as e:
            raise FetchError(f"Request timed out: {e}", url=url, timed_out=True) from e
        except requests.RequestException as e:
            raise FetchError(f"Request failed: {e}", url=url) from e

        if not response.ok:
            raise FetchError(
                f"HTTP {response.status_code} {response.reason}",
                status=response.status_code,
                url=url,
                body=response.text,
            )
        try:
            return response.json()
        except ValueError as e:
            raise FetchError("Response is not valid JSON", status=response.status_code, url=url, body=response.text) from e

    def _session_fetch(self, url: str) -> Any:
        accept = {"Accept": self.headers.get("Accept", DEFAULT_HEADERS["Accept"])}
        try:
            result = self.page.evaluate(SESSION_FETCH_JS, [url, accept]) or {}
        except Exception as e:
            raise FetchError(f"In-session fetch failed: {e}", url=url) from e

        status = int(result.get("status") or 0) or None
        text = result.get("text") or ""
        if not result.get("ok"):
            raise FetchError(f"HTTP {status} (in-session)", status=status, url=url, body=text)
        try:
            return json.loads(text)
        except ValueError as e:
            raise FetchError("In-session response is not valid JSON", status=status, url=url, body=text) from e

    def fetch_page(self, url: str, state: Optional[Dict[str, bool]] = None) -> Any:
        """Fetch one page, replaying it once through the browser when blocked.

        The governor is consulted before every outbound request, retries and
        replays included.
        """
        state = state if state is not None else {}
        self.governor.wait()
        try:
            return self._direct_fetch(url)
        except FetchError as exc:
            if (
                not self.session_fallback
                or self.page is None
                or exc.status not in self.session_fallback_statuses
                or state.get("session_used")
            ):
                raise
            state["session_used"] = True
            logger.warning(f"Direct fetch got HTTP {exc.status}, replaying through browser session")
            self.governor.wait()
            return self._session_fetch(url)

    def _is_transient(self, exc: BaseException) -> bool:
        if not isinstance(exc, FetchError) or exc.status in self.halt_on_status:
            return False
        return exc.timed_out or exc.status in self.transient_statuses

    def _fetch_with_backoff(self, url: str) -> Any:
        state: Dict[str, bool] = {}
        retryer = Retrying(
            stop=stop_after_attempt(2),
            wait=wait_fixed(self.backoff_ms / 1000.0),
            retry=retry_if_exception(self._is_transient),
            sleep=self._sleep,
            before_sleep=lambda retry_state: logger.warning(
                f"Transient failure, backing off {self.backoff_ms}ms before one retry"
            ),
            reraise=True,
        )
        return retryer(self.fetch_page, url, state)

    def _record_failure(self, exc: FetchError) -> None:
        """Apply halt and error budget rules; raises ScanHalted when fatal."""
        logger.warning(f"fetch error: {exc.status or 'n/a'} {str(exc)[:120]}")
        if exc.body:
            logger.warning(f"body sample: {exc.body[:BODY_SAMPLE_CHARS]}")

        if exc.status in self.halt_on_status:
            raise ScanHalted(
                f"Stopping due to HTTP {exc.status}",
                reason="halt_status",
                status=exc.status,
                body=exc.body,
            )

        self.consecutive_errors += 1
        if self.consecutive_errors > self.max_consecutive_errors:
            raise ScanHalted(
                f"Giving up after {self.consecutive_errors} consecutive errors (last: {exc})",
                reason="error_budget",
                status=exc.status,
                body=exc.body,
            )

    def scan(self, base_url: str, on_record: Callable[..., None]) -> str:
        """Walk the pages and hand every record to ``on_record``.

        Returns:
            Why pagination stopped: empty_page, short_page, max_pages or dry_run

        Raises:
            ScanHalted: On a halt-listed status or when the error budget is spent
        """
        base_url = normalize_base_url(base_url, self.origin)
        if not base_url:
            raise EndpointNotFoundError("Empty endpoint URL")

        logger.info(
            "Starting API scan: limit={}, max_pages={}, price_bounds={}, dry_run={}",
            self.page_size,
            self.max_pages,
            self.price_bounds,
            self.dry_run,
        )
        self.consecutive_errors = 0

        for page_number in range(self.max_pages):
            url = self.page_url(base_url, page_number)
            if self.dry_run:
                logger.info(f"DRY RUN URL: {url}")
                continue

            try:
                payload = self._fetch_with_backoff(url)
            except FetchError as exc:
                self._record_failure(exc)
                continue

            self.consecutive_errors = 0
            self.pages_fetched += 1
            entries = extract_items_array(payload)
            logger.info(
                f"page {page_number + 1}: got {len(entries)} items "
                f"({self.index_param}={self.page_index(page_number)})"
            )
            if not entries:
                return "empty_page"

            for position, entry in enumerate(entries):
                for record, key in expand_entry(entry, container_key(entry, page_number, position)):
                    on_record(record, key=key)

            if len(entries) < self.page_size:
                return "short_page"

        return "dry_run" if self.dry_run else "max_pages"
