"""Playwright browser session that supplies the trade page."""

from typing import Any, Dict, List, Optional

from loguru import logger
from playwright.sync_api import Page, sync_playwright


class BrowserSession:
    """Launches Chromium, or attaches to a running one over CDP.

    An attached browser belongs to the user: stopping the session only
    disconnects from it.
    """

    def __init__(
        self,
        browser_config: Optional[Dict[str, Any]] = None,
        headless: Optional[bool] = None,
        connect_endpoint: Optional[str] = None,
    ):
        """Initialize the session.

        Args:
            browser_config: ``browser`` section of the configuration
            headless: Override headless mode from config
            connect_endpoint: CDP endpoint of a running browser to attach to
        """
        self.browser_config = browser_config or {}
        self.headless = headless if headless is not None else bool(self.browser_config.get("headless", True))
        self.connect_endpoint = connect_endpoint or self.browser_config.get("connect_endpoint") or None
        self.timeout = int(self.browser_config.get("timeout_ms", 30000))

        self.playwright = None
        self.browser = None
        self.context = None
        self.owned = self.connect_endpoint is None
        self._stopped = False

    def start(self):
        """Start Playwright and launch or attach to a browser."""
        self.playwright = sync_playwright().start()

        if self.connect_endpoint:
            logger.info(f"Attaching to running browser at {self.connect_endpoint}")
            self.browser = self.playwright.chromium.connect_over_cdp(self.connect_endpoint)
            self.context = self.browser.contexts[0] if self.browser.contexts else self.browser.new_context()
            return

        logger.info(f"Starting browser (headless={self.headless})...")
        viewport = self.browser_config.get("viewport", {"width": 1440, "height": 900})
        self.browser = self.playwright.chromium.launch(
            headless=self.headless,
            args=self.browser_config.get("args", ["--no-sandbox", "--disable-setuid-sandbox"]),
        )
        context_kwargs: Dict[str, Any] = {"viewport": viewport}
        if self.browser_config.get("user_agent"):
            context_kwargs["user_agent"] = self.browser_config["user_agent"]
        self.context = self.browser.new_context(**context_kwargs)
        self.context.new_page().set_default_timeout(self.timeout)
        logger.info("Browser started successfully")

    def stop(self):
        """Close a self-launched browser and stop Playwright, once."""
        if self._stopped:
            return
        self._stopped = True
        logger.info("Stopping browser session...")
        if self.owned and self.browser:
            try:
                self.browser.close()
            except Exception as e:
                logger.debug(f"Browser close failed: {e}")
        if self.playwright:
            try:
                self.playwright.stop()
            except Exception as e:
                logger.debug(f"Playwright stop failed: {e}")
        self.context = None
        self.browser = None
        self.playwright = None

    def __enter__(self):
        try:
            self.start()
        except Exception:
            self.stop()
            raise
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()

    def pages(self) -> List[Page]:
        """All open pages across every context of the browser."""
        if not self.browser:
            raise RuntimeError("Browser not started")
        return [page for context in self.browser.contexts for page in context.pages]

    def open(self, url: str) -> Page:
        """Open a new page and navigate it to ``url``."""
        if not self.context:
            raise RuntimeError("Browser not started")
        page = self.context.new_page()
        page.set_default_timeout(self.timeout)
        page.goto(url, wait_until="domcontentloaded")
        return page
