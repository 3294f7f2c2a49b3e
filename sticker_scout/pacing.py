"""Request pacing for the paginated API scan."""

import random
import time
from collections import deque
from typing import Any, Callable, Deque, Dict, Optional

from loguru import logger

RATE_LIMIT_WINDOW_SEC = 60.0
WINDOW_SLACK_SEC = 0.025


class PacingGovernor:
    """Spaces out requests and caps them per sliding 60 second window.

    ``wait()`` must be called before every outbound request. Spacing is a
    random delay between ``min_delay_ms`` and ``max_delay_ms`` plus up to
    ``jitter_ms``, measured from the previous call.
    """

    def __init__(
        self,
        min_delay_ms: int = 800,
        max_delay_ms: int = 1600,
        jitter_ms: int = 250,
        requests_per_minute: int = 30,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        rng: Optional[random.Random] = None,
    ):
        self.min_delay_ms = max(0, int(min_delay_ms))
        self.max_delay_ms = max(self.min_delay_ms, int(max_delay_ms))
        self.jitter_ms = max(0, int(jitter_ms))
        self.requests_per_minute = int(requests_per_minute or 0)
        self._clock = clock
        self._sleep = sleep
        self._rng = rng or random.Random()
        self.last_request_at: Optional[float] = None
        self.window: Deque[float] = deque()

    @classmethod
    def from_config(cls, politeness: Dict[str, Any], **kwargs) -> "PacingGovernor":
        politeness = politeness if isinstance(politeness, dict) else {}
        return cls(
            min_delay_ms=politeness.get("min_delay_ms", 800),
            max_delay_ms=politeness.get("max_delay_ms", 1600),
            jitter_ms=politeness.get("jitter_ms", 250),
            requests_per_minute=politeness.get("requests_per_minute", 30),
            **kwargs,
        )

    def _next_spacing(self) -> float:
        base_ms = self._rng.randint(self.min_delay_ms, self.max_delay_ms)
        base_ms += self._rng.randint(0, self.jitter_ms)
        return base_ms / 1000.0

    def wait(self) -> None:
        """Block until the next request is allowed."""
        spacing = self._next_spacing()
        if self.last_request_at is not None:
            since = self._clock() - self.last_request_at
            if since < spacing:
                self._sleep(spacing - since)
        self.last_request_at = self._clock()

        if self.requests_per_minute <= 0:
            return

        now = self._clock()
        while self.window and (now - self.window[0]) > RATE_LIMIT_WINDOW_SEC:
            self.window.popleft()
        if len(self.window) >= self.requests_per_minute:
            wait_for = RATE_LIMIT_WINDOW_SEC - (now - self.window[0]) + WINDOW_SLACK_SEC
            logger.info("Request cap reached ({}/min), sleeping {:.1f}s", self.requests_per_minute, wait_for)
            self._sleep(max(0.0, wait_for))
            now = self._clock()
            while self.window and (now - self.window[0]) > RATE_LIMIT_WINDOW_SEC:
                self.window.popleft()
        self.window.append(now)
