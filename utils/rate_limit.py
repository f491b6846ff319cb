import logging
import os
import threading
import time
from collections import deque
from typing import Callable, Deque, Dict

from fastapi import HTTPException, Request

from utils.errors import RateLimitedError

logger = logging.getLogger(__name__)

OTP_RATE_LIMIT = int(os.getenv("OTP_RATE_LIMIT", "5"))
LOGIN_RATE_LIMIT = int(os.getenv("LOGIN_RATE_LIMIT", "10"))


class RateLimiter:
    """
    Sliding-window request cap per client address, usable as a FastAPI dependency.

    Every route sharing one instance shares its counters.
    """

    def __init__(
        self,
        *,
        max_requests: int,
        window_seconds: int,
        message: str,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.message = message
        self._clock = clock
        self._lock = threading.Lock()
        self._hits: Dict[str, Deque[float]] = {}

    def hit(self, key: str) -> None:
        now = self._clock()
        with self._lock:
            hits = self._hits.setdefault(key, deque())
            while hits and now - hits[0] >= self.window_seconds:
                hits.popleft()
            if len(hits) >= self.max_requests:
                retry_after = int(self.window_seconds - (now - hits[0])) + 1
                raise RateLimitedError(self.message, retry_after=retry_after)
            hits.append(now)

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()

    def __call__(self, request: Request) -> None:
        client = request.client.host if request.client else "unknown"
        try:
            self.hit(client)
        except RateLimitedError as e:
            logger.warning("Rate limit hit for %s on %s", client, request.url.path)
            raise HTTPException(429, str(e), headers={"Retry-After": str(e.retry_after)})


otp_limiter = RateLimiter(
    max_requests=OTP_RATE_LIMIT,
    window_seconds=15 * 60,
    message="Too many OTP requests from this IP, please try again later",
)

login_limiter = RateLimiter(
    max_requests=LOGIN_RATE_LIMIT,
    window_seconds=60 * 60,
    message="Too many login attempts from this IP, please try again later",
)
