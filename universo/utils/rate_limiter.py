# universo/utils/rate_limiter.py
import math
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict


@dataclass(frozen=True)
class RateLimitStatus:
    limit: int
    remaining: int
    reset_at: int
    allowed: bool
    retry_after: int = 0


class RateLimiter:
    """
    키(사용자 또는 클라이언트 주소)별 슬라이딩 윈도우 요청 제한기.

    윈도우 안의 요청 시각을 보관하고, 한도에 도달하면 가장 오래된 요청이
    윈도우를 벗어날 때까지 거부합니다. 거부된 요청은 기록하지 않습니다.
    윈도우가 한 번 지날 때마다 오래된 키를 정리합니다.
    """

    def __init__(self, limit: int, window_seconds: int, clock: Callable[[], float] = time.time):
        if limit < 1 or window_seconds < 1:
            raise ValueError("limit and window_seconds must be positive.")
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._hits: Dict[str, Deque[float]] = {}
        self._lock = threading.Lock()
        self._last_sweep = clock()

    def hit(self, key: str) -> RateLimitStatus:
        now = self._clock()
        cutoff = now - self.window_seconds
        with self._lock:
            if now - self._last_sweep >= self.window_seconds:
                self._sweep(cutoff)
                self._last_sweep = now

            hits = self._hits.setdefault(key, deque())
            while hits and hits[0] <= cutoff:
                hits.popleft()

            allowed = len(hits) < self.limit
            if allowed:
                hits.append(now)

            reset_at = math.ceil(hits[0] + self.window_seconds)
            return RateLimitStatus(
                limit=self.limit,
                remaining=max(0, self.limit - len(hits)),
                reset_at=reset_at,
                allowed=allowed,
                retry_after=0 if allowed else max(1, math.ceil(reset_at - now)),
            )

    def _sweep(self, cutoff: float):
        # 마지막 요청까지 윈도우를 벗어난 키는 더 이상 상태가 없습니다.
        for key in [k for k, hits in self._hits.items() if not hits or hits[-1] <= cutoff]:
            del self._hits[key]
