from __future__ import annotations

import threading
import time
from collections import deque
from typing import Callable, Deque, Dict, Optional

from app.domain.errors import RateLimitedError
from app.scripts.logging_config import get_logger
from config import settings

logger = get_logger(__name__)


class TriggerThrottle:
    """배치 트리거 엔드포인트용 sliding-window 제한기.

    ``open()``은 ``cleanup_interval``초마다 만료된 윈도우를 지우는 데몬 스레드를 시작,
    ``close()``는 스레드를 멈추고 join.
    """

    def __init__(self, max_requests: Optional[int] = None, window_seconds: Optional[float] = None,
                 cleanup_interval: float = 60.0, clock: Callable[[], float] = time.monotonic):
        self.max_requests = settings.TRIGGER_MAX_REQUESTS if max_requests is None else max_requests
        self.window_seconds = settings.TRIGGER_WINDOW_SECONDS if window_seconds is None else window_seconds
        self.cleanup_interval = cleanup_interval
        self._clock = clock
        self._lock = threading.Lock()
        self._hits: Dict[str, Deque[float]] = {}
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    # ------------------------------------------------------------------
    # 수명주기
    # ------------------------------------------------------------------
    def open(self) -> "TriggerThrottle":
        if self._thread is not None and self._thread.is_alive():
            return self
        self._stop.clear()
        self._thread = threading.Thread(target=self._run_cleanup, name="trigger-throttle-cleanup", daemon=True)
        self._thread.start()
        return self

    def close(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=self.cleanup_interval + 1)
            self._thread = None
        with self._lock:
            self._hits.clear()

    @property
    def is_open(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run_cleanup(self) -> None:
        while not self._stop.wait(self.cleanup_interval):
            removed = self.cleanup()
            if removed:
                logger.debug("throttle cleanup removed=%d", removed)

    # ------------------------------------------------------------------
    # 제한
    # ------------------------------------------------------------------
    def _expire(self, hits: Deque[float], now: float) -> None:
        while hits and now - hits[0] >= self.window_seconds:
            hits.popleft()

    def cleanup(self) -> int:
        """윈도우가 완전히 만료된 키 삭제. 삭제한 키 수 반환."""
        now = self._clock()
        with self._lock:
            stale = []
            for key, hits in self._hits.items():
                self._expire(hits, now)
                if not hits:
                    stale.append(key)
            for key in stale:
                del self._hits[key]
        return len(stale)

    def check(self, key: str) -> int:
        """``key`` 요청 1건 기록. 한도 초과 시 RateLimitedError. 남은 요청 수 반환."""
        now = self._clock()
        with self._lock:
            hits = self._hits.setdefault(key, deque())
            self._expire(hits, now)
            if len(hits) >= self.max_requests:
                retry_after = int(self.window_seconds - (now - hits[0])) + 1
                logger.warning("throttled key=%s retry_after=%ds", key, retry_after)
                raise RateLimitedError(f"too many requests, retry in {retry_after}s")
            hits.append(now)
            return self.max_requests - len(hits)

    def __len__(self) -> int:
        with self._lock:
            return len(self._hits)
