"""
skillpath/services/ai_metrics.py
Counters for AI recommendation generation

One AiMetrics instance is owned by the recommendation engine and shared
with its AI client. All mutation happens under a lock; readers get a
snapshot copy.
"""
import threading
from collections import Counter, deque
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Any, Dict, Optional

from skillpath.config.settings import RecommendationSettings


@dataclass(frozen=True)
class AiErrorEntry:
    code: str
    message: str
    timestamp: datetime
    user_id: Optional[int]
    skill_id: Optional[int]
    attempt: int
    provider: str


class AiMetrics:
    def __init__(self, max_recent_errors: int = RecommendationSettings.AI_MAX_RECENT_ERRORS):
        self._lock = threading.Lock()
        self._total_requests = 0
        self._successful_requests = 0
        self._failed_requests = 0
        self._cache_hits = 0
        self._cache_misses = 0
        self._average_response_time = 0.0
        self._timed_requests = 0
        self._errors_by_type: Counter = Counter()
        self._total_errors = 0
        self._recent_errors = deque(maxlen=max_recent_errors)

    def record_request(self, success: bool, response_time_ms: float) -> None:
        with self._lock:
            self._total_requests += 1
            if success:
                self._successful_requests += 1
            else:
                self._failed_requests += 1
            self._timed_requests += 1
            # rolling mean
            self._average_response_time += (response_time_ms - self._average_response_time) / self._timed_requests

    def record_cache(self, hit: bool) -> None:
        with self._lock:
            if hit:
                self._cache_hits += 1
            else:
                self._cache_misses += 1

    def record_error(
        self,
        code: str,
        message: str,
        attempt: int,
        provider: str,
        user_id: Optional[int] = None,
        skill_id: Optional[int] = None
    ) -> None:
        entry = AiErrorEntry(
            code=code,
            message=message,
            timestamp=datetime.utcnow(),
            user_id=user_id,
            skill_id=skill_id,
            attempt=attempt,
            provider=provider,
        )
        with self._lock:
            self._total_errors += 1
            self._errors_by_type[code] += 1
            self._recent_errors.append(entry)

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            total = self._total_requests
            cache_total = self._cache_hits + self._cache_misses
            return {
                "total_requests": total,
                "successful_requests": self._successful_requests,
                "failed_requests": self._failed_requests,
                "success_rate": (self._successful_requests / total * 100.0) if total else 0.0,
                "cache_hits": self._cache_hits,
                "cache_misses": self._cache_misses,
                "cache_hit_rate": (self._cache_hits / cache_total * 100.0) if cache_total else 0.0,
                "average_response_time": self._average_response_time,
                "error_metrics": {
                    "total_errors": self._total_errors,
                    "errors_by_type": dict(self._errors_by_type),
                    "recent_errors": [asdict(entry) for entry in self._recent_errors],
                },
            }
