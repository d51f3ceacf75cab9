"""
Simple metrics collection for the event indexer and query layer.
Lightweight alternative to Prometheus.
"""

from typing import Dict, Any, Optional
from datetime import datetime, timedelta
from collections import defaultdict, deque
import threading

from src.core.logger.logger import get_logger

logger = get_logger(__name__)

OUTCOMES = ("applied", "skipped", "unrecognized", "missing_reference", "failed")


class IndexerMetrics:
    """In-memory counters for processed events and query outcomes."""

    def __init__(self, retention_hours: int = 24):
        self._lock = threading.Lock()
        self._retention_hours = retention_hours

        # Time-series data (timestamp, outcome) pairs
        self._events = deque()
        self._rate_limited = deque()

        self._counters = {outcome: 0 for outcome in OUTCOMES}
        self._counters['queries_ok'] = 0
        self._counters['queries_rate_limited'] = 0
        self._counters['queries_failed'] = 0

        self._event_counters = defaultdict(lambda: {outcome: 0 for outcome in OUTCOMES})

        self._last_processed_block: Optional[int] = None
        self._last_processed_at: Optional[datetime] = None

    def _cleanup_old_data(self):
        """Remove data older than retention period."""
        cutoff_time = datetime.utcnow() - timedelta(hours=self._retention_hours)

        for data_deque in (self._events, self._rate_limited):
            while data_deque and data_deque[0][0] < cutoff_time:
                data_deque.popleft()

    def record_event(self, event_name: str, outcome: str, block_number: Optional[int] = None):
        """Record the outcome of one processed log."""
        if outcome not in OUTCOMES:
            raise ValueError(f"Unknown outcome: {outcome}")
        with self._lock:
            now = datetime.utcnow()
            self._events.append((now, outcome))
            self._counters[outcome] += 1
            self._event_counters[event_name][outcome] += 1
            if block_number is not None:
                self._last_processed_block = max(block_number, self._last_processed_block or 0)
                self._last_processed_at = now
            self._cleanup_old_data()

    def record_query(self, outcome: str):
        """Record a query outcome: ok, rate_limited or failed."""
        with self._lock:
            self._counters[f'queries_{outcome}'] += 1
            if outcome == 'rate_limited':
                self._rate_limited.append((datetime.utcnow(), 1))
            self._cleanup_old_data()

    @property
    def last_processed_block(self) -> Optional[int]:
        return self._last_processed_block

    def get_metrics_summary(self) -> Dict[str, Any]:
        """Get current metrics summary."""
        with self._lock:
            self._cleanup_old_data()

            one_hour_ago = datetime.utcnow() - timedelta(hours=1)
            recent = defaultdict(int)
            for ts, outcome in self._events:
                if ts > one_hour_ago:
                    recent[outcome] += 1
            recent_rate_limited = sum(1 for ts, _ in self._rate_limited if ts > one_hour_ago)

            return {
                'timestamp': datetime.utcnow().isoformat() + 'Z',
                'overall': dict(self._counters),
                'last_hour': {
                    **{outcome: recent[outcome] for outcome in OUTCOMES},
                    'queries_rate_limited': recent_rate_limited
                },
                'by_event': {name: dict(counters) for name, counters in self._event_counters.items()},
                'last_processed_block': self._last_processed_block,
                'last_processed_at': (
                    self._last_processed_at.isoformat() + 'Z' if self._last_processed_at else None
                ),
                'retention_hours': self._retention_hours
            }

    def get_health_metrics(self) -> Dict[str, str]:
        """Get basic health metrics for health check."""
        with self._lock:
            one_hour_ago = datetime.utcnow() - timedelta(hours=1)
            recent_total = 0
            recent_failed = 0
            for ts, outcome in self._events:
                if ts > one_hour_ago:
                    recent_total += 1
                    if outcome == 'failed':
                        recent_failed += 1

            error_rate = (recent_failed / recent_total * 100) if recent_total > 0 else 0

            if error_rate > 50:
                status = "unhealthy"
            elif error_rate > 20:
                status = "degraded"
            else:
                status = "healthy"

            return {
                'status': status,
                'error_rate_percent': f"{error_rate:.1f}",
                'events_last_hour': str(recent_total)
            }

    def reset(self):
        self.__init__(self._retention_hours)


# Global metrics instance
metrics = IndexerMetrics()


def get_metrics() -> IndexerMetrics:
    """Get the global metrics instance."""
    return metrics
