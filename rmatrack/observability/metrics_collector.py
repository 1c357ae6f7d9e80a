"""
Metrics collection module for system observability.
Tracks request and RMA business metrics in-memory and mirrors the HTTP
figures into the Prometheus registry.
"""

import time
from collections import defaultdict, deque
from datetime import datetime, timezone
from threading import Lock
from typing import Dict, Optional

from prometheus_client import Counter, Histogram

HTTP_REQUESTS = Counter(
    "http_requests_total",
    "HTTP requests handled",
    ["endpoint", "method", "status"],
)
HTTP_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["endpoint"],
)
RMA_EVENTS = Counter(
    "rma_events_total",
    "RMA lifecycle events",
    ["event"],
)
ANALYTICS_RUNS = Counter(
    "analytics_runs_total",
    "Analytics computations served",
    ["report"],
)


class MetricsCollector:
    """
    Collects and aggregates system metrics in-memory.
    Provides counters, gauges, and histograms for various metrics.
    """

    def __init__(self):
        self.lock = Lock()
        self.counters = defaultdict(int)
        self.gauges = defaultdict(float)
        self.histograms = defaultdict(lambda: deque(maxlen=1000))
        # Event timestamps for rate calculations
        self.time_windowed = defaultdict(lambda: deque(maxlen=10000))
        self.start_time = time.time()

    def increment_counter(self, name: str, value: int = 1, labels: Optional[Dict] = None):
        with self.lock:
            key = self._make_key(name, labels)
            self.counters[key] += value

    def set_gauge(self, name: str, value: float, labels: Optional[Dict] = None):
        with self.lock:
            key = self._make_key(name, labels)
            self.gauges[key] = value

    def observe(self, name: str, value: float, labels: Optional[Dict] = None):
        """Record an observation for a histogram metric."""
        with self.lock:
            key = self._make_key(name, labels)
            self.histograms[key].append({
                'value': value,
                'timestamp': time.time()
            })

    def record_event(self, name: str, labels: Optional[Dict] = None):
        with self.lock:
            key = self._make_key(name, labels)
            self.time_windowed[key].append(time.time())

    def _make_key(self, name: str, labels: Optional[Dict] = None) -> str:
        if labels:
            label_str = ",".join(f"{k}={v}" for k, v in sorted(labels.items()))
            return f"{name}{{{label_str}}}"
        return name

    def get_counter(self, name: str, labels: Optional[Dict] = None) -> int:
        key = self._make_key(name, labels)
        return self.counters.get(key, 0)

    def get_gauge(self, name: str, labels: Optional[Dict] = None) -> float:
        key = self._make_key(name, labels)
        return self.gauges.get(key, 0.0)

    def get_histogram_stats(self, name: str, labels: Optional[Dict] = None) -> Dict:
        key = self._make_key(name, labels)
        observations = list(self.histograms.get(key, ()))

        if not observations:
            return {'count': 0, 'sum': 0, 'min': 0, 'max': 0, 'avg': 0, 'p50': 0, 'p95': 0, 'p99': 0}

        values = sorted(obs['value'] for obs in observations)
        count = len(values)

        return {
            'count': count,
            'sum': sum(values),
            'min': values[0],
            'max': values[-1],
            'avg': sum(values) / count,
            'p50': values[int(count * 0.50)],
            'p95': values[min(count - 1, int(count * 0.95))],
            'p99': values[min(count - 1, int(count * 0.99))]
        }

    def get_rate(self, name: str, window_seconds: int = 60, labels: Optional[Dict] = None) -> float:
        """Events per second over the trailing window."""
        key = self._make_key(name, labels)
        events = self.time_windowed.get(key, ())
        if not events or window_seconds <= 0:
            return 0.0
        cutoff = time.time() - window_seconds
        recent_events = sum(1 for timestamp in events if timestamp >= cutoff)
        return recent_events / window_seconds

    def get_all_metrics(self) -> Dict:
        with self.lock:
            histogram_names = list(self.histograms.keys())
            snapshot = {
                'timestamp': datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
                'uptime_seconds': time.time() - self.start_time,
                'counters': dict(self.counters),
                'gauges': dict(self.gauges),
            }
        snapshot['histograms'] = {name: self.get_histogram_stats(name) for name in histogram_names}
        return snapshot

    def get_business_metrics(self) -> Dict:
        """RMA-specific metrics for the monitoring API."""
        duration = self.get_histogram_stats('http_request_duration_seconds')
        return {
            'rma': {
                'created': self.get_counter('rma_events_total', {'event': 'created'}),
                'status_changes': self.get_counter('rma_events_total', {'event': 'status_changed'}),
                'dtr_conversions': self.get_counter('rma_events_total', {'event': 'dtr_converted'}),
                'imported': self.get_counter('rma_events_total', {'event': 'imported'}),
                'created_per_day': self.get_rate('rma_created', window_seconds=86400) * 86400,
            },
            'analytics': {
                'overdue_runs': self.get_counter('analytics_runs_total', {'report': 'overdue'}),
                'parts_runs': self.get_counter('analytics_runs_total', {'report': 'parts'}),
                'last_overdue_total': self.get_gauge('overdue_rmas'),
                'last_sla_breach_rate': self.get_gauge('sla_breach_rate'),
            },
            'errors': {
                'total': self.get_counter('errors_total'),
                'rate_per_minute': self.get_rate('errors_total', window_seconds=60) * 60,
                'by_type': {
                    '4xx': self.get_counter('http_errors', {'type': '4xx'}),
                    '5xx': self.get_counter('http_errors', {'type': '5xx'})
                }
            },
            'performance': {
                'avg_response_time_ms': duration.get('avg', 0) * 1000,
                'p95_response_time_ms': duration.get('p95', 0) * 1000,
                'p99_response_time_ms': duration.get('p99', 0) * 1000
            }
        }

    def record_request(self, endpoint: str, method: str, status: int, duration: float):
        """Record one HTTP request in both the in-memory store and Prometheus."""
        self.observe('http_request_duration_seconds', duration)
        HTTP_REQUESTS.labels(endpoint=endpoint, method=method, status=str(status)).inc()
        HTTP_LATENCY.labels(endpoint=endpoint).observe(duration)

    def record_rma_event(self, event: str, count: int = 1):
        self.increment_counter('rma_events_total', count, labels={'event': event})
        if event == 'created':
            self.record_event('rma_created')
        RMA_EVENTS.labels(event=event).inc(count)

    def record_analytics_run(self, report: str):
        self.increment_counter('analytics_runs_total', labels={'report': report})
        ANALYTICS_RUNS.labels(report=report).inc()


# Global metrics collector instance
metrics_collector = MetricsCollector()
