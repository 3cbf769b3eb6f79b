"""Monitoring and metrics infrastructure"""

import threading
from typing import Dict, Any, Optional
from dataclasses import dataclass, field
from datetime import datetime, timezone
from collections import defaultdict, deque
from signal_gate.config.settings import MonitoringConfig, get_settings
from signal_gate.utils.logging import get_logger

logger = get_logger("monitoring")


@dataclass
class Metric:
    """Individual metric data point"""
    name: str
    value: float
    timestamp: datetime
    tags: Dict[str, str] = field(default_factory=dict)


class MetricsCollector:
    """Collects and stores application metrics in process"""

    def __init__(self, config: Optional[MonitoringConfig] = None):
        if config is None:
            settings = get_settings()
            config = settings.monitoring

        self.config = config
        window = config.histogram_window
        self.metrics: Dict[str, deque] = defaultdict(lambda: deque(maxlen=window))
        self.counters: Dict[str, int] = defaultdict(int)
        self.histograms: Dict[str, deque] = defaultdict(lambda: deque(maxlen=window))
        self._lock = threading.Lock()

    def increment_counter(self, name: str, value: int = 1, tags: Optional[Dict[str, str]] = None) -> None:
        """Increment a counter metric"""
        if not self.config.enabled:
            return
        with self._lock:
            key = self._make_key(name, tags)
            self.counters[key] += value

            metric = Metric(
                name=name,
                value=self.counters[key],
                timestamp=datetime.now(timezone.utc),
                tags=tags or {}
            )
            self.metrics[name].append(metric)

    def record_histogram(self, name: str, value: float, tags: Optional[Dict[str, str]] = None) -> None:
        """Record an observation (e.g. a request duration)"""
        if not self.config.enabled:
            return
        with self._lock:
            key = self._make_key(name, tags)
            self.histograms[key].append(value)

            metric = Metric(
                name=name,
                value=value,
                timestamp=datetime.now(timezone.utc),
                tags=tags or {}
            )
            self.metrics[name].append(metric)

    def get_counter(self, name: str, tags: Optional[Dict[str, str]] = None) -> int:
        """Current value of a counter"""
        with self._lock:
            return self.counters.get(self._make_key(name, tags), 0)

    def get_summary(self) -> Dict[str, Any]:
        """Counters plus basic histogram statistics"""
        with self._lock:
            histograms = {}
            for key, values in self.histograms.items():
                if not values:
                    continue
                ordered = sorted(values)
                histograms[key] = {
                    "count": len(ordered),
                    "mean": sum(ordered) / len(ordered),
                    "p95": ordered[min(len(ordered) - 1, int(len(ordered) * 0.95))],
                    "max": ordered[-1],
                }
            return {
                "counters": dict(self.counters),
                "histograms": histograms,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }

    def reset(self) -> None:
        """Drop all recorded values"""
        with self._lock:
            self.metrics.clear()
            self.counters.clear()
            self.histograms.clear()

    def _make_key(self, name: str, tags: Optional[Dict[str, str]]) -> str:
        """Create a unique key for metric storage"""
        if not tags:
            return name

        tag_str = ",".join(f"{k}={v}" for k, v in sorted(tags.items()))
        return f"{name}[{tag_str}]"


# Global metrics collector
_metrics_collector: Optional[MetricsCollector] = None


def get_metrics_collector() -> MetricsCollector:
    """Get global metrics collector instance"""
    global _metrics_collector

    if _metrics_collector is None:
        _metrics_collector = MetricsCollector()

    return _metrics_collector


def setup_monitoring(config: Optional[MonitoringConfig] = None) -> MetricsCollector:
    """Replace the global collector with one built from ``config``"""
    global _metrics_collector

    _metrics_collector = MetricsCollector(config)
    logger.info("Metrics collection %s", "enabled" if _metrics_collector.config.enabled else "disabled")
    return _metrics_collector
