"""
Client-side metrics, rendered in Prometheus text format on demand.

Series recorded by the client:
- wi_http_requests_total / wi_http_latency_seconds (core.http)
- wi_token_requests_total (core.tokens)
- wi_credential_verifications_total (core.credentials)
- wi_polls_total / wi_poll_messages_total (workers.poller)
- wi_notifications_total (core.router)

Nothing is exported automatically; an application that serves a /metrics
endpoint can return get_metrics().prometheus_format().
"""

import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Literal

Kind = Literal["counter", "gauge", "summary"]
Labels = tuple[tuple[str, str], ...]

# Recent observations kept per summary series
SAMPLE_WINDOW = 500


@dataclass
class _Family:
    kind: Kind
    series: dict[Labels, float | deque] = field(default_factory=dict)


def _labels(labels: dict[str, str] | None) -> Labels:
    return tuple(sorted((k, str(v)) for k, v in (labels or {}).items()))


def _series_name(name: str, labels: Labels) -> str:
    if not labels:
        return name
    rendered = ",".join(f'{k}="{v}"' for k, v in labels)
    return f"{name}{{{rendered}}}"


class MetricsCollector:
    """Thread-safe metric families keyed by name, each holding labelled series."""

    def __init__(self):
        self._lock = threading.Lock()
        self._families: dict[str, _Family] = {}
        self._loaded_at = time.time()

    def _family(self, name: str, kind: Kind) -> _Family:
        family = self._families.get(name)
        if family is None:
            family = self._families[name] = _Family(kind)
        elif family.kind != kind:
            raise ValueError(f"Metric {name} is a {family.kind}, not a {kind}")
        return family

    def increment(self, name: str, labels: dict[str, str] | None = None, value: int = 1):
        with self._lock:
            series = self._family(name, "counter").series
            key = _labels(labels)
            series[key] = series.get(key, 0) + value

    def set_gauge(self, name: str, labels: dict[str, str] | None = None, *, value: float):
        with self._lock:
            self._family(name, "gauge").series[_labels(labels)] = value

    def observe(self, name: str, labels: dict[str, str] | None = None, *, value: float):
        """Record one observation, e.g. a request latency in seconds."""
        with self._lock:
            series = self._family(name, "summary").series
            series.setdefault(_labels(labels), deque(maxlen=SAMPLE_WINDOW)).append(value)

    def get_counter(self, name: str, labels: dict[str, str] | None = None) -> int:
        with self._lock:
            family = self._families.get(name)
            return family.series.get(_labels(labels), 0) if family else 0

    def get_gauge(self, name: str, labels: dict[str, str] | None = None) -> float:
        with self._lock:
            family = self._families.get(name)
            return family.series.get(_labels(labels), 0.0) if family else 0.0

    def prometheus_format(self) -> str:
        """Render every family, uptime first."""
        lines = [
            "# HELP wi_uptime_seconds Seconds since the client was loaded",
            "# TYPE wi_uptime_seconds gauge",
            f"wi_uptime_seconds {time.time() - self._loaded_at:.1f}",
        ]
        with self._lock:
            for name in sorted(self._families):
                family = self._families[name]
                lines.append(f"# TYPE {name} {family.kind}")
                for labels, value in sorted(family.series.items()):
                    series = _series_name(name, labels)
                    if family.kind == "summary":
                        lines.append(f"{series}_count {len(value)}")
                        lines.append(f"{series}_sum {sum(value):.4f}")
                    else:
                        lines.append(f"{series} {value}")
        return "\n".join(lines) + "\n"

    def reset(self) -> None:
        with self._lock:
            self._families.clear()


_collector: MetricsCollector | None = None


def get_metrics() -> MetricsCollector:
    """Get or create the metrics collector singleton."""
    global _collector
    if _collector is None:
        _collector = MetricsCollector()
    return _collector
