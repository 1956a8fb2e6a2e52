"""Prometheus-format metrics for the resilience layer.

Exports, per guarded operation or dependency:
- Retry metrics: retry_attempts_total, retry_exhausted_total
- Circuit metrics: circuit_breaker_state, circuit_breaker_transitions_total
- Call metrics: operation_latency_seconds, operation_errors_total, operation_timeouts_total
"""

import logging
import threading
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Optional

logger = logging.getLogger(__name__)


class _Metric:
    """Shared label handling and text rendering."""

    kind = "untyped"

    def __init__(self, name: str, description: str, labels: Optional[list[str]] = None):
        self.name = name
        self.description = description
        self._label_names = labels or []
        self._lock = threading.Lock()

    def _key(self, labels: dict[str, str]) -> tuple:
        return tuple(str(labels.get(l, "")) for l in self._label_names)

    def _format_labels(self, label_values: tuple, extra: str = "") -> str:
        parts = [f'{l}="{v}"' for l, v in zip(self._label_names, label_values)]
        if extra:
            parts.append(extra)
        return "{" + ",".join(parts) + "}" if parts else ""

    def _header(self) -> list[str]:
        return [f"# HELP {self.name} {self.description}", f"# TYPE {self.name} {self.kind}"]


class Counter(_Metric):
    """A counter metric that can only increase."""

    kind = "counter"

    def __init__(self, name: str, description: str, labels: Optional[list[str]] = None):
        super().__init__(name, description, labels)
        self._values: dict[tuple, float] = {}

    def labels(self, **kwargs) -> "BoundCounter":
        """Return the counter bound to specific label values."""
        return BoundCounter(self, self._key(kwargs))

    def inc(self, value: float = 1.0) -> None:
        self._inc(self._key({}), value)

    def _inc(self, key: tuple, value: float) -> None:
        if value < 0:
            raise ValueError("Counters can only increase")
        with self._lock:
            self._values[key] = self._values.get(key, 0) + value

    def get(self, **labels) -> float:
        """Current value for a label set (0 if never incremented)."""
        with self._lock:
            return self._values.get(self._key(labels), 0)

    def get_all(self) -> dict[tuple, float]:
        with self._lock:
            return self._values.copy()

    def to_prometheus(self) -> str:
        lines = self._header()
        for key, value in self.get_all().items():
            lines.append(f"{self.name}{self._format_labels(key)} {value}")
        return "\n".join(lines)


class BoundCounter:
    def __init__(self, parent: Counter, key: tuple):
        self._parent = parent
        self._key = key

    def inc(self, value: float = 1.0) -> None:
        self._parent._inc(self._key, value)


class Gauge(_Metric):
    """A gauge metric that can be set to any value."""

    kind = "gauge"

    def __init__(self, name: str, description: str, labels: Optional[list[str]] = None):
        super().__init__(name, description, labels)
        self._values: dict[tuple, float] = {}

    def labels(self, **kwargs) -> "BoundGauge":
        """Return the gauge bound to specific label values."""
        return BoundGauge(self, self._key(kwargs))

    def set(self, value: float) -> None:
        self._set(self._key({}), value)

    def _set(self, key: tuple, value: float) -> None:
        with self._lock:
            self._values[key] = value

    def _add(self, key: tuple, delta: float) -> None:
        with self._lock:
            self._values[key] = self._values.get(key, 0) + delta

    def get(self, **labels) -> Optional[float]:
        with self._lock:
            return self._values.get(self._key(labels))

    def get_all(self) -> dict[tuple, float]:
        with self._lock:
            return self._values.copy()

    def to_prometheus(self) -> str:
        lines = self._header()
        for key, value in self.get_all().items():
            lines.append(f"{self.name}{self._format_labels(key)} {value}")
        return "\n".join(lines)


class BoundGauge:
    def __init__(self, parent: Gauge, key: tuple):
        self._parent = parent
        self._key = key

    def set(self, value: float) -> None:
        self._parent._set(self._key, value)

    def inc(self, value: float = 1.0) -> None:
        self._parent._add(self._key, value)

    def dec(self, value: float = 1.0) -> None:
        self._parent._add(self._key, -value)


class Histogram(_Metric):
    """A histogram metric for tracking distributions."""

    kind = "histogram"
    DEFAULT_BUCKETS = (0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)

    def __init__(
        self,
        name: str,
        description: str,
        labels: Optional[list[str]] = None,
        buckets: Optional[tuple] = None,
    ):
        super().__init__(name, description, labels)
        self.buckets = tuple(sorted(buckets or self.DEFAULT_BUCKETS))
        self._observations: dict[tuple, list[float]] = {}

    def labels(self, **kwargs) -> "BoundHistogram":
        """Return the histogram bound to specific label values."""
        return BoundHistogram(self, self._key(kwargs))

    def observe(self, value: float) -> None:
        self._observe(self._key({}), value)

    def _observe(self, key: tuple, value: float) -> None:
        with self._lock:
            self._observations.setdefault(key, []).append(value)

    def get_all(self) -> dict[tuple, list[float]]:
        with self._lock:
            return {k: v.copy() for k, v in self._observations.items()}

    def to_prometheus(self) -> str:
        lines = self._header()
        for key, observations in self.get_all().items():
            for bucket in self.buckets:
                count = sum(1 for o in observations if o <= bucket)
                le = self._format_labels(key, f'le="{bucket}"')
                lines.append(f"{self.name}_bucket{le} {count}")
            inf = self._format_labels(key, 'le="+Inf"')
            lines.append(f"{self.name}_bucket{inf} {len(observations)}")
            lines.append(f"{self.name}_sum{self._format_labels(key)} {sum(observations)}")
            lines.append(f"{self.name}_count{self._format_labels(key)} {len(observations)}")
        return "\n".join(lines)


class BoundHistogram:
    def __init__(self, parent: Histogram, key: tuple):
        self._parent = parent
        self._key = key

    def observe(self, value: float) -> None:
        self._parent._observe(self._key, value)


# Numeric encoding of circuit states for the state gauge
CIRCUIT_STATE_VALUES = {"closed": 0, "half_open": 1, "open": 2}


class ResilienceMetrics:
    """The metric set for one process.

    Construct it at startup and hand it to the exporters and the
    MetricsServer; nothing here is global.
    """

    def __init__(self, namespace: str = "estatetoken"):
        self.namespace = namespace

        self.retry_attempts_total = Counter(
            name=f"{namespace}_retry_attempts_total",
            description="Retries scheduled after a failed attempt",
            labels=["operation"],
        )
        self.retry_exhausted_total = Counter(
            name=f"{namespace}_retry_exhausted_total",
            description="Operations that stopped retrying and propagated their error",
            labels=["operation"],
        )
        self.circuit_breaker_state = Gauge(
            name=f"{namespace}_circuit_breaker_state",
            description="Circuit state (0=closed, 1=half_open, 2=open)",
            labels=["breaker"],
        )
        self.circuit_breaker_transitions_total = Counter(
            name=f"{namespace}_circuit_breaker_transitions_total",
            description="Circuit breaker state transitions",
            labels=["breaker", "to_state"],
        )
        self.operation_timeouts_total = Counter(
            name=f"{namespace}_operation_timeouts_total",
            description="Operations that exceeded their timeout",
            labels=["operation"],
        )
        self.operation_latency_seconds = Histogram(
            name=f"{namespace}_operation_latency_seconds",
            description="Operation latency in seconds",
            labels=["operation"],
            buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
        )
        self.operation_errors_total = Counter(
            name=f"{namespace}_operation_errors_total",
            description="Failed operations by error category",
            labels=["operation", "category"],
        )

    def all(self) -> list[_Metric]:
        return [
            self.retry_attempts_total,
            self.retry_exhausted_total,
            self.circuit_breaker_state,
            self.circuit_breaker_transitions_total,
            self.operation_timeouts_total,
            self.operation_latency_seconds,
            self.operation_errors_total,
        ]

    def generate(self) -> str:
        """Render every metric in Prometheus text format."""
        return "\n\n".join(metric.to_prometheus() for metric in self.all()) + "\n"


def _handler_for(metrics: ResilienceMetrics) -> type:
    class MetricsHandler(BaseHTTPRequestHandler):
        """HTTP handler for the metrics endpoint."""

        def do_GET(self):
            if self.path == "/metrics":
                content = metrics.generate().encode("utf-8")
                self.send_response(200)
                self.send_header("Content-Type", "text/plain; version=0.0.4; charset=utf-8")
                self.end_headers()
                self.wfile.write(content)
            elif self.path == "/health":
                self.send_response(200)
                self.send_header("Content-Type", "text/plain")
                self.end_headers()
                self.wfile.write(b"OK")
            else:
                self.send_response(404)
                self.end_headers()

        def log_message(self, format, *args):
            logger.debug(f"metrics request: {format % args}")

    return MetricsHandler


class MetricsServer:
    """HTTP server exposing a ResilienceMetrics instance for scraping."""

    def __init__(self, metrics: ResilienceMetrics, host: str = "0.0.0.0", port: int = 8000):
        """Initialize metrics server.

        Args:
            metrics: Metrics to serve
            host: Host to bind to
            port: Port to listen on (0 picks a free port)
        """
        self.metrics = metrics
        self.host = host
        self.port = port
        self._server: Optional[HTTPServer] = None
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        """Start the metrics server in a background thread."""
        if self._server is not None:
            logger.warning("Metrics server already running")
            return

        self._server = HTTPServer((self.host, self.port), _handler_for(self.metrics))
        self.port = self._server.server_address[1]
        self._thread = threading.Thread(target=self._server.serve_forever, daemon=True)
        self._thread.start()
        logger.info(f"Metrics server started on http://{self.host}:{self.port}/metrics")

    def stop(self) -> None:
        """Stop the metrics server."""
        if self._server is not None:
            self._server.shutdown()
            self._server.server_close()
            self._server = None
            self._thread = None
            logger.info("Metrics server stopped")

    @property
    def is_running(self) -> bool:
        return self._server is not None
