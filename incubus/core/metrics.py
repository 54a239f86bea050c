from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from threading import Lock

HTTP_DURATION_BUCKETS = (0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)
RPC_DURATION_BUCKETS = (0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)


@dataclass
class CounterFamily:
    name: str
    description: str
    labels: tuple[str, ...]
    values: Counter = field(default_factory=Counter)

    def inc(self, *label_values: str) -> None:
        self.values[label_values] += 1

    def render(self) -> list[str]:
        lines = [f"# HELP {self.name} {self.description}", f"# TYPE {self.name} counter"]
        for key, value in sorted(self.values.items()):
            lines.append(f"{self.name}{_label_set(self.labels, key)} {value}")
        return lines


@dataclass
class HistogramFamily:
    """Cumulative-bucket latency histogram, one series per label tuple."""

    name: str
    description: str
    labels: tuple[str, ...]
    buckets: tuple[float, ...]
    counts: Counter = field(default_factory=Counter)
    sums: Counter = field(default_factory=Counter)
    bucket_counts: Counter = field(default_factory=Counter)

    def observe(self, label_values: tuple[str, ...], seconds: float) -> None:
        seconds = max(0.0, seconds)
        self.counts[label_values] += 1
        self.sums[label_values] += seconds
        for bound in self.buckets:
            if seconds <= bound:
                self.bucket_counts[(*label_values, str(bound))] += 1
        self.bucket_counts[(*label_values, "+Inf")] += 1

    def mean(self, label_values: tuple[str, ...]) -> float:
        count = self.counts.get(label_values, 0)
        return self.sums.get(label_values, 0.0) / count if count else 0.0

    def render(self) -> list[str]:
        lines = [f"# HELP {self.name} {self.description}", f"# TYPE {self.name} histogram"]
        bucket_labels = (*self.labels, "le")
        for key, value in sorted(self.bucket_counts.items()):
            lines.append(f"{self.name}_bucket{_label_set(bucket_labels, key)} {value}")
        for key, value in sorted(self.counts.items()):
            lines.append(f"{self.name}_count{_label_set(self.labels, key)} {value}")
        for key, value in sorted(self.sums.items()):
            lines.append(f"{self.name}_sum{_label_set(self.labels, key)} {value}")
        return lines


class MetricsRegistry:
    """In-process counters exposed on ``/system/metrics`` in Prometheus text format."""

    def __init__(self) -> None:
        self._lock = Lock()
        self.http_requests = CounterFamily(
            "incubus_http_requests_total",
            "Total HTTP requests by route.",
            ("method", "path", "status"),
        )
        self.http_duration = HistogramFamily(
            "incubus_http_request_duration_seconds",
            "HTTP request latency histogram.",
            ("method", "path"),
            HTTP_DURATION_BUCKETS,
        )
        self.purchases = CounterFamily(
            "incubus_marketplace_purchases_total",
            "Marketplace purchase outcomes.",
            ("listing_type", "result"),
        )
        self.wallet_syncs = CounterFamily(
            "incubus_wallet_syncs_total",
            "Wallet balance sync outcomes.",
            ("result",),
        )
        self.rpc_duration = HistogramFamily(
            "incubus_rpc_duration_seconds",
            "Blockchain RPC latency histogram.",
            ("chain",),
            RPC_DURATION_BUCKETS,
        )
        self.rate_limit_rejections = CounterFamily(
            "incubus_rate_limit_rejections_total",
            "Rate-limited HTTP requests.",
            ("scope",),
        )
        self.authz_failures = CounterFamily(
            "incubus_authz_failures_total",
            "Authentication and authorization failures on privileged paths.",
            ("scope", "status"),
        )
        self._families = (
            self.http_requests,
            self.http_duration,
            self.purchases,
            self.wallet_syncs,
            self.rpc_duration,
            self.rate_limit_rejections,
            self.authz_failures,
        )

    def record_http_request(
        self,
        *,
        method: str,
        route_path: str,
        status_code: int,
        duration_seconds: float,
    ) -> None:
        route = (method.upper(), route_path)
        with self._lock:
            self.http_requests.inc(*route, str(status_code))
            self.http_duration.observe(route, duration_seconds)

    def record_purchase(self, *, listing_type: str, result: str) -> None:
        with self._lock:
            self.purchases.inc(listing_type, result)

    def record_wallet_sync(self, *, result: str) -> None:
        with self._lock:
            self.wallet_syncs.inc(result)

    def record_rpc_duration(self, *, chain: str, duration_seconds: float) -> None:
        with self._lock:
            self.rpc_duration.observe((chain,), duration_seconds)

    def record_rate_limit_rejection(self, *, scope: str) -> None:
        with self._lock:
            self.rate_limit_rejections.inc(scope)

    def record_authz_failure(self, *, scope: str, status_code: int) -> None:
        with self._lock:
            self.authz_failures.inc(scope, str(status_code))

    def http_snapshot(self) -> list[dict]:
        """Per-route totals used by the admin monitoring page."""
        with self._lock:
            routes: dict[tuple[str, str], dict] = {}
            for (method, path, status), value in self.http_requests.values.items():
                entry = routes.setdefault(
                    (method, path),
                    {"method": method, "path": path, "requests": 0, "errors": 0},
                )
                entry["requests"] += value
                if status.startswith("5"):
                    entry["errors"] += value
            for route, entry in routes.items():
                entry["avg_duration_ms"] = round(self.http_duration.mean(route) * 1000.0, 3)
            return sorted(routes.values(), key=lambda row: (-row["requests"], row["path"]))

    def render_prometheus(self) -> str:
        with self._lock:
            lines = [line for family in self._families for line in family.render()]
        return "\n".join(lines) + "\n"


def _label_set(names: tuple[str, ...], values: tuple[str, ...]) -> str:
    pairs = ",".join(f'{name}="{_escape(value)}"' for name, value in zip(names, values))
    return "{" + pairs + "}"


def _escape(raw: str) -> str:
    return raw.replace("\\", "\\\\").replace('"', '\\"')


metrics_registry = MetricsRegistry()
