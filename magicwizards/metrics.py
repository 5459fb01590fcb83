"""
Metrics and observability for Magic Wizards.

Provides logging setup and in-process metrics for monitoring runs.
"""

import json
import logging
import statistics
from collections import defaultdict, deque
from dataclasses import dataclass, asdict
from datetime import datetime, UTC
from pathlib import Path
from typing import Any, Optional


LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
# Recent samples kept for averages and percentiles
MAX_SAMPLES = 1000


def configure_logging(level: str = "INFO") -> None:
    """Install one stream handler on the magicwizards logger tree."""
    root = logging.getLogger("magicwizards")
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
    root.setLevel(level.upper())


@dataclass
class MetricEvent:
    """A single metric event."""
    timestamp: str
    event_type: str  # started, decision, completed, failed, rejected
    tenant_id: str
    session_id: Optional[str]
    data: dict[str, Any]


class MetricsCollector:
    """
    Collects and aggregates metrics from wizard runs.

    Provides both real-time stats and historical tracking.
    """

    def __init__(
        self,
        metrics_file: Optional[Path] = None,
        enable_logging: bool = True,
    ):
        """
        Initialize metrics collector.

        Args:
            metrics_file: Optional file to write metrics to (JSONL format)
            enable_logging: Whether to log each event
        """
        self.metrics_file = metrics_file
        self.enable_logging = enable_logging
        self.logger = logging.getLogger("magicwizards.metrics")

        self._event_count = 0
        self._total_cost_usd = 0.0
        self._counters: dict[str, int] = defaultdict(int)
        self._histograms: dict[str, deque] = defaultdict(lambda: deque(maxlen=MAX_SAMPLES))

    def record_started(self, tenant_id: str, wizard_id: str, channel: str) -> None:
        self._record_event("started", tenant_id, None, {"wizard_id": wizard_id, "channel": channel})
        self._counters["runs_started"] += 1
        self._counters[f"runs_by_wizard_{wizard_id}"] += 1
        self._counters[f"runs_by_channel_{channel}"] += 1

    def record_decision(
        self,
        tenant_id: str,
        session_id: Optional[str],
        provider: str,
        model: str,
        reason: str,
    ) -> None:
        """Record the resolved model target for a run."""
        self._record_event(
            "decision",
            tenant_id,
            session_id,
            {"provider": provider, "model": model, "reason": reason},
        )
        self._counters[f"decisions_by_provider_{provider}"] += 1
        self._counters[f"decisions_by_model_{model}"] += 1
        self._counters[f"decisions_by_reason_{reason}"] += 1

    def record_completed(
        self,
        tenant_id: str,
        session_id: Optional[str],
        cost_usd: float,
        duration_ms: int,
    ) -> None:
        """Record a successful run."""
        self._record_event(
            "completed",
            tenant_id,
            session_id,
            {"cost_usd": cost_usd, "duration_ms": duration_ms},
        )
        self._counters["runs_completed"] += 1
        self._total_cost_usd += cost_usd
        self._histograms["cost_usd"].append(cost_usd)
        self._histograms["duration_ms"].append(duration_ms)

    def record_failed(
        self,
        tenant_id: str,
        session_id: Optional[str],
        error_type: str,
        error_message: str,
    ) -> None:
        """Record a failed run."""
        self._record_event(
            "failed",
            tenant_id,
            session_id,
            {"error_type": error_type, "error_message": error_message},
        )
        self._counters["runs_failed"] += 1
        self._counters[f"errors_{error_type}"] += 1

    def record_rejected(self, tenant_id: str, spent_usd: float, limit_usd: float) -> None:
        """Record a run refused at budget admission."""
        self._record_event(
            "rejected",
            tenant_id,
            None,
            {"spent_usd": spent_usd, "limit_usd": limit_usd},
        )
        self._counters["runs_rejected_budget"] += 1

    def _record_event(
        self,
        event_type: str,
        tenant_id: str,
        session_id: Optional[str],
        data: dict,
    ) -> None:
        event = MetricEvent(
            timestamp=datetime.now(UTC).isoformat(),
            event_type=event_type,
            tenant_id=tenant_id,
            session_id=session_id,
            data=data,
        )
        self._event_count += 1

        if self.metrics_file:
            with open(self.metrics_file, "a") as f:
                f.write(json.dumps(asdict(event)) + "\n")

        if self.enable_logging:
            self.logger.debug(
                f"{event_type.upper()}: tenant_id={tenant_id}, "
                f"session_id={session_id}, data={data}"
            )

    def get_stats(self) -> dict:
        """
        Get aggregated statistics.

        Returns:
            Dictionary with metrics summary
        """
        cost_values = list(self._histograms.get("cost_usd", ()))
        duration_values = list(self._histograms.get("duration_ms", ()))

        return {
            "counters": dict(self._counters),
            "cost": {
                "total_usd": round(self._total_cost_usd, 6),
                "avg_usd": statistics.mean(cost_values) if cost_values else 0,
                "max_usd": max(cost_values) if cost_values else 0,
            },
            "duration": {
                "avg_ms": statistics.mean(duration_values) if duration_values else 0,
                "p50_ms": statistics.median(duration_values) if duration_values else 0,
                "p95_ms": (
                    statistics.quantiles(duration_values, n=20)[18]
                    if len(duration_values) >= 20
                    else (max(duration_values) if duration_values else 0)
                ),
            },
            "total_events": self._event_count,
        }

    def reset(self) -> None:
        """Reset all metrics."""
        self._event_count = 0
        self._total_cost_usd = 0.0
        self._counters.clear()
        self._histograms.clear()
