"""Structured logging, metrics and tracing hooks for process execution."""
from __future__ import annotations

import logging
import time
from collections import defaultdict
from contextlib import contextmanager
from typing import Dict, List, Optional

from .events import EventBus
from .models.request import ExecutionEvent, ExecutionEventType


class MetricsRecorder:
    """In-memory metrics recorder fed by execution events."""

    def __init__(self) -> None:
        self.counters: Dict[str, Dict[str, float]] = defaultdict(lambda: defaultdict(float))
        self.histograms: Dict[str, Dict[str, List[float]]] = defaultdict(dict)

    def inc(self, name: str, labels: Optional[Dict[str, str]] = None, value: float = 1) -> None:
        labels_key = self._labels_key(labels)
        self.counters[name][labels_key] += value

    def observe(
        self, name: str, value: float, labels: Optional[Dict[str, str]] = None
    ) -> None:
        labels_key = self._labels_key(labels)
        bucket = self.histograms[name].setdefault(labels_key, [])
        bucket.append(value)

    def get_counter(self, name: str, labels: Optional[Dict[str, str]] = None) -> float:
        labels_key = self._labels_key(labels)
        return self.counters[name].get(labels_key, 0.0)

    def record_event(self, event: ExecutionEvent) -> None:
        self.inc("process_engine_events_total", {"event": event.event_type.value})

    def snapshot(self) -> Dict[str, Dict[str, float]]:
        return {name: dict(values) for name, values in self.counters.items()}

    def _labels_key(self, labels: Optional[Dict[str, str]]) -> str:
        if not labels:
            return "__no_labels__"
        sorted_items = sorted(labels.items())
        return "|".join(f"{k}={v}" for k, v in sorted_items)


class TracingManager:
    """Small tracing helper producing structured logs around engine operations."""

    def __init__(self, metrics: Optional[MetricsRecorder] = None) -> None:
        self.logger = logging.getLogger("process_engine.tracing")
        self.metrics = metrics

    @contextmanager
    def span(self, name: str, **attrs: str):
        start = time.perf_counter()
        self.logger.debug("Span start", extra={"span": name, **attrs})
        outcome = "ok"
        try:
            yield
        except Exception:
            outcome = "error"
            raise
        finally:
            duration = time.perf_counter() - start
            self.logger.debug(
                "Span end",
                extra={"span": name, "duration": duration, "outcome": outcome, **attrs}
            )
            if self.metrics is not None:
                self.metrics.observe("process_engine_operation_seconds", duration, {"operation": name})
                self.metrics.inc("process_engine_operations_total", {"operation": name, "outcome": outcome})


class EventLogger:
    """Structured logger for state transitions."""

    def __init__(self) -> None:
        self.logger = logging.getLogger("process_engine.events")

    def log(self, event: str, **payload) -> None:
        self.logger.info(event, extra=payload)

    def log_event(self, event: ExecutionEvent) -> None:
        self.log(
            event.event_type.value,
            request_id=event.request_id,
            token_id=event.token_id,
            node_id=event.node_id,
        )


TRACED_EVENTS = (
    ExecutionEventType.REQUEST_STARTED,
    ExecutionEventType.TOKEN_CREATED,
    ExecutionEventType.TASK_COMPLETED,
    ExecutionEventType.CATCH_EVENT_TRIGGERED,
    ExecutionEventType.TOKEN_CLOSED,
    ExecutionEventType.REQUEST_COMPLETED,
    ExecutionEventType.REQUEST_CANCELED,
    ExecutionEventType.REQUEST_ERROR,
)


def register_default_hooks(event_bus: EventBus,
                           event_logger: Optional[EventLogger] = None,
                           metrics: Optional[MetricsRecorder] = None) -> None:
    """Attach the event logger and metrics recorder to every transition type."""
    for event_type in TRACED_EVENTS:
        if event_logger is not None:
            event_bus.subscribe(event_type, event_logger.log_event)
        if metrics is not None:
            event_bus.subscribe(event_type, metrics.record_event)
