"""
OpenTelemetry helpers for the reconciler.

Spans wrap each pass and each of its phases; span events record phase
results and per-namespace failures. Counters are created lazily from the
global meter provider, so nothing is exported unless the host process
installs an SDK.

Usage::

    from monitorcore.otel import tracer, emit_phase_result

    with tracer.start_as_current_span("monitoring.reconcile"):
        ...
        emit_phase_result("operator_install", Phase.COMPLETED)
"""

from __future__ import annotations

import logging
from typing import Dict, Optional

from opentelemetry import metrics, trace as otel_trace

from monitorcore.constants import MetricName

logger = logging.getLogger(__name__)

tracer = otel_trace.get_tracer("monitorcore.reconcile")

_counters: Dict[str, metrics.Counter] = {}


def _add_span_event(name: str, attributes: dict[str, str | int | float | bool]) -> None:
    """Add an event to the current OTel span if it is recording."""
    span = otel_trace.get_current_span()
    if span and span.is_recording():
        span.add_event(name=name, attributes=attributes)


def _counter(metric: MetricName) -> metrics.Counter:
    counter = _counters.get(metric.value)
    if counter is None:
        meter = metrics.get_meter("monitorcore")
        counter = meter.create_counter(metric.value)
        _counters[metric.value] = counter
    return counter


def record_count(
    metric: MetricName,
    amount: int = 1,
    attributes: Optional[dict[str, str]] = None,
) -> None:
    """Increment one of the reconciler counters."""
    if amount:
        _counter(metric).add(amount, attributes or {})


def emit_phase_result(step: str, phase: str, error: Optional[str] = None) -> None:
    """Emit a span event for the outcome of one step.

    Event name: ``monitoring.phase``
    """
    attrs: dict[str, str | int | float | bool] = {
        "monitoring.step": step,
        "monitoring.phase": phase,
    }
    if error:
        attrs["monitoring.error"] = error
    _add_span_event("monitoring.phase", attrs)


def emit_namespace_failure(step: str, namespace: str, error: str) -> None:
    """Emit a span event for a namespace that failed to sync.

    Event name: ``monitoring.namespace.failed``
    """
    _add_span_event(
        "monitoring.namespace.failed",
        {
            "monitoring.step": step,
            "monitoring.namespace": namespace,
            "monitoring.error": error,
        },
    )
