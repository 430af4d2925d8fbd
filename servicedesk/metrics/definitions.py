"""Metric definitions used across the application."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True)
class MetricDefinition:
    """Describe a metric that should exist in the registry."""

    name: str
    metric_type: str
    description: str
    label_names: Tuple[str, ...] = ()


DEFAULT_METRIC_DEFINITIONS: Tuple[MetricDefinition, ...] = (
    MetricDefinition(
        name="ticket_status_transitions_total",
        metric_type="counter",
        description="Status transitions applied to tickets.",
        label_names=("ticket_type", "to_status"),
    ),
    MetricDefinition(
        name="ticket_status_transitions_rejected_total",
        metric_type="counter",
        description="Status transitions rejected by the transition table.",
        label_names=("ticket_type",),
    ),
    MetricDefinition(
        name="ticket_notes_total",
        metric_type="counter",
        description="Notes added to tickets.",
        label_names=("visibility",),
    ),
    MetricDefinition(
        name="tracking_requests_total",
        metric_type="counter",
        description="Anonymous folio tracking requests by outcome.",
        label_names=("outcome",),
    ),
    MetricDefinition(
        name="tracking_lookup_duration_seconds",
        metric_type="distribution",
        description="Time spent resolving a tracking request after rate limiting.",
    ),
    MetricDefinition(
        name="rate_limit_rejections_total",
        metric_type="counter",
        description="Requests rejected by a rate limit policy.",
        label_names=("policy",),
    ),
)
