"""Tracking interfaces for provisioning runs.

This module defines a lightweight protocol that lets the provisioner emit
structured stage events without depending on a specific tracking backend.
Implementations can forward events to an audit table, a telemetry system,
or a test recorder.
"""

from __future__ import annotations

import logging
from typing import Dict, Optional, Protocol


class ExecutionEventTracker(Protocol):
    """Protocol for receiving structured execution events.

    Implementations should be resilient and avoid raising exceptions. The
    payload is intentionally unstructured to give flexibility to downstream
    consumers.
    """

    def record_event(
        self, component: str, event: str, payload: Dict[str, object]
    ) -> None:
        """Record an execution event for the specified component."""
        ...


def emit_tracker_event(
    tracker: Optional[ExecutionEventTracker],
    component: str,
    event: str,
    payload: Dict[str, object],
) -> None:
    """Emit an event through the tracker if one is configured.

    A failing tracker is logged and otherwise ignored so that it never
    interrupts a provisioning run.
    """
    if tracker is None:
        return

    try:
        tracker.record_event(component=component, event=event, payload=payload)
    except Exception:
        logging.getLogger(__name__).exception(
            "Tracker event emission failed: %s.%s", component, event
        )
