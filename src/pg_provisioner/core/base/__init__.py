"""Base abstractions shared by provisioning components."""

from pg_provisioner.core.base.tracking import ExecutionEventTracker, emit_tracker_event

__all__ = ["ExecutionEventTracker", "emit_tracker_event"]
