"""Deadline monitoring and escalation."""
from .monitor import DeadlineMonitorService, TrackedAssignment, hours_until

__all__ = [
    "DeadlineMonitorService",
    "TrackedAssignment",
    "hours_until",
]
