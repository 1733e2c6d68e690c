"""
Workflow errors.

PreconditionViolation and its subclasses reject a mutation before anything
is written; ``reason`` is meant for display to clinic staff.
AutoAdvanceFailure is not raised: it is reported on a successful
completion whose follow-up start did not happen.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional


class PreconditionViolation(Exception):
    """A cycle mutation was refused because its preconditions do not hold."""

    def __init__(
        self,
        reason: str,
        cycle_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(reason)
        self.reason = reason
        self.cycle_id = cycle_id
        self.details = details or {}


class InvalidTransition(PreconditionViolation):
    """The cycle's current status does not allow the requested transition."""


class ConsentRequired(PreconditionViolation):
    """The treatment agreement is missing or not signed by both parties."""


class SampleCheckPending(PreconditionViolation):
    """Oocyte retrieval cannot close before sperm and oocyte samples pass QC."""


class StaleCycleVersion(PreconditionViolation):
    """The cycle changed on the server since the caller last read it."""


class ConcurrentActiveCycle(PreconditionViolation):
    """Another cycle of the same treatment is already in progress."""


@dataclass(frozen=True)
class AutoAdvanceFailure:
    """The next cycle could not be started after a successful completion."""
    completed_cycle_id: str
    next_cycle_id: str
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "completedCycleId": self.completed_cycle_id,
            "nextCycleId": self.next_cycle_id,
            "reason": self.reason,
        }
