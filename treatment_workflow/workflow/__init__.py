"""Cycle lifecycle transitions and their preconditions."""

from .controller import TransitionResult, WorkflowController
from .errors import (
    AutoAdvanceFailure,
    ConcurrentActiveCycle,
    ConsentRequired,
    InvalidTransition,
    PreconditionViolation,
    SampleCheckPending,
    StaleCycleVersion,
)

__all__ = [
    "TransitionResult",
    "WorkflowController",
    "AutoAdvanceFailure",
    "ConcurrentActiveCycle",
    "ConsentRequired",
    "InvalidTransition",
    "PreconditionViolation",
    "SampleCheckPending",
    "StaleCycleVersion",
]
