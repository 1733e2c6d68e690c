"""
Step Models.

CanonicalStep is the unit of the step catalog. StepMatch is the tagged
result of classifying a raw signal (a step-type code or a cycle name);
StepResolution and Timeline are the outputs of current-step resolution.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from .enums import CatalogVersion, TreatmentType
from .records import TreatmentCycle


@dataclass(frozen=True)
class CanonicalStep:
    """One clinical step of a protocol's catalog."""
    id: str
    label: str
    ordinal: int
    protocol: TreatmentType
    version: CatalogVersion = CatalogVersion.V2

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "label": self.label,
            "ordinal": self.ordinal,
            "protocol": self.protocol.value,
            "version": self.version.value,
        }


class MatchKind(str, Enum):
    """Outcome of classifying a raw step signal.

    MATCHED: a catalog step was found
    UNKNOWN: a signal was present but no rule claimed it
    ABSENT: there was no signal to classify
    """
    MATCHED = "matched"
    UNKNOWN = "unknown"
    ABSENT = "absent"


@dataclass(frozen=True)
class StepMatch:
    kind: MatchKind
    step: Optional[CanonicalStep] = None
    raw: Optional[str] = None

    @property
    def matched(self) -> bool:
        return self.kind is MatchKind.MATCHED

    @classmethod
    def absent(cls) -> "StepMatch":
        return cls(MatchKind.ABSENT)

    @classmethod
    def unknown(cls, raw: str) -> "StepMatch":
        return cls(MatchKind.UNKNOWN, raw=raw)

    @classmethod
    def found(cls, step: CanonicalStep, raw: str) -> "StepMatch":
        return cls(MatchKind.MATCHED, step=step, raw=raw)


@dataclass(frozen=True)
class StepResolution:
    """
    Where a treatment stands in its protocol.

    ``source`` names the strategy that produced ``current_step`` so callers
    and logs can tell an authoritative answer from a fallback.
    """
    current_step: Optional[CanonicalStep]
    completed_steps: FrozenSet[CanonicalStep] = frozenset()
    next_step: Optional[CanonicalStep] = None
    active_cycle: Optional[TreatmentCycle] = None
    source: str = "none"

    @property
    def completed_step_ids(self) -> FrozenSet[str]:
        return frozenset(step.id for step in self.completed_steps)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "currentStep": self.current_step.id if self.current_step else None,
            "completedSteps": sorted(
                (step.id for step in self.completed_steps),
            ),
            "nextStep": self.next_step.id if self.next_step else None,
            "activeCycleId": self.active_cycle.id if self.active_cycle else None,
            "source": self.source,
        }


class StepState(str, Enum):
    COMPLETED = "completed"
    CURRENT = "current"
    PAST = "past"        # before the current step but never recorded complete
    PENDING = "pending"


@dataclass(frozen=True)
class TimelineEntry:
    step: CanonicalStep
    state: StepState

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stepId": self.step.id,
            "label": self.step.label,
            "ordinal": self.step.ordinal,
            "state": self.state.value,
        }


@dataclass(frozen=True)
class Timeline:
    """Ordered per-step view of a resolution, for progress displays."""
    entries: Tuple[TimelineEntry, ...] = field(default_factory=tuple)
    progress_percentage: float = 0.0

    def by_state(self, state: StepState) -> List[TimelineEntry]:
        return [entry for entry in self.entries if entry.state is state]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entries": [entry.to_dict() for entry in self.entries],
            "progressPercentage": round(self.progress_percentage, 1),
        }
