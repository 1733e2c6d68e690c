"""Domain models for the treatment workflow engine."""

from .enums import (
    CatalogVersion,
    CycleStatus,
    QUALITY_CHECKED_SAMPLE_STATUSES,
    SampleType,
    STARTABLE_STATUSES,
    TERMINAL_STATUSES,
    TreatmentType,
)
from .records import (
    Agreement,
    LabSample,
    Relationship,
    Treatment,
    TreatmentCycle,
    coerce_bool,
)
from .steps import (
    CanonicalStep,
    MatchKind,
    StepMatch,
    StepResolution,
    StepState,
    Timeline,
    TimelineEntry,
)

__all__ = [
    "CatalogVersion",
    "CycleStatus",
    "QUALITY_CHECKED_SAMPLE_STATUSES",
    "SampleType",
    "STARTABLE_STATUSES",
    "TERMINAL_STATUSES",
    "TreatmentType",
    "Agreement",
    "LabSample",
    "Relationship",
    "Treatment",
    "TreatmentCycle",
    "coerce_bool",
    "CanonicalStep",
    "MatchKind",
    "StepMatch",
    "StepResolution",
    "StepState",
    "Timeline",
    "TimelineEntry",
]
