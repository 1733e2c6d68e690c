"""
Enumerations shared by the workflow engine.

Values mirror the strings the clinic backend sends so that records can be
serialised back without a translation table.
"""

from enum import Enum


class TreatmentType(str, Enum):
    """Treatment protocol family.

    IUI and IVF carry a step catalog and the consent gate; anything else the
    backend sends (consultations, cryo storage, ...) collapses to OTHER.
    """
    IUI = "IUI"
    IVF = "IVF"
    OTHER = "Other"


class CycleStatus(str, Enum):
    """Canonical lifecycle status of a treatment cycle."""
    PLANNED = "Planned"
    SCHEDULED = "Scheduled"
    IN_PROGRESS = "InProgress"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"
    FAILED = "Failed"
    ON_HOLD = "OnHold"


TERMINAL_STATUSES = frozenset({
    CycleStatus.COMPLETED,
    CycleStatus.CANCELLED,
    CycleStatus.FAILED,
})

STARTABLE_STATUSES = frozenset({
    CycleStatus.PLANNED,
    CycleStatus.SCHEDULED,
})


class SampleType(str, Enum):
    """Lab sample kinds relevant to milestone gating."""
    SPERM = "Sperm"
    OOCYTE = "Oocyte"
    EMBRYO = "Embryo"
    OTHER = "Other"


# Lab statuses that imply the sample already passed quality check
QUALITY_CHECKED_SAMPLE_STATUSES = frozenset({
    "QualityChecked",
    "Fertilized",
    "CulturedEmbryo",
    "Stored",
    "Used",
    "Frozen",
})


class CatalogVersion(str, Enum):
    """Step catalog generations.

    V1 is the status-driven catalog used before per-step cycles existed,
    V2 the fine-grained per-step catalog (IUI 7, IVF 8 steps), PLAN the
    condensed catalog of the backend TreatmentStepType enum: one step per
    cycle a treatment plan creates (IUI 4, IVF 6 steps).
    """
    V1 = "v1"
    V2 = "v2"
    PLAN = "plan"
