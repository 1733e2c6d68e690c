"""
Treatment Workflow - state resolution and progression for IUI/IVF treatments.

Given the cycles of a treatment, decides which clinical step is current,
which steps are completed and which cycle is active, and applies the cycle
transitions (start, complete, cancel) with their consent and lab-sample
preconditions.

Usage:
    from treatment_workflow import (
        InMemoryRecordSource,
        TreatmentProgressService,
        WorkflowController,
        resolve_current_step,
    )

    resolution = resolve_current_step(TreatmentType.IVF, cycles)
    resolution.current_step.id        # "step4_opu"
"""

# models first: records import the status normalizer, which imports enums
from .models import (
    CanonicalStep,
    CatalogVersion,
    CycleStatus,
    StepResolution,
    Timeline,
    Treatment,
    TreatmentCycle,
    TreatmentType,
)
from .catalog import ordered_steps, project_step, step_at, step_by_id
from .status import normalize_status
from .resolution import build_timeline, resolve_current_step, select_active
from .client import InMemoryRecordSource, RestRecordSource
from .workflow import PreconditionViolation, TransitionResult, WorkflowController
from .service import TreatmentProgress, TreatmentProgressService

__version__ = "0.1.0"

__all__ = [
    "CanonicalStep",
    "CatalogVersion",
    "CycleStatus",
    "StepResolution",
    "Timeline",
    "Treatment",
    "TreatmentCycle",
    "TreatmentType",
    "ordered_steps",
    "project_step",
    "step_at",
    "step_by_id",
    "normalize_status",
    "build_timeline",
    "resolve_current_step",
    "select_active",
    "InMemoryRecordSource",
    "RestRecordSource",
    "PreconditionViolation",
    "TransitionResult",
    "WorkflowController",
    "TreatmentProgress",
    "TreatmentProgressService",
]
