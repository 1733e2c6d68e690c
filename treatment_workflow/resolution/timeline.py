"""Per-step timeline built from a StepResolution."""

import logging
from typing import Optional, Union

from .. import catalog
from ..models.enums import CatalogVersion, TreatmentType
from ..models.steps import StepResolution, StepState, Timeline, TimelineEntry

logger = logging.getLogger(__name__)


def build_timeline(
    resolution: StepResolution,
    protocol: Optional[TreatmentType],
    version: Union[CatalogVersion, str, None] = None,
) -> Timeline:
    """
    Lay the catalog out with one state per step.

    Steps before the current one that were never recorded complete are
    ``past`` rather than ``completed``. Progress counts the current step as
    under way: ``min(100, (completed + 1) / n * 100)``; without a current
    step it is ``completed / n * 100``.
    """
    steps = catalog.ordered_steps(protocol, version)
    if not steps:
        return Timeline()

    completed_ids = resolution.completed_step_ids
    current = resolution.current_step
    current_ordinal = current.ordinal if current is not None else None

    entries = []
    for step in steps:
        if current is not None and step.id == current.id:
            state = StepState.CURRENT
        elif step.id in completed_ids:
            state = StepState.COMPLETED
        elif current_ordinal is not None and step.ordinal < current_ordinal:
            state = StepState.PAST
        else:
            state = StepState.PENDING
        entries.append(TimelineEntry(step=step, state=state))

    completed_count = sum(1 for entry in entries if entry.state is StepState.COMPLETED)
    if current is None:
        progress = completed_count / len(steps) * 100
    else:
        progress = min(100.0, (completed_count + 1) / len(steps) * 100)

    return Timeline(entries=tuple(entries), progress_percentage=progress)
