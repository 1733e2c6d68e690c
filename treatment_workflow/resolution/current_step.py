"""
Current-Step Resolution.

Decides the current step, the completed steps and the active cycle of a
treatment from its cycles and, optionally, the authoritative step index
reported by the backend.

Resolution is a chain of strategies evaluated in order by
``run_strategies``; the first strategy that yields a step wins and its name
is reported as ``StepResolution.source``.

With an active cycle:
    1. legacy_current_step  - the cycle's ``currentStep`` (if not completed)
    2. active_step_type     - the cycle's step-type code
    3. active_cycle_name    - the cycle's free-text name
    4. authoritative_index  - backend step index
    5. first_uncompleted    - lowest catalog step not yet completed

Without an active cycle:
    1. authoritative_index
    2. progress_from_completed - step after the highest completed step
       (None once the last step is done), first step if nothing is done

Results are memoised on the content of the cycle list. Records are frozen
and hashable, and the list is put in canonical order before the lookup, so
the same cycles in any order hit the same cache entry.
"""

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable, FrozenSet, Iterable, Optional, Sequence, Tuple, Union

from .. import catalog
from ..config import get_settings
from ..models.enums import CatalogVersion, CycleStatus, TreatmentType
from ..models.records import TreatmentCycle
from ..models.steps import CanonicalStep, StepResolution
from .active_cycle import select_active
from .step_resolver import (
    from_cycle,
    from_cycle_name,
    from_numeric_index,
    from_step_type_code,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolutionContext:
    """Everything a strategy may look at. Built once per resolution."""
    protocol: Optional[TreatmentType]
    version: CatalogVersion
    cycles: Tuple[TreatmentCycle, ...]
    completed: FrozenSet[CanonicalStep]
    active_cycle: Optional[TreatmentCycle]
    authoritative_index: Optional[int]


Strategy = Tuple[str, Callable[[ResolutionContext], Optional[CanonicalStep]]]


# ==========================================================================
# STRATEGIES
# ==========================================================================

def legacy_current_step(ctx: ResolutionContext) -> Optional[CanonicalStep]:
    if ctx.active_cycle is None:
        return None
    step = catalog.project_step(ctx.active_cycle.current_step, ctx.protocol, ctx.version)
    if step is None or step in ctx.completed:
        return None
    return step


def active_step_type(ctx: ResolutionContext) -> Optional[CanonicalStep]:
    if ctx.active_cycle is None:
        return None
    return from_step_type_code(ctx.active_cycle.step_type, ctx.protocol, ctx.version)


def active_cycle_name(ctx: ResolutionContext) -> Optional[CanonicalStep]:
    if ctx.active_cycle is None:
        return None
    return from_cycle_name(ctx.active_cycle.cycle_name, ctx.protocol, ctx.version)


def authoritative_index(ctx: ResolutionContext) -> Optional[CanonicalStep]:
    return from_numeric_index(ctx.authoritative_index, ctx.protocol, ctx.version)


def first_uncompleted(ctx: ResolutionContext) -> Optional[CanonicalStep]:
    for step in catalog.ordered_steps(ctx.protocol, ctx.version):
        if step not in ctx.completed:
            return step
    return None


def progress_from_completed(ctx: ResolutionContext) -> Optional[CanonicalStep]:
    if not ctx.completed:
        return catalog.first_step(ctx.protocol, ctx.version)
    highest = max(ctx.completed, key=lambda step: step.ordinal)
    return catalog.next_step(highest)


ACTIVE_CYCLE_STRATEGIES: Tuple[Strategy, ...] = (
    ("legacy_current_step", legacy_current_step),
    ("active_step_type", active_step_type),
    ("active_cycle_name", active_cycle_name),
    ("authoritative_index", authoritative_index),
    ("first_uncompleted", first_uncompleted),
)

NO_ACTIVE_CYCLE_STRATEGIES: Tuple[Strategy, ...] = (
    ("authoritative_index", authoritative_index),
    ("progress_from_completed", progress_from_completed),
)


def run_strategies(
    strategies: Sequence[Strategy],
    ctx: ResolutionContext,
) -> Tuple[Optional[CanonicalStep], str]:
    """
    Evaluate strategies in order and return the first non-None step.

    Returns:
        (step, strategy name); (None, "none") when every strategy is empty.
    """
    for name, strategy in strategies:
        step = strategy(ctx)
        if step is not None:
            logger.debug(f"Current step {step.id} resolved by {name}")
            return step, name
    return None, "none"


# ==========================================================================
# COMPLETED STEPS
# ==========================================================================

def collect_completed_steps(
    cycles: Iterable[TreatmentCycle],
    protocol: Optional[TreatmentType],
    version: Union[CatalogVersion, str, None] = None,
) -> FrozenSet[CanonicalStep]:
    """
    Union of steps recorded as done.

    A Completed cycle contributes the step its code (else its name)
    resolves to. Every cycle contributes the legacy ``completedSteps``
    entries that exist in the catalog.
    """
    completed = set()
    for cycle in cycles:
        if cycle.status is CycleStatus.COMPLETED:
            step = from_cycle(cycle, protocol, version)
            if step is not None:
                completed.add(step)
            else:
                logger.debug(f"Completed cycle {cycle.id} maps to no catalog step")
        for step_id in cycle.completed_steps:
            step = catalog.project_step(step_id, protocol, version)
            if step is not None:
                completed.add(step)
    return frozenset(completed)


# ==========================================================================
# RESOLUTION
# ==========================================================================

def _canonical_order(cycles: Iterable[TreatmentCycle]) -> Tuple[TreatmentCycle, ...]:
    return tuple(sorted(cycles, key=lambda c: (c.cycle_number, c.sort_order, c.id, c.status.value)))


def _resolve(
    protocol: Optional[TreatmentType],
    cycles: Tuple[TreatmentCycle, ...],
    authoritative_index: Optional[int],
    version: CatalogVersion,
) -> StepResolution:
    completed = collect_completed_steps(cycles, protocol, version)
    active = select_active(cycles)

    ctx = ResolutionContext(
        protocol=protocol,
        version=version,
        cycles=cycles,
        completed=completed,
        active_cycle=active,
        authoritative_index=authoritative_index,
    )
    strategies = ACTIVE_CYCLE_STRATEGIES if active is not None else NO_ACTIVE_CYCLE_STRATEGIES
    current, source = run_strategies(strategies, ctx)

    if current is not None:
        completed = completed - {current}

    return StepResolution(
        current_step=current,
        completed_steps=completed,
        next_step=catalog.next_step(current),
        active_cycle=active,
        source=source,
    )


_cached_resolve: Optional[Callable[..., StepResolution]] = None


def configure_cache(maxsize: Optional[int] = None) -> None:
    """(Re)create the resolution cache. ``maxsize`` defaults to settings."""
    global _cached_resolve
    if maxsize is None:
        maxsize = get_settings().resolution_cache_size
    _cached_resolve = lru_cache(maxsize=maxsize)(_resolve)
    logger.debug(f"Resolution cache configured with maxsize={maxsize}")


def clear_cache() -> None:
    if _cached_resolve is not None:
        _cached_resolve.cache_clear()


def cache_info():
    return _cached_resolve.cache_info() if _cached_resolve is not None else None


def resolve_current_step(
    protocol: Optional[TreatmentType],
    cycles: Iterable[TreatmentCycle],
    authoritative_index: Optional[int] = None,
    version: Union[CatalogVersion, str, None] = None,
) -> StepResolution:
    """
    Resolve where a treatment stands in its protocol.

    Args:
        protocol: IUI or IVF. Other protocols resolve to an empty result.
        cycles: All cycles of the treatment, in any order.
        authoritative_index: Zero-based step index from the backend, if known.
        version: Catalog version, default v2.

    Returns:
        StepResolution with current/completed/next steps and active cycle.
    """
    if _cached_resolve is None:
        configure_cache()
    if isinstance(authoritative_index, bool):
        authoritative_index = None
    return _cached_resolve(
        protocol,
        _canonical_order(cycles),
        authoritative_index,
        catalog.resolve_version(version),
    )
