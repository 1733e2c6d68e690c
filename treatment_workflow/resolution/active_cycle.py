"""
Active Cycle Selector.

The active cycle is the lowest-numbered cycle that has not reached a
terminal status. The backend does not enforce a single active cycle, so the
selector tolerates several candidates and breaks ties deterministically.
"""

import logging
from typing import Iterable, List, Optional

from ..models.enums import CycleStatus, TERMINAL_STATUSES
from ..models.records import TreatmentCycle

logger = logging.getLogger(__name__)


def _selection_key(cycle: TreatmentCycle):
    order_index = cycle.order_index if cycle.order_index is not None else cycle.cycle_number
    return (cycle.cycle_number, order_index, cycle.id)


def _progression_key(cycle: TreatmentCycle):
    return (cycle.sort_order, cycle.cycle_number, cycle.id)


def select_active(cycles: Iterable[TreatmentCycle]) -> Optional[TreatmentCycle]:
    """
    Pick the active cycle.

    Args:
        cycles: Cycles of one treatment, in any order.

    Returns:
        The non-terminal cycle with the lowest cycle number (ties broken by
        order index, then id), or None.
    """
    candidates = [c for c in cycles if c.status not in TERMINAL_STATUSES]
    if not candidates:
        return None

    in_progress = [c for c in candidates if c.status is CycleStatus.IN_PROGRESS]
    if len(in_progress) > 1:
        ids = ", ".join(c.id for c in sorted(in_progress, key=_selection_key))
        logger.warning(f"Multiple cycles in progress for one treatment: {ids}")

    return min(candidates, key=_selection_key)


def order_cycles(cycles: Iterable[TreatmentCycle]) -> List[TreatmentCycle]:
    """Sort cycles into progression order (order index, else cycle number)."""
    return sorted(cycles, key=_progression_key)


def next_in_order(
    cycles: Iterable[TreatmentCycle],
    current: TreatmentCycle,
) -> Optional[TreatmentCycle]:
    """The cycle that follows ``current`` in progression order, if any."""
    ordered = order_cycles(cycles)
    for i, cycle in enumerate(ordered):
        if cycle.id == current.id:
            return ordered[i + 1] if i + 1 < len(ordered) else None
    return None
