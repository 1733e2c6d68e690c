"""Current-step resolution: step classification, active cycle, timeline."""

from .active_cycle import next_in_order, order_cycles, select_active
from .current_step import resolve_current_step, run_strategies
from .step_resolver import (
    classify_cycle_name,
    classify_step_type_code,
    from_cycle,
    from_cycle_name,
    from_numeric_index,
    from_step_type_code,
    infer_treatment_type,
)
from .timeline import build_timeline

__all__ = [
    "next_in_order",
    "order_cycles",
    "select_active",
    "resolve_current_step",
    "run_strategies",
    "classify_cycle_name",
    "classify_step_type_code",
    "from_cycle",
    "from_cycle_name",
    "from_numeric_index",
    "from_step_type_code",
    "infer_treatment_type",
    "build_timeline",
]
