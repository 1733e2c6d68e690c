"""
Status Normalizer.

Maps the heterogeneous cycle-status representations the backend has used
over time onto the canonical CycleStatus enum:

- numeric codes (1-7, also as digit strings)
- legacy IVF lab statuses ("COS", "OPU", "ET", "Preg+", ...)
- current names ("InProgress", "Completed", ...), case and separator
  insensitive

Upstream data quality is not guaranteed, so unknown input never raises; it
maps to Planned and is logged.
"""

import logging
import re
from typing import Any, Dict, Optional, Union

from .models.enums import CycleStatus, TERMINAL_STATUSES, TreatmentType

logger = logging.getLogger(__name__)


NUMERIC_STATUS_CODES: Dict[int, CycleStatus] = {
    1: CycleStatus.PLANNED,
    2: CycleStatus.IN_PROGRESS,
    3: CycleStatus.COMPLETED,
    4: CycleStatus.CANCELLED,
    5: CycleStatus.ON_HOLD,
    6: CycleStatus.FAILED,
    7: CycleStatus.SCHEDULED,
}

# Legacy IVF lab statuses, matched exactly (the +/- suffix is significant)
LEGACY_STATUS_STRINGS: Dict[str, CycleStatus] = {
    "COS": CycleStatus.IN_PROGRESS,       # Controlled ovarian stimulation
    "OPU": CycleStatus.IN_PROGRESS,       # Oocyte pick-up
    "FERT": CycleStatus.IN_PROGRESS,      # Fertilization
    "CULTURE": CycleStatus.IN_PROGRESS,   # Embryo culture
    "ET": CycleStatus.IN_PROGRESS,        # Embryo transfer
    "FET": CycleStatus.IN_PROGRESS,       # Frozen embryo transfer
    "PREG+": CycleStatus.COMPLETED,
    "PREG-": CycleStatus.COMPLETED,
    "CLOSED": CycleStatus.COMPLETED,
}

# Current names keyed by their separator-free lowercase form
_CURRENT_STATUS_KEYS: Dict[str, CycleStatus] = {
    "planned": CycleStatus.PLANNED,
    "scheduled": CycleStatus.SCHEDULED,
    "inprogress": CycleStatus.IN_PROGRESS,
    "completed": CycleStatus.COMPLETED,
    "cancelled": CycleStatus.CANCELLED,
    "canceled": CycleStatus.CANCELLED,
    "failed": CycleStatus.FAILED,
    "onhold": CycleStatus.ON_HOLD,
}

_SEPARATORS = re.compile(r"[\s_\-]+")

DEFAULT_STATUS = CycleStatus.PLANNED


def normalize_status(raw: Union[str, int, CycleStatus, None]) -> CycleStatus:
    """
    Normalize any cycle status representation to CycleStatus.

    Args:
        raw: Numeric code, legacy string, current string, or CycleStatus.

    Returns:
        The canonical status; Planned for missing or unrecognized input.
    """
    if isinstance(raw, CycleStatus):
        return raw

    if raw is None:
        logger.debug("Cycle status missing, defaulting to Planned")
        return DEFAULT_STATUS

    # bool is an int subclass but never a status code
    if isinstance(raw, bool):
        logger.warning(f"Unrecognized cycle status {raw!r}, defaulting to Planned")
        return DEFAULT_STATUS

    if isinstance(raw, int):
        status = NUMERIC_STATUS_CODES.get(raw)
        if status is None:
            logger.warning(f"Unrecognized numeric cycle status {raw}, defaulting to Planned")
            return DEFAULT_STATUS
        return status

    text = str(raw).strip()
    if not text:
        logger.debug("Cycle status empty, defaulting to Planned")
        return DEFAULT_STATUS

    if text.isdigit():
        return normalize_status(int(text))

    legacy = LEGACY_STATUS_STRINGS.get(text.upper())
    if legacy is not None:
        return legacy

    status = _CURRENT_STATUS_KEYS.get(_SEPARATORS.sub("", text).lower())
    if status is not None:
        return status

    logger.warning(f"Unrecognized cycle status {text!r}, defaulting to Planned")
    return DEFAULT_STATUS


def is_terminal(status: Union[str, int, CycleStatus, None]) -> bool:
    """True for Completed, Cancelled and Failed."""
    return normalize_status(status) in TERMINAL_STATUSES


def normalize_treatment_type(raw: Any) -> Optional[TreatmentType]:
    """Normalize a treatment type; None when absent, OTHER when unknown."""
    if raw is None:
        return None
    if isinstance(raw, TreatmentType):
        return raw
    text = str(raw).strip().upper()
    if not text:
        return None
    if text == "IUI":
        return TreatmentType.IUI
    if text == "IVF":
        return TreatmentType.IVF
    return TreatmentType.OTHER
