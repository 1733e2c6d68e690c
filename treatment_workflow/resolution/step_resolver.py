"""
Step Identifier Resolver.

Translates the three step signals a cycle can carry into a CanonicalStep:

- step-type code (``stepType``), highest trust
- free-text cycle name (``cycleName``)
- zero-based numeric index from the authoritative current-step endpoint

Classification returns a StepMatch so callers can tell a present but
unrecognized signal (UNKNOWN, logged) from no signal at all (ABSENT). The
``from_*`` helpers flatten both to None. Nothing here raises on bad input.
"""

import logging
import re
from typing import Optional, Union

from .. import catalog
from ..models.enums import CatalogVersion, TreatmentType
from ..models.records import Treatment, TreatmentCycle
from ..models.steps import CanonicalStep, StepMatch
from ..status import normalize_treatment_type
from .step_rules import CODE_RULES, NAME_RULES, StepRule, first_match

logger = logging.getLogger(__name__)

VersionLike = Union[CatalogVersion, str, None]

_WHITESPACE = re.compile(r"\s+")


def _classify(
    raw: Optional[str],
    text: str,
    rules: Optional[tuple],
    protocol: Optional[TreatmentType],
    version: VersionLike,
    signal: str,
) -> StepMatch:
    if not text:
        return StepMatch.absent()
    if not rules:
        return StepMatch.unknown(raw)

    rule: Optional[StepRule] = first_match(rules, text)
    if rule is None:
        logger.warning(f"Unrecognized {signal} {raw!r} for {protocol.value} protocol")
        return StepMatch.unknown(raw)

    step = catalog.project_step(rule.step_id, protocol, version)
    if step is None:
        logger.debug(f"{signal} {raw!r} matched {rule.step_id} which has no step in catalog {version}")
        return StepMatch.unknown(raw)
    return StepMatch.found(step, raw)


def classify_step_type_code(
    code: Optional[str],
    protocol: Optional[TreatmentType],
    version: VersionLike = None,
) -> StepMatch:
    """
    Classify a categorical step-type code.

    Args:
        code: Raw code, e.g. "IUI_DAY7_10_FOLLICLEMONITORING".
        protocol: Treatment protocol the code belongs to.
        version: Catalog version the match is projected onto.

    Returns:
        StepMatch (MATCHED, UNKNOWN or ABSENT).
    """
    text = (code or "").strip().upper()
    return _classify(code, text, CODE_RULES.get(protocol), protocol, version, "step type code")


def classify_cycle_name(
    name: Optional[str],
    protocol: Optional[TreatmentType],
    version: VersionLike = None,
) -> StepMatch:
    """Classify a free-text cycle name (lower trust than a code)."""
    text = _WHITESPACE.sub(" ", (name or "").strip().lower())
    return _classify(name, text, NAME_RULES.get(protocol), protocol, version, "cycle name")


def from_step_type_code(
    code: Optional[str],
    protocol: Optional[TreatmentType],
    version: VersionLike = None,
) -> Optional[CanonicalStep]:
    return classify_step_type_code(code, protocol, version).step


def from_cycle_name(
    name: Optional[str],
    protocol: Optional[TreatmentType],
    version: VersionLike = None,
) -> Optional[CanonicalStep]:
    return classify_cycle_name(name, protocol, version).step


def from_numeric_index(
    index: Optional[int],
    protocol: Optional[TreatmentType],
    version: VersionLike = None,
) -> Optional[CanonicalStep]:
    """Zero-based index into the catalog; None when absent or out of range."""
    step = catalog.step_at(protocol, index, version)
    if step is None and index is not None:
        logger.debug(f"Step index {index} out of range for {protocol}")
    return step


def from_cycle(
    cycle: TreatmentCycle,
    protocol: Optional[TreatmentType],
    version: VersionLike = None,
) -> Optional[CanonicalStep]:
    """The step a cycle represents: its code first, then its name."""
    return (
        from_step_type_code(cycle.step_type, protocol, version)
        or from_cycle_name(cycle.cycle_name, protocol, version)
    )


def infer_treatment_type(
    cycle: Optional[TreatmentCycle],
    fallback: Union[Treatment, TreatmentType, str, None] = None,
) -> Optional[TreatmentType]:
    """
    Determine the protocol a cycle belongs to.

    Order: the cycle's own type, then the treatment's (``fallback``), then
    an IVF/IUI mention in the cycle name.
    """
    if cycle is not None and cycle.treatment_type is not None:
        return cycle.treatment_type

    if isinstance(fallback, Treatment):
        fallback_type = fallback.treatment_type
    else:
        fallback_type = normalize_treatment_type(fallback)
    if fallback_type is not None:
        return fallback_type

    name = ((cycle.cycle_name if cycle else None) or "").upper()
    if "IVF" in name:
        return TreatmentType.IVF
    if "IUI" in name:
        return TreatmentType.IUI
    return None
