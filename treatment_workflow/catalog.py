"""
Step Catalog.

Ordered clinical steps per protocol and catalog version. The catalogs are
built once at import time; every resolver returns members of these lists so
identity and equality comparisons between steps are safe.

Step ids are stable across catalog versions: the same ids are stored on
cycles by the backend, and ``project_step`` maps them onto the coarser v1
and plan catalogs instead of renumbering. The plan catalog keeps the ids
of the steps it shares with v2, so its ordinals are not id suffixes (IVF
``step6_beta_hcg`` follows ``step7_embryo_transfer``).

Usage:
    from treatment_workflow.catalog import ordered_steps, step_by_id

    steps = ordered_steps(TreatmentType.IVF)
    opu = step_by_id(TreatmentType.IVF, "step4_opu")
"""

import logging
from typing import Dict, List, Optional, Tuple, Union

from .models.enums import CatalogVersion, TreatmentType
from .models.steps import CanonicalStep

logger = logging.getLogger(__name__)


DEFAULT_VERSION = CatalogVersion.V2

_STEP_DEFINITIONS: Dict[CatalogVersion, Dict[TreatmentType, List[Tuple[str, str]]]] = {
    CatalogVersion.V2: {
        TreatmentType.IUI: [
            ("step0_pre_cycle_prep", "Pre-Cycle Preparation"),
            ("step1_day2_3_assessment", "Assessment"),
            ("step2_follicle_monitoring", "Follicle Monitoring"),
            ("step3_trigger", "Trigger"),
            ("step4_iui_procedure", "IUI Procedure"),
            ("step5_post_iui", "Post-IUI Monitoring"),
            ("step6_beta_hcg", "Beta HCG Test"),
        ],
        TreatmentType.IVF: [
            ("step0_pre_cycle_prep", "Pre-Cycle Preparation"),
            ("step1_stimulation", "Controlled Ovarian Stimulation"),
            ("step2_monitoring", "Mid-Stimulation Monitoring"),
            ("step3_trigger", "Ovulation Trigger"),
            ("step4_opu", "Oocyte Pick-Up (OPU)"),
            ("step5_fertilization", "Fertilization/Lab"),
            ("step6_embryo_culture", "Embryo Culture"),
            ("step7_embryo_transfer", "Embryo Transfer"),
        ],
    },
    CatalogVersion.V1: {
        TreatmentType.IUI: [
            ("planning", "Planning"),
            ("monitoring", "Monitoring & Ovulation Induction"),
            ("insemination", "IUI Insemination"),
            ("completed", "Completed"),
        ],
        TreatmentType.IVF: [
            ("planning", "Planning"),
            ("stimulation", "Ovarian Stimulation (COS)"),
            ("opu", "Oocyte Retrieval (OPU)"),
            ("fertilization", "Fertilization"),
            ("culture", "Embryo Culture"),
            ("transfer", "Embryo Transfer (ET)"),
            ("luteal", "Luteal Support"),
            ("pregnancy", "Pregnancy Test"),
        ],
    },
    CatalogVersion.PLAN: {
        TreatmentType.IUI: [
            ("step0_pre_cycle_prep", "Initial Medical Examination"),
            ("step2_follicle_monitoring", "Ovarian Stimulation"),
            ("step4_iui_procedure", "Sperm Collection and Intrauterine Insemination"),
            ("step5_post_iui", "Post-Insemination Follow-Up"),
        ],
        TreatmentType.IVF: [
            ("step0_pre_cycle_prep", "Initial Medical Examination"),
            ("step1_stimulation", "Ovarian Stimulation"),
            ("step4_opu", "Oocyte Retrieval and Sperm Collection"),
            ("step5_fertilization", "In Vitro Fertilization"),
            ("step7_embryo_transfer", "Embryo Transfer"),
            ("step6_beta_hcg", "Post-Transfer Follow-Up"),
        ],
    },
}

# step id -> id of the step that covers it in a coarser catalog
_PROJECTIONS: Dict[CatalogVersion, Dict[TreatmentType, Dict[str, str]]] = {
    CatalogVersion.V1: {
        TreatmentType.IUI: {
            "step0_pre_cycle_prep": "planning",
            "step1_day2_3_assessment": "monitoring",
            "step2_follicle_monitoring": "monitoring",
            "step3_trigger": "monitoring",
            "step4_iui_procedure": "insemination",
            "step5_post_iui": "completed",
            "step6_beta_hcg": "completed",
        },
        TreatmentType.IVF: {
            "step0_pre_cycle_prep": "planning",
            "step1_stimulation": "stimulation",
            "step2_monitoring": "stimulation",
            "step3_trigger": "stimulation",
            "step4_opu": "opu",
            "step5_fertilization": "fertilization",
            "step6_embryo_culture": "culture",
            "step7_embryo_transfer": "transfer",
            "step6_beta_hcg": "pregnancy",
        },
    },
    CatalogVersion.PLAN: {
        TreatmentType.IUI: {
            "step1_day2_3_assessment": "step2_follicle_monitoring",
            "step3_trigger": "step2_follicle_monitoring",
            "step6_beta_hcg": "step5_post_iui",
        },
        TreatmentType.IVF: {
            "step2_monitoring": "step1_stimulation",
            "step3_trigger": "step1_stimulation",
            "step6_embryo_culture": "step5_fertilization",
        },
    },
}


def _build_catalogs() -> Dict[CatalogVersion, Dict[TreatmentType, Tuple[CanonicalStep, ...]]]:
    catalogs: Dict[CatalogVersion, Dict[TreatmentType, Tuple[CanonicalStep, ...]]] = {}
    for version, protocols in _STEP_DEFINITIONS.items():
        catalogs[version] = {}
        for protocol, definitions in protocols.items():
            catalogs[version][protocol] = tuple(
                CanonicalStep(id=step_id, label=label, ordinal=i, protocol=protocol, version=version)
                for i, (step_id, label) in enumerate(definitions)
            )
    return catalogs


_CATALOGS = _build_catalogs()


def resolve_version(version: Union[CatalogVersion, str, None]) -> CatalogVersion:
    """Accept a CatalogVersion, its string value, or None (default)."""
    if version is None:
        return DEFAULT_VERSION
    if isinstance(version, CatalogVersion):
        return version
    return CatalogVersion(str(version).lower())


def ordered_steps(
    protocol: Optional[TreatmentType],
    version: Union[CatalogVersion, str, None] = None,
) -> List[CanonicalStep]:
    """
    Get the ordered step catalog for a protocol.

    Args:
        protocol: IUI or IVF; any other protocol has an empty catalog.
        version: Catalog version, default v2.

    Returns:
        Steps in clinical order (ordinal 0..n-1).
    """
    if protocol is None:
        return []
    return list(_CATALOGS[resolve_version(version)].get(protocol, ()))


def step_by_id(
    protocol: Optional[TreatmentType],
    step_id: Optional[str],
    version: Union[CatalogVersion, str, None] = None,
) -> Optional[CanonicalStep]:
    if not step_id:
        return None
    for step in ordered_steps(protocol, version):
        if step.id == step_id:
            return step
    return None


def contains(
    protocol: Optional[TreatmentType],
    step_id: Optional[str],
    version: Union[CatalogVersion, str, None] = None,
) -> bool:
    return step_by_id(protocol, step_id, version) is not None


def step_at(
    protocol: Optional[TreatmentType],
    ordinal: Optional[int],
    version: Union[CatalogVersion, str, None] = None,
) -> Optional[CanonicalStep]:
    """Positional lookup; None when out of range."""
    if ordinal is None or isinstance(ordinal, bool):
        return None
    steps = ordered_steps(protocol, version)
    if 0 <= ordinal < len(steps):
        return steps[ordinal]
    return None


def next_step(step: Optional[CanonicalStep]) -> Optional[CanonicalStep]:
    """The step after ``step`` in its own catalog, or None for the last."""
    if step is None:
        return None
    return step_at(step.protocol, step.ordinal + 1, step.version)


def first_step(
    protocol: Optional[TreatmentType],
    version: Union[CatalogVersion, str, None] = None,
) -> Optional[CanonicalStep]:
    return step_at(protocol, 0, version)


def project_step(
    step_id: Optional[str],
    protocol: Optional[TreatmentType],
    version: Union[CatalogVersion, str, None] = None,
) -> Optional[CanonicalStep]:
    """
    Map a stored step id onto the equivalent step of ``version``.

    Ids that already belong to the target catalog are returned as-is, so the
    function can be applied to any stored step id. The v2 catalog has no
    step after IVF embryo transfer, so ``step6_beta_hcg`` only projects
    onto the v1 and plan catalogs.
    """
    target = resolve_version(version)
    direct = step_by_id(protocol, step_id, target)
    if direct is not None:
        return direct
    mapped = _PROJECTIONS.get(target, {}).get(protocol, {}).get(step_id or "")
    if mapped:
        return step_by_id(protocol, mapped, target)
    logger.debug(f"Step {step_id!r} has no {target.value} equivalent for {protocol}")
    return None
