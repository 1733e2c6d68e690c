"""
Preconditions checked before a cycle mutation.

- Consent gate: IUI/IVF treatments need an agreement signed by both the
  doctor and the patient.
- Milestone sample gate: the IVF oocyte-retrieval cycle cannot close until
  the lab has quality-checked at least one sperm and one oocyte sample.
"""

import logging
from typing import Optional, Sequence

from ..models.enums import TreatmentType
from ..models.records import Agreement, LabSample, Treatment, TreatmentCycle
from .errors import ConsentRequired, SampleCheckPending

logger = logging.getLogger(__name__)


OOCYTE_RETRIEVAL_CYCLE_NUMBER = 3
OOCYTE_RETRIEVAL_STEP_TYPE = "IVF_OPU"
OOCYTE_RETRIEVAL_STEP_ID = "step4_opu"


def check_consent(
    treatment: Treatment,
    agreement: Optional[Agreement],
    cycle_id: Optional[str] = None,
) -> None:
    """
    Raise ConsentRequired unless the treatment may be changed.

    Treatments without a step catalog (consultations, storage, ...) are
    exempt.
    """
    if not treatment.has_step_catalog:
        return

    if agreement is None:
        raise ConsentRequired(
            f"Treatment {treatment.id} has no agreement on file",
            cycle_id=cycle_id,
            details={"treatmentId": treatment.id},
        )

    missing = []
    if not agreement.signed_by_doctor:
        missing.append("doctor")
    if not agreement.signed_by_patient:
        missing.append("patient")
    if missing:
        raise ConsentRequired(
            f"Agreement {agreement.id} is not signed by the {' and '.join(missing)}",
            cycle_id=cycle_id,
            details={"agreementId": agreement.id, "missingSignatures": missing},
        )


def is_oocyte_retrieval_cycle(
    cycle: TreatmentCycle,
    protocol: Optional[TreatmentType],
) -> bool:
    """True for the IVF cycle in which oocytes and sperm are collected."""
    if protocol is not TreatmentType.IVF:
        return False

    if cycle.cycle_number == OOCYTE_RETRIEVAL_CYCLE_NUMBER:
        return True
    if (cycle.step_type or "").upper() == OOCYTE_RETRIEVAL_STEP_TYPE:
        return True
    if cycle.current_step == OOCYTE_RETRIEVAL_STEP_ID:
        return True

    name = (cycle.cycle_name or "").lower()
    return (
        "oocyte retrieval" in name
        or "sperm collection" in name
        or ("opu" in name and "cycle" in name)
    )


def check_samples(
    sperm_samples: Sequence[LabSample],
    oocyte_samples: Sequence[LabSample],
    cycle_id: Optional[str] = None,
) -> None:
    """
    Raise SampleCheckPending unless both sample types have passed QC.

    No samples of either type means nothing was collected yet, which does
    not block completion.
    """
    if not sperm_samples and not oocyte_samples:
        logger.info(f"No sperm or oocyte samples recorded, skipping sample gate for cycle {cycle_id}")
        return

    sperm_ok = any(s.is_quality_checked for s in sperm_samples)
    oocyte_ok = any(s.is_quality_checked for s in oocyte_samples)
    if sperm_ok and oocyte_ok:
        return

    pending = []
    if not sperm_ok:
        pending.append("sperm")
    if not oocyte_ok:
        pending.append("oocyte")
    raise SampleCheckPending(
        f"Quality check pending for {' and '.join(pending)} samples",
        cycle_id=cycle_id,
        details={
            "pending": pending,
            "spermSamples": len(sperm_samples),
            "oocyteSamples": len(oocyte_samples),
        },
    )
