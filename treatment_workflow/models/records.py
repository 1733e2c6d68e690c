"""
Domain Records for the Treatment Workflow Engine.

Immutable snapshots of the clinic backend's entities. Records are parsed
from the backend's camelCase JSON with ``from_dict`` and serialised back
with ``to_dict``. Being frozen, they are hashable and can key the
resolution cache directly.

Usage:
    from treatment_workflow.models.records import TreatmentCycle

    cycle = TreatmentCycle.from_dict({
        "id": "c-3",
        "treatmentId": "t-1",
        "cycleNumber": 3,
        "cycleName": "Oocyte Retrieval",
        "stepType": "IVF_OPU",
        "status": 2,
    })
    assert cycle.status is CycleStatus.IN_PROGRESS
"""

import json
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from ..status import normalize_status, normalize_treatment_type
from ..time_utils import format_datetime, parse_datetime
from .enums import (
    CycleStatus,
    QUALITY_CHECKED_SAMPLE_STATUSES,
    SampleType,
    TreatmentType,
)

logger = logging.getLogger(__name__)


_TRUE_VALUES = {"true", "1"}
_FALSE_VALUES = {"false", "0", ""}


def coerce_bool(value: Any) -> Optional[bool]:
    """
    Coerce the boolean shapes the backend emits.

    true/"true"/1/"1" -> True, false/"false"/0/"0" -> False, None -> None.
    Anything else falls back to Python truthiness.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    return bool(value)


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _optional_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.warning(f"Ignoring non-integer value {value!r}")
        return None


def _optional_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        logger.warning(f"Ignoring non-numeric value {value!r}")
        return None


def _parse_step_list(value: Any) -> Tuple[str, ...]:
    """completedSteps arrives as a list, a JSON array string, or CSV."""
    if value is None or value == "":
        return ()
    if isinstance(value, str):
        text = value.strip()
        if text.startswith("["):
            try:
                value = json.loads(text)
            except ValueError:
                logger.warning(f"Unparseable completedSteps {text!r}")
                return ()
        else:
            value = text.split(",")
    steps = []
    for item in value:
        step = _optional_str(item)
        if step and step not in steps:
            steps.append(step)
    return tuple(steps)


@dataclass(frozen=True)
class Treatment:
    """A patient's treatment plan (one IUI or IVF course, or another service)."""
    id: str
    patient_id: Optional[str] = None
    treatment_type: TreatmentType = TreatmentType.OTHER
    status: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    estimated_cost: Optional[float] = None
    actual_cost: Optional[float] = None
    notes: Optional[str] = None

    @property
    def has_step_catalog(self) -> bool:
        return self.treatment_type in (TreatmentType.IUI, TreatmentType.IVF)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Treatment":
        treatment_type = normalize_treatment_type(
            data.get("treatmentType", data.get("type"))
        )
        return cls(
            id=str(data["id"]),
            patient_id=_optional_str(data.get("patientId")),
            treatment_type=treatment_type or TreatmentType.OTHER,
            status=_optional_str(data.get("status")),
            start_date=parse_datetime(data.get("startDate")),
            end_date=parse_datetime(data.get("endDate")),
            estimated_cost=_optional_float(data.get("estimatedCost")),
            actual_cost=_optional_float(data.get("actualCost")),
            notes=_optional_str(data.get("notes")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "patientId": self.patient_id,
            "treatmentType": self.treatment_type.value,
            "status": self.status,
            "startDate": format_datetime(self.start_date),
            "endDate": format_datetime(self.end_date),
            "estimatedCost": self.estimated_cost,
            "actualCost": self.actual_cost,
            "notes": self.notes,
        }


@dataclass(frozen=True)
class TreatmentCycle:
    """
    One cycle of a treatment.

    In the per-step catalog a cycle corresponds to one clinical step; older
    records instead track progress through ``current_step`` and
    ``completed_steps``. ``status`` is always the canonical CycleStatus,
    whatever shape the backend sent.
    """
    id: str
    treatment_id: str
    cycle_number: int = 1
    cycle_name: Optional[str] = None
    step_type: Optional[str] = None
    current_step: Optional[str] = None
    completed_steps: Tuple[str, ...] = field(default_factory=tuple)
    status: CycleStatus = CycleStatus.PLANNED
    order_index: Optional[int] = None
    patient_id: Optional[str] = None
    treatment_type: Optional[TreatmentType] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    cost: Optional[float] = None
    outcome: Optional[str] = None
    notes: Optional[str] = None
    row_version: Optional[str] = None

    def __post_init__(self):
        if self.cycle_number < 1:
            raise ValueError(f"cycle_number must be positive, got {self.cycle_number}")

    @property
    def sort_order(self) -> int:
        """Position used when ordering cycles for progression."""
        return self.order_index if self.order_index is not None else self.cycle_number

    def with_status(self, status: CycleStatus, **changes: Any) -> "TreatmentCycle":
        return replace(self, status=status, **changes)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TreatmentCycle":
        row_version = data.get("rowVersion", data.get("version"))
        cycle_number = _optional_int(data.get("cycleNumber")) or 1
        if cycle_number < 1:
            logger.warning(f"Cycle {data.get('id')} has cycleNumber {cycle_number}, using 1")
            cycle_number = 1
        return cls(
            id=str(data["id"]),
            treatment_id=str(data.get("treatmentId") or ""),
            cycle_number=cycle_number,
            cycle_name=_optional_str(data.get("cycleName")),
            step_type=_optional_str(data.get("stepType")),
            current_step=_optional_str(data.get("currentStep")),
            completed_steps=_parse_step_list(data.get("completedSteps")),
            status=normalize_status(data.get("status")),
            order_index=_optional_int(data.get("orderIndex")),
            patient_id=_optional_str(data.get("patientId")),
            treatment_type=normalize_treatment_type(data.get("treatmentType")),
            start_date=parse_datetime(data.get("startDate")),
            end_date=parse_datetime(data.get("endDate")),
            cost=_optional_float(data.get("cost")),
            outcome=_optional_str(data.get("outcome")),
            notes=_optional_str(data.get("notes")),
            row_version=None if row_version is None else str(row_version),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "treatmentId": self.treatment_id,
            "cycleNumber": self.cycle_number,
            "cycleName": self.cycle_name,
            "stepType": self.step_type,
            "currentStep": self.current_step,
            "completedSteps": list(self.completed_steps),
            "status": self.status.value,
            "orderIndex": self.order_index,
            "patientId": self.patient_id,
            "treatmentType": self.treatment_type.value if self.treatment_type else None,
            "startDate": format_datetime(self.start_date),
            "endDate": format_datetime(self.end_date),
            "cost": self.cost,
            "outcome": self.outcome,
            "notes": self.notes,
            "rowVersion": self.row_version,
        }


@dataclass(frozen=True)
class Agreement:
    """Treatment consent agreement."""
    id: str
    treatment_id: str
    signed_by_doctor: bool = False
    signed_by_patient: bool = False

    @property
    def is_fully_signed(self) -> bool:
        return self.signed_by_doctor and self.signed_by_patient

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Agreement":
        # Older payloads only carry doctorSigned / patientSigned
        doctor = data.get("signedByDoctor")
        if doctor is None:
            doctor = data.get("doctorSigned")
        patient = data.get("signedByPatient")
        if patient is None:
            patient = data.get("patientSigned")
        return cls(
            id=str(data.get("id") or ""),
            treatment_id=str(data.get("treatmentId") or ""),
            signed_by_doctor=bool(coerce_bool(doctor)),
            signed_by_patient=bool(coerce_bool(patient)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "treatmentId": self.treatment_id,
            "signedByDoctor": self.signed_by_doctor,
            "signedByPatient": self.signed_by_patient,
        }


@dataclass(frozen=True)
class LabSample:
    """A lab sample (sperm, oocyte, embryo) tracked by the andrology/embryology lab."""
    id: str
    patient_id: Optional[str] = None
    sample_type: SampleType = SampleType.OTHER
    status: Optional[str] = None
    can_fertilize: Optional[bool] = None
    collection_date: Optional[datetime] = None

    @property
    def is_quality_checked(self) -> bool:
        return self.status in QUALITY_CHECKED_SAMPLE_STATUSES

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LabSample":
        raw_type = _optional_str(data.get("sampleType")) or ""
        sample_type = next(
            (t for t in SampleType if t.value.lower() == raw_type.lower()),
            SampleType.OTHER,
        )
        return cls(
            id=str(data.get("id") or ""),
            patient_id=_optional_str(data.get("patientId")),
            sample_type=sample_type,
            status=_optional_str(data.get("status")),
            can_fertilize=coerce_bool(data.get("canFertilize")),
            collection_date=parse_datetime(data.get("collectionDate")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "patientId": self.patient_id,
            "sampleType": self.sample_type.value,
            "status": self.status,
            "canFertilize": self.can_fertilize,
            "collectionDate": format_datetime(self.collection_date),
        }


PARTNER_RELATIONSHIP_TYPES = frozenset({"Married", "Unmarried"})


@dataclass(frozen=True)
class Relationship:
    """A link between two patients; couples share IVF sperm/oocyte samples."""
    id: str
    patient1_id: str
    patient2_id: str
    relationship_type: Optional[str] = None
    is_active: bool = True

    @property
    def is_partnership(self) -> bool:
        return self.is_active and self.relationship_type in PARTNER_RELATIONSHIP_TYPES

    def partner_of(self, patient_id: str) -> str:
        return self.patient2_id if self.patient1_id == patient_id else self.patient1_id

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Relationship":
        is_active = coerce_bool(data.get("isActive"))
        status = _optional_str(data.get("status"))
        if is_active is None:
            is_active = status is None or status.lower() == "active"
        return cls(
            id=str(data.get("id") or ""),
            patient1_id=str(data.get("patient1Id") or ""),
            patient2_id=str(data.get("patient2Id") or ""),
            relationship_type=_optional_str(data.get("relationshipType")),
            is_active=is_active,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "patient1Id": self.patient1_id,
            "patient2Id": self.patient2_id,
            "relationshipType": self.relationship_type,
            "isActive": self.is_active,
        }
