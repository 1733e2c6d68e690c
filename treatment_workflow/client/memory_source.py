"""
In-Memory Record Source - Dictionary-backed clinic records.

Used for fixtures, offline tooling and tests. Mutations behave like the
backend: they change status and dates and bump the cycle's row version.
Failures can be queued per method to exercise degraded paths.
"""

import json
import logging
import threading
from collections import defaultdict, deque
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Any, Deque, Dict, Iterable, List, Optional, Union

from ..models.enums import CycleStatus, SampleType, TreatmentType
from ..models.records import (
    Agreement,
    LabSample,
    Relationship,
    Treatment,
    TreatmentCycle,
)
from .base_client import ClinicRecordSource, RecordNotFound

logger = logging.getLogger(__name__)


def _bump_version(version: Optional[str]) -> str:
    try:
        return str(int(version or 0) + 1)
    except ValueError:
        return "1"


class InMemoryRecordSource(ClinicRecordSource):
    """
    In-memory record source.

    Records are held as frozen dataclasses and replaced on mutation, so
    callers never observe a record changing under them.
    """

    def __init__(
        self,
        treatments: Iterable[Treatment] = (),
        cycles: Iterable[TreatmentCycle] = (),
        agreements: Iterable[Agreement] = (),
        samples: Iterable[LabSample] = (),
        relationships: Iterable[Relationship] = (),
        current_steps: Optional[Dict[str, int]] = None,
    ):
        super().__init__()
        self._lock = threading.RLock()
        self.treatments: Dict[str, Treatment] = {t.id: t for t in treatments}
        self.cycles: Dict[str, TreatmentCycle] = {c.id: c for c in cycles}
        self.agreements: List[Agreement] = list(agreements)
        self.samples: List[LabSample] = list(samples)
        self.relationships: List[Relationship] = list(relationships)
        self.current_steps: Dict[str, int] = dict(current_steps or {})
        self.calls: List[str] = []
        self._failures: Dict[str, Deque[Exception]] = defaultdict(deque)
        self._connected = True

    @classmethod
    def from_fixture(cls, data: Dict[str, Any]) -> "InMemoryRecordSource":
        """
        Build a source from a fixture dict in the backend's JSON shape.

        Keys: treatments, cycles, agreements, samples, relationships,
        currentSteps ({treatmentId: index}). All optional.
        """
        return cls(
            treatments=[Treatment.from_dict(d) for d in data.get("treatments", [])],
            cycles=[TreatmentCycle.from_dict(d) for d in data.get("cycles", [])],
            agreements=[Agreement.from_dict(d) for d in data.get("agreements", [])],
            samples=[LabSample.from_dict(d) for d in data.get("samples", [])],
            relationships=[Relationship.from_dict(d) for d in data.get("relationships", [])],
            current_steps={str(k): int(v) for k, v in (data.get("currentSteps") or {}).items()},
        )

    @classmethod
    def from_json_file(cls, path: Union[str, Path]) -> "InMemoryRecordSource":
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        logger.info(f"Loaded fixture from {path}")
        return cls.from_fixture(data)

    def fail_next(self, method: str, error: Exception) -> None:
        """Make the next call to ``method`` raise ``error``."""
        self._failures[method].append(error)

    def _enter(self, method: str) -> None:
        self.calls.append(method)
        if self._failures[method]:
            raise self._failures[method].popleft()

    def _require_cycle(self, cycle_id: str) -> TreatmentCycle:
        cycle = self.cycles.get(cycle_id)
        if cycle is None:
            raise RecordNotFound(f"Cycle {cycle_id} not found", endpoint="treatment-cycles")
        return cycle

    def _store(self, cycle: TreatmentCycle) -> TreatmentCycle:
        cycle = replace(cycle, row_version=_bump_version(cycle.row_version))
        self.cycles[cycle.id] = cycle
        return cycle

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_treatment(self, treatment_id: str) -> Treatment:
        with self._lock:
            self._enter("get_treatment")
            treatment = self.treatments.get(treatment_id)
            if treatment is None:
                raise RecordNotFound(f"Treatment {treatment_id} not found", endpoint="treatment")
            return treatment

    def list_cycles(self, treatment_id: str) -> List[TreatmentCycle]:
        with self._lock:
            self._enter("list_cycles")
            return [c for c in self.cycles.values() if c.treatment_id == treatment_id]

    def get_cycle(self, cycle_id: str) -> TreatmentCycle:
        with self._lock:
            self._enter("get_cycle")
            return self._require_cycle(cycle_id)

    def get_current_step_index(
        self,
        treatment_id: str,
        protocol: TreatmentType,
    ) -> Optional[int]:
        with self._lock:
            self._enter("get_current_step_index")
            return self.current_steps.get(treatment_id)

    def get_latest_agreement(self, treatment_id: str) -> Optional[Agreement]:
        with self._lock:
            self._enter("get_latest_agreement")
            matching = [a for a in self.agreements if a.treatment_id == treatment_id]
            return matching[-1] if matching else None

    def list_samples(self, patient_id: str, sample_type: SampleType) -> List[LabSample]:
        with self._lock:
            self._enter("list_samples")
            return [
                s for s in self.samples
                if s.patient_id == patient_id and s.sample_type is sample_type
            ]

    def get_partner_patient_id(self, patient_id: str) -> Optional[str]:
        with self._lock:
            self._enter("get_partner_patient_id")
            for relationship in self.relationships:
                if patient_id in (relationship.patient1_id, relationship.patient2_id) and relationship.is_partnership:
                    return relationship.partner_of(patient_id)
            return None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def update_cycle(self, cycle_id: str, changes: Dict[str, Any]) -> TreatmentCycle:
        with self._lock:
            self._enter("update_cycle")
            current = self._require_cycle(cycle_id)
            merged = {**current.to_dict(), **changes}
            return self._store(TreatmentCycle.from_dict(merged))

    def start_cycle(self, cycle_id: str, start_date: datetime) -> TreatmentCycle:
        with self._lock:
            self._enter("start_cycle")
            current = self._require_cycle(cycle_id)
            return self._store(current.with_status(CycleStatus.IN_PROGRESS, start_date=start_date))

    def complete_cycle(
        self,
        cycle_id: str,
        end_date: datetime,
        outcome: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> TreatmentCycle:
        with self._lock:
            self._enter("complete_cycle")
            current = self._require_cycle(cycle_id)
            return self._store(current.with_status(
                CycleStatus.COMPLETED,
                end_date=end_date,
                outcome=outcome if outcome is not None else current.outcome,
                notes=notes if notes is not None else current.notes,
            ))

    def cancel_cycle(
        self,
        cycle_id: str,
        reason: str,
        notes: Optional[str] = None,
    ) -> TreatmentCycle:
        with self._lock:
            self._enter("cancel_cycle")
            current = self._require_cycle(cycle_id)
            return self._store(current.with_status(
                CycleStatus.CANCELLED,
                notes=notes if notes is not None else reason,
            ))
