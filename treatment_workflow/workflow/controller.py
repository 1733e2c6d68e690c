"""
Workflow Progression Controller.

Applies the irreversible cycle transitions (start, complete, cancel,
advance step) against a record source. Every mutation re-reads the cycle
first and checks its preconditions on the fresh copy; the caller's copy is
only used for its id and row version.

Completing a cycle starts the next cycle in progression order when that
cycle is still Planned or Scheduled. If the follow-up start fails the
completion still stands; the failure is returned as a warning.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from .. import catalog
from ..client.base_client import ClinicRecordSource, RecordSourceError
from ..config import Settings, get_settings
from ..models.enums import (
    CycleStatus,
    SampleType,
    STARTABLE_STATUSES,
    TreatmentType,
)
from ..models.records import Treatment, TreatmentCycle
from ..resolution.active_cycle import next_in_order
from ..resolution.step_resolver import from_cycle, infer_treatment_type
from ..time_utils import now_utc
from .errors import (
    AutoAdvanceFailure,
    ConcurrentActiveCycle,
    InvalidTransition,
    PreconditionViolation,
    StaleCycleVersion,
)
from .gates import check_consent, check_samples, is_oocyte_retrieval_cycle

logger = logging.getLogger(__name__)


@dataclass
class TransitionResult:
    """Outcome of a successful transition."""
    cycle: TreatmentCycle
    previous_status: CycleStatus
    auto_started: Optional[TreatmentCycle] = None
    warnings: List[AutoAdvanceFailure] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cycle": self.cycle.to_dict(),
            "previousStatus": self.previous_status.value,
            "autoStarted": self.auto_started.to_dict() if self.auto_started else None,
            "warnings": [w.to_dict() for w in self.warnings],
        }


class WorkflowController:
    """
    Drives cycle lifecycle transitions.

    Usage:
        controller = WorkflowController(source)
        result = controller.complete(cycle, outcome="Retrieved 12 oocytes")
        if result.warnings:
            ...  # next cycle was not started
    """

    def __init__(
        self,
        source: ClinicRecordSource,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = now_utc,
    ):
        self.source = source
        self.settings = settings or get_settings()
        self.clock = clock

    # ------------------------------------------------------------------
    # Shared checks
    # ------------------------------------------------------------------

    def _refetch(self, cycle: TreatmentCycle) -> TreatmentCycle:
        current = self.source.get_cycle(cycle.id)
        if (
            cycle.row_version is not None
            and current.row_version is not None
            and cycle.row_version != current.row_version
        ):
            raise StaleCycleVersion(
                f"Cycle {cycle.id} was modified by someone else; reload and try again",
                cycle_id=cycle.id,
                details={"expected": cycle.row_version, "actual": current.row_version},
            )
        return current

    def _prepare(self, cycle: TreatmentCycle) -> Tuple[TreatmentCycle, Treatment]:
        """Re-read the cycle and its treatment, then apply the consent gate."""
        current = self._refetch(cycle)
        treatment = self.source.get_treatment(current.treatment_id)
        check_consent(treatment, self.source.get_latest_agreement(treatment.id), cycle_id=current.id)
        return current, treatment

    @staticmethod
    def _require_status(cycle: TreatmentCycle, allowed, action: str) -> None:
        if cycle.status not in allowed:
            raise InvalidTransition(
                f"Cannot {action} cycle {cycle.id} while it is {cycle.status.value}",
                cycle_id=cycle.id,
                details={"status": cycle.status.value},
            )

    def _check_sample_gate(self, cycle: TreatmentCycle, treatment: Treatment) -> None:
        protocol = infer_treatment_type(cycle, treatment)
        if not is_oocyte_retrieval_cycle(cycle, protocol):
            return

        patient_id = cycle.patient_id or treatment.patient_id
        if not patient_id:
            logger.warning(f"Cycle {cycle.id} has no patient, skipping sample gate")
            return

        # Sperm belongs to the partner when the couple is registered
        sperm_owner = self.source.get_partner_patient_id(patient_id) or patient_id
        sperm = self.source.list_samples(sperm_owner, SampleType.SPERM)
        oocytes = self.source.list_samples(patient_id, SampleType.OOCYTE)
        check_samples(sperm, oocytes, cycle_id=cycle.id)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def start(self, cycle: TreatmentCycle) -> TransitionResult:
        """
        Start a Planned or Scheduled cycle.

        Raises:
            InvalidTransition: Cycle is not Planned/Scheduled.
            ConcurrentActiveCycle: Another cycle is in progress.
            ConsentRequired: Agreement missing or unsigned.
            StaleCycleVersion: Caller's copy is out of date.
        """
        current, treatment = self._prepare(cycle)
        self._require_status(current, STARTABLE_STATUSES, "start")

        if self.settings.enforce_single_active_cycle:
            running = [
                c for c in self.source.list_cycles(treatment.id)
                if c.id != current.id and c.status is CycleStatus.IN_PROGRESS
            ]
            if running:
                raise ConcurrentActiveCycle(
                    f"Cycle {running[0].id} of treatment {treatment.id} is already in progress",
                    cycle_id=current.id,
                    details={"inProgress": [c.id for c in running]},
                )

        updated = self.source.start_cycle(current.id, self.clock())
        logger.info(f"Started cycle {current.id} ({current.cycle_name or current.cycle_number})")
        return TransitionResult(cycle=updated, previous_status=current.status)

    def complete(
        self,
        cycle: TreatmentCycle,
        outcome: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> TransitionResult:
        """
        Complete an in-progress cycle and start the next one.

        Args:
            cycle: Cycle to complete.
            outcome: Clinical outcome to record.
            notes: Free-text notes.

        Returns:
            TransitionResult; ``auto_started`` holds the next cycle when it
            was started, ``warnings`` an AutoAdvanceFailure when it could
            not be.

        Raises:
            InvalidTransition: Cycle is not InProgress.
            SampleCheckPending: Oocyte-retrieval samples not quality-checked.
            ConsentRequired: Agreement missing or unsigned.
            StaleCycleVersion: Caller's copy is out of date.
        """
        current, treatment = self._prepare(cycle)
        self._require_status(current, {CycleStatus.IN_PROGRESS}, "complete")
        self._check_sample_gate(current, treatment)

        updated = self.source.complete_cycle(current.id, self.clock(), outcome=outcome, notes=notes)
        logger.info(f"Completed cycle {current.id}")

        result = TransitionResult(cycle=updated, previous_status=current.status)
        self._auto_advance(updated, result)
        return result

    def _auto_advance(self, completed: TreatmentCycle, result: TransitionResult) -> None:
        next_cycle = None
        try:
            cycles = [
                completed if c.id == completed.id else c
                for c in self.source.list_cycles(completed.treatment_id)
            ]
            next_cycle = next_in_order(cycles, completed)
            if next_cycle is None:
                logger.info(f"Cycle {completed.id} was the last cycle of treatment {completed.treatment_id}")
                return
            if next_cycle.status not in STARTABLE_STATUSES:
                logger.debug(f"Next cycle {next_cycle.id} is {next_cycle.status.value}, not starting it")
                return
            result.auto_started = self.start(next_cycle).cycle
        except (PreconditionViolation, RecordSourceError) as e:
            reason = getattr(e, "reason", None) or str(e)
            logger.warning(
                f"Completed cycle {completed.id} but could not start the next cycle: {reason}"
            )
            result.warnings.append(AutoAdvanceFailure(
                completed_cycle_id=completed.id,
                next_cycle_id=next_cycle.id if next_cycle else "",
                reason=reason,
            ))

    def cancel(
        self,
        cycle: TreatmentCycle,
        reason: str,
        notes: Optional[str] = None,
    ) -> TransitionResult:
        """Cancel a cycle that is neither Completed nor already Cancelled."""
        current, _ = self._prepare(cycle)
        if current.status in (CycleStatus.COMPLETED, CycleStatus.CANCELLED):
            raise InvalidTransition(
                f"Cannot cancel cycle {current.id} while it is {current.status.value}",
                cycle_id=current.id,
                details={"status": current.status.value},
            )

        updated = self.source.cancel_cycle(current.id, reason, notes=notes)
        logger.info(f"Cancelled cycle {current.id}: {reason}")
        return TransitionResult(cycle=updated, previous_status=current.status)

    def advance_step(self, cycle: TreatmentCycle) -> TransitionResult:
        """
        Move an in-progress cycle's ``currentStep`` to the next catalog step.

        The step being left is appended to ``completedSteps``.

        Raises:
            InvalidTransition: Cycle is not InProgress, has no protocol, or
                is already at the last step.
        """
        current, treatment = self._prepare(cycle)
        self._require_status(current, {CycleStatus.IN_PROGRESS}, "advance")

        protocol = infer_treatment_type(current, treatment)
        version = self.settings.catalog_version
        if protocol not in (TreatmentType.IUI, TreatmentType.IVF):
            raise InvalidTransition(
                f"Cycle {current.id} has no step catalog to advance through",
                cycle_id=current.id,
            )

        step = (
            catalog.project_step(current.current_step, protocol, version)
            or from_cycle(current, protocol, version)
            or catalog.first_step(protocol, version)
        )
        following = catalog.next_step(step)
        if following is None:
            raise InvalidTransition(
                f"Cycle {current.id} is already at the last step ({step.id})",
                cycle_id=current.id,
                details={"currentStep": step.id},
            )

        completed = list(current.completed_steps)
        if step.id not in completed:
            completed.append(step.id)

        updated = self.source.update_cycle(current.id, {
            "currentStep": following.id,
            "completedSteps": completed,
        })
        logger.info(f"Advanced cycle {current.id} from {step.id} to {following.id}")
        return TransitionResult(cycle=updated, previous_status=current.status)
