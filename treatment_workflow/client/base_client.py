"""
Clinic Record Source - Abstract interface to the clinic backend.

This module defines the abstract base class for record sources that read
treatments, cycles, agreements and lab samples, and that apply cycle
status mutations.

Implementations:
- REST (clinic backend over HTTP)
- In-memory (fixtures, tests, offline tooling)
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional
import logging

from ..models.enums import SampleType, TreatmentType
from ..models.records import Agreement, LabSample, Treatment, TreatmentCycle

logger = logging.getLogger(__name__)


class RecordSourceError(Exception):
    """A record source request failed."""

    def __init__(
        self,
        message: str,
        endpoint: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.endpoint = endpoint
        self.status_code = status_code


class RecordNotFound(RecordSourceError):
    """The requested record does not exist."""


class TransientFetchFailure(RecordSourceError):
    """Network error, timeout or 5xx that persisted through retries."""


class ClinicRecordSource(ABC):
    """
    Abstract base class for clinic record sources.

    Read methods return parsed records. Write methods return the cycle as
    stored after the mutation.
    """

    def __init__(self):
        self._connected = False

    @property
    def is_connected(self) -> bool:
        """Check if the source is connected."""
        return self._connected

    def connect(self) -> bool:
        """
        Prepare the source for use.

        Returns:
            True if the source is ready.
        """
        self._connected = True
        return True

    def disconnect(self) -> None:
        """Release resources held by the source."""
        self._connected = False

    def __enter__(self) -> "ClinicRecordSource":
        self.connect()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.disconnect()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @abstractmethod
    def get_treatment(self, treatment_id: str) -> Treatment:
        """
        Get a treatment by id.

        Raises:
            RecordNotFound: If the treatment does not exist.
        """
        pass

    @abstractmethod
    def list_cycles(self, treatment_id: str) -> List[TreatmentCycle]:
        """
        List every cycle of a treatment (all pages).

        Returns:
            Cycles in the order the source holds them.
        """
        pass

    @abstractmethod
    def get_cycle(self, cycle_id: str) -> TreatmentCycle:
        """
        Get a single cycle as currently stored.

        Raises:
            RecordNotFound: If the cycle does not exist.
        """
        pass

    @abstractmethod
    def get_current_step_index(
        self,
        treatment_id: str,
        protocol: TreatmentType,
    ) -> Optional[int]:
        """
        Get the authoritative zero-based step index for a treatment.

        Returns:
            The index, or None if the backend has none.
        """
        pass

    @abstractmethod
    def get_latest_agreement(self, treatment_id: str) -> Optional[Agreement]:
        """Get the most recent consent agreement, if any."""
        pass

    @abstractmethod
    def list_samples(self, patient_id: str, sample_type: SampleType) -> List[LabSample]:
        """List lab samples of one type for a patient."""
        pass

    @abstractmethod
    def get_partner_patient_id(self, patient_id: str) -> Optional[str]:
        """
        Resolve the patient's active partner (Married/Unmarried).

        Returns:
            Partner patient id, or None.
        """
        pass

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    @abstractmethod
    def update_cycle(self, cycle_id: str, changes: Dict[str, Any]) -> TreatmentCycle:
        """Apply a partial update (camelCase fields) to a cycle."""
        pass

    @abstractmethod
    def start_cycle(self, cycle_id: str, start_date: datetime) -> TreatmentCycle:
        pass

    @abstractmethod
    def complete_cycle(
        self,
        cycle_id: str,
        end_date: datetime,
        outcome: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> TreatmentCycle:
        pass

    @abstractmethod
    def cancel_cycle(
        self,
        cycle_id: str,
        reason: str,
        notes: Optional[str] = None,
    ) -> TreatmentCycle:
        pass
