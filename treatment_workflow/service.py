"""
Treatment Progress Service.

Fetches everything current-step resolution needs for one treatment and
resolves it:

1. Reads the treatment, its cycles and the authoritative step index
   concurrently on a thread pool.
2. Degrades on transient read failures: a failed read is logged as a
   WARNING naming the endpoint and treated as empty.
3. Resolves once all reads have returned.

Several requests for the same treatment may overlap (e.g. a refresh fired
while the previous one is still loading). Each request takes a generation
number; a response whose generation has been superseded is discarded and
``get_progress`` returns None for it.

Usage:
    from treatment_workflow.service import TreatmentProgressService

    with TreatmentProgressService(source) as service:
        progress = service.get_progress("t-1")
        print(progress.resolution.current_step)
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, TypeVar

from .client.base_client import ClinicRecordSource, TransientFetchFailure
from .config import Settings, get_settings
from .models.enums import TreatmentType
from .models.records import Treatment, TreatmentCycle
from .models.steps import StepResolution, Timeline
from .resolution.current_step import resolve_current_step
from .resolution.step_resolver import infer_treatment_type
from .resolution.timeline import build_timeline

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class TreatmentProgress:
    """Resolved progress of one treatment."""
    treatment_id: str
    treatment: Optional[Treatment]
    protocol: Optional[TreatmentType]
    cycles: List[TreatmentCycle]
    authoritative_index: Optional[int]
    resolution: StepResolution
    timeline: Timeline
    degraded_reads: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "treatmentId": self.treatment_id,
            "protocol": self.protocol.value if self.protocol else None,
            "cycleCount": len(self.cycles),
            "authoritativeIndex": self.authoritative_index,
            "resolution": self.resolution.to_dict(),
            "timeline": self.timeline.to_dict(),
            "degradedReads": list(self.degraded_reads),
        }


class TreatmentProgressService:
    """Fetch-and-resolve front end over a ClinicRecordSource."""

    def __init__(
        self,
        source: ClinicRecordSource,
        settings: Optional[Settings] = None,
        max_workers: int = 3,
    ):
        self.source = source
        self.settings = settings or get_settings()
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="progress")
        self._lock = threading.Lock()
        self._generations: Dict[str, int] = {}

    def close(self) -> None:
        self._executor.shutdown(wait=True)

    def __enter__(self) -> "TreatmentProgressService":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Stale-response guard
    # ------------------------------------------------------------------

    def _begin(self, treatment_id: str) -> int:
        with self._lock:
            generation = self._generations.get(treatment_id, 0) + 1
            self._generations[treatment_id] = generation
            return generation

    def is_current(self, treatment_id: str, generation: int) -> bool:
        with self._lock:
            return self._generations.get(treatment_id) == generation

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _collect(
        self,
        future: "Future[T]",
        endpoint: str,
        default: T,
        degraded: List[str],
        timeout: Optional[float] = None,
    ) -> T:
        """Wait for a read; transient failures and timeouts become ``default``."""
        try:
            return future.result(timeout=timeout)
        except FutureTimeout:
            logger.warning(f"Read {endpoint} timed out after {timeout}s, treating as absent")
            future.cancel()
        except TransientFetchFailure as e:
            logger.warning(f"Read {endpoint} failed, treating as empty: {e}")
        degraded.append(endpoint)
        return default

    def _submit(self, fn: Callable[..., T], *args: Any) -> "Future[T]":
        return self._executor.submit(fn, *args)

    def get_progress(
        self,
        treatment_id: str,
        protocol: Optional[TreatmentType] = None,
    ) -> Optional[TreatmentProgress]:
        """
        Fetch and resolve a treatment's progress.

        Args:
            treatment_id: Treatment to resolve.
            protocol: Known protocol. When given, the step-index read runs
                alongside the others instead of after the treatment read.

        Returns:
            TreatmentProgress, or None when a newer request for the same
            treatment started before this one finished.

        Raises:
            RecordNotFound: The treatment does not exist.
        """
        generation = self._begin(treatment_id)
        degraded: List[str] = []

        treatment_future = self._submit(self.source.get_treatment, treatment_id)
        cycles_future = self._submit(self.source.list_cycles, treatment_id)
        index_future = None
        if protocol is not None:
            index_future = self._submit(self.source.get_current_step_index, treatment_id, protocol)

        treatment = self._collect(treatment_future, "treatment", None, degraded)
        cycles = self._collect(cycles_future, "treatment-cycles", [], degraded)

        if protocol is None:
            protocol = infer_treatment_type(cycles[0] if cycles else None, treatment)
            if protocol is None:
                logger.info(f"Treatment {treatment_id} has no recognizable protocol")
        if index_future is None and protocol in (TreatmentType.IUI, TreatmentType.IVF):
            index_future = self._submit(self.source.get_current_step_index, treatment_id, protocol)

        authoritative_index = None
        if index_future is not None:
            authoritative_index = self._collect(
                index_future,
                "current-step",
                None,
                degraded,
                timeout=self.settings.current_step_timeout_seconds,
            )

        if not self.is_current(treatment_id, generation):
            logger.info(f"Discarding superseded progress response for treatment {treatment_id}")
            return None

        version = self.settings.catalog_version
        resolution = resolve_current_step(protocol, cycles, authoritative_index, version)
        timeline = build_timeline(resolution, protocol, version)

        logger.debug(
            f"Treatment {treatment_id}: current={resolution.to_dict()['currentStep']} "
            f"via {resolution.source}, progress={timeline.progress_percentage:.0f}%"
        )
        return TreatmentProgress(
            treatment_id=treatment_id,
            treatment=treatment,
            protocol=protocol,
            cycles=list(cycles),
            authoritative_index=authoritative_index,
            resolution=resolution,
            timeline=timeline,
            degraded_reads=degraded,
        )
