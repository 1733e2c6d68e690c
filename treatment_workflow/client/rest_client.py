"""
REST Record Source - Read and mutate treatment records over the clinic API.

Responses may come wrapped in a ``{"data": ..., "metaData": {...}}``
envelope or bare; both are accepted. Reads are retried with exponential
backoff on transport errors (any requests exception) and 5xx responses.
Writes are sent once: a retried start/complete could apply twice.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import requests
from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..config import Settings, get_settings
from ..models.enums import SampleType, TreatmentType
from ..models.records import (
    Agreement,
    LabSample,
    Relationship,
    Treatment,
    TreatmentCycle,
)
from ..time_utils import format_datetime
from .base_client import (
    ClinicRecordSource,
    RecordNotFound,
    RecordSourceError,
    TransientFetchFailure,
)

logger = logging.getLogger(__name__)


CURRENT_STEP_PATHS = {
    TreatmentType.IUI: "treatment-iui/current-step/{treatment_id}",
    TreatmentType.IVF: "treatment-ivf/current-step/{treatment_id}",
}


def unwrap(payload: Any) -> Any:
    """Strip the ``data`` envelope if present."""
    if isinstance(payload, dict) and "data" in payload:
        return payload["data"]
    return payload


def as_list(payload: Any) -> List[Dict[str, Any]]:
    """Coerce a list payload (enveloped, bare, or ``items``-wrapped) to a list."""
    data = unwrap(payload)
    if data is None:
        return []
    if isinstance(data, dict):
        if "items" in data or "content" in data:
            data = data.get("items") or data.get("content") or []
        else:
            data = [data]
    if not isinstance(data, list):
        return []
    return [item for item in data if isinstance(item, dict)]


def total_pages(payload: Any) -> Optional[int]:
    if not isinstance(payload, dict):
        return None
    meta = payload.get("metaData") or payload.get("metadata") or {}
    pages = meta.get("totalPages")
    try:
        return int(pages) if pages is not None else None
    except (TypeError, ValueError):
        return None


class RestRecordSource(ClinicRecordSource):
    """
    Clinic REST API record source.

    Uses a pooled requests.Session with bearer authentication.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        auth_token: Optional[str] = None,
        settings: Optional[Settings] = None,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize REST source.

        Args:
            base_url: Clinic API base URL (default from settings).
            auth_token: Bearer token (default from settings).
            settings: Settings instance; get_settings() when omitted.
            session: Pre-built session, mainly for tests.
        """
        super().__init__()
        self.settings = settings or get_settings()
        self.base_url = (base_url or self.settings.clinic_api_base_url).rstrip("/")
        self.auth_token = auth_token if auth_token is not None else self.settings.clinic_api_token
        self.timeout = self.settings.api_timeout_seconds
        self._session = session

    def _get_headers(self) -> Dict[str, str]:
        """Get request headers including authentication."""
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        if self.auth_token:
            headers["Authorization"] = f"Bearer {self.auth_token}"
        return headers

    def connect(self) -> bool:
        """Create the HTTP session."""
        if self._session is None:
            self._session = requests.Session()
        self._session.headers.update(self._get_headers())
        self._connected = True
        logger.info(f"Connected to clinic API at {self.base_url}")
        return True

    def disconnect(self) -> None:
        """Close the HTTP session."""
        if self._session:
            self._session.close()
            self._session = None
        self._connected = False
        logger.info("Disconnected from clinic API")

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def _send(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        body: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        """Issue one request and map failures onto RecordSourceError types."""
        if not self._connected:
            self.connect()

        try:
            response = self._session.request(
                method,
                self._url(path),
                params=params,
                json=body,
                timeout=timeout or self.timeout,
            )
        except requests.RequestException as e:
            raise TransientFetchFailure(f"{method} {path} failed: {e}", endpoint=path) from e

        status = response.status_code
        if status >= 500:
            raise TransientFetchFailure(
                f"{method} {path} returned {status}", endpoint=path, status_code=status
            )
        if status == 404:
            raise RecordNotFound(f"{method} {path} not found", endpoint=path, status_code=status)
        if status >= 400:
            raise RecordSourceError(
                f"{method} {path} returned {status}: {response.text[:200]}",
                endpoint=path,
                status_code=status,
            )

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise RecordSourceError(f"{method} {path} returned invalid JSON", endpoint=path) from e

    def _get(
        self,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        """GET with retries on transient failures."""
        retrying = Retrying(
            stop=stop_after_attempt(self.settings.api_retry_max_attempts),
            wait=wait_exponential(
                multiplier=self.settings.api_retry_base_delay,
                max=self.settings.api_retry_max_delay,
            ),
            retry=retry_if_exception_type(TransientFetchFailure),
            reraise=True,
            before_sleep=lambda retry_state: logger.warning(
                f"Retrying GET {path} (attempt {retry_state.attempt_number}/"
                f"{self.settings.api_retry_max_attempts}): {retry_state.outcome.exception()}"
            ),
        )
        for attempt in retrying:
            with attempt:
                return self._send("GET", path, params=params, timeout=timeout)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_treatment(self, treatment_id: str) -> Treatment:
        data = unwrap(self._get(f"treatment/{treatment_id}"))
        if not data:
            raise RecordNotFound(f"Treatment {treatment_id} not found", endpoint="treatment")
        return Treatment.from_dict(data)

    def list_cycles(self, treatment_id: str) -> List[TreatmentCycle]:
        """Follow every page of the cycle listing."""
        cycles: List[TreatmentCycle] = []
        page = 1
        while True:
            payload = self._get(
                "treatment-cycles",
                params={"treatmentId": treatment_id, "page": page, "size": self.settings.cycle_page_size},
            )
            items = as_list(payload)
            cycles.extend(TreatmentCycle.from_dict(item) for item in items)

            pages = total_pages(payload)
            if pages is None or page >= pages or not items:
                break
            page += 1

        logger.debug(f"Fetched {len(cycles)} cycles for treatment {treatment_id} ({page} page(s))")
        return cycles

    def get_cycle(self, cycle_id: str) -> TreatmentCycle:
        data = unwrap(self._get(f"treatment-cycles/{cycle_id}"))
        if not data:
            raise RecordNotFound(f"Cycle {cycle_id} not found", endpoint="treatment-cycles")
        return TreatmentCycle.from_dict(data)

    def get_current_step_index(
        self,
        treatment_id: str,
        protocol: TreatmentType,
    ) -> Optional[int]:
        path = CURRENT_STEP_PATHS.get(protocol)
        if path is None:
            return None
        data = unwrap(self._get(
            path.format(treatment_id=treatment_id),
            timeout=self.settings.current_step_timeout_seconds,
        ))
        if isinstance(data, dict):
            data = data.get("currentStep", data.get("step"))
        if data is None or isinstance(data, bool):
            return None
        try:
            return int(data)
        except (TypeError, ValueError):
            logger.warning(f"Ignoring non-numeric current step {data!r} for treatment {treatment_id}")
            return None

    def get_latest_agreement(self, treatment_id: str) -> Optional[Agreement]:
        items = as_list(self._get("agreements", params={"treatmentId": treatment_id, "size": 1}))
        return Agreement.from_dict(items[0]) if items else None

    def list_samples(self, patient_id: str, sample_type: SampleType) -> List[LabSample]:
        items = as_list(self._get(
            "samples",
            params={"sampleType": sample_type.value, "patientId": patient_id},
        ))
        return [LabSample.from_dict(item) for item in items]

    def get_partner_patient_id(self, patient_id: str) -> Optional[str]:
        items = as_list(self._get("relationships", params={"patientId": patient_id}))
        for relationship in (Relationship.from_dict(item) for item in items):
            if relationship.is_partnership:
                return relationship.partner_of(patient_id)
        return None

    # ------------------------------------------------------------------
    # Writes (not retried)
    # ------------------------------------------------------------------

    def _write(self, method: str, path: str, body: Dict[str, Any]) -> TreatmentCycle:
        data = unwrap(self._send(method, path, body=body))
        if not data:
            # Some endpoints acknowledge without echoing the record
            cycle_id = path.split("/")[1]
            return self.get_cycle(cycle_id)
        return TreatmentCycle.from_dict(data)

    def update_cycle(self, cycle_id: str, changes: Dict[str, Any]) -> TreatmentCycle:
        logger.info(f"Updating cycle {cycle_id}: {sorted(changes)}")
        return self._write("PUT", f"treatment-cycles/{cycle_id}", changes)

    def start_cycle(self, cycle_id: str, start_date: datetime) -> TreatmentCycle:
        logger.info(f"Starting cycle {cycle_id}")
        return self._write(
            "POST",
            f"treatment-cycles/{cycle_id}/start",
            {"startDate": format_datetime(start_date)},
        )

    def complete_cycle(
        self,
        cycle_id: str,
        end_date: datetime,
        outcome: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> TreatmentCycle:
        logger.info(f"Completing cycle {cycle_id}")
        body: Dict[str, Any] = {"endDate": format_datetime(end_date)}
        if outcome is not None:
            body["outcome"] = outcome
        if notes is not None:
            body["notes"] = notes
        return self._write("POST", f"treatment-cycles/{cycle_id}/complete", body)

    def cancel_cycle(
        self,
        cycle_id: str,
        reason: str,
        notes: Optional[str] = None,
    ) -> TreatmentCycle:
        logger.info(f"Cancelling cycle {cycle_id}: {reason}")
        return self._write(
            "POST",
            f"treatment-cycles/{cycle_id}/cancel",
            {"reason": reason, "notes": notes},
        )
