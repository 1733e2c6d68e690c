"""Shared fixtures for treatment_workflow tests."""

from datetime import datetime, timezone

import pytest

from treatment_workflow.client.memory_source import InMemoryRecordSource
from treatment_workflow.config import Settings
from treatment_workflow.models.enums import CycleStatus, SampleType, TreatmentType
from treatment_workflow.models.records import (
    Agreement,
    LabSample,
    Relationship,
    Treatment,
    TreatmentCycle,
)


FIXED_NOW = datetime(2026, 3, 14, 9, 30, tzinfo=timezone.utc)


def make_cycle(
    cycle_id: str,
    number: int,
    status: CycleStatus = CycleStatus.PLANNED,
    treatment_id: str = "t-ivf",
    **kwargs,
) -> TreatmentCycle:
    """Build a cycle with sensible defaults."""
    kwargs.setdefault("patient_id", "p-female")
    return TreatmentCycle(
        id=cycle_id,
        treatment_id=treatment_id,
        cycle_number=number,
        status=status,
        **kwargs,
    )


def make_sample(sample_id: str, patient_id: str, sample_type: SampleType, status: str) -> LabSample:
    return LabSample(id=sample_id, patient_id=patient_id, sample_type=sample_type, status=status)


@pytest.fixture
def settings():
    """Settings with retries that do not sleep."""
    return Settings(
        api_retry_max_attempts=3,
        api_retry_base_delay=0,
        api_retry_max_delay=0,
        enforce_single_active_cycle=True,
        catalog_version="v2",
    )


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
def ivf_treatment():
    return Treatment(id="t-ivf", patient_id="p-female", treatment_type=TreatmentType.IVF)


@pytest.fixture
def iui_treatment():
    return Treatment(id="t-iui", patient_id="p-female", treatment_type=TreatmentType.IUI)


@pytest.fixture
def signed_agreement():
    return Agreement(id="a-1", treatment_id="t-ivf", signed_by_doctor=True, signed_by_patient=True)


@pytest.fixture
def ivf_cycles():
    """Three IVF cycles: stimulation done, OPU running, fertilization planned."""
    return [
        make_cycle("c-1", 1, CycleStatus.COMPLETED, step_type="IVF_STIMULATIONSTART",
                   cycle_name="Controlled Ovarian Stimulation"),
        make_cycle("c-2", 2, CycleStatus.IN_PROGRESS, step_type="IVF_OPU",
                   cycle_name="Oocyte Retrieval", row_version="1"),
        make_cycle("c-3", 3, CycleStatus.PLANNED, step_type="IVF_FERTILIZATION",
                   cycle_name="Fertilization"),
    ]


@pytest.fixture
def ivf_source(ivf_treatment, signed_agreement, ivf_cycles):
    """In-memory source holding a consented IVF treatment with a registered partner."""
    return InMemoryRecordSource(
        treatments=[ivf_treatment],
        cycles=ivf_cycles,
        agreements=[signed_agreement],
        relationships=[
            Relationship(id="r-1", patient1_id="p-female", patient2_id="p-male",
                         relationship_type="Married"),
        ],
    )
