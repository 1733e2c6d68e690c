"""
Unit tests for the step timeline.

Run with: python -m pytest treatment_workflow/tests/test_timeline.py -v
"""

import pytest
from conftest import make_cycle

from treatment_workflow.models.enums import CycleStatus, TreatmentType
from treatment_workflow.models.steps import StepResolution, StepState
from treatment_workflow.resolution.current_step import resolve_current_step
from treatment_workflow.resolution.timeline import build_timeline


class TestBuildTimeline:
    """Tests for build_timeline."""

    def test_ivf_scenario(self, ivf_cycles):
        """Test states for stimulation done, OPU current."""
        resolution = resolve_current_step(TreatmentType.IVF, ivf_cycles)
        timeline = build_timeline(resolution, TreatmentType.IVF)

        states = {e.step.id: e.state for e in timeline.entries}
        assert states["step0_pre_cycle_prep"] is StepState.PAST
        assert states["step1_stimulation"] is StepState.COMPLETED
        assert states["step2_monitoring"] is StepState.PAST
        assert states["step4_opu"] is StepState.CURRENT
        assert states["step7_embryo_transfer"] is StepState.PENDING
        # one completed plus the current step, of eight
        assert timeline.progress_percentage == pytest.approx(25.0)

    def test_no_current_step(self):
        """Test progress without a current step counts completed steps only."""
        cycles = [
            make_cycle("a", 1, CycleStatus.COMPLETED, treatment_id="t-iui", step_type="IUI_BETAHCG"),
        ]
        resolution = resolve_current_step(TreatmentType.IUI, cycles)
        assert resolution.current_step is None
        timeline = build_timeline(resolution, TreatmentType.IUI)
        assert timeline.progress_percentage == pytest.approx(100 / 7)
        assert len(timeline.by_state(StepState.PENDING)) == 6

    def test_progress_capped(self):
        """Test progress never exceeds 100."""
        resolution = resolve_current_step(TreatmentType.IUI, [], authoritative_index=6)
        timeline = build_timeline(resolution, TreatmentType.IUI)
        assert timeline.progress_percentage == pytest.approx(100 / 7)

        steps = [e.step for e in timeline.entries]
        crowded = StepResolution(current_step=steps[-1], completed_steps=frozenset(steps[:-1]))
        assert build_timeline(crowded, TreatmentType.IUI).progress_percentage == 100.0

    def test_other_protocol(self):
        """Test treatments without a catalog have an empty timeline."""
        resolution = resolve_current_step(TreatmentType.OTHER, [])
        timeline = build_timeline(resolution, TreatmentType.OTHER)
        assert timeline.entries == ()
        assert timeline.progress_percentage == 0.0

    def test_to_dict(self, ivf_cycles):
        """Test serialization uses camelCase keys."""
        resolution = resolve_current_step(TreatmentType.IVF, ivf_cycles)
        data = build_timeline(resolution, TreatmentType.IVF).to_dict()
        assert data["progressPercentage"] == 25.0
        assert data["entries"][4] == {
            "stepId": "step4_opu",
            "label": "Oocyte Pick-Up (OPU)",
            "ordinal": 4,
            "state": "current",
        }
