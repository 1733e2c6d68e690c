"""
Unit tests for current-step resolution.

Run with: python -m pytest treatment_workflow/tests/test_current_step.py -v
"""

import itertools

import pytest
from conftest import make_cycle

from treatment_workflow import catalog
from treatment_workflow.models.enums import CatalogVersion, CycleStatus, TreatmentType
from treatment_workflow.resolution.current_step import (
    ACTIVE_CYCLE_STRATEGIES,
    NO_ACTIVE_CYCLE_STRATEGIES,
    ResolutionContext,
    collect_completed_steps,
    configure_cache,
    cache_info,
    resolve_current_step,
    run_strategies,
)
from treatment_workflow.resolution.timeline import build_timeline


IUI = TreatmentType.IUI
IVF = TreatmentType.IVF


def step_ids(steps):
    return {s.id for s in steps}


class TestScenarios:
    """End-to-end resolution scenarios."""

    def test_ivf_three_cycles(self, ivf_cycles):
        """Test stimulation done, OPU running, fertilization planned."""
        result = resolve_current_step(IVF, ivf_cycles)

        assert result.active_cycle.id == "c-2"
        assert result.current_step.id == "step4_opu"
        assert step_ids(result.completed_steps) == {"step1_stimulation"}
        assert result.next_step.id == "step5_fertilization"
        assert result.source == "active_step_type"

    def test_iui_index_without_cycles(self):
        """Test the authoritative index alone when there are no cycles."""
        result = resolve_current_step(IUI, [], authoritative_index=2)

        assert result.current_step.id == "step2_follicle_monitoring"
        assert result.completed_steps == frozenset()
        assert result.active_cycle is None
        assert result.source == "authoritative_index"

    def test_nothing_known_starts_at_first_step(self):
        """Test an empty treatment starts at pre-cycle preparation."""
        result = resolve_current_step(IVF, [])
        assert result.current_step.id == "step0_pre_cycle_prep"
        assert result.next_step.id == "step1_stimulation"

    def test_all_done(self):
        """Test no current step once the last step is completed."""
        cycles = [
            make_cycle(f"c-{i}", i + 1, CycleStatus.COMPLETED, treatment_id="t-iui", step_type=code)
            for i, code in enumerate([
                "IUI_PRECYCLEPREPARATION", "IUI_DAY2_3_ASSESSMENT", "IUI_DAY7_10_FOLLICLE",
                "IUI_DAY10_12_TRIGGER", "IUI_PROCEDURE", "IUI_POSTIUI", "IUI_BETAHCG",
            ])
        ]
        result = resolve_current_step(IUI, cycles)
        assert result.current_step is None
        assert result.next_step is None
        assert len(result.completed_steps) == 7
        assert result.source == "none"

    def test_step_after_highest_completed(self):
        """Test gaps do not pull the current step backwards."""
        cycles = [
            make_cycle("a", 1, CycleStatus.COMPLETED, step_type="IVF_PRECYCLE"),
            make_cycle("b", 2, CycleStatus.COMPLETED, step_type="IVF_TRIGGER"),
        ]
        result = resolve_current_step(IVF, cycles)
        assert result.current_step.id == "step4_opu"
        assert result.source == "progress_from_completed"


class TestTreatmentPlanCycles:
    """Treatments whose cycles were created from a treatment plan."""

    IVF_PLAN = [
        ("Initial Medical Examination", "IVF_PreCyclePreparation"),
        ("Ovarian Stimulation", "IVF_StimulationStart"),
        ("Oocyte Retrieval and Sperm Collection", "IVF_OPU"),
        ("In Vitro Fertilization", "IVF_Fertilization"),
        ("Embryo Transfer", "IVF_EmbryoTransfer"),
        ("Post-Transfer Follow-Up", "IVF_BetaHCGTest"),
    ]
    IUI_PLAN = [
        ("Initial Medical Examination", "IUI_PreCyclePreparation"),
        ("Ovarian Stimulation", "IUI_Day7_10_FollicleMonitoring"),
        ("Sperm Collection and Intrauterine Insemination", "IUI_Procedure"),
        ("Post-Insemination Follow-Up", "IUI_PostIUI"),
    ]

    @staticmethod
    def plan_cycles(plan, active_number, **kwargs):
        cycles = []
        for number, (name, code) in enumerate(plan, start=1):
            if number < active_number:
                status = CycleStatus.COMPLETED
            elif number == active_number:
                status = CycleStatus.IN_PROGRESS
            else:
                status = CycleStatus.PLANNED
            cycles.append(make_cycle(f"c-{number}", number, status, step_type=code, cycle_name=name, **kwargs))
        return cycles

    def test_ivf_final_cycle(self):
        """Test the follow-up cycle is current once embryo transfer is done."""
        cycles = self.plan_cycles(self.IVF_PLAN, active_number=6)
        result = resolve_current_step(IVF, cycles, version="plan")

        assert result.current_step.id == "step6_beta_hcg"
        assert result.source == "active_step_type"
        assert result.next_step is None
        assert "step7_embryo_transfer" in step_ids(result.completed_steps)
        assert len(result.completed_steps) == 5
        assert build_timeline(result, IVF, "plan").progress_percentage == pytest.approx(100.0)

    def test_ivf_final_cycle_by_name(self):
        """Test the follow-up cycle name alone does not fall back to embryo transfer."""
        cycles = self.plan_cycles([(name, None) for name, _ in self.IVF_PLAN], active_number=6)
        result = resolve_current_step(IVF, cycles, version="plan")

        assert result.current_step.id == "step6_beta_hcg"
        assert result.source == "active_cycle_name"

    def test_iui_final_cycle(self):
        """Test the IUI follow-up cycle is current after insemination."""
        cycles = self.plan_cycles(self.IUI_PLAN, active_number=4, treatment_id="t-iui")
        result = resolve_current_step(IUI, cycles, version="plan")

        assert result.current_step.id == "step5_post_iui"
        assert result.next_step is None
        assert build_timeline(result, IUI, "plan").progress_percentage == pytest.approx(100.0)

    def test_iui_final_cycle_in_v2(self):
        """Test the IUI plan cycles resolve in the fine-grained catalog too."""
        cycles = self.plan_cycles(self.IUI_PLAN, active_number=4, treatment_id="t-iui")
        result = resolve_current_step(IUI, cycles)

        assert result.current_step.id == "step5_post_iui"
        assert result.next_step.id == "step6_beta_hcg"

    @pytest.mark.parametrize("active_number,expected", [
        (1, "step0_pre_cycle_prep"),
        (2, "step1_stimulation"),
        (3, "step4_opu"),
        (4, "step5_fertilization"),
        (5, "step7_embryo_transfer"),
        (6, "step6_beta_hcg"),
    ])
    def test_ivf_each_cycle(self, active_number, expected):
        """Test every IVF plan cycle resolves to its own step while it runs."""
        cycles = self.plan_cycles(self.IVF_PLAN, active_number=active_number)
        assert resolve_current_step(IVF, cycles, version="plan").current_step.id == expected

    def test_plan_index_without_cycles(self):
        """Test the authoritative index maps into the plan catalog."""
        assert resolve_current_step(IVF, [], authoritative_index=2, version="plan").current_step.id == "step4_opu"
        assert resolve_current_step(IVF, [], authoritative_index=5, version="plan").current_step.id == "step6_beta_hcg"

    def test_all_plan_cycles_done(self):
        """Test a finished plan has no current step and full progress."""
        cycles = self.plan_cycles(self.IVF_PLAN, active_number=7)
        result = resolve_current_step(IVF, cycles, version="plan")

        assert result.current_step is None
        assert result.source == "none"
        assert build_timeline(result, IVF, "plan").progress_percentage == pytest.approx(100.0)


class TestPriority:
    """Tests for the active-cycle-first priority chain."""

    def test_legacy_current_step_first(self):
        """Test the active cycle's currentStep beats its code and the index."""
        cycles = [make_cycle("a", 1, CycleStatus.IN_PROGRESS,
                             current_step="step3_trigger", step_type="IVF_OPU")]
        result = resolve_current_step(IVF, cycles, authoritative_index=6)
        assert result.current_step.id == "step3_trigger"
        assert result.source == "legacy_current_step"

    def test_completed_legacy_step_is_skipped(self):
        """Test a currentStep already recorded complete falls through."""
        cycles = [make_cycle("a", 1, CycleStatus.IN_PROGRESS, current_step="step1_stimulation",
                             completed_steps=("step1_stimulation",), step_type="IVF_TRIGGER")]
        result = resolve_current_step(IVF, cycles)
        assert result.current_step.id == "step3_trigger"

    def test_name_when_no_code(self):
        """Test the active cycle's name when it has no code."""
        cycles = [make_cycle("a", 1, CycleStatus.IN_PROGRESS, cycle_name="Embryo Culture")]
        result = resolve_current_step(IVF, cycles, authoritative_index=1)
        assert result.current_step.id == "step6_embryo_culture"
        assert result.source == "active_cycle_name"

    def test_index_when_active_cycle_is_silent(self):
        """Test the index is used only when the active cycle says nothing."""
        cycles = [make_cycle("a", 1, CycleStatus.IN_PROGRESS, cycle_name="Visit")]
        result = resolve_current_step(IVF, cycles, authoritative_index=5)
        assert result.current_step.id == "step5_fertilization"
        assert result.source == "authoritative_index"

    def test_first_uncompleted_last_resort(self):
        """Test the lowest uncompleted step as the final fallback."""
        cycles = [
            make_cycle("a", 1, CycleStatus.COMPLETED, step_type="IVF_PRECYCLE"),
            make_cycle("b", 2, CycleStatus.PLANNED, cycle_name="Visit"),
        ]
        result = resolve_current_step(IVF, cycles)
        assert result.current_step.id == "step1_stimulation"
        assert result.source == "first_uncompleted"

    def test_index_out_of_range_ignored(self):
        """Test an out-of-range index falls through."""
        result = resolve_current_step(IUI, [], authoritative_index=99)
        assert result.current_step.id == "step0_pre_cycle_prep"


class TestInvariants:
    """Properties that hold for every resolution."""

    CASES = [
        [],
        [make_cycle("a", 1, CycleStatus.COMPLETED, step_type="IVF_OPU", current_step="step4_opu")],
        [make_cycle("a", 1, CycleStatus.IN_PROGRESS, step_type="IVF_OPU",
                    completed_steps=("step4_opu", "step3_trigger"))],
        [
            make_cycle("a", 1, CycleStatus.COMPLETED, step_type="IVF_EMBRYOTRANSFER"),
            make_cycle("b", 2, CycleStatus.CANCELLED, step_type="IVF_OPU"),
        ],
    ]

    @pytest.mark.parametrize("cycles", CASES)
    @pytest.mark.parametrize("index", [None, 0, 4, 7])
    def test_current_not_completed(self, cycles, index):
        """Test the current step never appears among the completed steps."""
        result = resolve_current_step(IVF, cycles, authoritative_index=index)
        assert result.current_step not in result.completed_steps

    @pytest.mark.parametrize("cycles", CASES)
    @pytest.mark.parametrize("index", [None, 0, 4, 7])
    def test_next_step_none_iff_last_or_none(self, cycles, index):
        """Test next_step is None exactly when current is last or absent."""
        result = resolve_current_step(IVF, cycles, authoritative_index=index)
        last = catalog.ordered_steps(IVF)[-1]
        expect_none = result.current_step is None or result.current_step == last
        assert (result.next_step is None) == expect_none

    def test_input_order_irrelevant(self, ivf_cycles):
        """Test the same cycles in any order resolve identically."""
        results = {resolve_current_step(IVF, list(p)) for p in itertools.permutations(ivf_cycles)}
        assert len(results) == 1

    def test_other_protocol(self, ivf_cycles):
        """Test treatments without a catalog resolve to nothing."""
        result = resolve_current_step(TreatmentType.OTHER, ivf_cycles)
        assert result.current_step is None
        assert result.completed_steps == frozenset()


class TestCompletedSteps:
    """Tests for collect_completed_steps."""

    def test_legacy_entries_unioned(self):
        """Test legacy completedSteps entries from any cycle are included."""
        cycles = [
            make_cycle("a", 1, CycleStatus.COMPLETED, step_type="IVF_COS"),
            make_cycle("b", 2, CycleStatus.IN_PROGRESS,
                       completed_steps=("step2_monitoring", "not_a_step")),
        ]
        assert step_ids(collect_completed_steps(cycles, IVF)) == {"step1_stimulation", "step2_monitoring"}

    def test_non_completed_cycles_contribute_no_step(self):
        """Test only Completed cycles contribute the step they represent."""
        cycles = [
            make_cycle("a", 1, CycleStatus.CANCELLED, step_type="IVF_COS"),
            make_cycle("b", 2, CycleStatus.FAILED, step_type="IVF_OPU"),
        ]
        assert collect_completed_steps(cycles, IVF) == frozenset()

    def test_v1_catalog(self):
        """Test completed steps in the legacy catalog."""
        cycles = [make_cycle("a", 1, CycleStatus.COMPLETED, step_type="IVF_MIDMONITORING")]
        assert step_ids(collect_completed_steps(cycles, IVF, "v1")) == {"stimulation"}


class TestStrategies:
    """Strategies are independently testable."""

    def _ctx(self, **kwargs):
        defaults = dict(
            protocol=IVF,
            version=CatalogVersion.V2,
            cycles=(),
            completed=frozenset(),
            active_cycle=None,
            authoritative_index=None,
        )
        defaults.update(kwargs)
        return ResolutionContext(**defaults)

    def test_chain_order(self):
        """Test the declared priority order."""
        assert [name for name, _ in ACTIVE_CYCLE_STRATEGIES] == [
            "legacy_current_step",
            "active_step_type",
            "active_cycle_name",
            "authoritative_index",
            "first_uncompleted",
        ]
        assert [name for name, _ in NO_ACTIVE_CYCLE_STRATEGIES] == [
            "authoritative_index",
            "progress_from_completed",
        ]

    def test_run_strategies_first_hit(self):
        """Test the first strategy returning a step wins."""
        opu = catalog.step_by_id(IVF, "step4_opu")
        strategies = [
            ("empty", lambda ctx: None),
            ("hit", lambda ctx: opu),
            ("never", lambda ctx: pytest.fail("evaluated past the first hit")),
        ]
        assert run_strategies(strategies, self._ctx()) == (opu, "hit")

    def test_run_strategies_none(self):
        """Test all-empty chains report 'none'."""
        assert run_strategies([("empty", lambda ctx: None)], self._ctx()) == (None, "none")


class TestCache:
    """Tests for memoisation."""

    def test_same_content_hits_cache(self, ivf_cycles):
        """Test reordered input hits the same cache entry."""
        configure_cache(16)
        resolve_current_step(IVF, ivf_cycles)
        resolve_current_step(IVF, list(reversed(ivf_cycles)))
        info = cache_info()
        assert info.hits == 1
        assert info.misses == 1
