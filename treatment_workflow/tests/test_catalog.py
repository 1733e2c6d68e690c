"""
Unit tests for the step catalog.

Run with: python -m pytest treatment_workflow/tests/test_catalog.py -v
"""

import pytest

from treatment_workflow import catalog
from treatment_workflow.models.enums import CatalogVersion, TreatmentType


class TestOrderedSteps:
    """Tests for catalog contents."""

    def test_iui_v2(self):
        """Test the IUI catalog has seven steps in clinical order."""
        ids = [s.id for s in catalog.ordered_steps(TreatmentType.IUI)]
        assert ids == [
            "step0_pre_cycle_prep",
            "step1_day2_3_assessment",
            "step2_follicle_monitoring",
            "step3_trigger",
            "step4_iui_procedure",
            "step5_post_iui",
            "step6_beta_hcg",
        ]

    def test_ivf_v2(self):
        """Test the IVF catalog has eight steps ending in embryo transfer."""
        steps = catalog.ordered_steps(TreatmentType.IVF)
        assert len(steps) == 8
        assert steps[4].id == "step4_opu"
        assert steps[-1].id == "step7_embryo_transfer"
        assert [s.ordinal for s in steps] == list(range(8))

    def test_v1_catalogs(self):
        """Test the legacy catalogs."""
        assert [s.id for s in catalog.ordered_steps(TreatmentType.IUI, "v1")] == [
            "planning", "monitoring", "insemination", "completed",
        ]
        assert len(catalog.ordered_steps(TreatmentType.IVF, CatalogVersion.V1)) == 8

    def test_plan_catalogs(self):
        """Test the plan catalogs keep the shared ids with their own ordinals."""
        iui = catalog.ordered_steps(TreatmentType.IUI, CatalogVersion.PLAN)
        ivf = catalog.ordered_steps(TreatmentType.IVF, "plan")
        assert [s.id for s in iui] == [
            "step0_pre_cycle_prep", "step2_follicle_monitoring", "step4_iui_procedure", "step5_post_iui",
        ]
        assert [s.id for s in ivf] == [
            "step0_pre_cycle_prep", "step1_stimulation", "step4_opu",
            "step5_fertilization", "step7_embryo_transfer", "step6_beta_hcg",
        ]
        assert [s.ordinal for s in ivf] == list(range(6))
        assert catalog.next_step(ivf[4]).id == "step6_beta_hcg"
        assert catalog.next_step(ivf[-1]) is None

    def test_other_protocol_is_empty(self):
        """Test non-IUI/IVF treatments have no steps."""
        assert catalog.ordered_steps(TreatmentType.OTHER) == []
        assert catalog.ordered_steps(None) == []

    def test_steps_are_shared_instances(self):
        """Test repeated lookups return equal, hashable steps."""
        a = catalog.step_by_id(TreatmentType.IVF, "step4_opu")
        b = catalog.step_at(TreatmentType.IVF, 4)
        assert a == b
        assert len({a, b}) == 1


class TestLookups:
    """Tests for lookup helpers."""

    def test_step_at_out_of_range(self):
        """Test positional lookup bounds."""
        assert catalog.step_at(TreatmentType.IUI, 7) is None
        assert catalog.step_at(TreatmentType.IUI, -1) is None
        assert catalog.step_at(TreatmentType.IUI, None) is None

    def test_next_step(self):
        """Test next_step walks the catalog and stops at the end."""
        trigger = catalog.step_by_id(TreatmentType.IUI, "step3_trigger")
        assert catalog.next_step(trigger).id == "step4_iui_procedure"
        last = catalog.ordered_steps(TreatmentType.IUI)[-1]
        assert catalog.next_step(last) is None
        assert catalog.next_step(None) is None

    def test_contains(self):
        """Test membership by id."""
        assert catalog.contains(TreatmentType.IVF, "step6_embryo_culture")
        assert not catalog.contains(TreatmentType.IUI, "step6_embryo_culture")
        assert not catalog.contains(TreatmentType.IVF, None)


class TestProjection:
    """Tests for mapping stored ids onto the coarser catalogs."""

    @pytest.mark.parametrize("v2_id,v1_id", [
        ("step0_pre_cycle_prep", "planning"),
        ("step2_monitoring", "stimulation"),
        ("step4_opu", "opu"),
        ("step6_embryo_culture", "culture"),
        ("step7_embryo_transfer", "transfer"),
    ])
    def test_ivf_projection(self, v2_id, v1_id):
        """Test IVF v2 ids map onto the legacy catalog."""
        assert catalog.project_step(v2_id, TreatmentType.IVF, "v1").id == v1_id

    def test_iui_projection(self):
        """Test IUI v2 ids map onto the legacy catalog."""
        assert catalog.project_step("step3_trigger", TreatmentType.IUI, "v1").id == "monitoring"
        assert catalog.project_step("step4_iui_procedure", TreatmentType.IUI, "v1").id == "insemination"

    def test_identity_projection(self):
        """Test ids already in the target catalog are returned as-is."""
        step = catalog.project_step("step4_opu", TreatmentType.IVF)
        assert step.id == "step4_opu"
        assert catalog.project_step("opu", TreatmentType.IVF, "v1").id == "opu"

    def test_unknown_id(self):
        """Test ids with no equivalent project to None."""
        assert catalog.project_step("stimulation", TreatmentType.IVF, "v2") is None
        assert catalog.project_step("nonsense", TreatmentType.IUI, "v1") is None

    @pytest.mark.parametrize("protocol,stored_id,plan_id", [
        (TreatmentType.IVF, "step2_monitoring", "step1_stimulation"),
        (TreatmentType.IVF, "step3_trigger", "step1_stimulation"),
        (TreatmentType.IVF, "step6_embryo_culture", "step5_fertilization"),
        (TreatmentType.IVF, "step6_beta_hcg", "step6_beta_hcg"),
        (TreatmentType.IUI, "step1_day2_3_assessment", "step2_follicle_monitoring"),
        (TreatmentType.IUI, "step3_trigger", "step2_follicle_monitoring"),
        (TreatmentType.IUI, "step6_beta_hcg", "step5_post_iui"),
    ])
    def test_plan_projection(self, protocol, stored_id, plan_id):
        """Test fine-grained ids fold into the plan step that covers them."""
        assert catalog.project_step(stored_id, protocol, "plan").id == plan_id

    def test_ivf_follow_up_projection(self):
        """Test the IVF follow-up step has a v1 home but none in v2."""
        assert catalog.project_step("step6_beta_hcg", TreatmentType.IVF, "v1").id == "pregnancy"
        assert catalog.project_step("step6_beta_hcg", TreatmentType.IVF) is None
