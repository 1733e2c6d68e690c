"""
Step Classification Rules.

Ordered rule tables mapping step-type codes and free-text cycle names onto
stored step ids (the v2 ids plus IVF ``step6_beta_hcg``, which only the
v1 and plan catalogs can represent). Rules are evaluated top to
bottom and the first match wins, so the order of each table is the
tie-break between overlapping keywords (e.g. "Post-IUI Monitoring"
contains both "iui" and "monitoring").

Two families:
1. Step-type codes: uppercased categorical codes the backend stores on a
   cycle ("IUI_DAY2_3_ASSESSMENT", "IVF_OPU", ...). Plain substring checks.
2. Cycle names: lowercased free text typed by clinic staff ("Day 7-10
   Follicle Monitoring", "ET"). Short abbreviations match whole words only.
"""

import re
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from ..models.enums import TreatmentType

Predicate = Callable[[str], bool]


@dataclass(frozen=True)
class StepRule:
    """A single classification rule: if ``predicate(text)`` then ``step_id``."""
    step_id: str
    predicate: Predicate
    description: str = ""

    def matches(self, text: str) -> bool:
        return bool(text) and self.predicate(text)


# ==========================================================================
# PREDICATE BUILDERS
# ==========================================================================

def has(*needles: str) -> Predicate:
    """True when any needle is a substring."""
    return lambda text: any(needle in text for needle in needles)


def has_all(*needles: str) -> Predicate:
    return lambda text: all(needle in text for needle in needles)


def lacks(*needles: str) -> Predicate:
    return lambda text: not any(needle in text for needle in needles)


def word(*words: str) -> Predicate:
    """True when any of ``words`` appears as a whole word."""
    pattern = re.compile(r"\b(?:" + "|".join(re.escape(w) for w in words) + r")\b")
    return lambda text: pattern.search(text) is not None


def equals(value: str) -> Predicate:
    return lambda text: text == value


def either(*predicates: Predicate) -> Predicate:
    return lambda text: any(p(text) for p in predicates)


def both(*predicates: Predicate) -> Predicate:
    return lambda text: all(p(text) for p in predicates)


# ==========================================================================
# STEP-TYPE CODE RULES (uppercased input)
# ==========================================================================

IUI_CODE_RULES: Tuple[StepRule, ...] = (
    StepRule("step0_pre_cycle_prep",
             either(equals("IUI_PRECYCLEPREPARATION"), has("PRECYCLE")),
             "pre-cycle preparation"),
    # Before the day/procedure rules: any POST+IUI code is the post-procedure step
    StepRule("step5_post_iui",
             either(has("POSTIUI", "POST_IUI"), has_all("POST", "IUI")),
             "post-IUI monitoring"),
    StepRule("step1_day2_3_assessment",
             has("DAY2_3", "ASSESSMENT"),
             "day 2-3 assessment"),
    StepRule("step2_follicle_monitoring",
             has("DAY7_10", "FOLLICLE"),
             "day 7-10 follicle monitoring"),
    StepRule("step3_trigger",
             either(has("DAY10_12"), both(has("TRIGGER"), lacks("PREGNANCY"))),
             "day 10-12 trigger"),
    StepRule("step4_iui_procedure",
             has("PROCEDURE"),
             "IUI procedure"),
    StepRule("step6_beta_hcg",
             has("BETAHCG", "BETA_HCG"),
             "beta hCG test"),
)

IVF_CODE_RULES: Tuple[StepRule, ...] = (
    # Before transfer: IVF_BETAHCGTEST follows the embryo transfer
    StepRule("step6_beta_hcg", has("BETAHCG", "BETA_HCG"), "post-transfer follow-up"),
    StepRule("step0_pre_cycle_prep", has("PRECYCLE"), "pre-cycle preparation"),
    StepRule("step1_stimulation", has("STIMULATION", "COS"), "ovarian stimulation"),
    StepRule("step2_monitoring", both(has("MONITORING"), lacks("POST")), "mid-stimulation monitoring"),
    StepRule("step3_trigger", has("TRIGGER"), "ovulation trigger"),
    StepRule("step4_opu", has("OPU", "OOCYTE"), "oocyte pick-up"),
    StepRule("step5_fertilization", has("FERTILIZATION", "ICSI"), "fertilization"),
    StepRule("step6_embryo_culture", has("EMBRYOCULTURE", "CULTURE"), "embryo culture"),
    StepRule("step7_embryo_transfer", has("EMBRYOTRANSFER", "TRANSFER"), "embryo transfer"),
)


# ==========================================================================
# CYCLE NAME RULES (lowercased input, last step first)
# ==========================================================================

IUI_NAME_RULES: Tuple[StepRule, ...] = (
    StepRule("step6_beta_hcg",
             either(has("beta", "hcg", "14 days"), has_all("pregnancy", "test")),
             "beta hCG / pregnancy test"),
    StepRule("step5_post_iui",
             either(
                 has("post-iui", "post-insemination"),
                 has_all("post", "monitoring"),
                 has_all("post", "iui"),
                 has_all("post", "follow-up"),
             ),
             "post-IUI follow-up"),
    StepRule("step4_iui_procedure",
             either(
                 has_all("iui", "procedure"),
                 has("insemination", "sperm collection"),
             ),
             "IUI procedure"),
    StepRule("step3_trigger",
             either(has("day 10-12"), both(has("trigger"), lacks("pregnancy"))),
             "trigger"),
    StepRule("step2_follicle_monitoring",
             either(
                 has("day 7-10", "follicle monitoring", "ovarian stimulation"),
                 has_all("follicle", "monitoring"),
                 both(has("monitoring"), lacks("post")),
             ),
             "follicle monitoring"),
    StepRule("step1_day2_3_assessment",
             has("day 2-3", "assessment", "baseline"),
             "day 2-3 assessment"),
    StepRule("step0_pre_cycle_prep",
             has("pre-cycle", "initial medical examination", "medical examination", "baseline visit"),
             "pre-cycle preparation"),
)

IVF_NAME_RULES: Tuple[StepRule, ...] = (
    StepRule("step6_beta_hcg",
             either(
                 has("post-transfer", "beta hcg", "beta-hcg"),
                 has_all("post", "transfer"),
                 has_all("pregnancy", "test"),
             ),
             "post-transfer follow-up"),
    StepRule("step7_embryo_transfer",
             either(has("embryo transfer", "transfer"), word("et")),
             "embryo transfer"),
    StepRule("step6_embryo_culture",
             has("embryo culture", "culture"),
             "embryo culture"),
    StepRule("step5_fertilization",
             either(
                 has("fertilization", "in vitro fertilization"),
                 word("icsi"),
                 word("lab"),
             ),
             "fertilization / lab"),
    StepRule("step4_opu",
             either(
                 has("retrieval", "oocyte retrieval", "sperm collection", "oocyte", "pick-up"),
                 word("opu"),
             ),
             "oocyte pick-up"),
    StepRule("step3_trigger", has("trigger"), "ovulation trigger"),
    StepRule("step2_monitoring",
             either(has("mid-stimulation"), both(has("monitoring"), lacks("post"))),
             "mid-stimulation monitoring"),
    StepRule("step1_stimulation",
             either(has("controlled ovarian stimulation", "stimulation", "ovarian"), word("cos")),
             "ovarian stimulation"),
    StepRule("step0_pre_cycle_prep",
             has("pre-cycle", "initial medical examination", "medical examination", "baseline evaluation"),
             "pre-cycle preparation"),
)


CODE_RULES: Dict[TreatmentType, Tuple[StepRule, ...]] = {
    TreatmentType.IUI: IUI_CODE_RULES,
    TreatmentType.IVF: IVF_CODE_RULES,
}

NAME_RULES: Dict[TreatmentType, Tuple[StepRule, ...]] = {
    TreatmentType.IUI: IUI_NAME_RULES,
    TreatmentType.IVF: IVF_NAME_RULES,
}


def first_match(rules: Tuple[StepRule, ...], text: str) -> Optional[StepRule]:
    for rule in rules:
        if rule.matches(text):
            return rule
    return None
