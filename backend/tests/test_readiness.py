"""Company readiness scoring tests."""

import random

import pytest

from govready.schemas.readiness import ReadinessInputs
from govready.services.readiness import (
    RECOMMENDED_DOCS,
    build_readiness_report,
    compute_company_readiness,
    next_actions,
    readiness_status,
)

TOTAL_WEIGHT = 72  # identity 14 + staff 4 + insurance 11 + bonding 3 + documents 40


def _complete_inputs() -> dict:
    return {
        "company": {
            "uei": "ABCDEF123456",
            "cage": "1A2B3",
            "address": {"city": "Arlington", "state": "VA"},
            "samStatus": "Active",
        },
        "staff": [{"name": "Pat Lee"}],
        "insurance": [
            {"type": "General Liability"},
            {"type": "Workers Compensation"},
            {"type": "Auto Liability"},
        ],
        "bonding": {"capacity": 2_500_000},
        "documents": [{"type": item.doc_type, "name": f"{item.key}.pdf"} for item in RECOMMENDED_DOCS],
    }


class Exploding:
    """A record whose every attribute access fails."""

    def __getattr__(self, name):
        raise RuntimeError(f"boom: {name}")


@pytest.mark.unit
class TestComputeReadiness:

    def test_empty_inputs_score_zero_everything_missing(self):
        result = compute_company_readiness(ReadinessInputs())
        assert result.score == 0
        assert result.achieved_weight == 0
        assert result.total_weight == TOTAL_WEIGHT
        assert all(not entry.completed for entry in result.breakdown)
        assert result.missing_keys == [entry.key for entry in result.breakdown]
        assert len(result.missing_keys) == 23

    def test_general_liability_policy_satisfies_gl_only(self):
        result = compute_company_readiness({"insurance": [{"type": "General Liability"}]})
        by_key = {entry.key: entry for entry in result.breakdown}

        assert by_key["ins-gl"].completed is True
        assert by_key["ins-gl"].weight == 4
        assert by_key["ins-gl"].reason is None
        assert by_key["ins-wc"].completed is False
        assert "ins-wc" in result.missing_keys
        assert "ins-gl" not in result.missing_keys
        assert result.achieved_weight == 4
        assert result.score == round(100 * 4 / TOTAL_WEIGHT)

    def test_fully_complete_company_scores_100(self):
        result = compute_company_readiness(_complete_inputs())
        assert result.score == 100
        assert result.missing_keys == []
        assert result.achieved_weight == result.total_weight

    def test_missing_keys_follow_checklist_order(self):
        result = compute_company_readiness({"company": {"uei": "X"}, "staff": [{}]})
        keys = [entry.key for entry in result.breakdown]
        assert keys[:9] == [
            "uei", "cage", "address", "sam-active", "staff",
            "ins-gl", "ins-wc", "ins-auto", "bonding",
        ]
        assert result.missing_keys == [k for k in keys if k not in ("uei", "staff")]

    def test_document_tags_satisfy_insurance_and_bonding(self):
        result = compute_company_readiness({
            "documents": [
                {"type": "COI", "tags": ["Workers-Comp", "insurance"]},
                {"documentType": "Surety BOND letter"},
            ],
        })
        by_key = {entry.key: entry for entry in result.breakdown}
        assert by_key["ins-wc"].completed is True
        assert by_key["bonding"].completed is True
        assert by_key["bonding-letter"].completed is True

    def test_filename_matches_recommended_doc(self):
        result = compute_company_readiness({"documents": [{"filename": "Acme_RESUME_jdoe.pdf"}]})
        assert "key-resumes" not in result.missing_keys

    def test_sam_status_is_case_insensitive(self):
        result = compute_company_readiness({"company": {"sam_status": "ACTIVE"}})
        assert "sam-active" not in result.missing_keys

    def test_address_needs_city_and_state(self):
        partial = compute_company_readiness({"company": {"address": {"city": "Reston"}}})
        assert "address" in partial.missing_keys

    def test_accepts_attribute_records(self):
        class Policy:
            type = "Commercial Auto"

        result = compute_company_readiness(ReadinessInputs(insurance=[Policy()]))
        assert "ins-auto" not in result.missing_keys

    def test_score_is_order_independent(self):
        inputs = _complete_inputs()
        inputs["documents"] = inputs["documents"][:7] + [{"type": None}, {"tags": "sam"}]
        baseline = compute_company_readiness(inputs)

        rng = random.Random(7)
        for _ in range(5):
            shuffled = dict(inputs)
            shuffled["documents"] = list(inputs["documents"])
            shuffled["insurance"] = list(inputs["insurance"])
            rng.shuffle(shuffled["documents"])
            rng.shuffle(shuffled["insurance"])
            assert compute_company_readiness(shuffled) == baseline

    def test_malformed_document_does_not_affect_other_items(self):
        clean = {"documents": [{"type": "W-9"}, {"type": "Safety Plan"}]}
        dirty = {"documents": [{"type": None, "tags": 5}, Exploding(), *clean["documents"]]}

        assert compute_company_readiness(dirty) == compute_company_readiness(clean)

    def test_malformed_company_never_raises(self):
        result = compute_company_readiness({"company": Exploding(), "bonding": Exploding()})
        assert result.score == 0

    def test_score_stays_within_bounds(self):
        for inputs in ({}, _complete_inputs(), {"staff": [{}] * 50}):
            assert 0 <= compute_company_readiness(inputs).score <= 100


@pytest.mark.unit
class TestReadinessReport:

    def test_status_thresholds(self):
        assert readiness_status(100) == "ready"
        assert readiness_status(80) == "ready"
        assert readiness_status(79) == "in_progress"
        assert readiness_status(40) == "in_progress"
        assert readiness_status(39) == "not_started"
        assert readiness_status(0) == "not_started"

    def test_next_actions_heaviest_first(self):
        readiness = compute_company_readiness({})
        actions = next_actions(readiness, limit=5)
        assert [a.key for a in actions] == ["uei", "cage", "sam-active", "staff", "ins-gl"]
        assert all(a.reason for a in actions)

    def test_report_combines_score_status_and_actions(self):
        report = build_readiness_report(_complete_inputs())
        assert report.status == "ready"
        assert report.next_actions == []
