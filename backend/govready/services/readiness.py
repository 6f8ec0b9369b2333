"""Company readiness scoring: how complete a company's bid package is.

Reduces the company record and its documents, staff, insurance policies
and bonding into a single 0-100 score, a weighted breakdown and the list
of missing checklist keys.

The checklist is fixed (declaration order below is the output order):

    identity      uei, cage, address, sam-active
    staff         at least one staff record
    insurance     ins-gl / ins-wc / ins-auto (policy record OR tagged document)
    bonding       bonding record with capacity OR tagged document
    documents     RECOMMENDED_DOCS

Matching is case-insensitive substring matching against a document's
type, tags and file name. It favours recall: free-text metadata like
"COI - General Liab. 2025" must still count.

Every predicate runs per record inside its own try/except, so one
malformed record only fails its own match.
"""

import logging
from collections.abc import Callable, Iterable, Mapping
from typing import Any

from govready.schemas.readiness import (
    BreakdownEntry,
    CompanyReadiness,
    NextAction,
    ReadinessInputs,
    ReadinessItem,
    ReadinessReport,
)

logger = logging.getLogger(__name__)

READY_THRESHOLD = 80
IN_PROGRESS_THRESHOLD = 40

RECOMMENDED_DOCS: list[ReadinessItem] = [
    ReadinessItem(key="w9", label="IRS Form W-9", doc_type="W-9", tags=["w9"], required=True, weight=4),
    ReadinessItem(key="ein-letter", label="IRS EIN Confirmation Letter", doc_type="EIN Letter", tags=["ein", "irs"], weight=2),
    ReadinessItem(key="capability-statement", label="Capabilities Statement", doc_type="Capabilities Statement", tags=["capabilities", "statement"], required=True, weight=4),
    ReadinessItem(key="org-chart", label="Organizational Chart", doc_type="Org Chart", tags=["org", "chart"], weight=2),
    ReadinessItem(key="quality-plan", label="Quality Management Plan", doc_type="Quality Plan", tags=["quality"], weight=2),
    ReadinessItem(key="safety-plan", label="Safety Plan", doc_type="Safety Plan", tags=["safety"], weight=2),
    ReadinessItem(key="cybersecurity-plan", label="Cybersecurity/IT Security Plan", doc_type="Cybersecurity Plan", tags=["cyber", "security"], weight=2),
    ReadinessItem(key="key-resumes", label="Key Personnel Resumes", doc_type="Resume", tags=["resume"], required=True, weight=3),
    ReadinessItem(key="sam-confirmation", label="SAM Registration Confirmation", doc_type="SAM Confirmation", tags=["sam"], required=True, weight=3),
    ReadinessItem(key="gl-policy", label="General Liability Insurance (COI)", doc_type="Insurance - GL", tags=["insurance", "coi", "general-liability"], required=True, weight=4),
    ReadinessItem(key="wc-policy", label="Workers' Compensation Insurance (COI)", doc_type="Insurance - WC", tags=["insurance", "workers-comp"], required=True, weight=4),
    ReadinessItem(key="auto-policy", label="Auto Liability Insurance (COI)", doc_type="Insurance - Auto", tags=["insurance", "auto-liability"], weight=3),
    ReadinessItem(key="pl-policy", label="Professional Liability (if applicable)", doc_type="Insurance - Professional", tags=["insurance", "professional-liability"], weight=2),
    ReadinessItem(key="bonding-letter", label="Bonding Capacity Letter", doc_type="Bonding Letter", tags=["bond", "bonding"], weight=3),
]

# (key, label, keyword, weight, reason)
INSURANCE_CHECKS: list[tuple[str, str, str, int, str]] = [
    ("ins-gl", "General Liability policy", "general", 4, "Upload COI for General Liability"),
    ("ins-wc", "Workers' Comp policy", "workers", 4, "Upload COI for Workers' Comp"),
    ("ins-auto", "Auto Liability policy", "auto", 3, "Upload COI for Auto Liability"),
]


# ── Record access helpers ────────────────────────────────────

def _field(record: Any, *names: str) -> Any:
    """First non-empty value among ``names`` (mapping key or attribute)."""
    if record is None:
        return None
    for name in names:
        if isinstance(record, Mapping):
            value = record.get(name)
        else:
            value = getattr(record, name, None)
        if value:
            return value
    return None


def _text(value: Any) -> str:
    return str(value).lower() if value else ""


def _doc_type(doc: Any) -> str:
    return _text(_field(doc, "type", "documentType", "document_type"))


def _doc_tags(doc: Any) -> list[str]:
    tags = _field(doc, "tags")
    if not tags:
        return []
    if isinstance(tags, str):
        tags = [tags]
    return [t.lower() for t in tags if isinstance(t, str)]


def _doc_name(doc: Any) -> str:
    return _text(_field(doc, "name", "filename", "storageKey", "storage_key"))


def _any_match(records: Iterable[Any], predicate: Callable[[Any], bool]) -> bool:
    """True if any record satisfies ``predicate``; a raising record is a non-match."""
    for record in records:
        try:
            if predicate(record):
                return True
        except Exception as e:
            logger.debug(f"Skipping malformed record {record!r}: {e}")
    return False


def _doc_has_keyword(keyword: str) -> Callable[[Any], bool]:
    def predicate(doc: Any) -> bool:
        return keyword in _doc_type(doc) or any(keyword in tag for tag in _doc_tags(doc))
    return predicate


def _doc_matches_item(item: ReadinessItem) -> Callable[[Any], bool]:
    doc_type = item.doc_type.lower() if item.doc_type else None
    tags = [t.lower() for t in item.tags]

    def predicate(doc: Any) -> bool:
        t = _doc_type(doc)
        if doc_type and doc_type in t:
            return True
        doc_tags = _doc_tags(doc)
        name = _doc_name(doc)
        return any(
            tag in t or tag in name or any(tag in x for x in doc_tags)
            for tag in tags
        )

    return predicate


def _identity_present(check: Callable[[], bool]) -> bool:
    try:
        return bool(check())
    except Exception as e:
        logger.debug(f"Company identity check failed: {e}")
        return False


def _as_list(value: Any) -> list:
    if not value:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


# ── Scoring ──────────────────────────────────────────────────

def compute_company_readiness(inputs: ReadinessInputs | Mapping[str, Any]) -> CompanyReadiness:
    """Score a snapshot of company records. Pure; never raises on bad records."""
    if isinstance(inputs, ReadinessInputs):
        company, docs, staff, insurance, bonding = (
            inputs.company, inputs.documents, inputs.staff, inputs.insurance, inputs.bonding,
        )
    else:
        company = inputs.get("company")
        docs = inputs.get("documents")
        staff = inputs.get("staff")
        insurance = inputs.get("insurance")
        bonding = inputs.get("bonding")

    company = company or {}
    docs = _as_list(docs)
    staff = _as_list(staff)
    insurance = _as_list(insurance)

    breakdown: list[BreakdownEntry] = []

    def add(key: str, label: str, completed: bool, weight: int, reason: str) -> None:
        breakdown.append(BreakdownEntry(
            key=key,
            label=label,
            completed=completed,
            weight=weight,
            reason=None if completed else reason,
        ))

    # Identity & registrations
    add("uei", "UEI on file", _identity_present(lambda: _field(company, "uei")), 4,
        "Add UEI under Government Registrations")
    add("cage", "CAGE on file", _identity_present(lambda: _field(company, "cage")), 4,
        "Add CAGE under Government Registrations")
    add("address", "Headquarters address",
        _identity_present(lambda: _field(_field(company, "address"), "city")
                          and _field(_field(company, "address"), "state")),
        2, "Complete HQ address in Profile")
    add("sam-active", "SAM Active",
        _identity_present(lambda: _text(_field(company, "samStatus", "sam_status")) == "active"),
        4, "Sync SAM or resolve SAM status")

    # Staff presence
    add("staff", "At least 1 staff record", len(staff) > 0, 4, "Add key personnel under Staff")

    # Insurance: a policy record satisfies the check directly, a document via type/tags
    for key, label, keyword, weight, reason in INSURANCE_CHECKS:
        ok = _any_match(insurance, lambda p, kw=keyword: kw in _text(_field(p, "type"))) or \
            _any_match(docs, _doc_has_keyword(keyword))
        add(key, label, ok, weight, reason)

    # Bonding
    has_bonding = _identity_present(
        lambda: _field(bonding, "capacity", "singleProjectLimit", "single_project_limit")
    ) or _any_match(docs, _doc_has_keyword("bond"))
    add("bonding", "Bonding capacity letter", has_bonding, 3, "Upload bonding capacity letter")

    # Recommended documents
    for item in RECOMMENDED_DOCS:
        weight = item.weight if item.weight is not None else (3 if item.required else 2)
        add(item.key, item.label, _any_match(docs, _doc_matches_item(item)), weight,
            f"Add {item.label}")

    total = sum(entry.weight for entry in breakdown)
    achieved = sum(entry.weight for entry in breakdown if entry.completed)
    score = max(0, min(100, round(100 * achieved / total))) if total > 0 else 0

    return CompanyReadiness(
        score=score,
        total_weight=total,
        achieved_weight=achieved,
        breakdown=breakdown,
        missing_keys=[entry.key for entry in breakdown if not entry.completed],
    )


def readiness_status(score: int) -> str:
    if score >= READY_THRESHOLD:
        return "ready"
    if score >= IN_PROGRESS_THRESHOLD:
        return "in_progress"
    return "not_started"


def next_actions(readiness: CompanyReadiness, limit: int = 5) -> list[NextAction]:
    """Heaviest missing items first; checklist order breaks ties."""
    missing = [entry for entry in readiness.breakdown if not entry.completed]
    ranked = sorted(enumerate(missing), key=lambda pair: (-pair[1].weight, pair[0]))
    return [
        NextAction(key=entry.key, label=entry.label, weight=entry.weight, reason=entry.reason)
        for _, entry in ranked[:limit]
    ]


def build_readiness_report(inputs: ReadinessInputs | Mapping[str, Any], limit: int = 5) -> ReadinessReport:
    readiness = compute_company_readiness(inputs)
    return ReadinessReport(
        **readiness.model_dump(),
        status=readiness_status(readiness.score),
        next_actions=next_actions(readiness, limit),
    )
