"""Onboarding progression: pure reducers over the wizard's three inputs.

Inputs, in order of authority:

    1. server snapshot (OnboardingState)  → completed / required steps
    2. local drafts (Step → Draft)        → form pre-population only
    3. URL hint (?step=...)               → displayed step, if navigable

The current step is always recomputed from the snapshot; the backend's own
suggestion is never trusted. Nothing here performs I/O, so every rule can
be exercised with plain data.
"""

import copy
import logging
from collections.abc import Callable, Mapping
from enum import Enum
from typing import Any

from pydantic import BaseModel, ValidationError

from govready.middleware.exceptions import StepValidationError, format_validation_errors
from govready.schemas.onboarding import (
    BLOCKING_STEPS,
    SKIP_PAYLOAD,
    STEP_DEFAULTS,
    STEP_PAYLOAD_SCHEMAS,
    Draft,
    NavigationIntent,
    OnboardingState,
    Step,
    is_blocking,
    step_index,
)

logger = logging.getLogger(__name__)


# ── Current step & navigation guard ──────────────────────────

def ordered_required_steps(state: OnboardingState) -> list[Step]:
    """Required steps in canonical order, DONE excluded."""
    required = {s for s in state.required_steps if s is not Step.DONE}
    return sorted(required, key=step_index)


def canonical_current_step(state: OnboardingState) -> Step:
    """First required step not yet completed, or DONE.

    Completed steps outside ``required_steps`` are ignored here.
    """
    completed = set(state.completed_steps)
    for step in ordered_required_steps(state):
        if step not in completed:
            return step
    return Step.DONE


def is_onboarding_complete(state: OnboardingState) -> bool:
    return canonical_current_step(state) is Step.DONE


def blocking_predecessors(step: Step) -> list[Step]:
    idx = step_index(step)
    return [s for s in BLOCKING_STEPS if step_index(s) < idx]


def can_navigate_to_step(state: OnboardingState, step: Step | str | None) -> bool:
    """True iff every blocking step before ``step`` is completed, or ``step``
    is the canonical current step. Optional steps never gate later ones."""
    target = Step.parse(step)
    if target is None:
        return False
    if target is canonical_current_step(state):
        return True
    completed = set(state.completed_steps)
    return all(s in completed for s in blocking_predecessors(target))


def navigation_map(state: OnboardingState) -> dict[Step, bool]:
    return {step: can_navigate_to_step(state, step) for step in Step}


# ── Displayed step & form pre-population ─────────────────────

def resolve_displayed_step(state: OnboardingState, url_hint: Any = None) -> NavigationIntent:
    """Honour the URL hint only when navigable; otherwise fall back silently."""
    requested = Step.parse(url_hint)
    current = canonical_current_step(state)
    if requested is not None and can_navigate_to_step(state, requested):
        resolved = requested
    else:
        if requested is not None:
            logger.debug(f"URL step {requested.value} not navigable, showing {current.value}")
        resolved = current
    return NavigationIntent(requested_step=requested, resolved_step=resolved)


def resolve_step_data(
    state: OnboardingState,
    drafts: Mapping[Step, Draft],
    step: Step,
) -> tuple[dict, str]:
    """Form data for ``step`` and where it came from.

    Draft first (only while the step is incomplete), then the server's last
    saved payload, then the step's empty defaults.
    """
    draft = drafts.get(step)
    if draft is not None and step not in state.completed_steps:
        return copy.deepcopy(draft.payload), "draft"
    if step in state.step_data:
        return copy.deepcopy(state.step_data[step]), "server"
    return copy.deepcopy(STEP_DEFAULTS.get(step, {})), "default"


class ResolvedView(BaseModel):
    intent: NavigationIntent
    step_data: dict
    source: str


def resolve_view(
    state: OnboardingState,
    drafts: Mapping[Step, Draft],
    url_hint: Any = None,
) -> ResolvedView:
    """Combine snapshot, drafts and URL hint into what the wizard renders."""
    intent = resolve_displayed_step(state, url_hint)
    step_data, source = resolve_step_data(state, drafts, intent.resolved_step)
    return ResolvedView(intent=intent, step_data=step_data, source=source)


def stale_draft_steps(state: OnboardingState, drafts: Mapping[Step, Draft]) -> list[Step]:
    """Drafts superseded by a server-confirmed completion."""
    completed = set(state.completed_steps)
    return [step for step in drafts if step in completed]


# ── Payload validation ───────────────────────────────────────

def is_skip_payload(payload: Any) -> bool:
    return isinstance(payload, Mapping) and bool(payload.get("skipped")) and len(payload) == 1


def validate_step_payload(step: Step, payload: Any) -> dict:
    """Validate against the step's schema and return the normalized payload.

    Raises StepValidationError; never touches the network.
    """
    if is_skip_payload(payload):
        if is_blocking(step):
            raise StepValidationError(
                [{"field": "skipped", "message": f"{step.value} cannot be skipped", "type": "value_error"}],
                message=f"{step.value} is required and cannot be skipped",
            )
        return dict(SKIP_PAYLOAD)

    schema = STEP_PAYLOAD_SCHEMAS.get(step)
    if schema is None:
        raise StepValidationError(
            [{"field": "step", "message": f"{step.value} takes no payload", "type": "value_error"}],
            message=f"{step.value} cannot be submitted",
        )
    try:
        model = schema.model_validate(payload if payload is not None else {})
    except ValidationError as e:
        raise StepValidationError(format_validation_errors(e.errors())) from e
    return model.model_dump(mode="json", by_alias=True, exclude_none=True)


# ── Synthesized states ───────────────────────────────────────

def compute_progress(completed: list[Step], required: list[Step]) -> int:
    required_set = [s for s in required if s is not Step.DONE]
    if not required_set:
        return 0
    done = sum(1 for s in required_set if s in completed)
    return round(100 * done / len(required_set))


def synthesize_state(previous: OnboardingState, step: Step, payload: dict) -> OnboardingState:
    """Best-effort snapshot assuming ``step`` was accepted.

    Blocking steps before ``step`` are assumed done too: the guard would not
    have let the user submit ``step`` otherwise.
    """
    completed = list(previous.completed_steps)
    for s in blocking_predecessors(step) + [step]:
        if s not in completed:
            completed.append(s)

    step_data = dict(previous.step_data)
    step_data[step] = payload

    return OnboardingState(
        completed_steps=completed,
        required_steps=previous.required_steps,
        progress=max(previous.progress, compute_progress(completed, previous.required_steps)),
        step_data=step_data,
        extra_completed=previous.extra_completed,
    )


# ── Optimistic unblock ───────────────────────────────────────

class ErrorShape(str, Enum):
    """Backend ordering errors seen while the organization is still being created."""
    NO_RECORD = "no_record"          # 404, no onboarding record yet
    ORG_MISSING = "org_missing"      # 409 ORG_MISSING / 403 forbidden
    UNKNOWN_STEP = "unknown_step"    # 500 "unknown_step: X"


SyntheticStateBuilder = Callable[[OnboardingState, Step, dict], OnboardingState]

# (step, error shape) → builder. Anything not listed is a hard error.
# ACCOUNT_VERIFIED happens before the org exists, ORG_CHOICE creates it, and
# COMPANY_PROFILE can race the org webhook sync.
OPTIMISTIC_UNBLOCK: dict[tuple[Step, ErrorShape], SyntheticStateBuilder] = {
    (Step.ACCOUNT_VERIFIED, ErrorShape.NO_RECORD): synthesize_state,
    (Step.ACCOUNT_VERIFIED, ErrorShape.ORG_MISSING): synthesize_state,
    (Step.ACCOUNT_VERIFIED, ErrorShape.UNKNOWN_STEP): synthesize_state,
    (Step.ORG_CHOICE, ErrorShape.NO_RECORD): synthesize_state,
    (Step.ORG_CHOICE, ErrorShape.ORG_MISSING): synthesize_state,
    (Step.ORG_CHOICE, ErrorShape.UNKNOWN_STEP): synthesize_state,
    (Step.COMPANY_PROFILE, ErrorShape.NO_RECORD): synthesize_state,
    (Step.COMPANY_PROFILE, ErrorShape.ORG_MISSING): synthesize_state,
    (Step.COMPANY_PROFILE, ErrorShape.UNKNOWN_STEP): synthesize_state,
}


def optimistic_unblock(
    step: Step,
    shape: ErrorShape | str,
    previous: OnboardingState,
    payload: dict,
) -> OnboardingState | None:
    """Synthetic next state for a known bootstrap race, else None."""
    try:
        shape = ErrorShape(shape)
    except ValueError:
        return None
    builder = OPTIMISTIC_UNBLOCK.get((step, shape))
    if builder is None:
        return None
    return builder(previous, step, payload)


def next_displayed_step(state: OnboardingState, hint: Step | None) -> Step:
    """Step to show after a submission: the backend hint if navigable and not
    already completed, otherwise the recomputed current step."""
    if hint is not None and hint not in state.completed_steps and can_navigate_to_step(state, hint):
        return hint
    return canonical_current_step(state)
