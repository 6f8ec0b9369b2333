"""Onboarding wizard: state resolution, step submission and drafts.

Endpoints:
  GET    /api/onboarding/state?step=X  → snapshot + resolved displayed step + form data
  POST   /api/onboarding/complete      → submit a step ("Continue")
  POST   /api/onboarding/skip/{step}   → skip an optional step
  GET    /api/onboarding/drafts/{step} → form pre-population for a step
  PUT    /api/onboarding/drafts/{step} → store a draft (client already debounced)
  DELETE /api/onboarding/drafts/{step} → discard a draft

Failures surface through the exception handlers: 422 validation, 503
retryable backend errors, 409 ordering/locked-step conflicts.
"""

import logging

from fastapi import APIRouter, Body, Depends, Response, status

from govready.auth.deps import RequestSession, get_current_session
from govready.config import settings
from govready.dependencies import get_engine
from govready.schemas.onboarding import (
    CompleteStepRequest,
    CompleteStepResponse,
    DraftOut,
    OnboardingStateResponse,
    Step,
)
from govready.services.engine import OnboardingProgressionEngine, SubmissionOutcome

logger = logging.getLogger(__name__)

router = APIRouter()

COMPLETE_COOKIE = "onboarding_complete"


def _mark_complete(response: Response, engine: OnboardingProgressionEngine) -> None:
    """Flag finished onboarding for the front-end middleware."""
    if engine.is_complete:
        response.set_cookie(
            COMPLETE_COOKIE,
            "true",
            httponly=True,
            secure=settings.environment == "production",
            samesite="lax",
            max_age=60 * 60 * 24 * 365,
            path="/",
        )


def _to_response(outcome: SubmissionOutcome) -> CompleteStepResponse:
    return CompleteStepResponse(
        ok=True,
        next_step=outcome.displayed_step,
        state=outcome.state,
        optimistic=outcome.optimistic,
        synthesized=outcome.synthesized,
    )


# ── GET /api/onboarding/state ────────────────────────────────

@router.get("/state", response_model=OnboardingStateResponse)
async def get_state(
    response: Response,
    step: str | None = None,
    engine: OnboardingProgressionEngine = Depends(get_engine),
    session: RequestSession = Depends(get_current_session),
):
    """Resolve which step to show. An unreachable ``?step=`` silently falls back."""
    view = await engine.resolve(step)
    _mark_complete(response, engine)
    return OnboardingStateResponse(
        state=engine.state,
        current_step=engine.current_step,
        displayed_step=view.intent.resolved_step,
        requested_step=view.intent.requested_step,
        can_navigate=engine.navigation(),
        step_data=view.step_data,
        is_complete=engine.is_complete,
        user=session.facts,
    )


# ── POST /api/onboarding/complete ────────────────────────────

@router.post("/complete", response_model=CompleteStepResponse)
async def complete_step(
    body: CompleteStepRequest,
    response: Response,
    engine: OnboardingProgressionEngine = Depends(get_engine),
    session: RequestSession = Depends(get_current_session),
):
    logger.info(f"Completing step {body.step.value} for user {session.facts.user_id}")
    outcome = await engine.submit_step(body.step, body.payload)
    _mark_complete(response, engine)
    return _to_response(outcome)


@router.post("/skip/{step}", response_model=CompleteStepResponse)
async def skip_step(
    step: Step,
    response: Response,
    engine: OnboardingProgressionEngine = Depends(get_engine),
    session: RequestSession = Depends(get_current_session),
):
    logger.info(f"Skipping step {step.value} for user {session.facts.user_id}")
    outcome = await engine.skip_step(step)
    _mark_complete(response, engine)
    return _to_response(outcome)


# ── Drafts ───────────────────────────────────────────────────

@router.get("/drafts/{step}", response_model=DraftOut)
async def get_draft(
    step: Step,
    engine: OnboardingProgressionEngine = Depends(get_engine),
):
    payload, source = await engine.prefill(step)
    return DraftOut(step=step, payload=payload, source=source)


@router.put("/drafts/{step}", response_model=DraftOut)
async def save_draft(
    step: Step,
    payload: dict = Body(...),
    engine: OnboardingProgressionEngine = Depends(get_engine),
):
    draft = await engine.save_draft_now(step, payload)
    return DraftOut(step=step, payload=draft.payload, source="draft")


@router.delete("/drafts/{step}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_draft(
    step: Step,
    engine: OnboardingProgressionEngine = Depends(get_engine),
):
    await engine.discard_draft(step)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
