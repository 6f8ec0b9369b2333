"""Onboarding progression engine for one wizard session.

Owns the mutable session state (current snapshot, displayed step, busy
flag) and delegates every decision to the pure reducers in
``services.progression``.

Submission flow:

    save_draft()   → debounced write to the draft store (no backend call)
    submit_step()  → cancel pending draft write → validate → POST to backend
                     → replace snapshot → clear draft → advance displayed step

Failure handling in submit_step():

    StepValidationError      state unchanged, draft kept, raised
    TransientBackendError    state unchanged, draft kept, raised (user retries)
    OrderingConflict         optimistic unblock for known bootstrap races,
                             otherwise draft kept and raised
    MalformedServerResponse  state synthesized from the request just made
"""

import logging

from pydantic import BaseModel

from govready.middleware.exceptions import (
    GovReadyException,
    MalformedServerResponse,
    OrderingConflict,
    StepNotNavigable,
    SubmissionInProgress,
)
from govready.schemas.onboarding import SKIP_PAYLOAD, Draft, OnboardingState, Step
from govready.services.backend_client import OnboardingBackendClient
from govready.services.drafts import DraftDebouncer, DraftStore
from govready.services.progression import (
    ResolvedView,
    can_navigate_to_step,
    canonical_current_step,
    is_onboarding_complete,
    navigation_map,
    next_displayed_step,
    optimistic_unblock,
    resolve_step_data,
    resolve_view,
    synthesize_state,
    validate_step_payload,
)

logger = logging.getLogger("govready.engine")


class SubmissionOutcome(BaseModel):
    state: OnboardingState
    displayed_step: Step
    optimistic: bool = False
    synthesized: bool = False


class OnboardingProgressionEngine:
    def __init__(
        self,
        client: OnboardingBackendClient,
        drafts: DraftStore,
        state: OnboardingState | None = None,
        debounce_seconds: float | None = None,
    ):
        self.client = client
        self.drafts = drafts
        self.debouncer = DraftDebouncer(drafts, debounce_seconds)
        self._state = state
        self.displayed_step: Step | None = None
        self.busy = False

    # ── State ────────────────────────────────────────────────

    @property
    def state(self) -> OnboardingState:
        if self._state is None:
            raise RuntimeError("Onboarding state not loaded; call load() first")
        return self._state

    @property
    def current_step(self) -> Step:
        return canonical_current_step(self.state)

    @property
    def is_complete(self) -> bool:
        return is_onboarding_complete(self.state)

    async def load(self) -> OnboardingState:
        """Fetch the server snapshot and drop drafts it supersedes."""
        await self._replace_state(await self.client.fetch_state())
        return self.state

    async def _replace_state(self, state: OnboardingState) -> None:
        self._state = state
        try:
            pruned = await self.drafts.prune(state.completed_steps)
        except GovReadyException as e:
            logger.warning("Could not prune drafts for completed steps: %s", e.message)
            return
        for step in pruned:
            self.debouncer.forget(step)

    # ── Navigation ───────────────────────────────────────────

    def can_navigate_to_step(self, step: Step | str) -> bool:
        return can_navigate_to_step(self.state, step)

    def navigation(self) -> dict[Step, bool]:
        return navigation_map(self.state)

    async def resolve(self, url_hint: str | None = None) -> ResolvedView:
        """Resolve the displayed step (and its form data) from all three sources."""
        view = resolve_view(self.state, await self.drafts.all(), url_hint)
        self.displayed_step = view.intent.resolved_step
        return view

    def navigate(self, step: Step) -> Step:
        if not self.can_navigate_to_step(step):
            raise StepNotNavigable(step.value)
        self.displayed_step = step
        return step

    async def prefill(self, step: Step) -> tuple[dict, str]:
        draft = await self.drafts.get(step)
        drafts = {step: draft} if draft is not None else {}
        return resolve_step_data(self.state, drafts, step)

    # ── Drafts ───────────────────────────────────────────────

    def save_draft(self, step: Step, payload: dict) -> bool:
        """Debounced draft save. Never calls the backend."""
        return self.debouncer.schedule(step, payload)

    async def save_draft_now(self, step: Step, payload: dict) -> Draft:
        self.debouncer.cancel(step)
        return await self.drafts.put(step, payload)

    async def discard_draft(self, step: Step) -> None:
        self.debouncer.forget(step)
        await self.drafts.discard(step)

    async def _preserve_draft(self, step: Step, payload: object) -> None:
        """Keep what the user typed after a failed submission."""
        if not isinstance(payload, dict) or payload == SKIP_PAYLOAD:
            return
        try:
            await self.drafts.put(step, payload)
        except GovReadyException as e:
            logger.warning("Could not preserve draft for %s: %s", step.value, e.message)

    async def _clear_draft(self, step: Step) -> None:
        self.debouncer.forget(step)
        try:
            await self.drafts.discard(step)
        except GovReadyException as e:
            logger.warning("Could not clear draft for %s: %s", step.value, e.message)

    # ── Submission ───────────────────────────────────────────

    async def submit_step(self, step: Step, payload: dict) -> SubmissionOutcome:
        """Immediate submission ("Continue" / "Skip")."""
        if self.busy:
            raise SubmissionInProgress()
        if not self.can_navigate_to_step(step):
            raise StepNotNavigable(step.value)

        # The immediate payload supersedes any queued draft write
        self.debouncer.cancel(step)
        self.busy = True
        try:
            try:
                normalized = validate_step_payload(step, payload)
                new_state, hint, optimistic, synthesized = await self._send(step, normalized)
            except GovReadyException:
                await self._preserve_draft(step, payload)
                raise

            # Accepted by the backend: draft cleanup below must not fail the step
            self.displayed_step = next_displayed_step(new_state, hint)
            await self._replace_state(new_state)
            await self._clear_draft(step)
        finally:
            self.busy = False

        logger.info(
            "Step %s accepted%s; showing %s",
            step.value,
            " (optimistic)" if optimistic else " (synthesized)" if synthesized else "",
            self.displayed_step.value,
        )
        return SubmissionOutcome(
            state=new_state,
            displayed_step=self.displayed_step,
            optimistic=optimistic,
            synthesized=synthesized,
        )

    async def _send(self, step: Step, payload: dict) -> tuple[OnboardingState, Step | None, bool, bool]:
        try:
            submission = await self.client.submit_step(step, payload)
        except OrderingConflict as e:
            synthetic = optimistic_unblock(step, e.shape, self.state, payload)
            if synthetic is None:
                raise
            logger.warning("Ordering conflict (%s) on %s, advancing optimistically", e.shape, step.value)
            return synthetic, None, True, False
        except MalformedServerResponse:
            logger.warning("No state returned for %s, synthesizing from request", step.value)
            return synthesize_state(self.state, step, payload), None, False, True
        return submission.state, submission.next_step_hint, False, False

    async def skip_step(self, step: Step) -> SubmissionOutcome:
        """Skip an optional step; it still counts as completed server-side."""
        return await self.submit_step(step, dict(SKIP_PAYLOAD))

    async def aclose(self) -> None:
        await self.debouncer.aclose()
