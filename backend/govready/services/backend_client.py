"""HTTP client for the onboarding and company-records backend.

Forwards the caller's bearer token (and organization id, which the token
template does not always carry) and turns every backend failure into one
of the application exceptions:

    timeout / network / 5xx          → TransientBackendError
    422                              → StepValidationError
    404, 409 ORG_MISSING,
    403 forbidden, 500 unknown_step  → OrderingConflict(shape)
    other 4xx                        → BackendRequestError
    2xx without a state object       → MalformedServerResponse

Nothing is retried here; retry is a user action.
"""

import asyncio
import logging
from typing import Any

import httpx
from pydantic import BaseModel

from govready.config import settings
from govready.middleware.exceptions import (
    BackendRequestError,
    GovReadyException,
    MalformedServerResponse,
    OrderingConflict,
    StepValidationError,
    TransientBackendError,
)
from govready.schemas.onboarding import DEFAULT_REQUIRED_STEPS, OnboardingState, SessionFacts, Step
from govready.schemas.readiness import ReadinessInputs
from govready.services.progression import ErrorShape, compute_progress

logger = logging.getLogger(__name__)


class StepSubmission(BaseModel):
    state: OnboardingState
    next_step_hint: Step | None = None


def classify_backend_error(status_code: int, body: Any) -> GovReadyException:
    """Map a non-2xx backend response to an application exception."""
    body = body if isinstance(body, dict) else {}
    error = body.get("error")
    message = body.get("message") or (error if isinstance(error, str) else None)

    if status_code == 500 and isinstance(error, str) and error.startswith("unknown_step"):
        return OrderingConflict(ErrorShape.UNKNOWN_STEP.value, message=error)
    if status_code == 404:
        return OrderingConflict(ErrorShape.NO_RECORD.value, message=message or "No onboarding record found")
    if status_code == 409 and body.get("code") == "ORG_MISSING":
        return OrderingConflict(ErrorShape.ORG_MISSING.value, message=message or "Organization does not exist yet")
    if status_code == 403 and error == "forbidden":
        return OrderingConflict(ErrorShape.ORG_MISSING.value, message="No organization access yet")
    if status_code == 422:
        errors = body.get("validationErrors") or body.get("errors") or []
        if not isinstance(errors, list):
            errors = []
        return StepValidationError(errors, message=message or "Validation error")
    if status_code >= 500:
        return TransientBackendError()
    return BackendRequestError(status_code, message=message or "Backend rejected the request")


def default_state(session: SessionFacts | None) -> OnboardingState:
    """Initial state for a user the backend has no onboarding record for."""
    completed = [Step.ACCOUNT_VERIFIED] if session and session.email_verified else []
    required = list(DEFAULT_REQUIRED_STEPS)
    return OnboardingState(
        completed_steps=completed,
        required_steps=required,
        progress=compute_progress(completed, required),
    )


class OnboardingBackendClient:
    """Talks to the backend on behalf of one authenticated user."""

    def __init__(
        self,
        token: str,
        organization_id: str | None = None,
        session: SessionFacts | None = None,
        base_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.token = token
        self.organization_id = organization_id
        self.session = session
        self.base_url = (base_url or settings.backend_url).rstrip("/")
        self.transport = transport
        self._headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }
        if organization_id:
            self._headers["x-organization-id"] = organization_id

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=self._headers,
            timeout=timeout,
            transport=self.transport,
        )

    @staticmethod
    async def _send(client: httpx.AsyncClient, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            return await client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            logger.warning(f"Backend timeout on {method} {path}: {e}")
            raise TransientBackendError("Backend timed out. Please try again.") from e
        except httpx.TransportError as e:
            logger.warning(f"Backend unreachable on {method} {path}: {e}")
            raise TransientBackendError() from e

    @staticmethod
    def _json(resp: httpx.Response) -> Any:
        try:
            return resp.json()
        except ValueError:
            return None

    def _raise_for_status(self, resp: httpx.Response, path: str) -> None:
        if resp.is_success:
            return
        body = self._json(resp)
        logger.error(f"Backend error on {path}: {resp.status_code} {body}")
        raise classify_backend_error(resp.status_code, body)

    # ── Onboarding ───────────────────────────────────────────

    async def fetch_state(self) -> OnboardingState:
        """Current onboarding snapshot.

        No record yet (or no organization yet) means the user is at the very
        beginning; that is a default state, not an error.
        """
        async with self._client(settings.backend_state_timeout_seconds) as client:
            resp = await self._send(client, "GET", "/onboarding/state")
        try:
            self._raise_for_status(resp, "/onboarding/state")
        except OrderingConflict as e:
            if e.shape in (ErrorShape.NO_RECORD.value, ErrorShape.ORG_MISSING.value):
                logger.info(f"No onboarding record yet ({e.shape}), using default state")
                return default_state(self.session)
            raise

        body = self._json(resp)
        if not isinstance(body, dict):
            raise MalformedServerResponse(body)
        data = body.get("state") if isinstance(body.get("state"), dict) else body
        if "stepData" not in data and isinstance(data.get("metadata"), dict):
            data = {**data, "stepData": data["metadata"]}
        return OnboardingState.from_backend(data)

    async def submit_step(self, step: Step, payload: dict) -> StepSubmission:
        """Send one step's payload and return the backend's new snapshot."""
        logger.info(f"Submitting onboarding step {step.value}")
        async with self._client(settings.backend_submit_timeout_seconds) as client:
            resp = await self._send(
                client,
                "POST",
                "/onboarding/complete",
                json={"step": step.value, "payload": payload},
            )
        self._raise_for_status(resp, "/onboarding/complete")

        body = self._json(resp)
        if not isinstance(body, dict) or not isinstance(body.get("state"), dict):
            logger.warning(f"Backend accepted {step.value} but returned no state object: {body}")
            raise MalformedServerResponse(body)

        hint = Step.parse(body.get("nextStep", body.get("next_step")))
        return StepSubmission(state=OnboardingState.from_backend(body["state"]), next_step_hint=hint)

    # ── Company records ──────────────────────────────────────

    async def fetch_company_snapshot(self, company_id: str) -> ReadinessInputs:
        """Company record plus the collections the readiness scorer reads."""
        base = f"/companies/{company_id}"
        async with self._client(settings.backend_state_timeout_seconds) as client:
            responses = await asyncio.gather(
                self._send(client, "GET", base),
                self._send(client, "GET", f"{base}/documents"),
                self._send(client, "GET", f"{base}/staff"),
                self._send(client, "GET", f"{base}/insurance"),
                self._send(client, "GET", f"{base}/bonding"),
                return_exceptions=True,
            )
        # Every request has settled and the client is closed before raising
        for result in responses:
            if isinstance(result, BaseException):
                raise result
        company_resp, docs_resp, staff_resp, ins_resp, bonding_resp = responses

        if company_resp.status_code == 404:
            raise BackendRequestError(404, message=f"Company not found: {company_id}")
        self._raise_for_status(company_resp, base)

        # A missing sub-collection is an empty one
        bodies = {}
        for resp, path in (
            (docs_resp, "documents"),
            (staff_resp, "staff"),
            (ins_resp, "insurance"),
            (bonding_resp, "bonding"),
        ):
            if resp.status_code == 404:
                bodies[path] = None
                continue
            self._raise_for_status(resp, f"{base}/{path}")
            bodies[path] = self._json(resp)

        return ReadinessInputs(
            company=self._json(company_resp),
            documents=_items(bodies["documents"]),
            staff=_items(bodies["staff"]),
            insurance=_items(bodies["insurance"]),
            bonding=bodies["bonding"],
        )


def _items(body: Any) -> list:
    """Accept a bare list or a paginated ``{"items": [...]}`` envelope."""
    if isinstance(body, list):
        return body
    if isinstance(body, dict) and isinstance(body.get("items"), list):
        return body["items"]
    return []
