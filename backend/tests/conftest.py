"""Pytest configuration and fixtures for GovReady tests.

Provides a scriptable fake of the onboarding backend (served through
``httpx.MockTransport``), in-memory draft stores, session tokens and an
ASGI test client with the backend and draft dependencies overridden.
"""

import json
from typing import AsyncGenerator

import httpx
import pytest
import pytest_asyncio
from httpx import AsyncClient

from govready.auth.jwt import create_access_token
from govready.dependencies import get_backend_client, get_draft_store
from govready.main import app
from govready.schemas.onboarding import SessionFacts
from govready.services.backend_client import OnboardingBackendClient
from govready.services.drafts import InMemoryDraftStore

BLOCKING = ["ACCOUNT_VERIFIED", "ORG_CHOICE", "COMPANY_PROFILE", "COMPLIANCE_INTAKE"]
ALL_STEPS = BLOCKING + ["INTEGRATIONS", "TEAM", "FIRST_RFP"]


class FakeBackend:
    """In-process stand-in for the onboarding/company backend.

    ``fail_next(status, body)`` or ``raise_next(exc)`` make the next step
    submission fail; ``malformed_next()`` makes it succeed without a state.
    """

    def __init__(self, completed=None, required=None, step_data=None):
        self.completed: list[str] = list(completed or [])
        self.required: list[str] = list(required or ALL_STEPS)
        self.step_data: dict = dict(step_data or {})
        self.next_step_hint: str | None = None
        self.state_status: int = 200
        self.state_body: dict | None = None
        self.companies: dict[str, dict] = {}
        self.requests: list[httpx.Request] = []
        self._submit_failures: list = []

    # ── Scripting ────────────────────────────────────────────

    def fail_next(self, status_code: int, body: dict | None = None):
        self._submit_failures.append(("status", status_code, body or {}))

    def raise_next(self, exc: Exception):
        self._submit_failures.append(("raise", exc, None))

    def malformed_next(self, body: dict | None = None):
        self._submit_failures.append(("malformed", body or {"ok": True}, None))

    @property
    def submissions(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == "/onboarding/complete"]

    def state_json(self) -> dict:
        done = [s for s in self.required if s in self.completed]
        return {
            "completedSteps": list(self.completed),
            "requiredSteps": list(self.required),
            "progress": round(100 * len(done) / len(self.required)) if self.required else 0,
            "stepData": dict(self.step_data),
        }

    # ── Transport ────────────────────────────────────────────

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path == "/onboarding/state" and request.method == "GET":
            if self.state_status != 200:
                return httpx.Response(self.state_status, json=self.state_body or {})
            return httpx.Response(200, json={"state": self.state_json()})

        if path == "/onboarding/complete" and request.method == "POST":
            if self._submit_failures:
                kind, value, body = self._submit_failures.pop(0)
                if kind == "raise":
                    raise value
                if kind == "malformed":
                    return httpx.Response(200, json=value)
                return httpx.Response(value, json=body)
            submitted = json.loads(request.content)
            step = submitted["step"]
            if step not in self.completed:
                self.completed.append(step)
            self.step_data[step] = submitted["payload"]
            response = {"ok": True, "state": self.state_json()}
            if self.next_step_hint:
                response["nextStep"] = self.next_step_hint
            return httpx.Response(200, json=response)

        if path.startswith("/companies/"):
            parts = path.strip("/").split("/")
            company = self.companies.get(parts[1])
            if company is None:
                return httpx.Response(404, json={"error": "not_found"})
            if len(parts) == 2:
                return httpx.Response(200, json=company["company"])
            value = company.get(parts[2])
            if value is None:
                return httpx.Response(404, json={"error": "not_found"})
            return httpx.Response(200, json=value)

        return httpx.Response(404, json={"error": "not_found"})

    def client(self, session: SessionFacts | None = None, token: str = "test-token") -> OnboardingBackendClient:
        return OnboardingBackendClient(
            token=token,
            organization_id=session.organization_id if session else None,
            session=session,
            base_url="http://backend.test",
            transport=httpx.MockTransport(self.handler),
        )


# ── Session fixtures ─────────────────────────────────────────

@pytest.fixture
def session_facts() -> SessionFacts:
    return SessionFacts(
        user_id="user_123",
        organization_id="org_456",
        email="owner@acme.test",
        email_verified=True,
    )


@pytest.fixture
def test_token(session_facts: SessionFacts) -> str:
    return create_access_token(
        user_id=session_facts.user_id,
        organization_id=session_facts.organization_id,
        email=session_facts.email,
        email_verified=session_facts.email_verified,
    )


@pytest.fixture
def auth_headers(test_token: str) -> dict:
    return {"Authorization": f"Bearer {test_token}"}


# ── Backend / drafts fixtures ────────────────────────────────

@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend(completed=["ACCOUNT_VERIFIED"])


@pytest.fixture
def drafts() -> InMemoryDraftStore:
    return InMemoryDraftStore()


@pytest_asyncio.fixture
async def client(backend: FakeBackend, drafts: InMemoryDraftStore, session_facts) -> AsyncGenerator[AsyncClient, None]:
    """ASGI test client wired to the fake backend and an in-memory draft store."""

    app.dependency_overrides[get_backend_client] = lambda: backend.client(session_facts)
    app.dependency_overrides[get_draft_store] = lambda: drafts

    async with AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()


# ── Test Markers ─────────────────────────────────────────────

def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "api: HTTP-level tests")
    config.addinivalue_line("markers", "cache: Draft store tests")
