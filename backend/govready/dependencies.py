"""Request-scoped wiring: backend client, draft store and wizard engine."""

from fastapi import Depends

from govready.auth.deps import RequestSession, get_current_session
from govready.config import settings
from govready.services.backend_client import OnboardingBackendClient
from govready.services.drafts import DraftStore, InMemoryDraftStore, RedisDraftStore, get_redis
from govready.services.engine import OnboardingProgressionEngine

# One store per user when running without Redis (single process only)
_memory_stores: dict[str, InMemoryDraftStore] = {}


def get_backend_client(
    session: RequestSession = Depends(get_current_session),
) -> OnboardingBackendClient:
    return OnboardingBackendClient(
        token=session.token,
        organization_id=session.facts.organization_id,
        session=session.facts,
    )


async def get_draft_store(
    session: RequestSession = Depends(get_current_session),
) -> DraftStore:
    if settings.draft_store == "memory":
        return _memory_stores.setdefault(session.facts.user_id, InMemoryDraftStore())
    return RedisDraftStore(await get_redis(), session_key=session.facts.user_id)


async def get_engine(
    client: OnboardingBackendClient = Depends(get_backend_client),
    drafts: DraftStore = Depends(get_draft_store),
):
    """Engine with a freshly loaded snapshot."""
    engine = OnboardingProgressionEngine(client, drafts)
    await engine.load()
    try:
        yield engine
    finally:
        await engine.aclose()
