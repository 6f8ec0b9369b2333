"""FastAPI dependencies for authentication.

Dependencies:
  get_current_session  → decode the bearer token into SessionFacts + raw token
  require_organization → same, but 403 until the user has an organization
"""

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel

from govready.auth.jwt import decode_token
from govready.schemas.onboarding import SessionFacts

bearer_scheme = HTTPBearer(auto_error=False)


class RequestSession(BaseModel):
    facts: SessionFacts
    token: str


async def get_current_session(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    x_organization_id: str | None = Header(default=None),
) -> RequestSession:
    """Decode the bearer token and return the caller's session facts.

    The organization id falls back to the ``x-organization-id`` header:
    the token is minted before the organization exists and is not
    refreshed when one is created.
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = decode_token(credentials.credentials)
    user_id: str | None = payload.get("sub")
    if not user_id or payload.get("type") != "access":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    facts = SessionFacts(
        user_id=user_id,
        organization_id=payload.get("org_id") or x_organization_id,
        email=payload.get("email"),
        email_verified=bool(payload.get("email_verified")),
        mfa_enabled=bool(payload.get("mfa_enabled")),
    )
    return RequestSession(facts=facts, token=credentials.credentials)


async def require_organization(
    session: RequestSession = Depends(get_current_session),
) -> RequestSession:
    """Restrict to users who already belong to an organization."""
    if not session.facts.organization_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="No organization context: create or join an organization first",
        )
    return session
