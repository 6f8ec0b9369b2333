"""Session token decoding.

Tokens are issued by the identity provider; this service only reads them
and forwards them unchanged to the backend.

Token claims:
  - sub:             user ID
  - org_id:          organization ID (absent until the user creates or joins one)
  - email:           primary email address
  - email_verified:  bool
  - mfa_enabled:     bool
  - type:            "access"
  - exp:             expiry timestamp
"""

from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from govready.config import settings

ALGORITHM = settings.jwt_algorithm


def create_access_token(
    user_id: str,
    organization_id: str | None = None,
    email: str | None = None,
    email_verified: bool = False,
    mfa_enabled: bool = False,
    expires_delta: timedelta | None = None,
) -> str:
    """Issue a session token with the provider's claim layout (local dev and tests)."""
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    payload = {
        "sub": user_id,
        "email_verified": email_verified,
        "mfa_enabled": mfa_enabled,
        "type": "access",
        "exp": expire,
    }
    if organization_id:
        payload["org_id"] = organization_id
    if email:
        payload["email"] = email
    return jwt.encode(payload, settings.secret_key, algorithm=ALGORITHM)


def decode_token(token: str) -> dict:
    """Decode and validate a JWT. Returns empty dict on failure."""
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[ALGORITHM])
    except JWTError:
        return {}
