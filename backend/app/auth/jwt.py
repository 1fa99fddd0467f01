"""JWT access token creation and decoding.

Tokens are issued by the ERP's auth service; this service only decodes
them.  ``create_access_token`` exists for local tooling and tests.

Token claims:
  - sub:            user ID
  - company_id:     company the user acts for (every ledger row is scoped to it)
  - name:           display name (optional)
  - permissions:    list of effective permission strings
  - type:           "access"
  - exp:            expiry timestamp
"""

from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from app.config import settings

ALGORITHM = settings.jwt_algorithm


def create_access_token(
    user_id: str,
    company_id: str,
    permissions: list[str],
    name: str | None = None,
    expires_delta: timedelta | None = None,
) -> str:
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    payload = {
        "sub": user_id,
        "company_id": company_id,
        "permissions": permissions,
        "type": "access",
        "exp": expire,
    }
    if name:
        payload["name"] = name
    return jwt.encode(payload, settings.secret_key, algorithm=ALGORITHM)


def decode_token(token: str) -> dict:
    """Decode and validate a JWT. Returns empty dict on failure."""
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[ALGORITHM])
    except JWTError:
        return {}
