"""FastAPI dependencies for authentication and authorization.

Dependencies:
  get_current_actor       → decode JWT, return the Actor (user + company)
  require_permission(...) → restrict to specific granular permissions
"""

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from app.auth.actor import Actor
from app.auth.jwt import decode_token
from app.auth.permissions import has_permission
from app.middleware.exceptions import PermissionDeniedError

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")


async def get_current_actor(token: str = Depends(oauth2_scheme)) -> Actor:
    """Decode the JWT and return the acting user.

    Every ledger read and write is scoped to the token's company_id, so a
    token without one is rejected.
    """
    payload = decode_token(token)
    user_id: str | None = payload.get("sub")
    if not user_id or payload.get("type") != "access":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    company_id: str | None = payload.get("company_id")
    if not company_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="No company context in token",
        )

    return Actor(
        user_id=user_id,
        company_id=company_id,
        name=payload.get("name"),
        permissions=list(payload.get("permissions", [])),
    )


def require_permission(*perms: str):
    """Dependency factory — restrict to actors who hold ALL listed permissions.

    Usage:
        @router.post("/{receipt_id}/lots")
        async def add_lot(actor: Actor = Depends(require_permission("stock.write"))):
            ...
    """
    async def _check(actor: Actor = Depends(get_current_actor)) -> Actor:
        missing = [p for p in perms if not has_permission(actor.permissions, p)]
        if missing:
            raise PermissionDeniedError(
                f"Missing permissions: {', '.join(missing)}",
                details={"missing": missing},
            )
        return actor

    return _check
