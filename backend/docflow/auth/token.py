"""
JWT Token Verification — HS256 shared secret

Tokens are issued by the account service (out of scope here) and signed
with the shared JWT_SECRET. Claims:

  id    user id (required)
  role  "user" | "admin" (optional, defaults to "user")
  exp   expiry, always verified

Every PDF operation route depends on get_current_user; the health probes do not.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import ExpiredSignatureError, JWTError, jwt
from pydantic import BaseModel

from docflow.core.config import settings

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)

_VALID_ROLES = {"user", "admin"}


class TokenPayload(BaseModel):
    """Parsed, validated JWT claims — passed to route handlers."""
    id:   str
    role: str = "user"
    exp:  int


def verify_token(token: str, secret: str | None = None, algorithm: str | None = None) -> TokenPayload:
    """Verify signature and expiry, then build a typed TokenPayload."""
    try:
        claims = jwt.decode(
            token,
            secret or settings.jwt_secret,
            algorithms=[algorithm or settings.jwt_algorithm],
            options={"verify_exp": True, "require_exp": True},
        )
    except ExpiredSignatureError:
        raise HTTPException(
            status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired. Please sign in again.",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except JWTError as exc:
        logger.info("JWT decode error | error=%s", exc)
        raise HTTPException(
            status.HTTP_401_UNAUTHORIZED,
            detail="Not authorized to access this route",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id = claims.get("id") or claims.get("sub")
    if not user_id:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, detail="Token is missing the user id claim.")

    role = claims.get("role", "user")
    if role not in _VALID_ROLES:
        logger.warning("Unknown role %r in token, defaulting to user | id=%s", role, user_id)
        role = "user"

    return TokenPayload(id=str(user_id), role=role, exp=claims["exp"])


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
) -> TokenPayload:
    """
    FastAPI dependency that extracts and validates the Bearer token:

        @router.post("/documents/optimize")
        async def optimize(user: CurrentUser):
            ...
    """
    if credentials is None:
        raise HTTPException(
            status.HTTP_401_UNAUTHORIZED,
            detail="Not authorized to access this route",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return verify_token(credentials.credentials)


CurrentUser = Annotated[TokenPayload, Depends(get_current_user)]
