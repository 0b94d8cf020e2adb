"""Security helpers for the booking API."""
from __future__ import annotations

from fastapi import HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .errors import InvalidTokenError
from .models import Identity
from .tokens import TokenService


class TokenAuth:
    """Bearer token authentication that resolves the caller's :class:`Identity`.

    The dependency is a pure filter: it never touches the store and never
    decides whether a specific operation is allowed.
    """

    def __init__(self, tokens: TokenService):
        self._tokens = tokens
        self._bearer = HTTPBearer(auto_error=False)

    async def __call__(self, request: Request) -> Identity:
        credentials: HTTPAuthorizationCredentials | None = await self._bearer(request)  # type: ignore[assignment]
        if credentials is None or credentials.scheme.lower() != "bearer":
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Not authorized",
                headers={"WWW-Authenticate": "Bearer"},
            )

        try:
            claims = self._tokens.verify(credentials.credentials)
        except InvalidTokenError as exc:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail=str(exc),
                headers={"WWW-Authenticate": "Bearer"},
            ) from exc

        return Identity(user_id=claims.user_id, email=claims.email)


__all__ = ["Identity", "TokenAuth"]
