"""Resolve the bearer token of every request onto ``request.state.user``."""

from __future__ import annotations

from typing import Awaitable, Callable

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from apps.repairdesk.dependencies.auth import User, resolve_user_from_token


class RBACMiddleware(BaseHTTPMiddleware):
    """Reject malformed credentials early; anonymous requests become viewers."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        token: str | None = None
        authorization = request.headers.get("Authorization")
        if authorization:
            scheme, _, credentials = authorization.partition(" ")
            if scheme.lower() != "bearer" or not credentials.strip():
                return JSONResponse(status_code=401, content={"detail": "Invalid authentication credentials"})
            token = credentials.strip()

        try:
            user: User = resolve_user_from_token(token)
        except HTTPException as exc:
            return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})

        request.state.user = user
        return await call_next(request)
