"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Protected routes authenticate with a single method:
  Authorization: Bearer <access token>

The refresh token is never accepted here; it only works at /auth/refresh.

get_current_principal() verifies the access token and builds a Principal from
its claims. No store lookup happens, so this dependency costs one HMAC check.
require_admin() wraps it and raises AccessDenied for non-admins.

Service getters pull the long-lived services that api/main.py's lifespan put
on app.state, so route handlers receive them through Depends() and tests can
swap them by replacing app.state.

Layer rule: no imports from api/ or tasks/.
  auth/dependencies.py may import from fastapi (for Depends/Request) because
  this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import Depends, Request

from auth import policy
from auth.models import Principal
from auth.service import AuthService
from auth.tokens import TokenService
from auth.users import UserService
from core.errors import AuthenticationRequired

_BEARER_PREFIX = "bearer "


def _bearer_token(request: Request) -> str | None:
    header = request.headers.get("Authorization", "")
    if header[: len(_BEARER_PREFIX)].lower() != _BEARER_PREFIX:
        return None
    token = header[len(_BEARER_PREFIX) :].strip()
    return token or None


def get_token_service(request: Request) -> TokenService:
    return request.app.state.token_service


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def get_user_service(request: Request) -> UserService:
    return request.app.state.user_service


def get_current_principal(
    request: Request,
    tokens: TokenService = Depends(get_token_service),
) -> Principal:
    """Require a valid access token. Raises AuthenticationRequired or InvalidToken (401).

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(principal: Principal = Depends(get_current_principal)): ...
    """
    token = _bearer_token(request)
    if token is None:
        raise AuthenticationRequired()
    return tokens.verify_access_token(token)


def require_admin(principal: Principal = Depends(get_current_principal)) -> Principal:
    """Require admin role. 401 if unauthenticated, 403 if not admin."""
    policy.require(policy.can_manage_users(principal))
    return principal
