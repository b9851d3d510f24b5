"""
api/routes/v1/auth.py -- Registration, login, and token lifecycle endpoints.

Routes:
  POST /api/v1/auth/register  -- create account; first account ever becomes admin (201)
  POST /api/v1/auth/login     -- password login; access token in body, refresh token in cookie
  POST /api/v1/auth/refresh   -- exchange the refresh cookie for a new pair
  POST /api/v1/auth/logout    -- clear the refresh cookie
  GET  /api/v1/auth/me        -- current user record (requires auth)

Security:
  POST /register and POST /login are rate-limited per IP (AUTH_RATE_LIMIT).
  Login failures are collapsed into one InvalidCredentials error by AuthService.
  Refresh failures are collapsed into one InvalidRefreshToken error.
  The refresh token is never put in a response body.
  Cache-Control: no-store on every response that carries a credential.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response

from api.limiter import limiter
from api.models import AccessTokenData, ApiResponse, AuthData, LoginRequest, RegisterRequest, UserResponse
from auth.dependencies import get_auth_service, get_current_principal
from auth.models import Principal
from auth.service import AuthResult, AuthService
from auth.tokens import REFRESH_COOKIE_NAME, clear_refresh_cookie, set_refresh_cookie
from core.config import get_settings

_settings = get_settings()

# Auth policy:
# - POST /api/v1/auth/register: public -- rate limited
# - POST /api/v1/auth/login:    public -- rate limited
# - POST /api/v1/auth/refresh:  refresh cookie only (no bearer token)
# - POST /api/v1/auth/logout:   public -- clearing a cookie needs no prior auth
# - GET  /api/v1/auth/me:       requires auth (get_current_principal)
router = APIRouter()


def _signed_in(response: Response, result: AuthResult, message: str) -> ApiResponse[AuthData]:
    set_refresh_cookie(response, result.refresh_token)
    response.headers["Cache-Control"] = "no-store"
    return ApiResponse[AuthData](
        message=message,
        data=AuthData(user=UserResponse.from_user(result.user), access_token=result.access_token),
    )


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@limiter.limit(_settings.auth_rate_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/register", response_model=ApiResponse[AuthData], status_code=201)
def register(
    request: Request,
    response: Response,
    body: RegisterRequest,
    auth: AuthService = Depends(get_auth_service),
) -> ApiResponse[AuthData]:
    """Create an account and sign it in.

    The body has no role field: the first account ever created becomes admin,
    every later one is a regular user.
    """
    result = auth.register(
        username=body.username,
        email=body.email,
        password=body.password,
        first_name=body.first_name,
        last_name=body.last_name,
    )
    return _signed_in(response, result, "User registered successfully")


@limiter.limit(_settings.auth_rate_limit)
@router.post("/auth/login", response_model=ApiResponse[AuthData])
def login(
    request: Request,
    response: Response,
    body: LoginRequest,
    auth: AuthService = Depends(get_auth_service),
) -> ApiResponse[AuthData]:
    """Authenticate with email and password.

    Unknown email, wrong password and inactive account all produce the same
    401 invalid_credentials response.
    """
    result = auth.login(body.email, body.password)
    return _signed_in(response, result, "Login successful")


@router.post("/auth/refresh", response_model=ApiResponse[AccessTokenData])
def refresh(
    request: Request,
    response: Response,
    auth: AuthService = Depends(get_auth_service),
) -> ApiResponse[AccessTokenData]:
    """Mint a new access token and rotate the refresh cookie."""
    pair = auth.refresh(request.cookies.get(REFRESH_COOKIE_NAME))
    set_refresh_cookie(response, pair.refresh_token)
    response.headers["Cache-Control"] = "no-store"
    return ApiResponse[AccessTokenData](
        message="Token refreshed successfully",
        data=AccessTokenData(access_token=pair.access_token),
    )


@router.post("/auth/logout", response_model=ApiResponse[None])
def logout(response: Response, auth: AuthService = Depends(get_auth_service)) -> ApiResponse[None]:
    """Clear the refresh cookie. Already-issued tokens expire on their own."""
    auth.logout()
    clear_refresh_cookie(response)
    return ApiResponse[None](message="Logout successful")


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/me", response_model=ApiResponse[UserResponse])
def me(
    principal: Principal = Depends(get_current_principal),
    auth: AuthService = Depends(get_auth_service),
) -> ApiResponse[UserResponse]:
    """Return the stored record of the authenticated user."""
    return ApiResponse[UserResponse](data=UserResponse.from_user(auth.get_me(principal.id)))
