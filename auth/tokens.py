"""
auth/tokens.py -- JWT access/refresh tokens, password hashing, refresh cookie.

Security design decisions:
  JWT: python-jose with HS256. Two token classes, each signed with its own
       secret and carrying its own "type" claim:
         access  -- short-lived (15 min default), returned in the response
                    body, sent back as "Authorization: Bearer".
         refresh -- long-lived (7 days default), only ever travels in an
                    httpOnly cookie, only accepted by the refresh endpoint.
       Both carry {sub, email, role}. A leaked access secret cannot forge a
       refresh token and vice versa; the type claim additionally rejects a
       token presented to the wrong verifier.

  Passwords: bcrypt, used directly. The _DUMMY_HASH constant enables timing
       equalization in authenticate_user() so response time does not reveal
       whether an email is registered.

  Revocation: none. Tokens are stateless; logout only clears the cookie and a
       demoted user keeps the minted role until the access token expires.

Layer rule: no imports from api/ or tasks/. Import from core/ is allowed --
core/ is the kernel and has no reverse dependencies.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import bcrypt
from jose import JWTError, jwt

from auth.models import ROLES, Principal
from core.config import Settings, get_settings
from core.errors import InvalidToken

if TYPE_CHECKING:
    from auth.models import User
    from auth.store import UserStore

_settings = get_settings()

_ALGORITHM = "HS256"

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"

REFRESH_COOKIE_NAME = "refresh_token"
# The cookie is only needed by /auth/refresh and /auth/logout; scoping it keeps
# it off every other request.
REFRESH_COOKIE_PATH = "/api/v1/auth"

# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt only looks at the first 72 bytes. The API layer caps passwords at
    128 characters; the truncation is applied explicitly so bcrypt 4.x never
    raises on long UTF-8 input.
    """
    pw_bytes = plain.encode("utf-8")[:72]
    return bcrypt.hashpw(pw_bytes, bcrypt.gensalt(rounds=_settings.bcrypt_rounds)).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8")[:72], hashed.encode("utf-8"))
    except (ValueError, TypeError):
        return False


# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones.
_DUMMY_HASH: str = hash_password("tasktrack_timing_dummy")


def authenticate_user(store: UserStore, email: str, password: str) -> User | None:
    """Authenticate an email/password login with timing equalization.

    Always runs bcrypt whether or not the email is registered:
    - Unknown email: bcrypt runs against _DUMMY_HASH (same cost as real check)
    - Wrong password: bcrypt runs against the real hash (same cost)

    Returns the User on success, None on any failure -- unknown email, wrong
    password, and inactive account are deliberately indistinguishable.
    """
    user = store.get_by_email(email)
    if user is None or not user.hashed_password:
        verify_password(password, _DUMMY_HASH)
        return None
    if not verify_password(password, user.hashed_password):
        return None
    if not user.is_active:
        return None
    return user


# ---------------------------------------------------------------------------
# Token service
# ---------------------------------------------------------------------------


class TokenService:
    """Issues and verifies the two token classes.

    Secrets and lifetimes are injected so tests can build a service with a
    foreign secret or an already-elapsed lifetime. Production code builds it
    once with from_settings().
    """

    def __init__(
        self,
        access_secret: str,
        refresh_secret: str,
        access_ttl: timedelta = timedelta(minutes=15),
        refresh_ttl: timedelta = timedelta(days=7),
        algorithm: str = _ALGORITHM,
    ) -> None:
        self._access_secret = access_secret
        self._refresh_secret = refresh_secret
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl
        self._algorithm = algorithm

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> TokenService:
        settings = settings or _settings
        return cls(
            access_secret=settings.access_token_secret,
            refresh_secret=settings.refresh_token_secret,
            access_ttl=timedelta(minutes=settings.access_token_expire_minutes),
            refresh_ttl=timedelta(days=settings.refresh_token_expire_days),
        )

    def issue_access_token(self, claims: Principal) -> str:
        return self._encode(claims, ACCESS_TOKEN_TYPE, self._access_secret, self.access_ttl)

    def issue_refresh_token(self, claims: Principal) -> str:
        return self._encode(claims, REFRESH_TOKEN_TYPE, self._refresh_secret, self.refresh_ttl)

    def issue_pair(self, claims: Principal) -> tuple[str, str]:
        """Return (access_token, refresh_token) minted from the same claims."""
        return self.issue_access_token(claims), self.issue_refresh_token(claims)

    def verify_access_token(self, token: str) -> Principal:
        """Return the claims of a valid access token. Raises InvalidToken otherwise."""
        return self._decode(token, ACCESS_TOKEN_TYPE, self._access_secret)

    def verify_refresh_token(self, token: str) -> Principal:
        """Return the claims of a valid refresh token. Raises InvalidToken otherwise."""
        return self._decode(token, REFRESH_TOKEN_TYPE, self._refresh_secret)

    def _encode(self, claims: Principal, token_type: str, secret: str, ttl: timedelta) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "sub": str(claims.id),
            "email": claims.email,
            "role": claims.role,
            "type": token_type,
            "iat": now,
            "exp": now + ttl,
        }
        return jwt.encode(payload, secret, algorithm=self._algorithm)

    def _decode(self, token: str, token_type: str, secret: str) -> Principal:
        try:
            payload = jwt.decode(token, secret, algorithms=[self._algorithm])
        except JWTError as exc:
            raise InvalidToken() from exc

        if payload.get("type") != token_type:
            raise InvalidToken()
        try:
            user_id = int(payload["sub"])
            email = payload["email"]
            role = payload["role"]
        except (KeyError, TypeError, ValueError) as exc:
            raise InvalidToken() from exc
        if role not in ROLES or not isinstance(email, str):
            raise InvalidToken()
        return Principal(id=user_id, email=email, role=role)


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_refresh_cookie(response, token: str) -> None:
    """Write the refresh token as an httpOnly, SameSite=Strict cookie.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="strict": never sent on cross-site requests (CSRF mitigation for
        the refresh endpoint, which mints credentials).
    secure: only sent over HTTPS when SECURE_COOKIES=true (set in production).
    max_age: matches the refresh token lifetime so both expire together.
    """
    response.set_cookie(
        REFRESH_COOKIE_NAME,
        value=token,
        httponly=True,
        samesite="strict",
        secure=_settings.secure_cookies,
        max_age=_settings.refresh_token_expire_days * 24 * 60 * 60,
        path=REFRESH_COOKIE_PATH,
    )


def clear_refresh_cookie(response) -> None:
    """Expire the refresh cookie. Attributes must match the ones it was set with."""
    response.delete_cookie(
        REFRESH_COOKIE_NAME,
        path=REFRESH_COOKIE_PATH,
        httponly=True,
        samesite="strict",
        secure=_settings.secure_cookies,
    )
