"""
auth/service.py -- Registration, login, refresh, and "who am I".

AuthService orchestrates UserStore (credentials) and TokenService (token
minting). It raises core.errors types only; the HTTP layer decides status
codes from them and handles the refresh cookie.

Error collapsing:
  login   -- unknown email, wrong password, inactive account -> InvalidCredentials
  refresh -- bad/expired/forged token, deleted user, inactive user -> InvalidRefreshToken
  Callers get one error per operation so responses cannot be used to probe
  which condition failed.

Layer rule: no imports from api/ or tasks/.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.models import ROLE_ADMIN, ROLE_USER, Principal, User
from auth.store import UserStore
from auth.tokens import TokenService, authenticate_user, hash_password
from core.errors import DuplicateUser, InvalidCredentials, InvalidRefreshToken, InvalidToken, UserNotFound

logger = logging.getLogger("tasktrack.auth")


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


@dataclass(frozen=True)
class AuthResult:
    """A user (credential stripped) plus a freshly minted token pair."""

    user: User
    access_token: str
    refresh_token: str


def strip_credential(user: User) -> User:
    """Return a copy of user without the password hash."""
    return dataclasses.replace(user, hashed_password=None)


def claims_for(user: User) -> Principal:
    return Principal(id=user.id, email=user.email, role=user.role)


class AuthService:
    def __init__(self, users: UserStore, tokens: TokenService) -> None:
        self.users = users
        self.tokens = tokens

    def register(
        self,
        *,
        username: str,
        email: str,
        password: str,
        first_name: str = "",
        last_name: str = "",
    ) -> AuthResult:
        """Create an account and sign it in.

        Role is never taken from the caller: the store makes the first user
        ever created an admin and everybody after that a regular user.
        """
        if self.users.find_by_email_or_username(email, username) is not None:
            raise DuplicateUser()

        candidate = User(
            username=username,
            email=email,
            first_name=first_name,
            last_name=last_name,
            role=ROLE_USER,
            hashed_password=hash_password(password),
        )
        try:
            user_id = self.users.create_user(candidate)
        except IntegrityError as exc:
            # A concurrent registration took the username or email between
            # the existence check and the insert.
            raise DuplicateUser() from exc

        user = self.users.get_by_id(user_id)
        if user is None:
            raise UserNotFound()
        if user.role == ROLE_ADMIN:
            logger.info("Bootstrap admin registered (user_id=%s)", user.id)
        else:
            logger.info("User registered (user_id=%s)", user.id)
        return self._sign_in(user)

    def login(self, email: str, password: str) -> AuthResult:
        user = authenticate_user(self.users, email, password)
        if user is None:
            logger.warning("Failed login attempt")
            raise InvalidCredentials()

        # last_login is bookkeeping; a write failure must not fail the login.
        try:
            self.users.update_last_login(user.id)
        except SQLAlchemyError:
            logger.exception("Could not record last_login (user_id=%s)", user.id)
        else:
            user = self.users.get_by_id(user.id) or user

        return self._sign_in(user)

    def refresh(self, refresh_token: str | None) -> TokenPair:
        """Exchange a refresh token for a brand-new pair.

        The new pair is minted from the current user record, not from the old
        token's claims, so a role change takes effect at the next refresh.
        The old refresh token stays valid until it expires (no server-side
        revocation).
        """
        if not refresh_token:
            raise InvalidRefreshToken()
        try:
            claims = self.tokens.verify_refresh_token(refresh_token)
        except InvalidToken as exc:
            logger.info("Refresh rejected: token failed verification")
            raise InvalidRefreshToken() from exc

        user = self.users.get_by_id(claims.id)
        if user is None or not user.is_active:
            logger.info("Refresh rejected: user %s missing or inactive", claims.id)
            raise InvalidRefreshToken()

        access, refresh = self.tokens.issue_pair(claims_for(user))
        return TokenPair(access_token=access, refresh_token=refresh)

    def logout(self) -> None:
        """Nothing to do server-side: tokens are stateless.

        The route clears the refresh cookie; already-issued tokens stay valid
        until they expire.
        """
        return None

    def get_me(self, user_id: int) -> User:
        user = self.users.get_by_id(user_id)
        if user is None:
            raise UserNotFound()
        return strip_credential(user)

    def _sign_in(self, user: User) -> AuthResult:
        access, refresh = self.tokens.issue_pair(claims_for(user))
        return AuthResult(user=strip_credential(user), access_token=access, refresh_token=refresh)
