"""
auth/users.py -- User roster management.

Reading users (list, detail) is open to every authenticated principal because
the task assignment picker needs it. Every write is admin-only and goes
through auth.policy.

Partial updates use an explicit allow-list. role has its own operation
(set_role) and passwords are never writable here, so a generic profile edit
can never escalate privileges or reset credentials.

Guards on writes:
  - an admin cannot deactivate, demote, or delete their own account
  - the last active admin cannot be deactivated or demoted

Layer rule: no imports from api/ or tasks/.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.exc import IntegrityError

from auth import policy
from auth.models import ROLE_ADMIN, ROLE_USER, ROLES, Principal, User
from auth.service import strip_credential
from auth.store import UserStore
from auth.tokens import hash_password
from core.errors import DuplicateUser, UserNotFound, ValidationFailed
from core.pagination import Page, page_params

logger = logging.getLogger("tasktrack.auth")

UPDATABLE_FIELDS = frozenset({"username", "email", "first_name", "last_name", "is_active"})


class UserService:
    def __init__(self, users: UserStore) -> None:
        self.users = users

    # ------------------------------------------------------------------
    # Reads (any authenticated principal)
    # ------------------------------------------------------------------

    def list_users(
        self,
        principal: Principal,
        *,
        search: str | None = None,
        page: int | None = None,
        limit: int | None = None,
    ) -> Page:
        policy.require(policy.can_read_users(principal))
        params = page_params(page, limit)
        users, total = self.users.list_users(search=search, offset=params.offset, limit=params.limit)
        return Page(items=[strip_credential(u) for u in users], total=total, params=params)

    def get_user(self, principal: Principal, user_id: int) -> User:
        policy.require(policy.can_read_users(principal))
        return strip_credential(self._get_or_404(user_id))

    # ------------------------------------------------------------------
    # Writes (admin only)
    # ------------------------------------------------------------------

    def create_user(
        self,
        principal: Principal,
        *,
        username: str,
        email: str,
        password: str,
        first_name: str = "",
        last_name: str = "",
        role: str = ROLE_USER,
        is_active: bool = True,
    ) -> User:
        """Create an account on someone's behalf. Unlike register, role is honored."""
        policy.require(policy.can_manage_users(principal))
        if role not in ROLES:
            raise ValidationFailed(f"Unknown role: {role!r}.")
        if self.users.find_by_email_or_username(email, username) is not None:
            raise DuplicateUser()

        try:
            user_id = self.users.create_user(
                User(
                    username=username,
                    email=email,
                    first_name=first_name,
                    last_name=last_name,
                    role=role,
                    is_active=is_active,
                    hashed_password=hash_password(password),
                )
            )
        except IntegrityError as exc:
            raise DuplicateUser() from exc

        logger.info("User %s created by admin %s (role=%s)", user_id, principal.id, role)
        return strip_credential(self._get_or_404(user_id))

    def update_user(self, principal: Principal, user_id: int, changes: dict[str, Any]) -> User:
        policy.require(policy.can_manage_users(principal))

        forbidden = set(changes) - UPDATABLE_FIELDS
        if forbidden:
            raise ValidationFailed(f"Field(s) cannot be updated: {', '.join(sorted(forbidden))}.")
        if not changes:
            raise ValidationFailed("No fields to update.")

        target = self._get_or_404(user_id)
        if changes.get("is_active") is False:
            self._guard_admin_loss(principal, target, "deactivate")

        try:
            self.users.update_user(user_id, **changes)
        except IntegrityError as exc:
            raise DuplicateUser() from exc
        return strip_credential(self._get_or_404(user_id))

    def set_role(self, principal: Principal, user_id: int, role: str) -> User:
        policy.require(policy.can_manage_users(principal))
        if role not in ROLES:
            raise ValidationFailed(f"Unknown role: {role!r}.")

        target = self._get_or_404(user_id)
        if target.role == ROLE_ADMIN and role != ROLE_ADMIN:
            self._guard_admin_loss(principal, target, "demote")

        if target.role != role:
            self.users.update_user(user_id, role=role)
            logger.info("User %s role changed to %s by admin %s", user_id, role, principal.id)
        return strip_credential(self._get_or_404(user_id))

    def delete_user(self, principal: Principal, user_id: int) -> None:
        policy.require(policy.can_manage_users(principal))
        if user_id == principal.id:
            raise ValidationFailed("You cannot delete your own account.")
        if not self.users.delete_user(user_id):
            raise UserNotFound()
        logger.info("User %s deleted by admin %s", user_id, principal.id)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _get_or_404(self, user_id: int) -> User:
        user = self.users.get_by_id(user_id)
        if user is None:
            raise UserNotFound()
        return user

    def _guard_admin_loss(self, principal: Principal, target: User, action: str) -> None:
        if target.id == principal.id:
            raise ValidationFailed(f"You cannot {action} your own account.")
        if target.role == ROLE_ADMIN and target.is_active and self.users.count_active_admins() <= 1:
            raise ValidationFailed(f"Cannot {action} the last active admin account.")
