"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Mirrors the approach
in tasks/models.py -- dataclasses own domain shape; stores, services and
routes do the work.

Layer rule: no imports from api/ or tasks/.
"""

from __future__ import annotations

from dataclasses import dataclass

ROLE_ADMIN = "admin"
ROLE_USER = "user"
ROLES = (ROLE_ADMIN, ROLE_USER)


@dataclass
class User:
    """Represents a registered identity in TaskTrack.

    username and email are stored lower-cased; the store normalizes both on
    every write and lookup so uniqueness is case-insensitive.

    hashed_password is a bcrypt hash. It is loaded so login can verify it, but
    it never leaves the service layer -- API response models have no field
    for it.
    """

    username: str
    email: str
    first_name: str = ""
    last_name: str = ""
    role: str = ROLE_USER  # "admin" | "user"
    id: int | None = None
    hashed_password: str | None = None
    is_active: bool = True
    last_login: str | None = None  # ISO 8601, None until first login
    created_at: str | None = None
    updated_at: str | None = None


@dataclass(frozen=True)
class Principal:
    """The authenticated identity attached to an in-flight request.

    Built from verified access-token claims only. No store lookup happens, so
    the role is the one minted into the token: a demoted or deactivated user
    keeps it until the access token expires.
    """

    id: int
    email: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN
