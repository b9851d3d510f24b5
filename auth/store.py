"""
auth/store.py -- SQLAlchemy Core persistence layer for auth entities.

Pattern: Repository + Data Mapper (same as tasks/store.py).
UserStore is the repository; _row_to_user is the mapper. Service and route
code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  username and email are stripped and lower-cased on every write and every
  lookup, so the UNIQUE constraints on both columns are case-insensitive in
  effect on every backend.

Admin bootstrap:
  The app_bootstrap table holds exactly one row (id=1 enforced by CHECK).
  create_user() flips its admin_claimed flag with a conditional UPDATE in the
  same transaction as the user INSERT. Only the transaction whose UPDATE
  matched the row gets role=admin; a second concurrent "first" registration
  waits on the write lock, then matches nothing. If the INSERT fails, the
  claim rolls back with it. The claim also matches whenever the users table
  is empty, so a store emptied by deletions hands admin to its next user.
  This replaces a count-then-create sequence, which lets two concurrent
  first registrations both observe zero users.

DB path: ./tasktrack.db by default (see core.config.Settings.database_url).

Layer rule: no imports from api/ or tasks/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    CheckConstraint,
    Column,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    event,
    exists,
    func,
    or_,
    select,
    text,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.models import ROLE_ADMIN, User

_DEFAULT_DB_URL = "sqlite:///./tasktrack.db"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(255), nullable=False, unique=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("hashed_password", Text, nullable=False),
    Column("first_name", String(100), nullable=False, server_default=""),
    Column("last_name", String(100), nullable=False, server_default=""),
    Column("role", String(30), nullable=False, server_default="user"),
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("last_login", String(32)),  # ISO 8601 timestamp of last successful login
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    # AUTOINCREMENT: a deleted user's id is never handed out again, so a
    # still-valid token for it cannot resolve to a later account.
    sqlite_autoincrement=True,
)

_bootstrap = Table(
    "app_bootstrap",
    _metadata,
    Column("id", Integer, primary_key=True),
    Column("admin_claimed", Integer, nullable=False, server_default="0"),
    Column("claimed_at", String(32)),
    CheckConstraint("id = 1", name="ck_app_bootstrap_single_row"),
)

# Columns update_user() may write. Service-level allow-lists are narrower;
# this set only stops unknown keys from reaching the SQL layer.
_UPDATABLE_COLUMNS = frozenset(
    {"username", "email", "first_name", "last_name", "role", "is_active", "hashed_password"}
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def normalize_identity(value: str) -> str:
    """Canonical form for usernames and emails: stripped, lower-cased."""
    return value.strip().lower()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User records and the admin bootstrap flag.

    Usage:
        store = UserStore("sqlite:///./tasktrack.db")
        user_id = store.create_user(User(username="ada", email="ada@example.com", hashed_password=...))
        user = store.get_by_email("Ada@Example.com")
        store.close()
    """

    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)
        self._ensure_bootstrap_row()

    def _ensure_bootstrap_row(self) -> None:
        """Seed the single bootstrap row if it does not exist yet.

        On a database that already has users (e.g. restored from a backup) the
        row is seeded as claimed, so registration never mints a second admin.
        A concurrent process seeding the same row trips the primary key; that
        is treated as "already seeded".
        """
        try:
            with self.engine.begin() as conn:
                exists = conn.execute(select(_bootstrap.c.id).where(_bootstrap.c.id == 1)).first()
                if exists is None:
                    user_count = conn.execute(select(func.count()).select_from(_users)).scalar() or 0
                    conn.execute(
                        _bootstrap.insert().values(
                            id=1,
                            admin_claimed=1 if user_count else 0,
                            claimed_at=_now_iso() if user_count else None,
                        )
                    )
        except IntegrityError:
            pass

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def count_users(self) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_users)).scalar()
        return result or 0

    def get_by_id(self, user_id: int) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by email (case-insensitive), including the password hash."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == normalize_identity(email))).fetchone()
        return _row_to_user(row) if row is not None else None

    def find_by_email_or_username(self, email: str, username: str) -> User | None:
        """Single existence query covering both unique identity fields."""
        stmt = _users.select().where(
            or_(
                _users.c.email == normalize_identity(email),
                _users.c.username == normalize_identity(username),
            )
        )
        with self.engine.connect() as conn:
            row = conn.execute(stmt).first()
        return _row_to_user(row) if row is not None else None

    def get_many(self, user_ids: set[int]) -> dict[int, User]:
        """Return {id: User} for the given ids; missing ids are simply absent."""
        if not user_ids:
            return {}
        with self.engine.connect() as conn:
            rows = conn.execute(_users.select().where(_users.c.id.in_(sorted(user_ids)))).fetchall()
        return {row.id: _row_to_user(row) for row in rows}

    def list_users(self, *, search: str | None = None, offset: int = 0, limit: int = 10) -> tuple[list[User], int]:
        """Return one page of users ordered by username, plus the total match count.

        search is a case-insensitive substring match over username, email,
        first name, and last name. LIKE wildcards in the term are escaped.
        """
        condition = None
        if search:
            term = search.strip().lower()
            condition = or_(
                *(
                    func.lower(col).contains(term, autoescape=True)
                    for col in (_users.c.username, _users.c.email, _users.c.first_name, _users.c.last_name)
                )
            )

        page_stmt = _users.select().order_by(_users.c.username).offset(offset).limit(limit)
        count_stmt = select(func.count()).select_from(_users)
        if condition is not None:
            page_stmt = page_stmt.where(condition)
            count_stmt = count_stmt.where(condition)

        with self.engine.connect() as conn:
            rows = conn.execute(page_stmt).fetchall()
            total = conn.execute(count_stmt).scalar() or 0
        return [_row_to_user(r) for r in rows], total

    def count_active_admins(self) -> int:
        """Return the number of active admin users.

        Used by user management to refuse demoting or deactivating the last admin.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                select(func.count())
                .select_from(_users)
                .where((_users.c.role == ROLE_ADMIN) & (_users.c.is_active == 1))
            ).scalar()
        return result or 0

    def admin_claimed(self) -> bool:
        with self.engine.connect() as conn:
            value = conn.execute(select(_bootstrap.c.admin_claimed).where(_bootstrap.c.id == 1)).scalar()
        return bool(value)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        The first user created into an empty store is stored with role=admin
        regardless of user.role; see the module docstring for how that is decided.

        Raises sqlalchemy.exc.IntegrityError if the username or email already
        exists. Callers catch it as the signal that a concurrent request won.
        """
        now = _now_iso()
        with self.engine.begin() as conn:
            claimed = conn.execute(
                _bootstrap.update()
                .where(
                    (_bootstrap.c.id == 1)
                    & ((_bootstrap.c.admin_claimed == 0) | ~exists(select(_users.c.id)))
                )
                .values(admin_claimed=1, claimed_at=now)
            ).rowcount
            result = conn.execute(
                _users.insert().values(
                    username=normalize_identity(user.username),
                    email=normalize_identity(user.email),
                    hashed_password=user.hashed_password,
                    first_name=user.first_name,
                    last_name=user.last_name,
                    role=ROLE_ADMIN if claimed else user.role,
                    is_active=1 if user.is_active else 0,
                    created_at=now,
                    updated_at=now,
                )
            )
            return result.inserted_primary_key[0]

    def update_user(self, user_id: int, **fields) -> bool:
        """Update columns on an existing user and stamp updated_at.

        Unknown keys raise ValueError rather than being silently ignored.
        is_active must be passed as bool; this method converts to int.
        username and email are normalized like on insert.

        Returns True if a row was updated, False if user_id was not found.
        Raises sqlalchemy.exc.IntegrityError on a username/email collision.
        """
        unknown = set(fields) - _UPDATABLE_COLUMNS
        if unknown:
            raise ValueError(f"Unknown user fields: {unknown!r}")
        if "is_active" in fields:
            fields["is_active"] = 1 if fields["is_active"] else 0
        for key in ("username", "email"):
            if key in fields:
                fields[key] = normalize_identity(fields[key])
        fields["updated_at"] = _now_iso()
        with self.engine.begin() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(**fields))
        return result.rowcount > 0

    def update_last_login(self, user_id: int) -> None:
        """Stamp the current UTC timestamp as last_login for the given user."""
        with self.engine.begin() as conn:
            conn.execute(_users.update().where(_users.c.id == user_id).values(last_login=_now_iso()))

    def delete_user(self, user_id: int) -> bool:
        """Permanently delete a user record. Returns True if deleted, False if not found.

        Tasks referencing the user are left untouched -- creator and assignee
        are weak references.
        """
        with self.engine.begin() as conn:
            result = conn.execute(_users.delete().where(_users.c.id == user_id))
        return result.rowcount > 0

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        with self.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        username=row.username,
        email=row.email,
        hashed_password=row.hashed_password,
        first_name=row.first_name,
        last_name=row.last_name,
        role=row.role,
        is_active=bool(row.is_active),
        last_login=row.last_login,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
