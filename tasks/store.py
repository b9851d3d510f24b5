"""
tasks/store.py -- SQLAlchemy-backed persistence layer for TaskTrack tasks.

Uses SQLAlchemy Core (not ORM) so the dataclasses in tasks/models.py remain
the authoritative domain representation. Swapping SQLite for PostgreSQL is a
connection string change, not a rewrite.

Pattern: Repository + Data Mapper. TaskStore is the repository; _row_to_task
is the mapper. Services never touch SQL directly.

Visibility scoping is applied here as a WHERE clause (created_by = :uid OR
assigned_to = :uid) so list results and their total count always agree. The
decision of *whether* to scope belongs to auth.policy; the store just applies
the user id it is given.

Security: all queries use bound parameters. No f-strings in SQL. sort_by is
resolved through a fixed column map, never interpolated.

Usage:
    store = TaskStore()                               # SQLite default
    store = TaskStore("postgresql://user:pw@host/db") # PostgreSQL
    task_id = store.create_task(task)
    tasks, total = store.list_tasks(TaskQuery(status="pending"), offset=0, limit=10)
    store.close()
"""

import json
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    Column,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    case,
    create_engine,
    event,
    func,
    or_,
    select,
)
from sqlalchemy.engine import Engine

from tasks.models import (
    PRIORITY_HIGH,
    PRIORITY_LOW,
    PRIORITY_MEDIUM,
    STATUS_COMPLETED,
    STATUS_IN_PROGRESS,
    STATUS_PENDING,
    Task,
    TaskQuery,
    TaskStats,
)

_DEFAULT_DB_URL = "sqlite:///./tasktrack.db"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_tasks = Table(
    "tasks",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("title", String(200), nullable=False),
    Column("description", String(2000), nullable=False),
    Column("due_date", String(32), nullable=False),
    Column("priority", String(10), nullable=False, server_default="medium"),
    Column("status", String(20), nullable=False, server_default="pending"),
    Column("created_by", Integer, nullable=False),
    Column("assigned_to", Integer),
    Column("tags", Text),  # JSON array serialized as text
    Column("completed_at", String(32)),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    Index("ix_tasks_created_by_status", "created_by", "status"),
    Index("ix_tasks_assigned_to_status", "assigned_to", "status"),
    Index("ix_tasks_due_date", "due_date"),
    sqlite_autoincrement=True,
)

_SORT_COLUMNS = {
    "created_at": _tasks.c.created_at,
    "updated_at": _tasks.c.updated_at,
    "due_date": _tasks.c.due_date,
    "priority": _tasks.c.priority,
    "status": _tasks.c.status,
    "title": _tasks.c.title,
}
SORTABLE_FIELDS = tuple(_SORT_COLUMNS)

_UPDATABLE_COLUMNS = frozenset(
    {"title", "description", "due_date", "priority", "status", "assigned_to", "tags", "completed_at"}
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode; set per-connection because PRAGMAs are not inherited."""
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _visibility_clause(user_id: Optional[int]):
    if user_id is None:
        return None
    return or_(_tasks.c.created_by == user_id, _tasks.c.assigned_to == user_id)


def _filter_clauses(query: TaskQuery) -> list:
    clauses = []
    visibility = _visibility_clause(query.visible_to)
    if visibility is not None:
        clauses.append(visibility)
    if query.status:
        clauses.append(_tasks.c.status == query.status)
    if query.priority:
        clauses.append(_tasks.c.priority == query.priority)
    if query.assigned_to is not None:
        clauses.append(_tasks.c.assigned_to == query.assigned_to)
    if query.search:
        term = query.search.strip().lower()
        clauses.append(
            or_(
                func.lower(_tasks.c.title).contains(term, autoescape=True),
                func.lower(_tasks.c.description).contains(term, autoescape=True),
            )
        )
    return clauses


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class TaskStore:
    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            # SQLite requires check_same_thread=False when used from FastAPI's
            # thread pool, where one connection may be touched by several threads.
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_task(self, task: Task) -> int:
        """Insert a new task and return its assigned database ID.

        completed_at is written as given; the service decides when it is set.
        """
        now = _now_iso()
        with self.engine.begin() as conn:
            result = conn.execute(
                _tasks.insert().values(
                    title=task.title,
                    description=task.description,
                    due_date=task.due_date,
                    priority=task.priority,
                    status=task.status,
                    created_by=task.created_by,
                    assigned_to=task.assigned_to,
                    tags=json.dumps(task.tags),
                    completed_at=task.completed_at,
                    created_at=now,
                    updated_at=now,
                )
            )
            return result.inserted_primary_key[0]

    def update_task(self, task_id: int, **fields) -> bool:
        """Update columns on an existing task and stamp updated_at.

        Accepts any subset of: title, description, due_date, priority, status,
        assigned_to, tags, completed_at. Tags must be passed as list[str]; this
        method serializes them to JSON before writing. Unknown keys raise
        ValueError.

        Returns True if a row was updated, False if task_id was not found.
        """
        unknown = set(fields) - _UPDATABLE_COLUMNS
        if unknown:
            raise ValueError(f"Unknown task fields: {unknown!r}")
        if "tags" in fields:
            fields["tags"] = json.dumps(fields["tags"])
        fields["updated_at"] = _now_iso()
        with self.engine.begin() as conn:
            result = conn.execute(_tasks.update().where(_tasks.c.id == task_id).values(**fields))
        return result.rowcount > 0

    def delete_task(self, task_id: int) -> bool:
        with self.engine.begin() as conn:
            result = conn.execute(_tasks.delete().where(_tasks.c.id == task_id))
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_task(self, task_id: int) -> Optional[Task]:
        """Fetch a single task by ID. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_tasks.select().where(_tasks.c.id == task_id)).fetchone()
        return _row_to_task(row) if row is not None else None

    def list_tasks(self, query: TaskQuery, *, offset: int = 0, limit: int = 10) -> tuple[list[Task], int]:
        """Return one page of tasks matching query, plus the total match count.

        Ties on the sort column are broken by id in the same direction so
        pages are stable.
        """
        clauses = _filter_clauses(query)
        sort_col = _SORT_COLUMNS.get(query.sort_by, _tasks.c.created_at)
        if query.order == "asc":
            order = (sort_col.asc(), _tasks.c.id.asc())
        else:
            order = (sort_col.desc(), _tasks.c.id.desc())

        page_stmt = _tasks.select().where(*clauses).order_by(*order).offset(offset).limit(limit)
        count_stmt = select(func.count()).select_from(_tasks).where(*clauses)
        with self.engine.connect() as conn:
            rows = conn.execute(page_stmt).fetchall()
            total = conn.execute(count_stmt).scalar() or 0
        return [_row_to_task(r) for r in rows], total

    def get_stats(self, visible_to: Optional[int] = None) -> TaskStats:
        """Count tasks by status and by priority in one aggregate query."""

        def _count(column, value):
            return func.coalesce(func.sum(case((column == value, 1), else_=0)), 0)

        stmt = select(
            func.count(),
            _count(_tasks.c.status, STATUS_PENDING),
            _count(_tasks.c.status, STATUS_IN_PROGRESS),
            _count(_tasks.c.status, STATUS_COMPLETED),
            _count(_tasks.c.priority, PRIORITY_HIGH),
            _count(_tasks.c.priority, PRIORITY_MEDIUM),
            _count(_tasks.c.priority, PRIORITY_LOW),
        ).select_from(_tasks)
        visibility = _visibility_clause(visible_to)
        if visibility is not None:
            stmt = stmt.where(visibility)

        with self.engine.connect() as conn:
            row = conn.execute(stmt).one()
        return TaskStats(
            total=row[0] or 0,
            pending=row[1],
            in_progress=row[2],
            completed=row[3],
            high_priority=row[4],
            medium_priority=row[5],
            low_priority=row[6],
        )

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_task(row) -> Task:
    return Task(
        id=row.id,
        title=row.title,
        description=row.description,
        due_date=row.due_date,
        priority=row.priority,
        status=row.status,
        created_by=row.created_by,
        assigned_to=row.assigned_to,
        tags=json.loads(row.tags) if row.tags else [],
        completed_at=row.completed_at,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
