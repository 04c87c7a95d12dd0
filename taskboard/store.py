"""
Board storage backend (SQLite).

Single source of truth for users, projects, columns and tasks. Every method
opens its own connection, so the store is safe to share between request
threads; a method is one transaction. sqlite errors never leave this module
raw: they are logged and re-raised as PersistenceError with a generic message.
"""
import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from .errors import PersistenceError
from .schema import Candidate, Column, Project, Task, TaskStatus, User, utc_now

logger = logging.getLogger(__name__)


def _connect(db_path: str) -> sqlite3.Connection:
    """Open a connection with FK enforcement and WAL mode."""
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    conn.execute("PRAGMA journal_mode = WAL")
    return conn


# Sibling order inside a column: position, then creation order
TASK_ORDER = "position ASC, created_at ASC, rowid ASC"


class BoardStore:
    """SQLite-backed store for boards."""

    def __init__(self, db_path: str = None):
        """Initialize store and create tables if needed."""
        if db_path is None:
            db_path = str(Path.home() / ".local" / "share" / "taskboard" / "taskboard.db")
        self.db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    @contextmanager
    def _session(self, action: str) -> Iterator[sqlite3.Connection]:
        """One connection, one transaction. Commits on success."""
        conn = None
        try:
            conn = _connect(self.db_path)
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            if conn is not None:
                conn.rollback()
            logger.error(f"Store error while trying to {action}: {e}")
            raise PersistenceError(f"Could not {action}") from e
        except Exception:
            if conn is not None:
                conn.rollback()
            raise
        finally:
            if conn is not None:
                conn.close()

    def _init_schema(self):
        """Create tables if they don't exist."""
        with self._session("initialize schema") as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS users (
                    id TEXT PRIMARY KEY,
                    first_name TEXT NOT NULL,
                    last_name TEXT DEFAULT '',
                    email TEXT DEFAULT '',
                    role TEXT DEFAULT 'MEMBER'
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS projects (
                    id TEXT PRIMARY KEY,
                    key TEXT NOT NULL UNIQUE,
                    name TEXT NOT NULL,
                    description TEXT DEFAULT '',
                    color TEXT DEFAULT '#3B82F6',
                    owner_id TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    FOREIGN KEY (owner_id) REFERENCES users(id)
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS project_members (
                    project_id TEXT NOT NULL,
                    user_id TEXT NOT NULL,
                    role TEXT DEFAULT 'MEMBER',
                    joined_at TEXT NOT NULL,
                    PRIMARY KEY (project_id, user_id),
                    FOREIGN KEY (project_id) REFERENCES projects(id),
                    FOREIGN KEY (user_id) REFERENCES users(id)
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS columns (
                    id TEXT PRIMARY KEY,
                    project_id TEXT NOT NULL,
                    name TEXT NOT NULL,
                    position REAL NOT NULL,
                    color TEXT DEFAULT '#64748B',
                    is_default INTEGER DEFAULT 0,
                    FOREIGN KEY (project_id) REFERENCES projects(id)
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS tasks (
                    id TEXT PRIMARY KEY,
                    key TEXT NOT NULL UNIQUE,
                    title TEXT NOT NULL,
                    description TEXT DEFAULT '',
                    status TEXT NOT NULL DEFAULT 'TODO',
                    priority TEXT NOT NULL DEFAULT 'MEDIUM',
                    position REAL NOT NULL,
                    column_id TEXT NOT NULL,
                    project_id TEXT NOT NULL,
                    assignee_id TEXT,
                    creator_id TEXT NOT NULL,
                    completed_at TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    FOREIGN KEY (column_id) REFERENCES columns(id),
                    FOREIGN KEY (project_id) REFERENCES projects(id)
                )
            """)
            # Board reads and workload counts
            conn.execute("CREATE INDEX IF NOT EXISTS idx_tasks_column ON tasks(column_id, position)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_tasks_project_status ON tasks(project_id, status, assignee_id)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_columns_project ON columns(project_id, position)")

    # ── Users ────────────────────────────────────────────────────────────────

    def save_user(self, user: User) -> User:
        with self._session("save user") as conn:
            conn.execute(
                """
                INSERT INTO users (id, first_name, last_name, email, role)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    first_name=excluded.first_name, last_name=excluded.last_name,
                    email=excluded.email, role=excluded.role
                """,
                (user.id, user.first_name, user.last_name, user.email, user.role),
            )
        return user

    def get_user(self, user_id: str) -> Optional[User]:
        with self._session("load user") as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        return User.from_dict(dict(row)) if row else None

    # ── Projects & membership ────────────────────────────────────────────────

    def create_project(self, project: Project, columns: Sequence[Column] = ()) -> Project:
        """Insert a project together with its initial columns."""
        with self._session("create project") as conn:
            conn.execute(
                """
                INSERT INTO projects (id, key, name, description, color, owner_id, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (project.id, project.key, project.name, project.description,
                 project.color, project.owner_id, project.created_at.isoformat()),
            )
            for column in columns:
                self._insert_column(conn, column)
        return project

    def get_project(self, project_id: str) -> Optional[Project]:
        with self._session("load project") as conn:
            row = conn.execute("SELECT * FROM projects WHERE id = ?", (project_id,)).fetchone()
        return Project.from_dict(dict(row)) if row else None

    def get_project_by_key(self, key: str) -> Optional[Project]:
        with self._session("load project") as conn:
            row = conn.execute("SELECT * FROM projects WHERE key = ?", (key,)).fetchone()
        return Project.from_dict(dict(row)) if row else None

    def add_member(self, project_id: str, user_id: str, role: str = "MEMBER") -> None:
        with self._session("add project member") as conn:
            conn.execute(
                """
                INSERT OR IGNORE INTO project_members (project_id, user_id, role, joined_at)
                VALUES (?, ?, ?, ?)
                """,
                (project_id, user_id, role, utc_now().isoformat()),
            )

    def remove_member(self, project_id: str, user_id: str) -> bool:
        """Drop a membership row. False when there was none."""
        with self._session("remove project member") as conn:
            cur = conn.execute(
                "DELETE FROM project_members WHERE project_id = ? AND user_id = ?",
                (project_id, user_id),
            )
        return cur.rowcount > 0

    def list_projects_for(self, user_id: str) -> List[Project]:
        """Projects the user owns or belongs to, newest first."""
        with self._session("list projects") as conn:
            rows = conn.execute(
                """
                SELECT * FROM projects
                WHERE owner_id = ?
                   OR id IN (SELECT project_id FROM project_members WHERE user_id = ?)
                ORDER BY created_at DESC, rowid DESC
                """,
                (user_id, user_id),
            ).fetchall()
        return [Project.from_dict(dict(r)) for r in rows]

    def member_role(self, project_id: str, user_id: str) -> Optional[str]:
        """OWNER for the project owner, the membership role for members, else None."""
        with self._session("load member role") as conn:
            owner = conn.execute(
                "SELECT 1 FROM projects WHERE id = ? AND owner_id = ?", (project_id, user_id)
            ).fetchone()
            if owner:
                return "OWNER"
            row = conn.execute(
                "SELECT role FROM project_members WHERE project_id = ? AND user_id = ?",
                (project_id, user_id),
            ).fetchone()
        return (row["role"] or "MEMBER") if row else None

    def list_members(self, project_id: str) -> List[dict]:
        """Owner (role OWNER) followed by members in join order."""
        with self._session("list project members") as conn:
            owner = conn.execute(
                """
                SELECT u.*, p.created_at AS joined_at FROM users u
                JOIN projects p ON p.owner_id = u.id WHERE p.id = ?
                """,
                (project_id,),
            ).fetchone()
            members = conn.execute(
                """
                SELECT u.*, m.role AS member_role, m.joined_at FROM project_members m
                JOIN users u ON u.id = m.user_id
                WHERE m.project_id = ? AND u.id != ?
                ORDER BY m.joined_at ASC, m.rowid ASC
                """,
                (project_id, owner["id"] if owner else ""),
            ).fetchall()

        result = []
        if owner:
            result.append({"user": User.from_dict(dict(owner)).to_dict(),
                           "role": "OWNER", "joinedAt": owner["joined_at"]})
        for row in members:
            result.append({"user": User.from_dict(dict(row)).to_dict(),
                           "role": row["member_role"] or "MEMBER",
                           "joinedAt": row["joined_at"]})
        return result

    def is_participant(self, project_id: str, user_id: str) -> bool:
        """Owner or member of the project."""
        if not project_id or not user_id:
            return False
        with self._session("check project access") as conn:
            row = conn.execute(
                """
                SELECT 1 FROM projects WHERE id = ? AND owner_id = ?
                UNION ALL
                SELECT 1 FROM project_members WHERE project_id = ? AND user_id = ?
                LIMIT 1
                """,
                (project_id, user_id, project_id, user_id),
            ).fetchone()
        return row is not None

    def list_candidates(self, project_id: str) -> List[Candidate]:
        """
        Owner followed by members in join order, with their DONE task counts.

        The order is stable between calls; workload ties are broken by it.
        """
        with self._session("list assignment candidates") as conn:
            owner = conn.execute(
                """
                SELECT u.* FROM users u JOIN projects p ON p.owner_id = u.id
                WHERE p.id = ?
                """,
                (project_id,),
            ).fetchone()
            members = conn.execute(
                """
                SELECT u.* FROM project_members m JOIN users u ON u.id = m.user_id
                WHERE m.project_id = ?
                ORDER BY m.joined_at ASC, m.rowid ASC
                """,
                (project_id,),
            ).fetchall()
            done_counts = {
                row[0]: row[1]
                for row in conn.execute(
                    """
                    SELECT assignee_id, COUNT(*) FROM tasks
                    WHERE project_id = ? AND status = ? AND assignee_id IS NOT NULL
                    GROUP BY assignee_id
                    """,
                    (project_id, TaskStatus.DONE.value),
                )
            }

        candidates: List[Candidate] = []
        seen = set()
        for row in ([owner] if owner else []) + list(members):
            if row["id"] in seen:
                continue
            seen.add(row["id"])
            candidates.append(Candidate(
                id=row["id"],
                first_name=row["first_name"],
                last_name=row["last_name"] or "",
                role=row["role"] or "MEMBER",
                completed_count=done_counts.get(row["id"], 0),
            ))
        return candidates

    def count_in_progress(self, project_id: Optional[str], user_ids: List[str]) -> Dict[str, int]:
        """IN_PROGRESS task counts per assignee; users with none are absent."""
        if not user_ids:
            return {}
        placeholders = ", ".join("?" for _ in user_ids)
        query = (
            f"SELECT assignee_id, COUNT(*) FROM tasks "
            f"WHERE status = ? AND assignee_id IN ({placeholders})"
        )
        params: list = [TaskStatus.IN_PROGRESS.value, *user_ids]
        if project_id:
            query += " AND project_id = ?"
            params.append(project_id)
        query += " GROUP BY assignee_id"
        with self._session("count workload") as conn:
            rows = conn.execute(query, params).fetchall()
        return {row[0]: row[1] for row in rows}

    # ── Columns ──────────────────────────────────────────────────────────────

    def _insert_column(self, conn: sqlite3.Connection, column: Column) -> None:
        conn.execute(
            """
            INSERT INTO columns (id, project_id, name, position, color, is_default)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (column.id, column.project_id, column.name, column.position,
             column.color, 1 if column.is_default else 0),
        )

    def save_column(self, column: Column) -> Column:
        with self._session("save column") as conn:
            self._insert_column(conn, column)
        return column

    def get_column(self, column_id: str) -> Optional[Column]:
        with self._session("load column") as conn:
            row = conn.execute("SELECT * FROM columns WHERE id = ?", (column_id,)).fetchone()
        return Column.from_dict(dict(row)) if row else None

    def list_columns(self, project_id: str) -> List[Column]:
        """Columns of a project in board order."""
        with self._session("list columns") as conn:
            rows = conn.execute(
                "SELECT * FROM columns WHERE project_id = ? ORDER BY position ASC, rowid ASC",
                (project_id,),
            ).fetchall()
        return [Column.from_dict(dict(r)) for r in rows]

    # ── Tasks ────────────────────────────────────────────────────────────────

    def get_task(self, task_id: str) -> Optional[Task]:
        with self._session("load task") as conn:
            row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
        return Task.from_dict(dict(row)) if row else None

    def task_key_exists(self, key: str) -> bool:
        with self._session("check task key") as conn:
            row = conn.execute("SELECT 1 FROM tasks WHERE key = ? LIMIT 1", (key,)).fetchone()
        return row is not None

    def list_column_tasks(self, column_id: str) -> List[Task]:
        """Tasks of a column in display order."""
        with self._session("list column tasks") as conn:
            rows = conn.execute(
                f"SELECT * FROM tasks WHERE column_id = ? ORDER BY {TASK_ORDER}",
                (column_id,),
            ).fetchall()
        return [Task.from_dict(dict(r)) for r in rows]

    def list_project_tasks(self, project_id: str) -> List[Task]:
        with self._session("list project tasks") as conn:
            rows = conn.execute(
                f"SELECT * FROM tasks WHERE project_id = ? ORDER BY column_id, {TASK_ORDER}",
                (project_id,),
            ).fetchall()
        return [Task.from_dict(dict(r)) for r in rows]

    def last_task_in_column(self, column_id: str) -> Optional[Task]:
        with self._session("load last column task") as conn:
            row = conn.execute(
                """
                SELECT * FROM tasks WHERE column_id = ?
                ORDER BY position DESC, created_at DESC, rowid DESC LIMIT 1
                """,
                (column_id,),
            ).fetchone()
        return Task.from_dict(dict(row)) if row else None

    def insert_task(self, task: Task) -> Task:
        data = self._task_row(task)
        with self._session("create task") as conn:
            conn.execute(
                """
                INSERT INTO tasks
                (id, key, title, description, status, priority, position, column_id,
                 project_id, assignee_id, creator_id, completed_at, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                data,
            )
        return task

    def update_task(self, task: Task) -> Task:
        """Write every mutable field of a task in one statement."""
        task.updated_at = utc_now()
        with self._session("update task") as conn:
            cur = conn.execute(
                """
                UPDATE tasks SET
                    title = ?, description = ?, status = ?, priority = ?, position = ?,
                    column_id = ?, assignee_id = ?, completed_at = ?, updated_at = ?
                WHERE id = ?
                """,
                (task.title, task.description, task.status.value, task.priority.value,
                 task.position, task.column_id, task.assignee_id,
                 task.completed_at.isoformat() if task.completed_at else None,
                 task.updated_at.isoformat(), task.id),
            )
            if cur.rowcount != 1:
                raise PersistenceError("Could not update task")
        return task

    def set_task_positions(self, positions: Sequence[Tuple[str, float]]) -> None:
        """Rewrite the position of several tasks in one transaction."""
        now = utc_now().isoformat()
        with self._session("respace column") as conn:
            conn.executemany(
                "UPDATE tasks SET position = ?, updated_at = ? WHERE id = ?",
                [(position, now, task_id) for task_id, position in positions],
            )

    @staticmethod
    def _task_row(task: Task) -> tuple:
        return (
            task.id,
            task.key,
            task.title,
            task.description,
            task.status.value,
            task.priority.value,
            task.position,
            task.column_id,
            task.project_id,
            task.assignee_id,
            task.creator_id,
            task.completed_at.isoformat() if task.completed_at else None,
            task.created_at.isoformat(),
            task.updated_at.isoformat(),
        )
