import sqlite3
import uuid
from datetime import datetime
from typing import Optional, Sequence
from contextlib import contextmanager

import config
from models import Project, Subtask, SubtaskPayload, Task

DATABASE_PATH = config.DATABASE_PATH

TASK_COLUMNS = ("title", "description", "priority", "project_id", "due_date", "time_estimate", "completed", "completed_at")
PROJECT_COLUMNS = ("name", "color")
SUBTASK_COLUMNS = ("title", "completed")


@contextmanager
def get_db():
    """Context manager for database connections."""
    conn = sqlite3.connect(DATABASE_PATH)
    conn.row_factory = sqlite3.Row
    try:
        yield conn
    finally:
        conn.close()


def init_db():
    """Initialize database by running Alembic migrations."""
    import subprocess
    import os

    # Run alembic upgrade from the backend directory, against the file this module opens
    backend_dir = os.path.dirname(os.path.abspath(__file__))
    subprocess.run(
        ["alembic", "-x", f"db_path={os.path.abspath(DATABASE_PATH)}", "upgrade", "head"],
        cwd=backend_dir,
        check=True
    )


def _new_id() -> str:
    return str(uuid.uuid4())


def _row_to_project(row) -> Project:
    return Project(
        id=row["id"],
        user_id=row["user_id"],
        name=row["name"],
        color=row["color"],
        created_at=row["created_at"],
    )


def _row_to_subtask(row) -> Subtask:
    return Subtask(
        id=row["id"],
        task_id=row["task_id"],
        title=row["title"],
        completed=bool(row["completed"]),
        position=row["position"],
    )


def _row_to_task(row, subtasks: Optional[list[Subtask]] = None) -> Task:
    """Convert a database row (plus its subtasks) to a Task model."""
    return Task(
        id=row["id"],
        user_id=row["user_id"],
        project_id=row["project_id"],
        title=row["title"],
        description=row["description"],
        priority=row["priority"] or "medium",
        due_date=row["due_date"],
        time_estimate=row["time_estimate"],
        completed=bool(row["completed"]),
        completed_at=row["completed_at"],
        created_at=row["created_at"],
        subtasks=subtasks or [],
    )


def _subtasks_by_task(conn, task_ids: Sequence[str]) -> dict[str, list[Subtask]]:
    if not task_ids:
        return {}
    placeholders = ", ".join("?" for _ in task_ids)
    rows = conn.execute(
        f"SELECT * FROM subtasks WHERE task_id IN ({placeholders}) ORDER BY position, rowid",
        list(task_ids)
    ).fetchall()
    grouped: dict[str, list[Subtask]] = {}
    for row in rows:
        grouped.setdefault(row["task_id"], []).append(_row_to_subtask(row))
    return grouped


def _diff_changes(row, updates: dict, allowed: Sequence[str]) -> dict:
    """Keep only allowed fields whose value differs from the stored row."""
    changes = {}
    for field, new_value in updates.items():
        if field not in allowed:
            continue
        # Convert bool to int for comparison with SQLite storage
        if isinstance(new_value, bool):
            new_value = int(new_value)
        if new_value != row[field]:
            changes[field] = new_value
    return changes


# Project operations

def get_all_projects(user_id: str) -> list[Project]:
    with get_db() as conn:
        rows = conn.execute(
            "SELECT * FROM projects WHERE user_id = ? ORDER BY created_at, rowid",
            (user_id,)
        ).fetchall()
        return [_row_to_project(row) for row in rows]


def get_project_db(project_id: str, user_id: str) -> Optional[Project]:
    with get_db() as conn:
        row = conn.execute(
            "SELECT * FROM projects WHERE id = ? AND user_id = ?",
            (project_id, user_id)
        ).fetchone()
        return _row_to_project(row) if row else None


def find_project_by_name_db(user_id: str, name: str) -> Optional[Project]:
    """Find a user's project by exact name."""
    with get_db() as conn:
        row = conn.execute(
            "SELECT * FROM projects WHERE user_id = ? AND name = ? ORDER BY created_at, rowid LIMIT 1",
            (user_id, name)
        ).fetchone()
        return _row_to_project(row) if row else None


def create_project_db(user_id: str, name: str, color: str) -> Project:
    project_id = _new_id()
    created_at = datetime.now().isoformat()
    with get_db() as conn:
        conn.execute(
            "INSERT INTO projects (id, user_id, name, color, created_at) VALUES (?, ?, ?, ?, ?)",
            (project_id, user_id, name, color, created_at)
        )
        conn.commit()
    return Project(id=project_id, user_id=user_id, name=name, color=color, created_at=created_at)


def update_project_db(project_id: str, user_id: str, **updates) -> Optional[Project]:
    """
    Update a user's project with any fields provided (name, color).
    Returns None if the project does not exist for this user.
    """
    with get_db() as conn:
        row = conn.execute(
            "SELECT * FROM projects WHERE id = ? AND user_id = ?",
            (project_id, user_id)
        ).fetchone()
        if not row:
            return None

        changes = _diff_changes(row, updates, PROJECT_COLUMNS)
        if changes:
            set_clause = ", ".join(f"{field} = ?" for field in changes.keys())
            values = list(changes.values()) + [project_id, user_id]
            conn.execute(f"UPDATE projects SET {set_clause} WHERE id = ? AND user_id = ?", values)
            conn.commit()

        updated_row = conn.execute("SELECT * FROM projects WHERE id = ?", (project_id,)).fetchone()
        return _row_to_project(updated_row)


def delete_project_db(project_id: str, user_id: str) -> bool:
    """Delete a project. Its tasks are kept and lose their project association."""
    with get_db() as conn:
        cursor = conn.execute(
            "DELETE FROM projects WHERE id = ? AND user_id = ?",
            (project_id, user_id)
        )
        if cursor.rowcount > 0:
            conn.execute(
                "UPDATE tasks SET project_id = NULL WHERE project_id = ? AND user_id = ?",
                (project_id, user_id)
            )
        conn.commit()
        return cursor.rowcount > 0


# Task operations

def get_all_tasks(user_id: str) -> list[Task]:
    """All of a user's tasks with their subtasks, oldest first."""
    with get_db() as conn:
        rows = conn.execute(
            "SELECT * FROM tasks WHERE user_id = ? ORDER BY created_at, rowid",
            (user_id,)
        ).fetchall()
        subtasks = _subtasks_by_task(conn, [row["id"] for row in rows])
        return [_row_to_task(row, subtasks.get(row["id"])) for row in rows]


def get_task_db(task_id: str, user_id: str) -> Optional[Task]:
    with get_db() as conn:
        row = conn.execute(
            "SELECT * FROM tasks WHERE id = ? AND user_id = ?",
            (task_id, user_id)
        ).fetchone()
        if not row:
            return None
        subtasks = _subtasks_by_task(conn, [task_id])
        return _row_to_task(row, subtasks.get(task_id))


def create_task_db(
    user_id: str,
    title: str,
    description: Optional[str] = None,
    priority: str = "medium",
    project_id: Optional[str] = None,
    due_date: Optional[str] = None,
    time_estimate: Optional[float] = None,
    completed: bool = False,
    subtasks: Optional[Sequence[SubtaskPayload]] = None
) -> Task:
    """Create a task and its subtasks (positions 0..n-1) in one transaction."""
    task_id = _new_id()
    created_at = datetime.now().isoformat()
    completed_at = created_at if completed else None

    with get_db() as conn:
        conn.execute(
            """INSERT INTO tasks
               (id, user_id, project_id, title, description, priority, due_date, time_estimate, completed, completed_at, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (task_id, user_id, project_id, title, description, priority, due_date, time_estimate, int(completed), completed_at, created_at)
        )
        _insert_subtasks(conn, task_id, subtasks or [], 0)
        conn.commit()

    return get_task_db(task_id, user_id)


def update_task_db(task_id: str, user_id: str, **updates) -> Optional[Task]:
    """
    Update a task with any fields provided.
    Only updates fields that differ from current values.
    Changing ``completed`` also sets or clears ``completed_at``.

    Args:
        task_id: Task ID to update
        user_id: Owner of the task; other users' tasks are never touched
        **updates: Field names and values to update (see TASK_COLUMNS)
    """
    with get_db() as conn:
        row = conn.execute(
            "SELECT * FROM tasks WHERE id = ? AND user_id = ?",
            (task_id, user_id)
        ).fetchone()
        if not row:
            return None

        changes = _diff_changes(row, updates, TASK_COLUMNS)
        if "completed" in changes and "completed_at" not in changes:
            changes["completed_at"] = datetime.now().isoformat() if changes["completed"] else None

        # Execute UPDATE only if there are actual changes
        if changes:
            set_clause = ", ".join(f"{field} = ?" for field in changes.keys())
            values = list(changes.values()) + [task_id, user_id]
            conn.execute(f"UPDATE tasks SET {set_clause} WHERE id = ? AND user_id = ?", values)
            conn.commit()

    return get_task_db(task_id, user_id)


def complete_task_db(task_id: str, user_id: str) -> bool:
    """Mark a task completed, stamping completed_at in the same statement."""
    with get_db() as conn:
        cursor = conn.execute(
            "UPDATE tasks SET completed = 1, completed_at = ? WHERE id = ? AND user_id = ?",
            (datetime.now().isoformat(), task_id, user_id)
        )
        conn.commit()
        return cursor.rowcount > 0


def delete_task_db(task_id: str, user_id: str) -> bool:
    with get_db() as conn:
        cursor = conn.execute(
            "DELETE FROM tasks WHERE id = ? AND user_id = ?",
            (task_id, user_id)
        )
        if cursor.rowcount > 0:
            conn.execute("DELETE FROM subtasks WHERE task_id = ?", (task_id,))
        conn.commit()
        return cursor.rowcount > 0


# Subtask operations

def _insert_subtasks(conn, task_id: str, subtasks: Sequence[SubtaskPayload], start_position: int) -> list[Subtask]:
    created = []
    for offset, subtask in enumerate(subtasks):
        item = Subtask(
            id=_new_id(),
            task_id=task_id,
            title=subtask.title,
            completed=subtask.completed,
            position=start_position + offset,
        )
        conn.execute(
            "INSERT INTO subtasks (id, task_id, title, completed, position) VALUES (?, ?, ?, ?, ?)",
            (item.id, task_id, item.title, int(item.completed), item.position)
        )
        created.append(item)
    return created


def append_subtasks_db(task_id: str, subtasks: Sequence[SubtaskPayload]) -> list[Subtask]:
    """Add subtasks after the highest existing position (0 for a task without any)."""
    with get_db() as conn:
        start = conn.execute(
            "SELECT COALESCE(MAX(position), -1) + 1 FROM subtasks WHERE task_id = ?",
            (task_id,)
        ).fetchone()[0]
        created = _insert_subtasks(conn, task_id, subtasks, start)
        conn.commit()
        return created


def replace_subtasks_db(task_id: str, subtasks: Sequence[SubtaskPayload]) -> list[Subtask]:
    """Drop a task's subtasks and store the given ones at positions 0..n-1."""
    with get_db() as conn:
        conn.execute("DELETE FROM subtasks WHERE task_id = ?", (task_id,))
        created = _insert_subtasks(conn, task_id, subtasks, 0)
        conn.commit()
        return created


def update_subtask_db(subtask_id: str, user_id: str, **updates) -> Optional[Subtask]:
    """
    Update a subtask (title, completed). Ownership goes through the parent task,
    so None is returned for subtasks of another user's task.
    """
    with get_db() as conn:
        row = conn.execute(
            """SELECT subtasks.* FROM subtasks
               JOIN tasks ON tasks.id = subtasks.task_id
               WHERE subtasks.id = ? AND tasks.user_id = ?""",
            (subtask_id, user_id)
        ).fetchone()
        if not row:
            return None

        changes = _diff_changes(row, updates, SUBTASK_COLUMNS)
        if changes:
            set_clause = ", ".join(f"{field} = ?" for field in changes.keys())
            conn.execute(f"UPDATE subtasks SET {set_clause} WHERE id = ?", list(changes.values()) + [subtask_id])
            conn.commit()

        updated_row = conn.execute("SELECT * FROM subtasks WHERE id = ?", (subtask_id,)).fetchone()
        return _row_to_subtask(updated_row)
