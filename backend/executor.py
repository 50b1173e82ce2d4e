"""
Apply a batch of validated actions to the task store.

Project actions run first, then task actions, one at a time in list order,
so later actions can use projects created earlier in the same batch. Each
store call commits on its own: when an action fails, whatever ran before it
stays committed and the result lists it in ``committed``. Deletes are never
executed here; the batch stops at the first one and asks for confirmation.
"""
import logging
import random
import sqlite3
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional, Sequence

import database
from errors import NotFoundError, TaskAIError, TaskNotFoundError
from estimator import estimate_effort
from models import (
    Action,
    AddSubtasksPayload,
    Confirmation,
    ProjectPayload,
    ProjectRefPayload,
    ProjectUpdatePayload,
    TaskPayload,
    TaskRefPayload,
    TaskUpdatePayload,
)
from resolver import ReferenceMap, find_task_by_name, partition_actions

logger = logging.getLogger(__name__)

PROJECT_COLORS = [
    "#4f46e5",  # Indigo
    "#0ea5e9",  # Sky
    "#10b981",  # Emerald
    "#f59e0b",  # Amber
    "#ef4444",  # Red
    "#8b5cf6",  # Violet
    "#ec4899",  # Pink
    "#6366f1",  # Indigo
]

TASK_UPDATE_FIELDS = {"title", "description", "priority", "project_id", "due_date", "time_estimate", "completed"}
# Columns that cannot be cleared by sending null
NON_NULLABLE_FIELDS = {"title", "priority", "completed"}


def random_color() -> str:
    return random.choice(PROJECT_COLORS)


class BatchState(str, Enum):
    COMPLETED = "completed"
    PENDING_CONFIRMATION = "pending_confirmation"
    ABORTED = "aborted"


@dataclass
class BatchResult:
    state: BatchState
    confirmation: Optional[Confirmation] = None
    error: Optional[str] = None
    failed_phase: Optional[str] = None
    committed: list[str] = field(default_factory=list)


class ActionExecutor:
    """Runs one batch for one user. Create a new executor per batch."""

    def __init__(self, user_id: str, store=database):
        self.user_id = user_id
        self.store = store
        self.references = ReferenceMap()
        self.committed: list[str] = []

    def run(self, actions: Sequence[Action]) -> BatchResult:
        project_actions, task_actions = partition_actions(actions)
        logger.info("Executing %d project action(s), %d task action(s)", len(project_actions), len(task_actions))

        for phase, phase_actions in (("projects", project_actions), ("tasks", task_actions)):
            for action in phase_actions:
                handler = getattr(self, f"_{action.type}")
                try:
                    confirmation = handler(action.data)
                except (TaskAIError, sqlite3.Error) as e:
                    logger.exception("Action %s failed, aborting batch in %s phase", action.type, phase)
                    return BatchResult(
                        state=BatchState.ABORTED,
                        error=str(e),
                        failed_phase=phase,
                        committed=list(self.committed),
                    )
                if confirmation is not None:
                    logger.info("Batch paused for confirmation of %s %s", confirmation.type, confirmation.id)
                    return BatchResult(
                        state=BatchState.PENDING_CONFIRMATION,
                        confirmation=confirmation,
                        committed=list(self.committed),
                    )

        return BatchResult(state=BatchState.COMPLETED, committed=list(self.committed))

    def _record(self, action_type: str, target: str) -> None:
        self.committed.append(f"{action_type}:{target}")

    # Lookups

    def _task_id(self, task_id: Optional[str], name: Optional[str]) -> str:
        if task_id:
            return task_id
        logger.info("Looking up task by name: %r", name)
        task = find_task_by_name(name or "", self.store.get_all_tasks(self.user_id))
        if task is None:
            raise TaskNotFoundError(name or "")
        return task.id

    def _project_id(self, project_id: Optional[str], name: Optional[str]) -> str:
        if project_id:
            return project_id
        resolved = self.references.get(name)
        if resolved:
            return resolved
        project = self.store.find_project_by_name_db(self.user_id, name)
        if project is None:
            raise NotFoundError("project", name or "")
        return project.id

    # Project actions

    def _create_project(self, data: ProjectPayload) -> None:
        project = self.store.find_project_by_name_db(self.user_id, data.name)
        if project:
            logger.info("Project %r already exists, reusing %s", data.name, project.id)
        else:
            project = self.store.create_project_db(self.user_id, data.name, data.color or random_color())
            logger.info("Created project %r with ID %s", data.name, project.id)
        self.references.register(data, project.id)
        self._record("create_project", project.id)

    def _update_project(self, data: ProjectUpdatePayload) -> None:
        project_id = self._project_id(data.id, data.key)
        fields = data.model_dump(exclude_unset=True, include={"name", "color"})
        fields = {k: v for k, v in fields.items() if v is not None}
        if self.store.update_project_db(project_id, self.user_id, **fields) is None:
            raise NotFoundError("project", project_id)
        self._record("update_project", project_id)

    def _delete_project(self, data: ProjectRefPayload) -> Confirmation:
        return Confirmation(type="delete_project", id=self._project_id(data.id, data.name))

    # Task actions

    def _create_task(self, data: TaskPayload) -> None:
        project_id = data.project_id
        if data.project_key or data.project_name:
            resolved = self.references.resolve(data)
            if resolved:
                project_id = resolved
                logger.info("Assigning task %r to project %s", data.title, resolved)
            else:
                logger.info("Project reference %r not created in this batch", data.project_key or data.project_name)

        time_estimate = data.time_estimate
        if time_estimate is None:
            time_estimate = estimate_effort(data)

        task = self.store.create_task_db(
            self.user_id,
            data.title,
            description=data.description,
            priority=data.priority or "medium",
            project_id=project_id,
            due_date=data.due_date,
            time_estimate=time_estimate,
            completed=bool(data.completed),
            subtasks=data.subtasks or [],
        )
        self._record("create_task", task.id)

    def _update_task(self, data: TaskUpdatePayload) -> None:
        task_id = self._task_id(data.id, data.task_name)
        fields = data.model_dump(exclude_unset=True, include=TASK_UPDATE_FIELDS)
        fields = {k: v for k, v in fields.items() if v is not None or k not in NON_NULLABLE_FIELDS}
        if data.project_key or data.project_name:
            resolved = self.references.resolve(data)
            if resolved:
                fields["project_id"] = resolved
                logger.info("Moving task %s to project %s", task_id, resolved)
            else:
                logger.info("Project reference %r not created in this batch", data.project_key or data.project_name)
        if self.store.update_task_db(task_id, self.user_id, **fields) is None:
            raise NotFoundError("task", task_id)
        if data.subtasks is not None:
            self.store.replace_subtasks_db(task_id, data.subtasks)
        self._record("update_task", task_id)

    def _complete_task(self, data: TaskRefPayload) -> None:
        task_id = self._task_id(data.id, data.lookup_name)
        if not self.store.complete_task_db(task_id, self.user_id):
            raise NotFoundError("task", task_id)
        self._record("complete_task", task_id)

    def _delete_task(self, data: TaskRefPayload) -> Confirmation:
        return Confirmation(type="delete_task", id=self._task_id(data.id, data.lookup_name))

    def _add_subtasks(self, data: AddSubtasksPayload) -> None:
        task_id = self._task_id(data.id, data.task_name)
        task = self.store.get_task_db(task_id, self.user_id)
        if task is None:
            raise NotFoundError("task", task_id)

        if data.subtasks:
            self.store.append_subtasks_db(task_id, data.subtasks)
        logger.info("Added %d subtask(s) to task %r", len(data.subtasks), task.title)
        self._record("add_subtasks", task_id)


def execute_batch(
    actions: Sequence[Action],
    user_id: str,
    store=database,
    on_refresh: Optional[Callable[[], None]] = None,
) -> BatchResult:
    """Run a batch; ``on_refresh`` is called only when every action completed."""
    result = ActionExecutor(user_id, store).run(actions)
    if result.state is BatchState.COMPLETED and on_refresh is not None:
        on_refresh()
    return result


def confirm_action(confirmation: Confirmation, user_id: str, store=database) -> None:
    """Carry out a delete that a batch paused on."""
    if confirmation.type == "delete_task":
        deleted = store.delete_task_db(confirmation.id, user_id)
        kind = "task"
    else:
        deleted = store.delete_project_db(confirmation.id, user_id)
        kind = "project"
    if not deleted:
        raise NotFoundError(kind, confirmation.id)
    logger.info("Deleted %s %s after confirmation", kind, confirmation.id)
