import logging
from typing import Iterable, Optional, Union

from pydantic import TypeAdapter, ValidationError

from models import (
    Action,
    ProjectAction,
    ProjectPayload,
    PROJECT_ACTION_TYPES,
    Task,
    TaskAction,
    TaskPayload,
    TaskUpdatePayload,
)

logger = logging.getLogger(__name__)

_action_adapter = TypeAdapter(Action)


def validate_actions(raw_actions: Iterable) -> list[Action]:
    """
    Turn raw action dicts into typed actions.
    Entries that fail validation are logged and dropped; order is preserved.
    """
    actions = []
    for index, raw in enumerate(raw_actions):
        try:
            actions.append(_action_adapter.validate_python(raw))
        except ValidationError as e:
            kind = raw.get("type") if isinstance(raw, dict) else type(raw).__name__
            logger.warning("Dropping invalid action #%d (%s): %s", index, kind, e.errors(include_url=False))
    return actions


def partition_actions(actions: Iterable[Action]) -> tuple[list[ProjectAction], list[TaskAction]]:
    """Split a batch into project actions and task actions, each in original order."""
    project_actions = []
    task_actions = []
    for action in actions:
        if action.type in PROJECT_ACTION_TYPES:
            project_actions.append(action)
        else:
            task_actions.append(action)
    return project_actions, task_actions


class ReferenceMap:
    """Symbolic project keys -> persisted project ids, for one batch only."""

    def __init__(self):
        self._ids: dict[str, str] = {}

    def register(self, project: ProjectPayload, project_id: str) -> None:
        if project.key:
            self._ids[project.key] = project_id
        self._ids[project.name] = project_id

    def get(self, key: Optional[str]) -> Optional[str]:
        if not key:
            return None
        return self._ids.get(key)

    def resolve(self, task: Union[TaskPayload, TaskUpdatePayload]) -> Optional[str]:
        """Project id referenced by ``projectKey`` or ``projectName``, if it was created in this batch."""
        return self.get(task.project_key) or self.get(task.project_name)


def match_tasks_by_name(name: str, tasks: Iterable[Task]) -> list[Task]:
    """
    Tasks matching a free-text name, from the first tier that matches anything:
    1. exact title (case-insensitive)
    2. title contains the name
    3. name contains the title (the model echoed extra words around it)
    Store order is kept within a tier.
    """
    search = name.lower().strip()
    if not search:
        return []
    tasks = list(tasks)
    tiers = (
        lambda title: title == search,
        lambda title: search in title,
        lambda title: title and title in search,
    )
    for matches in tiers:
        found = [task for task in tasks if matches(task.title.lower().strip())]
        if found:
            return found
    return []


def find_task_by_name(name: str, tasks: Iterable[Task]) -> Optional[Task]:
    """Best match for ``name``, or None. Ambiguity is logged, first match wins."""
    candidates = match_tasks_by_name(name, tasks)
    if not candidates:
        logger.info("No task matching %r", name)
        return None
    if len(candidates) > 1:
        logger.warning(
            "Task name %r is ambiguous, using %r over %s",
            name, candidates[0].title, [task.title for task in candidates[1:]]
        )
    return candidates[0]
