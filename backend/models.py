from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel
from typing import Annotated, Literal, Optional, Union

Priority = Literal["low", "medium", "high"]


# Persisted records

class Subtask(BaseModel):
    id: str
    task_id: str
    title: str
    completed: bool = False
    position: int = 0


class Task(BaseModel):
    id: str
    user_id: str
    project_id: Optional[str] = None
    title: str
    description: Optional[str] = None
    priority: str = "medium"
    due_date: Optional[str] = None  # ISO format: YYYY-MM-DD or full ISO datetime
    time_estimate: Optional[float] = None  # Estimated effort in hours
    completed: bool = False
    completed_at: Optional[str] = None
    created_at: str  # ISO format datetime string
    subtasks: list[Subtask] = []


class Project(BaseModel):
    id: str
    user_id: str
    name: str
    color: str
    created_at: str


class TaskUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    priority: Optional[Priority] = None
    project_id: Optional[str] = None
    due_date: Optional[str] = None
    time_estimate: Optional[float] = None
    completed: Optional[bool] = None


class ProjectCreate(BaseModel):
    name: str
    color: Optional[str] = None


class SubtaskUpdate(BaseModel):
    title: Optional[str] = None
    completed: Optional[bool] = None


class Message(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: Literal["user", "assistant", "system"]
    content: str


class ChatRequest(BaseModel):
    message: str


class Confirmation(BaseModel):
    type: Literal["delete_task", "delete_project"]
    id: str


# Action payloads, as emitted by the model (camelCase keys)

class _Payload(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class SubtaskPayload(_Payload):
    title: str
    completed: bool = False


class TaskCreate(BaseModel):
    """Body of POST /tasks."""
    title: str
    description: Optional[str] = None
    priority: Priority = "medium"
    project_id: Optional[str] = None
    due_date: Optional[str] = None
    time_estimate: Optional[float] = None
    subtasks: list[SubtaskPayload] = []


class _TaskFields(_Payload):
    description: Optional[str] = None
    priority: Optional[Priority] = None
    project_id: Optional[str] = None
    project_key: Optional[str] = None
    project_name: Optional[str] = None
    due_date: Optional[str] = None
    time_estimate: Optional[float] = None
    subtasks: Optional[list[SubtaskPayload]] = None
    completed: Optional[bool] = None

    @field_validator("priority", mode="before")
    @classmethod
    def _lower_priority(cls, value):
        if isinstance(value, str):
            return value.strip().lower()
        return value


class TaskPayload(_TaskFields):
    id: Optional[str] = None
    title: str


class TaskUpdatePayload(_TaskFields):
    """update_task data. ``title`` is the new title; the target is ``id`` or ``taskName``."""
    id: Optional[str] = None
    task_name: Optional[str] = None
    title: Optional[str] = None

    @model_validator(mode="after")
    def _needs_target(self):
        if not self.id and not self.task_name:
            raise ValueError("update_task needs an id or taskName")
        return self


class TaskRefPayload(_Payload):
    id: Optional[str] = None
    task_name: Optional[str] = None
    title: Optional[str] = None

    @model_validator(mode="after")
    def _needs_target(self):
        if not (self.id or self.task_name or self.title):
            raise ValueError("an id, taskName or title is required")
        return self

    @property
    def lookup_name(self) -> Optional[str]:
        return self.task_name or self.title


class AddSubtasksPayload(_Payload):
    id: Optional[str] = None
    task_name: Optional[str] = None
    subtasks: list[SubtaskPayload] = []

    @model_validator(mode="after")
    def _needs_target(self):
        if not self.id and not self.task_name:
            raise ValueError("No task ID or name provided for adding subtasks")
        return self


class ProjectPayload(_Payload):
    id: Optional[str] = None
    name: str
    color: Optional[str] = None
    key: Optional[str] = None


class ProjectUpdatePayload(_Payload):
    """update_project data. The target is ``id`` or a batch ``key``."""
    id: Optional[str] = None
    key: Optional[str] = None
    name: Optional[str] = None
    color: Optional[str] = None

    @model_validator(mode="after")
    def _needs_target(self):
        if not self.id and not self.key:
            raise ValueError("update_project needs an id or key")
        return self


class ProjectRefPayload(_Payload):
    id: Optional[str] = None
    name: Optional[str] = None

    @model_validator(mode="after")
    def _needs_target(self):
        if not self.id and not self.name:
            raise ValueError("an id or name is required")
        return self


# Actions, tagged by "type"

class CreateProjectAction(BaseModel):
    type: Literal["create_project"]
    data: ProjectPayload


class UpdateProjectAction(BaseModel):
    type: Literal["update_project"]
    data: ProjectUpdatePayload


class DeleteProjectAction(BaseModel):
    type: Literal["delete_project"]
    data: ProjectRefPayload


class CreateTaskAction(BaseModel):
    type: Literal["create_task"]
    data: TaskPayload


class UpdateTaskAction(BaseModel):
    type: Literal["update_task"]
    data: TaskUpdatePayload


class DeleteTaskAction(BaseModel):
    type: Literal["delete_task"]
    data: TaskRefPayload


class CompleteTaskAction(BaseModel):
    type: Literal["complete_task"]
    data: TaskRefPayload


class AddSubtasksAction(BaseModel):
    type: Literal["add_subtasks"]
    data: AddSubtasksPayload


ProjectAction = Union[CreateProjectAction, UpdateProjectAction, DeleteProjectAction]
TaskAction = Union[CreateTaskAction, UpdateTaskAction, DeleteTaskAction, CompleteTaskAction, AddSubtasksAction]

Action = Annotated[
    Union[
        CreateProjectAction,
        UpdateProjectAction,
        DeleteProjectAction,
        CreateTaskAction,
        UpdateTaskAction,
        DeleteTaskAction,
        CompleteTaskAction,
        AddSubtasksAction,
    ],
    Field(discriminator="type"),
]

PROJECT_ACTION_TYPES = ("create_project", "update_project", "delete_project")
