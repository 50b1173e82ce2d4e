from contextlib import asynccontextmanager
from fastapi import Depends, FastAPI, Header, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from typing import Optional
import logging

import config
from chat import process_user_message
from conversation import SessionRegistry
from errors import NotFoundError, ProviderError
from executor import confirm_action, random_color
from llm import FallbackGateway, build_gateways
from models import ChatRequest, Confirmation, ProjectCreate, SubtaskPayload, SubtaskUpdate, TaskCreate, TaskUpdate
from database import (
    init_db,
    get_all_tasks,
    get_all_projects,
    get_project_db,
    get_task_db,
    create_project_db,
    create_task_db,
    update_task_db,
    append_subtasks_db,
    update_subtask_db,
)

logging.basicConfig(level=config.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    # Startup
    init_db()
    yield
    # Shutdown (nothing to do)

app = FastAPI(lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Providers in configured order; later ones are only asked when earlier ones fail
gateway = FallbackGateway(build_gateways())
# Room for every provider to use its own timeout before the turn gives up
CHAT_TIMEOUT_S = max(config.MODEL_TIMEOUT_S, gateway.total_timeout_s)
sessions = SessionRegistry()


def get_user_id(x_user_id: Optional[str] = Header(default=None)) -> str:
    """Acting user. Authentication happens in front of this service."""
    return x_user_id or config.DEFAULT_USER_ID


def _snapshot(user_id: str) -> dict:
    return {
        "tasks": [task.model_dump() for task in get_all_tasks(user_id)],
        "projects": [project.model_dump() for project in get_all_projects(user_id)],
    }


@app.get("/tasks")
def get_tasks(user_id: str = Depends(get_user_id)) -> list[dict]:
    return [task.model_dump() for task in get_all_tasks(user_id)]


@app.get("/projects")
def get_projects(user_id: str = Depends(get_user_id)) -> list[dict]:
    return [project.model_dump() for project in get_all_projects(user_id)]


@app.post("/projects")
def create_project(project_data: ProjectCreate, user_id: str = Depends(get_user_id)) -> dict:
    return create_project_db(user_id, project_data.name, project_data.color or random_color()).model_dump()


@app.post("/tasks")
def create_task(task_data: TaskCreate, user_id: str = Depends(get_user_id)) -> dict:
    if task_data.project_id and not get_project_db(task_data.project_id, user_id):
        raise HTTPException(status_code=404, detail="Project not found")
    return create_task_db(user_id, **task_data.model_dump(exclude={"subtasks"}), subtasks=task_data.subtasks).model_dump()


@app.patch("/tasks/{task_id}")
def update_task(task_id: str, task_data: TaskUpdate, user_id: str = Depends(get_user_id)) -> dict:
    result = update_task_db(task_id, user_id, **task_data.model_dump(exclude_unset=True))
    if not result:
        raise HTTPException(status_code=404, detail="Task not found")
    return result.model_dump()


@app.post("/tasks/{task_id}/subtasks")
def add_subtask(task_id: str, subtask_data: SubtaskPayload, user_id: str = Depends(get_user_id)) -> dict:
    if not get_task_db(task_id, user_id):
        raise HTTPException(status_code=404, detail="Task not found")
    append_subtasks_db(task_id, [subtask_data])
    return get_task_db(task_id, user_id).model_dump()


@app.patch("/subtasks/{subtask_id}")
def update_subtask(subtask_id: str, subtask_data: SubtaskUpdate, user_id: str = Depends(get_user_id)) -> dict:
    """Rename a subtask or toggle its completion."""
    result = update_subtask_db(subtask_id, user_id, **subtask_data.model_dump(exclude_none=True))
    if not result:
        raise HTTPException(status_code=404, detail="Subtask not found")
    return result.model_dump()


@app.get("/conversation")
def get_conversation_endpoint(user_id: str = Depends(get_user_id)) -> list[dict]:
    """Current chat history used for prompting."""
    return [message.model_dump() for message in sessions.get(user_id).messages]


@app.delete("/conversation")
def reset_conversation(user_id: str = Depends(get_user_id)) -> dict:
    sessions.reset(user_id)
    return {"status": "reset"}


@app.post("/chat")
async def chat(chat_request: ChatRequest, user_id: str = Depends(get_user_id)) -> dict:
    """Process user message through the model and execute the actions it returns."""
    try:
        result = await process_user_message(
            chat_request.message,
            user_id,
            session=sessions.get(user_id),
            gateway=gateway,
            timeout_s=CHAT_TIMEOUT_S,
        )
    except ProviderError as e:
        logger.error("Model call failed: %s", e)
        return {"response": f"API error ({e.provider}): {e.detail}", "state": "provider_error", **_snapshot(user_id)}

    response = {"response": result.message, "state": result.state, **_snapshot(user_id)}
    if result.confirmation:
        response["confirmation"] = result.confirmation.model_dump()
    return response


@app.post("/chat/confirm")
def confirm(confirmation: Confirmation, user_id: str = Depends(get_user_id)) -> dict:
    """Carry out a delete the assistant asked to confirm."""
    try:
        confirm_action(confirmation, user_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"status": "deleted", **_snapshot(user_id)}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
