"""
Tests for FastAPI endpoints in main.py.
The /chat endpoint runs against a fake model gateway.
"""
import json
import pytest
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import main
from database import create_project_db, create_task_db, get_all_projects, get_all_tasks
from errors import ProviderError
from extraction import ACTION_MARKER
from models import SubtaskPayload

USER = "user-1"
HEADERS = {"X-User-Id": USER}


class TestTaskEndpoints:
    """Tests for /tasks and /projects endpoints."""

    def test_get_tasks_empty(self, app_client):
        response = app_client.get("/tasks", headers=HEADERS)
        assert response.status_code == 200
        assert response.json() == []

    def test_get_tasks_scoped_to_user(self, test_db, app_client):
        create_task_db(USER, "Mine", subtasks=[])
        create_task_db("someone-else", "Theirs")

        tasks = app_client.get("/tasks", headers=HEADERS).json()

        assert [t["title"] for t in tasks] == ["Mine"]
        assert tasks[0]["subtasks"] == []

    def test_default_user_without_header(self, test_db, app_client, monkeypatch):
        monkeypatch.setattr(main.config, "DEFAULT_USER_ID", "local")
        create_task_db("local", "Local task")

        tasks = app_client.get("/tasks").json()

        assert [t["title"] for t in tasks] == ["Local task"]

    def test_get_projects(self, test_db, app_client):
        create_project_db(USER, "Bookstore", "#4f46e5")

        projects = app_client.get("/projects", headers=HEADERS).json()

        assert [p["name"] for p in projects] == ["Bookstore"]

    def test_update_task_title(self, test_db, app_client):
        task = create_task_db(USER, "Old title")

        response = app_client.patch(f"/tasks/{task.id}", json={"title": "New title"}, headers=HEADERS)

        assert response.status_code == 200
        assert response.json()["title"] == "New title"

    def test_update_task_completed(self, test_db, app_client):
        task = create_task_db(USER, "Complete me")

        response = app_client.patch(f"/tasks/{task.id}", json={"completed": True}, headers=HEADERS)

        assert response.status_code == 200
        assert response.json()["completed"] is True
        assert response.json()["completed_at"] is not None

    def test_update_task_not_found(self, app_client):
        response = app_client.patch("/tasks/nonexistent", json={"title": "New title"}, headers=HEADERS)
        assert response.status_code == 404

    def test_create_project(self, test_db, app_client):
        response = app_client.post("/projects", json={"name": "Garden"}, headers=HEADERS)

        assert response.status_code == 200
        project = response.json()
        assert project["name"] == "Garden"
        assert project["color"].startswith("#")
        assert [p["id"] for p in get_all_projects(USER)] == [project["id"]]

    def test_create_task_with_subtasks(self, test_db, app_client):
        project = create_project_db(USER, "Bookstore", "#4f46e5")

        response = app_client.post("/tasks", json={
            "title": "Hire staff",
            "priority": "high",
            "project_id": project.id,
            "subtasks": [{"title": "Post listings"}, {"title": "Interview"}],
        }, headers=HEADERS)

        assert response.status_code == 200
        task = response.json()
        assert task["project_id"] == project.id
        assert task["priority"] == "high"
        assert [(st["title"], st["position"]) for st in task["subtasks"]] == [("Post listings", 0), ("Interview", 1)]

    def test_create_task_in_other_users_project(self, test_db, app_client):
        project = create_project_db("someone-else", "Theirs", "#4f46e5")

        response = app_client.post("/tasks", json={"title": "Sneaky", "project_id": project.id}, headers=HEADERS)

        assert response.status_code == 404
        assert get_all_tasks(USER) == []

    def test_create_task_rejects_bad_priority(self, app_client):
        response = app_client.post("/tasks", json={"title": "X", "priority": "urgent"}, headers=HEADERS)
        assert response.status_code == 422


class TestSubtaskEndpoints:
    """Tests for adding and toggling subtasks."""

    def test_add_subtask(self, test_db, app_client):
        task = create_task_db(USER, "Hire staff", subtasks=[SubtaskPayload(title="Post listings")])

        response = app_client.post(f"/tasks/{task.id}/subtasks", json={"title": "Interview"}, headers=HEADERS)

        assert response.status_code == 200
        subtasks = response.json()["subtasks"]
        assert [(st["title"], st["position"]) for st in subtasks] == [("Post listings", 0), ("Interview", 1)]

    def test_add_subtask_task_not_found(self, app_client):
        response = app_client.post("/tasks/nonexistent/subtasks", json={"title": "X"}, headers=HEADERS)
        assert response.status_code == 404

    def test_toggle_subtask(self, test_db, app_client):
        task = create_task_db(USER, "Hire staff", subtasks=[SubtaskPayload(title="Post listings")])
        subtask_id = task.subtasks[0].id

        response = app_client.patch(f"/subtasks/{subtask_id}", json={"completed": True}, headers=HEADERS)

        assert response.status_code == 200
        assert response.json()["completed"] is True
        assert get_all_tasks(USER)[0].subtasks[0].completed is True

    def test_null_title_is_ignored(self, test_db, app_client):
        task = create_task_db(USER, "Hire staff", subtasks=[SubtaskPayload(title="Keep")])

        response = app_client.patch(f"/subtasks/{task.subtasks[0].id}", json={"title": None}, headers=HEADERS)

        assert response.status_code == 200
        assert response.json()["title"] == "Keep"

    def test_toggle_other_users_subtask(self, test_db, app_client):
        task = create_task_db("someone-else", "Theirs", subtasks=[SubtaskPayload(title="Private")])

        response = app_client.patch(f"/subtasks/{task.subtasks[0].id}", json={"completed": True}, headers=HEADERS)

        assert response.status_code == 404


class TestChatEndpoint:
    """Tests for /chat and /chat/confirm."""

    def test_chat_executes_actions(self, test_db, app_client, fake_gateway, monkeypatch):
        actions = [
            {"type": "create_project", "data": {"name": "Bookstore", "key": "Bookstore"}},
            {"type": "create_task", "data": {"title": "Hire staff", "projectKey": "Bookstore"}},
        ]
        reply = f"Created a Bookstore project.\n{ACTION_MARKER} {json.dumps({'actions': actions})}"
        monkeypatch.setattr(main, "gateway", fake_gateway(reply))

        response = app_client.post("/chat", json={"message": "Set up my bookstore"}, headers=HEADERS)

        assert response.status_code == 200
        data = response.json()
        assert data["response"] == "Created a Bookstore project."
        assert data["state"] == "completed"
        assert "confirmation" not in data
        assert data["tasks"][0]["project_id"] == data["projects"][0]["id"]

    def test_chat_delete_then_confirm(self, test_db, app_client, fake_gateway, monkeypatch):
        task = create_task_db(USER, "Old task")
        reply = f"Delete it?\n{ACTION_MARKER} " + json.dumps(
            {"actions": [{"type": "delete_task", "data": {"id": task.id}}]}
        )
        monkeypatch.setattr(main, "gateway", fake_gateway(reply))

        data = app_client.post("/chat", json={"message": "delete old task"}, headers=HEADERS).json()

        assert data["confirmation"] == {"type": "delete_task", "id": task.id}
        assert len(data["tasks"]) == 1

        response = app_client.post("/chat/confirm", json=data["confirmation"], headers=HEADERS)

        assert response.status_code == 200
        assert response.json()["tasks"] == []
        assert get_all_tasks(USER) == []

    def test_confirm_unknown_target(self, test_db, app_client):
        response = app_client.post("/chat/confirm", json={"type": "delete_project", "id": "nope"}, headers=HEADERS)
        assert response.status_code == 404

    def test_confirm_rejects_other_types(self, app_client):
        response = app_client.post("/chat/confirm", json={"type": "create_task", "id": "x"}, headers=HEADERS)
        assert response.status_code == 422

    def test_provider_error(self, test_db, app_client, monkeypatch):
        class Down:
            name = "anthropic"

            async def complete(self, messages):
                raise ProviderError("anthropic", "overloaded")

        monkeypatch.setattr(main, "gateway", Down())

        data = app_client.post("/chat", json={"message": "hi"}, headers=HEADERS).json()

        assert data["response"] == "API error (anthropic): overloaded"
        assert data["state"] == "provider_error"
        assert data["tasks"] == []


class TestConversationEndpoint:
    """Tests for /conversation."""

    def test_get_conversation_empty(self, app_client):
        response = app_client.get("/conversation", headers=HEADERS)
        assert response.status_code == 200
        assert response.json() == []

    def test_conversation_records_turns(self, test_db, app_client, fake_gateway, monkeypatch):
        monkeypatch.setattr(main, "gateway", fake_gateway("Hello!"))
        app_client.post("/chat", json={"message": "hi"}, headers=HEADERS)

        history = app_client.get("/conversation", headers=HEADERS).json()

        assert history == [
            {"role": "user", "content": "hi"},
            {"role": "assistant", "content": "Hello!"},
        ]
        assert app_client.get("/conversation", headers={"X-User-Id": "other"}).json() == []

    def test_reset_conversation(self, test_db, app_client, fake_gateway, monkeypatch):
        monkeypatch.setattr(main, "gateway", fake_gateway("Hello!"))
        app_client.post("/chat", json={"message": "hi"}, headers=HEADERS)

        assert app_client.delete("/conversation", headers=HEADERS).json() == {"status": "reset"}
        assert app_client.get("/conversation", headers=HEADERS).json() == []
