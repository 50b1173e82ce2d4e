"""
Shared pytest fixtures for backend tests.
Uses a temporary SQLite database for isolation.
"""
import pytest
import sqlite3
import sys
import os

# Add backend to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import database
from models import Message


@pytest.fixture
def test_db(monkeypatch, tmp_path):
    """
    Create an isolated test database for each test.
    Uses a temp file (not :memory:) because database.py opens new connections per operation.
    """
    db_path = str(tmp_path / "test.db")
    monkeypatch.setattr(database, "DATABASE_PATH", db_path)
    monkeypatch.setattr(database, "init_db", lambda: None)

    # Create tables directly (skip alembic for tests)
    conn = sqlite3.connect(db_path)
    conn.executescript("""
        CREATE TABLE projects (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            name TEXT NOT NULL,
            color TEXT NOT NULL,
            created_at TEXT NOT NULL
        );

        CREATE TABLE tasks (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            project_id TEXT,
            title TEXT NOT NULL,
            description TEXT,
            priority TEXT DEFAULT 'medium',
            due_date TEXT,
            time_estimate REAL,
            completed INTEGER DEFAULT 0,
            completed_at TEXT,
            created_at TEXT NOT NULL
        );

        CREATE TABLE subtasks (
            id TEXT PRIMARY KEY,
            task_id TEXT NOT NULL,
            title TEXT NOT NULL,
            completed INTEGER DEFAULT 0,
            position INTEGER NOT NULL
        );
    """)
    conn.commit()
    conn.close()

    yield db_path


class FakeGateway:
    """Model gateway that returns canned replies and records what it was sent."""

    name = "fake"

    def __init__(self, *replies):
        self.replies = list(replies)
        self.calls: list[list[Message]] = []

    async def complete(self, messages):
        self.calls.append(list(messages))
        return self.replies.pop(0)


@pytest.fixture
def fake_gateway():
    return FakeGateway


@pytest.fixture
def app_client(test_db, monkeypatch):
    """
    Create a test client for the FastAPI app.
    Mocks init_db to skip alembic migrations and starts with fresh chat sessions.
    """
    from fastapi.testclient import TestClient
    from conversation import SessionRegistry
    import main

    monkeypatch.setattr(main, "init_db", lambda: None)
    monkeypatch.setattr(main, "sessions", SessionRegistry())

    with TestClient(main.app) as client:
        yield client
