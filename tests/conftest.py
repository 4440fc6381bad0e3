from __future__ import annotations

import os

# Keep the module-level engine off disk; fixtures below use their own engine
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")

from typing import Any, Callable, Dict

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from taskgrader.db import Base, get_db
from taskgrader.loader import parse_definition
from taskgrader.main import app
from taskgrader.models import Task
from taskgrader.routers.validate import get_sandbox
from taskgrader.strategies import ValidationContext

from helpers import FakeSandbox, auth_headers


@pytest.fixture
def session_factory():
	engine = create_engine(
		"sqlite://",
		connect_args={"check_same_thread": False},
		poolclass=StaticPool,
		future=True,
	)
	Base.metadata.create_all(engine)
	yield sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)
	engine.dispose()


@pytest.fixture
def db(session_factory):
	session = session_factory()
	try:
		yield session
	finally:
		session.close()


@pytest.fixture
def add_task(db) -> Callable[..., Task]:
	def _add(task_id: int, definition: Any) -> Task:
		row = Task(id=task_id, definition=definition)
		db.add(row)
		db.commit()
		return row
	return _add


@pytest.fixture
def make_context() -> Callable[..., ValidationContext]:
	def _make(solution: dict, *, task_type: str | None = None, language: str | None = None,
			sandbox: Any = None, timeout: float = 2.0) -> ValidationContext:
		definition: Dict[str, Any] = {"task_type": task_type, "solution": solution}
		if language:
			definition["ui_schema"] = {"language": language}
		return ValidationContext(
			task=parse_definition(1, definition),
			sandbox=sandbox or FakeSandbox(),
			timeout=timeout,
		)
	return _make


@pytest.fixture
def fake_sandbox():
	return FakeSandbox()


@pytest.fixture
def client(session_factory, fake_sandbox):
	def _get_db():
		session = session_factory()
		try:
			yield session
		finally:
			session.close()

	app.dependency_overrides[get_db] = _get_db
	app.dependency_overrides[get_sandbox] = lambda: fake_sandbox
	try:
		yield TestClient(app, raise_server_exceptions=False)
	finally:
		app.dependency_overrides.clear()


@pytest.fixture
def headers() -> Dict[str, str]:
	return auth_headers()
