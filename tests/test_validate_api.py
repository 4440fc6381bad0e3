from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy import select

from taskgrader.errors import StorageFault
from taskgrader.models import UserTaskProgress
from taskgrader.routers import validate
from taskgrader.routers.auth import create_access_token
from taskgrader.sandbox import SandboxResult, SubprocessSandbox
from taskgrader.strategies import COMPLETION_MESSAGE, DEFAULT_FAILURE_MESSAGE

from helpers import auth_headers, ok

MULTIPLE_CHOICE = {
	"task_type": "multiple_choice",
	"solution": {"validation_type": "exact_match", "expected_value": "b", "explanation": "Assets = liabilities + equity."},
}

CODE_TASK = {
	"task_type": "code_challenge",
	"ui_schema": {"language": "python"},
	"solution": {
		"validation_type": "execute_and_match_output",
		"entrypoint": "sum_array",
		"test_cases": [
			{"input": "[1, 2, 3]", "expected_output": 6},
			{"input": "[]", "expected_output": 0},
			{"input": "[10]", "expected_output": 10},
		],
	},
}


def _records(db, user_id="user-1"):
	db.expire_all()
	stmt = select(UserTaskProgress.task_id).where(UserTaskProgress.user_id == user_id)
	return db.execute(stmt).scalars().all()


def _submit(client, headers, task_id, answer):
	return client.post("/validate-task", json={"taskId": task_id, "answer": answer}, headers=headers)


class TestAuthentication:
	def test_missing_token(self, client, add_task, db):
		add_task(1, MULTIPLE_CHOICE)
		response = client.post("/validate-task", json={"taskId": 1, "answer": "b"})
		assert response.status_code == 401
		assert _records(db) == []

	def test_bad_signature(self, client, add_task):
		add_task(1, MULTIPLE_CHOICE)
		response = _submit(client, {"Authorization": "Bearer not-a-jwt"}, 1, "b")
		assert response.status_code == 401

	def test_expired_token(self, client, add_task):
		add_task(1, MULTIPLE_CHOICE)
		token = create_access_token({"sub": "user-1"}, expires_delta=timedelta(minutes=-5))
		response = _submit(client, {"Authorization": f"Bearer {token}"}, 1, "b")
		assert response.status_code == 401

	def test_token_without_subject(self, client, add_task):
		add_task(1, MULTIPLE_CHOICE)
		token = create_access_token({"email": "a@example.com"})
		response = _submit(client, {"Authorization": f"Bearer {token}"}, 1, "b")
		assert response.status_code == 401

	def test_me(self, client):
		response = client.get("/auth/me", headers=auth_headers("learner-9"))
		assert response.status_code == 200
		assert response.json()["id"] == "learner-9"


class TestBadRequests:
	@pytest.mark.parametrize("body", [
		{"answer": "b"},
		{"taskId": 1},
		{"taskId": 1, "answer": None},
		{"taskId": 0, "answer": "b"},
		{"taskId": "abc", "answer": "b"},
	])
	def test_missing_or_invalid_input(self, client, headers, body):
		response = client.post("/validate-task", json=body, headers=headers)
		assert response.status_code == 400
		assert response.json() == {"detail": "Invalid request"}

	def test_answer_of_the_wrong_shape(self, client, headers, add_task):
		add_task(3, {"solution": {"validation_type": "range_match", "min": 1, "max": 2}})
		response = _submit(client, headers, 3, "not an object")
		assert response.status_code == 400

	def test_nan_score_is_rejected(self, client, headers, add_task, db):
		add_task(3, {"solution": {"validation_type": "range_match", "min": 40, "max": 60}})
		response = client.post(
			"/validate-task",
			content='{"taskId": 3, "answer": {"conversionScore": NaN}}',
			headers={**headers, "Content-Type": "application/json"},
		)
		assert response.status_code == 400
		assert _records(db) == []

	def test_malformed_body_without_token_is_unauthenticated(self, client, headers):
		body = "{not json"
		json_headers = {"Content-Type": "application/json"}
		assert client.post("/validate-task", content=body, headers=json_headers).status_code == 401
		response = client.post("/validate-task", content=body, headers={**headers, **json_headers})
		assert response.status_code == 400


class TestDefinitionErrors:
	def test_task_not_found(self, client, headers):
		response = _submit(client, headers, 999, "b")
		assert response.status_code == 404
		assert response.json() == {"detail": "Task not found"}

	def test_missing_solution(self, client, headers, add_task):
		add_task(2, {"task_type": "multiple_choice"})
		response = _submit(client, headers, 2, "b")
		assert response.status_code == 404
		assert "is_correct" not in response.json()

	def test_unknown_validation_type_is_never_correct(self, client, headers, add_task, db):
		add_task(2, {"solution": {"validation_type": "vibes_match"}})
		response = _submit(client, headers, 2, "b")
		assert response.status_code == 500
		assert response.json() == {"detail": "Task uses an unsupported validation type"}
		assert _records(db) == []


class TestVerdicts:
	def test_correct_answer_records_progress(self, client, headers, add_task, db):
		add_task(1, MULTIPLE_CHOICE)
		response = _submit(client, headers, 1, "b")
		assert response.status_code == 200
		assert response.json() == {"is_correct": True, "message": "Assets = liabilities + equity."}
		assert _records(db) == [1]

	def test_wrong_answer_records_nothing(self, client, headers, add_task, db):
		add_task(1, MULTIPLE_CHOICE)
		response = _submit(client, headers, 1, "c")
		assert response.json() == {"is_correct": False, "message": DEFAULT_FAILURE_MESSAGE}
		assert _records(db) == []

	def test_repeated_correct_submissions_are_idempotent(self, client, headers, add_task, db):
		add_task(4, {"task_type": "persona", "solution": {"validation_type": "completion"}})
		for _ in range(5):
			response = _submit(client, headers, 4, {"name": "Sara"})
			assert response.status_code == 200
			assert response.json() == {"is_correct": True, "message": COMPLETION_MESSAGE}
		assert _records(db) == [4]

	def test_storage_fault_still_returns_verdict(self, client, headers, add_task, db, monkeypatch):
		def broken(*args, **kwargs):
			raise StorageFault("connection reset")

		monkeypatch.setattr(validate, "record_completion", broken)
		add_task(1, MULTIPLE_CHOICE)
		response = _submit(client, headers, 1, "b")
		assert response.status_code == 200
		assert response.json()["is_correct"] is True

	def test_unexpected_errors_are_not_leaked(self, client, headers, add_task, monkeypatch):
		def explode(*args, **kwargs):
			raise RuntimeError("secret internal detail")

		monkeypatch.setattr(validate, "dispatch", explode)
		add_task(1, MULTIPLE_CHOICE)
		response = _submit(client, headers, 1, "b")
		assert response.status_code == 500
		assert "secret" not in response.text

	def test_code_fault_on_second_case(self, client, headers, add_task, db, fake_sandbox):
		fake_sandbox.results = [
			ok(6),
			SandboxResult(stdout="", stderr="IndexError: list index out of range"),
			ok(10),
		]
		add_task(5, CODE_TASK)
		response = _submit(client, headers, 5, "def sum_array(xs):\n    return xs[0] + sum(xs[1:])")
		body = response.json()
		assert response.status_code == 200
		assert body["is_correct"] is False
		assert "test case #2" in body["message"]
		assert len(fake_sandbox.calls) == 2
		assert _records(db) == []


def test_code_task_end_to_end(client, headers, add_task, db, fake_sandbox):
	"""Real interpreter behind the endpoint."""
	real = SubprocessSandbox(isolate_network=False)
	client.app.dependency_overrides[validate.get_sandbox] = lambda: real
	add_task(6, CODE_TASK)

	wrong = _submit(client, headers, 6, "def sum_array(xs):\n    return len(xs)")
	assert wrong.json()["is_correct"] is False
	assert "#1" in wrong.json()["message"]

	right = _submit(client, headers, 6, "def sum_array(xs):\n    # add them up\n    return sum(xs)")
	assert right.json() == {"is_correct": True, "message": "Correct answer! Well done."}
	assert _records(db) == [6]


def test_progress_endpoint(client, add_task):
	add_task(1, MULTIPLE_CHOICE)
	add_task(4, {"solution": {"validation_type": "completion"}})
	learner = auth_headers("learner-2")
	_submit(client, learner, 1, "b")
	_submit(client, learner, 4, "done")

	response = client.get("/progress", params={"task_ids": [4, 7]}, headers=learner)
	assert response.json() == {"completed_task_ids": [4]}
	response = client.get("/progress", headers=learner)
	assert response.json() == {"completed_task_ids": [1, 4]}
	assert client.get("/progress").status_code == 401


def test_health(client):
	assert client.get("/health").json() == {"status": "ok"}
