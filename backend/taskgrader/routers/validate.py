from __future__ import annotations
import logging
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.orm import Session

from ..db import get_db
from ..dispatcher import dispatch
from ..errors import StorageFault
from ..loader import load_task
from ..progress import record_completion
from ..sandbox import Sandbox, SubprocessSandbox
from .auth import get_current_user, User

router = APIRouter(tags=["validation"])

logger = logging.getLogger(__name__)


class ValidateTaskRequest(BaseModel):
	taskId: int = Field(gt=0)
	answer: Any

	@field_validator("answer")
	@classmethod
	def _answer_present(cls, value: Any) -> Any:
		if value is None:
			raise ValueError("answer is required")
		return value


class ValidateTaskResponse(BaseModel):
	is_correct: bool
	message: str


def get_sandbox() -> Sandbox:
	return SubprocessSandbox()


# Sync on purpose: FastAPI runs it in the thread pool, so a slow sandbox run
# only ties up one worker thread.
@router.post("/validate-task", response_model=ValidateTaskResponse)
def validate_task(
	req: ValidateTaskRequest,
	user: User = Depends(get_current_user),
	db: Session = Depends(get_db),
	sandbox: Sandbox = Depends(get_sandbox),
):
	task = load_task(db, req.taskId)
	verdict = dispatch(task, req.answer, sandbox)

	if verdict.is_correct:
		try:
			record_completion(db, user.id, req.taskId)
		except StorageFault:
			# The learner still gets the verdict; the lost record needs attention
			logger.exception("Could not record completion of task %s for user %s", req.taskId, user.id)

	return ValidateTaskResponse(is_correct=verdict.is_correct, message=verdict.message)
