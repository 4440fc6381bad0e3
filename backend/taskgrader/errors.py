"""Failure taxonomy for task validation.

Every error carries the HTTP status and the message that is safe to show to
a client. Internal detail goes to the exception text and the log only.
"""
from __future__ import annotations


class GradingError(Exception):
	status_code = 500
	public_message = "Internal server error"


class DefinitionError(GradingError):
	"""The task's content is broken; never the learner's fault."""
	status_code = 404
	public_message = "Task definition is missing a valid solution"


class TaskNotFound(DefinitionError):
	public_message = "Task not found"


class UnknownValidationType(DefinitionError):
	status_code = 500
	public_message = "Task uses an unsupported validation type"


class InvalidAnswer(GradingError):
	status_code = 400
	public_message = "Answer does not match the expected format for this task"


class SandboxUnavailable(GradingError):
	public_message = "Code execution is currently unavailable"


class StorageFault(GradingError):
	public_message = "Failed to save task progress"


class ExecutionFault(Exception):
	"""Submitted code timed out or wrote to stderr.

	Turned into an incorrect verdict with a diagnostic message, so it is not a
	GradingError.
	"""

	def __init__(self, message: str, *, timed_out: bool = False, case_number: int | None = None):
		super().__init__(message)
		self.timed_out = timed_out
		self.case_number = case_number
