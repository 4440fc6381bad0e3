from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Any, Optional

from pydantic import ValidationError
from sqlalchemy.orm import Session

from .errors import DefinitionError, TaskNotFound, UnknownValidationType
from .models import Task
from .solutions import KNOWN_VALIDATION_TYPES, Solution, solution_adapter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TaskDefinition:
	"""What the engine needs to grade one task."""
	task_id: int
	task_type: Optional[str]
	language: Optional[str]
	solution: Solution


def parse_definition(task_id: int, definition: Any) -> TaskDefinition:
	if not isinstance(definition, dict) or not isinstance(definition.get("solution"), dict):
		raise DefinitionError(f"task {task_id} has no solution")
	raw = definition["solution"]
	tag = raw.get("validation_type")
	if not isinstance(tag, str) or tag not in KNOWN_VALIDATION_TYPES:
		raise UnknownValidationType(f"task {task_id} has unknown validation_type {tag!r}")
	try:
		solution = solution_adapter.validate_python(raw)
	except ValidationError as e:
		raise DefinitionError(f"task {task_id} has a malformed {tag} solution: {e}") from e
	ui_schema = definition.get("ui_schema")
	language = ui_schema.get("language") if isinstance(ui_schema, dict) else None
	return TaskDefinition(
		task_id=task_id,
		task_type=definition.get("task_type"),
		language=language,
		solution=solution,
	)


def load_task(db: Session, task_id: int) -> TaskDefinition:
	row = db.get(Task, task_id)
	if row is None:
		raise TaskNotFound(f"task {task_id} does not exist")
	definition = parse_definition(task_id, row.definition)
	logger.debug("Loaded task %s (%s)", task_id, type(definition.solution).__name__)
	return definition
