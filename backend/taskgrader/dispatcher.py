from __future__ import annotations
import logging
from typing import Any, Callable, Dict

from . import strategies
from .errors import UnknownValidationType
from .loader import TaskDefinition
from .sandbox import Sandbox
from .settings import settings
from .solutions import (
	SOLUTION_TYPES,
	ChatbotResponsesSolution,
	ChecklistAndKeywordMatchSolution,
	CompletionSolution,
	ExactMatchSolution,
	ExecuteAndMatchOutputSolution,
	KeywordMatchSolution,
	RangeMatchSolution,
)
from .strategies import ValidationContext, Verdict

logger = logging.getLogger(__name__)

Strategy = Callable[[Any, Any, ValidationContext], Verdict]

STRATEGIES: Dict[type, Strategy] = {
	ExactMatchSolution: strategies.exact_match,
	KeywordMatchSolution: strategies.keyword_match,
	ExecuteAndMatchOutputSolution: strategies.execute_and_match_output,
	ChatbotResponsesSolution: strategies.chatbot_responses,
	ChecklistAndKeywordMatchSolution: strategies.checklist_and_keyword_match,
	RangeMatchSolution: strategies.range_match,
	CompletionSolution: strategies.completion,
}

_missing = set(SOLUTION_TYPES) - set(STRATEGIES)
if _missing:
	raise RuntimeError(f"no strategy registered for {sorted(t.__name__ for t in _missing)}")


def dispatch(task: TaskDefinition, answer: Any, sandbox: Sandbox, *, timeout: float | None = None) -> Verdict:
	strategy = STRATEGIES.get(type(task.solution))
	if strategy is None:
		raise UnknownValidationType(f"task {task.task_id}: no strategy for {type(task.solution).__name__}")
	context = ValidationContext(
		task=task,
		sandbox=sandbox,
		timeout=timeout if timeout is not None else settings.sandbox_timeout_seconds,
	)
	verdict = strategy(answer, task.solution, context)
	logger.debug("Task %s graded by %s: %s", task.task_id, strategy.__name__, verdict.is_correct)
	return verdict
