"""
Validation strategies, one per validation_type.

Every strategy has the signature ``(answer, solution, context) -> Verdict``
and keeps no state between calls. A wrong answer is a normal Verdict; only an
answer with the wrong shape for its task raises (InvalidAnswer).
"""
from __future__ import annotations
import json
import logging
import math
import re
from dataclasses import dataclass
from typing import Any, List, Optional

from pydantic import BaseModel, ValidationError

from .errors import ExecutionFault, InvalidAnswer
from .loader import TaskDefinition
from .sandbox import Sandbox
from .solutions import (
	ChatbotResponsesSolution,
	ChecklistAndKeywordMatchSolution,
	CompletionSolution,
	ExactMatchSolution,
	ExecuteAndMatchOutputSolution,
	KeywordMatchSolution,
	RangeMatchSolution,
)

logger = logging.getLogger(__name__)

DEFAULT_FAILURE_MESSAGE = "That's not quite right. Try again!"
CORRECT_MESSAGE = "Correct answer! Well done."
COMPLETION_MESSAGE = "Task completed successfully! Well done on finishing this creative challenge."
CHATBOT_FALLBACK_REPLY = "Sorry, I didn't understand that."
CHECKLIST_WRONG_MESSAGE = (
	"The questions you picked aren't quite right. "
	"Review the problem and choose the most important questions to ask."
)
SUMMARY_WRONG_MESSAGE = (
	"Your question list is correct, but your summary is missing some key ideas. "
	"Make sure you clearly explain the problem and what you need."
)

_PYTHON_COMMENT = re.compile(r"#.*$", re.MULTILINE)
_LINE_COMMENT = re.compile(r"//.*$", re.MULTILINE)
_WHITESPACE = re.compile(r"\s")


@dataclass(frozen=True)
class Verdict:
	is_correct: bool
	message: str


@dataclass(frozen=True)
class ValidationContext:
	task: TaskDefinition
	sandbox: Sandbox
	timeout: float


def _deep_equal(a: Any, b: Any) -> bool:
	# bool is an int subclass; True must not match 1
	if isinstance(a, bool) or isinstance(b, bool):
		return type(a) is type(b) and a == b
	if isinstance(a, dict) and isinstance(b, dict):
		return a.keys() == b.keys() and all(_deep_equal(a[k], b[k]) for k in a)
	if isinstance(a, list) and isinstance(b, list):
		return len(a) == len(b) and all(_deep_equal(x, y) for x, y in zip(a, b))
	return a == b


def _parse_answer(model: type[BaseModel], answer: Any) -> Any:
	try:
		return model.model_validate(answer)
	except ValidationError as e:
		raise InvalidAnswer(f"answer does not fit {model.__name__}: {e}") from e


# ===== exact_match =====

def normalize_code(source: str, language: Optional[str]) -> str:
	"""Drop line comments and every whitespace character."""
	comment = _PYTHON_COMMENT if language == "python" else _LINE_COMMENT
	return _WHITESPACE.sub("", comment.sub("", source))


def exact_match(answer: Any, solution: ExactMatchSolution, context: ValidationContext) -> Verdict:
	expected = solution.expected_value
	if isinstance(expected, str) and isinstance(answer, str):
		if context.task.task_type == "code_challenge":
			language = context.task.language
			is_correct = normalize_code(expected, language) == normalize_code(answer, language)
		else:
			is_correct = expected.strip() == answer.strip()
	else:
		is_correct = _deep_equal(expected, answer)

	if not is_correct:
		return Verdict(False, DEFAULT_FAILURE_MESSAGE)
	return Verdict(True, solution.explanation or CORRECT_MESSAGE)


# ===== keyword_match =====

def keyword_match(answer: Any, solution: KeywordMatchSolution, context: ValidationContext) -> Verdict:
	if not isinstance(answer, str):
		raise InvalidAnswer("keyword_match expects a text answer")
	text = answer.lower()
	if any(keyword.lower() in text for keyword in solution.value):
		return Verdict(True, CORRECT_MESSAGE)
	return Verdict(False, DEFAULT_FAILURE_MESSAGE)


# ===== execute_and_match_output =====

def _code_language(solution: ExecuteAndMatchOutputSolution, context: ValidationContext) -> str:
	if solution.language:
		return solution.language
	if context.task.language:
		return context.task.language
	if solution.validation_type == "execute_javascript_and_match_output":
		return "javascript"
	return "python"


def _run_case(source: str, case_number: int, test_input: Any, language: str,
		solution: ExecuteAndMatchOutputSolution, context: ValidationContext) -> Any:
	result = context.sandbox.run(
		source,
		test_input,
		context.timeout,
		language=language,
		entrypoint=solution.entrypoint,
	)
	if result.timed_out:
		raise ExecutionFault("time limit exceeded", timed_out=True, case_number=case_number)
	if result.stderr.strip():
		raise ExecutionFault(result.stderr.strip(), case_number=case_number)
	lines = result.stdout.strip().splitlines()
	if not lines:
		raise ExecutionFault("the program printed nothing", case_number=case_number)
	try:
		return json.loads(lines[-1])
	except json.JSONDecodeError as e:
		raise ExecutionFault(f"could not read the result: {lines[-1][:200]}", case_number=case_number) from e


def _fault_message(fault: ExecutionFault) -> str:
	if fault.timed_out:
		return f"Your code took too long to finish on test case #{fault.case_number}."
	last_line = str(fault).splitlines()[-1][:300]
	return f"Your code raised an error on test case #{fault.case_number}: {last_line}"


def execute_and_match_output(answer: Any, solution: ExecuteAndMatchOutputSolution, context: ValidationContext) -> Verdict:
	if not isinstance(answer, str) or not answer.strip():
		raise InvalidAnswer("execute_and_match_output expects program source text")
	language = _code_language(solution, context)

	for case_number, case in enumerate(solution.test_cases, start=1):
		try:
			actual = _run_case(answer, case_number, case.input, language, solution, context)
		except ExecutionFault as fault:
			logger.info("Task %s: execution fault on case %s: %s", context.task.task_id, case_number, fault)
			return Verdict(False, _fault_message(fault))
		if not _deep_equal(actual, case.expected_output):
			return Verdict(
				False,
				f"Test case #{case_number} failed: expected {json.dumps(case.expected_output)} "
				f"but got {json.dumps(actual)}.",
			)
	return Verdict(True, CORRECT_MESSAGE)


# ===== chatbot_responses =====

class ChatRule(BaseModel):
	input: str
	output: str


class ChatbotAnswer(BaseModel):
	rules: List[ChatRule]
	defaultReply: Optional[str] = None


def bot_reply(bot: ChatbotAnswer, message: str) -> str:
	key = message.strip().lower()
	for rule in bot.rules:
		if rule.input.strip().lower() == key:
			return rule.output
	return bot.defaultReply or CHATBOT_FALLBACK_REPLY


def chatbot_responses(answer: Any, solution: ChatbotResponsesSolution, context: ValidationContext) -> Verdict:
	bot = _parse_answer(ChatbotAnswer, answer)
	for case in solution.test_cases:
		reply = bot_reply(bot, case.input)
		if reply.strip() != case.expected_output.strip():
			return Verdict(
				False,
				f'Test failed: for input "{case.input}" the expected reply was '
				f'"{case.expected_output}" but the bot answered "{reply}".',
			)
	return Verdict(True, CORRECT_MESSAGE)


# ===== checklist_and_keyword_match =====

class ChecklistAnswer(BaseModel):
	checklist: List[str]
	summary: str


def checklist_and_keyword_match(answer: Any, solution: ChecklistAndKeywordMatchSolution, context: ValidationContext) -> Verdict:
	submitted = _parse_answer(ChecklistAnswer, answer)
	checklist_ok = (
		len(submitted.checklist) == len(solution.checklist_solution)
		and set(submitted.checklist) == set(solution.checklist_solution)
	)
	summary = submitted.summary.lower()
	keywords = {kw.lower() for kw in solution.keyword_solution}
	found = sum(1 for kw in keywords if kw in summary)

	if not checklist_ok:
		return Verdict(False, CHECKLIST_WRONG_MESSAGE)
	if found < solution.min_keywords:
		return Verdict(False, SUMMARY_WRONG_MESSAGE)
	return Verdict(True, CORRECT_MESSAGE)


# ===== range_match =====

def range_match(answer: Any, solution: RangeMatchSolution, context: ValidationContext) -> Verdict:
	value = answer.get(solution.metric) if isinstance(answer, dict) else None
	# NaN compares False both ways and would land inside any range
	if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
		raise InvalidAnswer(f"range_match expects a finite numeric {solution.metric!r}")
	low, high = solution.minimum, solution.maximum

	if value < low:
		return Verdict(False, solution.below_message or f"{value} is below the target range of {low:g} to {high:g}. Try a higher value.")
	if value > high:
		return Verdict(False, solution.above_message or f"{value} is above the target range of {low:g} to {high:g}. Try a lower value.")
	return Verdict(True, solution.success_message or "Excellent! Your result is within the target range.")


# ===== completion =====

def completion(answer: Any, solution: CompletionSolution, context: ValidationContext) -> Verdict:
	return Verdict(True, COMPLETION_MESSAGE)
