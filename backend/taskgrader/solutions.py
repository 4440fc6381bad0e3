"""Typed grading rules, one model per validation_type.

A task's ``definition.solution`` is decoded into exactly one of these models
by :func:`taskgrader.loader.load_task`; the rest of the engine never looks at
the raw JSON again.
"""
from __future__ import annotations
from typing import Annotated, Any, List, Literal, Optional, Union, get_args

from pydantic import AliasChoices, BaseModel, Field, TypeAdapter, model_validator


class CodeTestCase(BaseModel):
	# For code tasks this is argument source text, e.g. "[1, 2, 3]"
	input: Any
	expected_output: Any


class ChatTestCase(BaseModel):
	input: str
	expected_output: str


class ExactMatchSolution(BaseModel):
	validation_type: Literal["exact_match"]
	expected_value: Any
	explanation: Optional[str] = None


class KeywordMatchSolution(BaseModel):
	validation_type: Literal["keyword_match"]
	value: List[str]


class ExecuteAndMatchOutputSolution(BaseModel):
	# Older definitions still carry the javascript-specific tag
	validation_type: Literal["execute_and_match_output", "execute_javascript_and_match_output"]
	test_cases: List[CodeTestCase] = Field(min_length=1)
	entrypoint: Optional[str] = None
	language: Optional[str] = None


class ChatbotResponsesSolution(BaseModel):
	validation_type: Literal["chatbot_responses"]
	test_cases: List[ChatTestCase] = Field(min_length=1)


class ChecklistAndKeywordMatchSolution(BaseModel):
	validation_type: Literal["checklist_and_keyword_match"]
	checklist_solution: List[str]
	keyword_solution: List[str]
	min_keywords: int = 3


class RangeMatchSolution(BaseModel):
	validation_type: Literal["range_match"]
	minimum: float = Field(validation_alias=AliasChoices("min", "target_conversion_score_min"))
	maximum: float = Field(validation_alias=AliasChoices("max", "target_conversion_score_max"))
	metric: str = "conversionScore"
	# Authors can phrase feedback in the task's own terms
	success_message: Optional[str] = None
	below_message: Optional[str] = None
	above_message: Optional[str] = None

	@model_validator(mode="after")
	def _ordered_bounds(self) -> "RangeMatchSolution":
		if self.minimum > self.maximum:
			raise ValueError("min must not exceed max")
		return self


class CompletionSolution(BaseModel):
	validation_type: Literal["completion"]


SOLUTION_TYPES = (
	ExactMatchSolution,
	KeywordMatchSolution,
	ExecuteAndMatchOutputSolution,
	ChatbotResponsesSolution,
	ChecklistAndKeywordMatchSolution,
	RangeMatchSolution,
	CompletionSolution,
)

Solution = Annotated[
	Union[
		ExactMatchSolution,
		KeywordMatchSolution,
		ExecuteAndMatchOutputSolution,
		ChatbotResponsesSolution,
		ChecklistAndKeywordMatchSolution,
		RangeMatchSolution,
		CompletionSolution,
	],
	Field(discriminator="validation_type"),
]

solution_adapter: TypeAdapter[Solution] = TypeAdapter(Solution)


def _tags(model: type[BaseModel]) -> tuple[str, ...]:
	return get_args(model.model_fields["validation_type"].annotation)


KNOWN_VALIDATION_TYPES = frozenset(tag for model in SOLUTION_TYPES for tag in _tags(model))
