"""Pydantic schemas for validated model outputs and helper utilities."""

from __future__ import annotations

import json
import logging
import math
import re
from typing import Any, Dict, List, Tuple, Type, TypeVar

from pydantic import BaseModel, Field, ValidationError, field_validator

from engines.validation import MalformedResponseError

__all__ = [
    "Topic",
    "TopicPriority",
    "DifficultTopicNote",
    "AnalysisResult",
    "ScoreReview",
    "ScoreReviewRequest",
    "extract_json_text",
    "parse_analysis",
    "parse_score_review",
]

logger = logging.getLogger(__name__)

MIN_PRIORITY_SCORE = 1
MAX_PRIORITY_SCORE = 10


class Topic(BaseModel):
    name: str = Field(min_length=1)
    subject: str = Field(min_length=1)
    difficulty: str | int
    confidence_level: int


class TopicPriority(BaseModel):
    topic_name: str = Field(min_length=1)
    priority_score: int
    reasoning: str = ""

    @field_validator("priority_score", mode="before")
    @classmethod
    def _clamp_score(cls, value: Any) -> int:
        if isinstance(value, bool):
            raise ValueError("priority_score must be numeric")
        if isinstance(value, str):
            value = value.strip()
        try:
            number = float(value)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"priority_score must be numeric, got {value!r}") from exc
        if math.isnan(number) or math.isinf(number):
            raise ValueError("priority_score must be finite")
        score = int(round(number))
        clamped = max(MIN_PRIORITY_SCORE, min(MAX_PRIORITY_SCORE, score))
        if clamped != number:
            logger.warning("Normalised priority_score %r to %d", value, clamped)
        return clamped


class DifficultTopicNote(BaseModel):
    topic_name: str = Field(min_length=1)
    reason: str = ""
    study_suggestion: str = ""


class AnalysisResult(BaseModel):
    priorities: List[TopicPriority] = Field(default_factory=list)
    difficult_topics: List[DifficultTopicNote] = Field(default_factory=list)


class ScoreReview(BaseModel):
    strengths: List[str] = Field(default_factory=list)
    weaknesses: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)


class QuestionRef(BaseModel):
    question: str


class ScoreReviewRequest(BaseModel):
    score_id: str | None = Field(default=None, alias="scoreId")
    subject: str = Field(min_length=1)
    percentage: float
    test_type: str = Field(default="test", alias="testType")
    correct_questions: List[QuestionRef] = Field(default_factory=list, alias="correctQuestions")
    incorrect_questions: List[QuestionRef] = Field(default_factory=list, alias="incorrectQuestions")

    model_config = {"populate_by_name": True}


_T = TypeVar("_T", bound=BaseModel)

_JSON_FENCE = re.compile(r"```json[ \t]*\r?\n(.*?)\r?\n[ \t]*```", re.DOTALL | re.IGNORECASE)


def extract_json_text(text: str) -> str:
    """Return the body of the first ```json fence, or ``text`` unchanged."""
    match = _JSON_FENCE.search(text or "")
    if match:
        return match.group(1)
    return text


def _load_object(text: str) -> Dict[str, Any]:
    try:
        payload = json.loads(extract_json_text(text))
    except (TypeError, ValueError) as exc:
        logger.error("Model reply is not valid JSON: %s", exc)
        raise MalformedResponseError("AI response was not valid JSON. Please try again.") from exc
    if not isinstance(payload, dict):
        raise MalformedResponseError("AI response JSON was not an object. Please try again.")
    return payload


def _validate(payload: Dict[str, Any], model: Type[_T], lenient_fields: Tuple[str, ...]) -> Tuple[_T, List[str]]:
    omitted = [field for field in lenient_fields if payload.get(field) is None]
    for field in omitted:
        logger.warning("Model reply omitted '%s'; defaulting to an empty list", field)
    cleaned = {key: value for key, value in payload.items() if key not in omitted}
    try:
        return model.model_validate(cleaned), omitted
    except ValidationError as exc:
        logger.error("Model reply failed %s validation: %s", model.__name__, exc)
        raise MalformedResponseError(
            "AI response did not match the expected structure. Please try again."
        ) from exc


def parse_analysis(text: str) -> Tuple[AnalysisResult, List[str]]:
    """Parse raw model text into an :class:`AnalysisResult`.

    Returns the result and the names of top-level fields the model omitted.
    """
    payload = _load_object(text)
    return _validate(payload, AnalysisResult, ("priorities", "difficult_topics"))


def parse_score_review(text: str) -> Tuple[ScoreReview, List[str]]:
    payload = _load_object(text)
    return _validate(payload, ScoreReview, ("strengths", "weaknesses", "recommendations"))
