"""Strengths/weaknesses/recommendations review of a single test result."""

from __future__ import annotations

import logging
from typing import Any, Optional, Protocol

from pydantic import ValidationError

import advisor
from engines.priority_analyzer import Publication, publish_failure, publish_success
from engines.validation import AnalysisError, InternalError, InvalidInputError, MissingAuthorizationError
from schemas import ScoreReview, ScoreReviewRequest, parse_score_review

logger = logging.getLogger(__name__)


class ScoreReviewSink(Protocol):
    """Persists a finished review; implemented by the caller's backend."""

    def save_analysis(self, user_token: str, score_id: str, analysis: ScoreReview) -> None:
        ...


def parse_request(raw: Any) -> ScoreReviewRequest:
    if not isinstance(raw, dict):
        raise InvalidInputError("Request body must be a JSON object")
    try:
        return ScoreReviewRequest.model_validate(raw)
    except ValidationError as exc:
        first = exc.errors()[0]
        location = ".".join(str(part) for part in first.get("loc", ()))
        raise InvalidInputError(f"Invalid field '{location}': {first.get('msg')}") from exc


class ScoreReviewAnalyzer:
    def __init__(self, invoker: Any, sink: Optional[ScoreReviewSink] = None) -> None:
        self.invoker = invoker
        self.sink = sink

    def analyze(self, raw: Any, authorization: Optional[str]) -> ScoreReview:
        if not authorization or not authorization.strip():
            raise MissingAuthorizationError("No authorization header")
        request = parse_request(raw)
        messages = advisor.build_test_score_messages(
            subject=request.subject,
            test_type=request.test_type,
            percentage=request.percentage,
            correct_questions=[q.question for q in request.correct_questions],
            incorrect_questions=[q.question for q in request.incorrect_questions],
        )
        logger.info("Requesting test score analysis for %s (%s)", request.subject, request.test_type)
        content = self.invoker.complete(messages, prompt_variant=advisor.TEST_SCORE_VARIANT)
        analysis, _ = parse_score_review(content)

        if self.sink is not None and request.score_id:
            self.sink.save_analysis(authorization, request.score_id, analysis)
        return analysis

    def run(self, raw: Any, authorization: Optional[str]) -> Publication:
        try:
            analysis = self.analyze(raw, authorization)
        except AnalysisError as exc:
            logger.error("Test score analysis failed (%s): %s", type(exc).__name__, exc.message)
            return publish_failure(exc)
        except Exception as exc:
            logger.exception("Unexpected error in analyze-test-score")
            return publish_failure(InternalError(str(exc) or "Unknown error"))

        logger.info("Test score analysis completed successfully")
        return publish_success({"success": True, "analysis": analysis.model_dump()})
