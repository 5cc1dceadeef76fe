"""Topic priority analysis: normalize -> invoke -> extract -> publish.

Each call to :meth:`PriorityAnalyzer.run` is independent and holds no state
between invocations. Every failure is converted into a published
``{"error": ...}`` body; nothing is raised to the transport layer.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Sequence

from pydantic import ValidationError

import advisor
from engines.study_allocation import unmatched_topic_names
from engines.validation import AnalysisError, InternalError, InvalidInputError, validate_topics
from schemas import AnalysisResult, Topic, parse_analysis

logger = logging.getLogger(__name__)

OMITTED_FIELDS_HEADER = "X-Analysis-Omitted-Fields"

PipelineState = Literal["pending", "succeeded", "failed"]


@dataclass
class Publication:
    """What the transport layer sends back for one invocation."""

    state: PipelineState
    status_code: int
    body: Dict[str, Any]
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.state == "succeeded"


def publish_success(
    body: Dict[str, Any],
    *,
    omitted: Sequence[str] = (),
) -> Publication:
    headers = {OMITTED_FIELDS_HEADER: ",".join(omitted)} if omitted else {}
    return Publication("succeeded", 200, body, headers)


def publish_failure(error: AnalysisError) -> Publication:
    return Publication("failed", error.status_code, {"error": error.message})


def normalize_request(raw_topics: Any) -> tuple[List[Topic], str]:
    """Validate inbound topics and render the numbered prompt block."""
    validated = validate_topics(raw_topics)
    try:
        topics = [Topic.model_validate(entry) for entry in validated]
    except ValidationError as exc:
        raise InvalidInputError(f"Invalid topic: {exc.errors()[0].get('msg', exc)}") from exc
    return topics, advisor.build_topic_block(validated)


class PriorityAnalyzer:
    def __init__(self, invoker: Any) -> None:
        self.invoker = invoker

    def analyze(self, raw_topics: Any) -> tuple[AnalysisResult, List[str]]:
        """Run the pipeline, raising :class:`AnalysisError` subclasses on failure."""
        topics, topic_block = normalize_request(raw_topics)
        messages = advisor.build_priority_messages(topic_block)
        content = self.invoker.complete(messages, prompt_variant=advisor.TOPIC_PRIORITY_VARIANT)
        result, omitted = parse_analysis(content)

        unknown = unmatched_topic_names(result, topics)
        if unknown:
            logger.warning("Analysis referenced topics not in the request: %s", ", ".join(unknown))
        return result, omitted

    def run(self, raw_topics: Any) -> Publication:
        try:
            result, omitted = self.analyze(raw_topics)
        except AnalysisError as exc:
            logger.error("Topic analysis failed (%s): %s", type(exc).__name__, exc.message)
            return publish_failure(exc)
        except Exception as exc:
            logger.exception("Unexpected error in analyze-difficulty")
            return publish_failure(InternalError(str(exc) or "Unknown error"))

        logger.info(
            "Topic analysis succeeded: %d priorities, %d difficult topics",
            len(result.priorities),
            len(result.difficult_topics),
        )
        return publish_success(result.model_dump(), omitted=omitted)
