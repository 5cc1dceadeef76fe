"""Error taxonomy and input validation for the analysis pipelines."""

import logging
from typing import Any, Dict, List, Mapping, Sequence

logger = logging.getLogger(__name__)


class AnalysisError(Exception):
    """Base class for failures that are published as ``{"error": ...}``."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidInputError(AnalysisError):
    """Raised when the request is empty or malformed (user-correctable)."""

    status_code = 400


class UpstreamError(AnalysisError):
    """Raised when the provider failed or returned no usable content."""

    status_code = 503


class MalformedResponseError(AnalysisError):
    """Raised when the provider answered but the payload could not be parsed."""

    status_code = 502


class InternalError(AnalysisError):
    """Catch-all for unexpected failures."""

    status_code = 500


class MissingAuthorizationError(AnalysisError):
    """Raised when a protected pipeline is called without credentials."""

    status_code = 401


_REQUIRED_TOPIC_FIELDS = ("name", "subject", "difficulty", "confidence_level")


def _require_text(entry: Mapping[str, Any], field: str, position: int) -> str:
    value = entry.get(field)
    if not isinstance(value, str) or not value.strip():
        raise InvalidInputError(f"Topic {position}: '{field}' must be a non-empty string")
    return value


def validate_topics(raw: Any) -> List[Dict[str, Any]]:
    """Check the inbound topic list and return plain dict copies.

    Out-of-range confidence values are passed through unchanged.
    """
    if not isinstance(raw, Sequence) or isinstance(raw, (str, bytes)):
        raise InvalidInputError("'topics' must be a list of topic objects")
    if not raw:
        raise InvalidInputError("At least one topic is required")

    validated: List[Dict[str, Any]] = []
    for position, entry in enumerate(raw, start=1):
        if not isinstance(entry, Mapping):
            raise InvalidInputError(f"Topic {position} must be an object")
        missing = [field for field in _REQUIRED_TOPIC_FIELDS if entry.get(field) is None]
        if missing:
            raise InvalidInputError(
                f"Topic {position} is missing required field(s): {', '.join(missing)}"
            )
        _require_text(entry, "name", position)
        _require_text(entry, "subject", position)

        confidence = entry["confidence_level"]
        if isinstance(confidence, bool) or not isinstance(confidence, int):
            raise InvalidInputError(f"Topic {position}: 'confidence_level' must be an integer")
        if not 1 <= confidence <= 5:
            logger.warning(
                "Topic %d (%s) has confidence_level %d outside 1-5; passing through",
                position,
                entry["name"],
                confidence,
            )
        validated.append(dict(entry))
    return validated
