"""Turn priority analyses into ranked study-time allocations."""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterable, List, Literal, Mapping

PriorityBand = Literal["high", "medium", "low"]

MIN_SESSIONS = 4
BASE_SESSION_MINUTES = 45
MINUTES_PER_POINT = 5
MAX_SESSION_MINUTES = 90


@dataclass(frozen=True)
class FocusAllocation:
    topic_name: str
    priority_score: int
    band: PriorityBand
    sessions: int
    session_minutes: int
    reasoning: str = ""

    @property
    def total_minutes(self) -> int:
        return self.sessions * self.session_minutes

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["total_minutes"] = self.total_minutes
        return payload


def priority_band(score: int) -> PriorityBand:
    if score >= 8:
        return "high"
    if score >= 5:
        return "medium"
    return "low"


def rank_priorities(priorities: Iterable[Any]) -> List[Any]:
    """Highest score first; ties keep the model's order."""
    return sorted(priorities, key=lambda item: item.priority_score, reverse=True)


def focus_allocation(priority: Any) -> FocusAllocation:
    score = int(priority.priority_score)
    return FocusAllocation(
        topic_name=priority.topic_name,
        priority_score=score,
        band=priority_band(score),
        sessions=max(MIN_SESSIONS, math.ceil(score / 1.5)),
        session_minutes=min(MAX_SESSION_MINUTES, BASE_SESSION_MINUTES + score * MINUTES_PER_POINT),
        reasoning=getattr(priority, "reasoning", ""),
    )


def plan_allocations(result: Any) -> List[FocusAllocation]:
    return [focus_allocation(priority) for priority in rank_priorities(result.priorities)]


def unmatched_topic_names(result: Any, topics: Iterable[Any]) -> List[str]:
    """Names referenced by ``result`` that do not appear in ``topics``.

    Matching ignores case and surrounding whitespace.
    """
    known = set()
    for topic in topics:
        name = topic.get("name") if isinstance(topic, Mapping) else getattr(topic, "name", None)
        if name:
            known.add(str(name).strip().lower())

    unmatched: List[str] = []
    referenced = [p.topic_name for p in result.priorities] + [d.topic_name for d in result.difficult_topics]
    for name in referenced:
        if name.strip().lower() not in known and name not in unmatched:
            unmatched.append(name)
    return unmatched
