import json
from unittest.mock import patch

import pytest

from conftest import FakeResponse, RecordingPost, completion
from engines.priority_analyzer import OMITTED_FIELDS_HEADER, PriorityAnalyzer, publish_failure, publish_success
from engines.validation import UpstreamError
from llm_client import ModelInvoker

TOPICS = [
    {"name": "Algebra", "subject": "Maths", "difficulty": "hard", "confidence_level": 2},
    {"name": "Cells", "subject": "Biology", "difficulty": "easy", "confidence_level": 5},
]

SCENARIO_B_CONTENT = (
    "```json\n"
    '{"priorities":[{"topic_name":"Algebra","priority_score":9,"reasoning":"low confidence"}],"difficult_topics":[]}'
    "\n```"
)


def _analyzer(provider_settings, *responses):
    post = RecordingPost(*responses)
    return PriorityAnalyzer(ModelInvoker(provider_settings, post=post)), post


def test_fenced_reply_is_published_verbatim(provider_settings):
    analyzer, post = _analyzer(provider_settings, completion(SCENARIO_B_CONTENT))

    publication = analyzer.run(TOPICS[:1])

    assert publication.ok
    assert publication.state == "succeeded"
    assert publication.status_code == 200
    assert publication.body == {
        "priorities": [{"topic_name": "Algebra", "priority_score": 9, "reasoning": "low confidence"}],
        "difficult_topics": [],
    }
    assert OMITTED_FIELDS_HEADER not in publication.headers
    user_turn = post.calls[0]["json"]["messages"][1]["content"]
    assert user_turn.endswith("1. Algebra (Subject: Maths, Current Difficulty: hard, Confidence: 2/5)")


def test_provider_error_field_skips_extractor(provider_settings):
    analyzer, _ = _analyzer(provider_settings, FakeResponse(200, {"error": "rate limited"}))

    with patch("engines.priority_analyzer.parse_analysis") as extractor:
        publication = analyzer.run(TOPICS)

    extractor.assert_not_called()
    assert publication.state == "failed"
    assert publication.body == {"error": "AI processing failed"}
    assert 500 <= publication.status_code < 600


def test_empty_topics_fail_before_outbound_call(provider_settings):
    analyzer, post = _analyzer(provider_settings, completion(SCENARIO_B_CONTENT))

    publication = analyzer.run([])

    assert post.calls == []
    assert publication.status_code == 400
    assert publication.body == {"error": "At least one topic is required"}


def test_missing_priorities_publish_empty_list_with_flag(provider_settings):
    content = json.dumps({"difficult_topics": [{"topic_name": "Algebra", "reason": "x", "study_suggestion": "y"}]})
    analyzer, _ = _analyzer(provider_settings, completion(content))

    publication = analyzer.run(TOPICS)

    assert publication.ok
    assert publication.body["priorities"] == []
    assert publication.headers[OMITTED_FIELDS_HEADER] == "priorities"


def test_unparseable_reply_is_distinct_from_upstream_failure(provider_settings):
    analyzer, _ = _analyzer(provider_settings, completion("I think Algebra matters most."))
    malformed = analyzer.run(TOPICS)

    analyzer, _ = _analyzer(provider_settings, completion(""))
    empty = analyzer.run(TOPICS)

    assert malformed.status_code == 502
    assert empty.status_code == 503
    assert malformed.body["error"] != empty.body["error"]


def test_unexpected_failure_is_published_as_internal_error():
    class _ExplodingInvoker:
        def complete(self, messages, prompt_variant="default"):
            raise RuntimeError("boom")

    publication = PriorityAnalyzer(_ExplodingInvoker()).run(TOPICS)

    assert publication.status_code == 500
    assert publication.body == {"error": "boom"}


def test_scores_are_structurally_valid(provider_settings):
    content = json.dumps(
        {
            "priorities": [
                {"topic_name": "Algebra", "priority_score": 14, "reasoning": "very weak"},
                {"topic_name": "Cells", "priority_score": "3", "reasoning": "confident"},
            ],
            "difficult_topics": [],
        }
    )
    analyzer, _ = _analyzer(provider_settings, completion(content))

    publication = analyzer.run(TOPICS)

    for priority in publication.body["priorities"]:
        assert isinstance(priority["priority_score"], int)
        assert 1 <= priority["priority_score"] <= 10
        assert isinstance(priority["topic_name"], str) and priority["topic_name"]


def test_unknown_topic_names_are_logged_not_rejected(provider_settings, caplog):
    content = json.dumps(
        {"priorities": [{"topic_name": "Quadratics", "priority_score": 6, "reasoning": ""}], "difficult_topics": []}
    )
    analyzer, _ = _analyzer(provider_settings, completion(content))

    with caplog.at_level("WARNING"):
        publication = analyzer.run(TOPICS)

    assert publication.ok
    assert "Quadratics" in caplog.text


@pytest.mark.parametrize("topics", [None, "Algebra", [{"name": "Algebra"}]])
def test_malformed_requests_are_bad_input(provider_settings, topics):
    analyzer, post = _analyzer(provider_settings, completion(SCENARIO_B_CONTENT))

    publication = analyzer.run(topics)

    assert publication.status_code == 400
    assert "error" in publication.body
    assert post.calls == []


def test_publications_carry_only_transport_fields():
    success = publish_success({"priorities": [], "difficult_topics": []}, omitted=["priorities"])
    failure = publish_failure(UpstreamError("AI processing failed"))

    assert success.ok
    assert success.headers == {OMITTED_FIELDS_HEADER: "priorities"}
    assert not failure.ok
    assert (failure.status_code, failure.body, failure.headers) == (503, {"error": "AI processing failed"}, {})
    assert not hasattr(success, "result")
