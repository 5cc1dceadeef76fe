from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from prompts.masterprompts import MasterPrompt, get_prompt

TOPIC_PRIORITY_VARIANT = "topic_priority"
TEST_SCORE_VARIANT = "test_score_review"

NO_QUESTION_DETAILS = "No details provided"


def format_topic_line(index: int, topic: Mapping[str, Any]) -> str:
    return (
        f"{index}. {topic['name']} (Subject: {topic['subject']}, "
        f"Current Difficulty: {topic['difficulty']}, "
        f"Confidence: {topic['confidence_level']}/5)"
    )


def build_topic_block(topics: Sequence[Mapping[str, Any]]) -> str:
    """Serialize validated topics into one numbered line each, in input order."""
    return "\n".join(format_topic_line(i, topic) for i, topic in enumerate(topics, start=1))


def _chat_messages(prompt: MasterPrompt, user_text: str) -> List[Dict[str, str]]:
    return [
        {"role": "system", "content": prompt.system_template},
        {"role": "user", "content": user_text},
    ]


def build_priority_messages(topic_block: str) -> List[Dict[str, str]]:
    prompt = get_prompt(TOPIC_PRIORITY_VARIANT)
    return _chat_messages(prompt, prompt.render_user(topic_block=topic_block))


def _format_questions(questions: Optional[Iterable[Any]]) -> str:
    lines = []
    for i, entry in enumerate(questions or (), start=1):
        text = entry.get("question") if isinstance(entry, Mapping) else entry
        lines.append(f"{i}. {text}")
    return "\n".join(lines) or NO_QUESTION_DETAILS


def build_test_score_messages(
    subject: str,
    test_type: str,
    percentage: float,
    correct_questions: Optional[Iterable[Any]] = None,
    incorrect_questions: Optional[Iterable[Any]] = None,
) -> List[Dict[str, str]]:
    prompt = get_prompt(TEST_SCORE_VARIANT)
    user_text = prompt.render_user(
        subject=subject,
        test_type=test_type,
        percentage=f"{float(percentage):.1f}",
        correct_block=_format_questions(correct_questions),
        incorrect_block=_format_questions(incorrect_questions),
    )
    return _chat_messages(prompt, user_text)
