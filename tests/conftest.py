import json
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


@pytest.fixture
def temp_db(tmp_path):
    import db

    previous = db.DB_PATH
    db_path = tmp_path / "test.db"
    db.configure(str(db_path))
    db.init()
    yield str(db_path)
    db.configure(previous)


class FakeResponse:
    def __init__(self, status_code, payload, text=None):
        self.status_code = status_code
        self._payload = payload
        self.text = text if text is not None else json.dumps(payload)

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class RecordingPost:
    """Stand-in for ``requests.post`` that replays canned responses."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def __call__(self, url, json=None, headers=None, timeout=None):
        self.calls.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response


def completion(content, **extra):
    payload = {"choices": [{"message": {"role": "assistant", "content": content}}]}
    payload.update(extra)
    return FakeResponse(200, payload)


@pytest.fixture
def provider_settings():
    from env_validation import ProviderSettings

    return ProviderSettings(
        api_key="sk-test",
        url="https://llm.example.test/v1/chat/completions",
        model_id="gpt-4o-mini",
        max_tokens=2048,
        timeout_seconds=15.0,
    )
