"""Single-shot chat-completion client for the model provider.

The provider's reply is reduced to one of three shapes at this boundary:
``ProviderContent`` (text to parse), ``ProviderFailure`` (the provider or the
transport reported an error) or ``ProviderEmpty`` (a reply without content).
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Union
from uuid import uuid4

import requests

from engines.validation import InternalError, UpstreamError
from env_validation import ProviderSettings

logger = logging.getLogger(__name__)

_LLM_LOGGER = logging.getLogger("study.llm")
if not _LLM_LOGGER.handlers:
    _handler = logging.StreamHandler()
    _handler.setFormatter(logging.Formatter("%(message)s"))
    _LLM_LOGGER.addHandler(_handler)
_LLM_LOGGER.setLevel(logging.INFO)
_LLM_LOGGER.propagate = False

PROVIDER_ERROR_MESSAGE = "AI processing failed"
EMPTY_RESPONSE_MESSAGE = "AI did not generate a response. Please try again."


@dataclass(frozen=True)
class ProviderContent:
    content: str
    tokens_in: Optional[int] = None
    tokens_out: Optional[int] = None


@dataclass(frozen=True)
class ProviderFailure:
    message: str
    detail: str = ""
    status_code: Optional[int] = None


@dataclass(frozen=True)
class ProviderEmpty:
    raw: Any = None


ProviderReply = Union[ProviderContent, ProviderFailure, ProviderEmpty]


def _coerce_int(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def interpret_reply(data: Any) -> ProviderReply:
    """Classify a decoded provider body without raising."""
    if not isinstance(data, dict):
        return ProviderEmpty(raw=data)
    if data.get("error"):
        return ProviderFailure(PROVIDER_ERROR_MESSAGE, detail=str(data["error"])[:300])

    try:
        content = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        content = None
    if not isinstance(content, str) or not content.strip():
        return ProviderEmpty(raw=data)

    usage = data.get("usage")
    tokens_in = tokens_out = None
    if isinstance(usage, dict):
        tokens_in = _coerce_int(usage.get("prompt_tokens") or usage.get("input_tokens"))
        tokens_out = _coerce_int(usage.get("completion_tokens") or usage.get("output_tokens"))
    return ProviderContent(content=content, tokens_in=tokens_in, tokens_out=tokens_out)


class ModelInvoker:
    """Issues exactly one blocking chat-completion request per call.

    ``post`` defaults to :func:`requests.post`; tests pass a fake with the
    same signature.
    """

    def __init__(
        self,
        settings: ProviderSettings,
        post: Optional[Callable[..., Any]] = None,
    ) -> None:
        self.settings = settings
        self._post = post or requests.post

    def _payload(self, messages: List[Dict[str, str]]) -> Dict[str, Any]:
        return {
            "model": self.settings.model_id,
            "messages": messages,
            "max_tokens": int(self.settings.max_tokens),
        }

    def send(self, messages: List[Dict[str, str]], *, prompt_variant: str = "default") -> ProviderReply:
        if not self.settings.api_key:
            raise InternalError("OPENAI_API_KEY not configured")

        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.settings.api_key}",
        }
        request_id = str(uuid4())
        start = time.perf_counter()
        reply: ProviderReply
        try:
            response = self._post(
                self.settings.url,
                json=self._payload(messages),
                headers=headers,
                timeout=self.settings.timeout_seconds,
            )
        except requests.Timeout as exc:
            reply = ProviderFailure(
                f"OpenAI API request timed out after {self.settings.timeout_seconds:g}s",
                detail=str(exc),
            )
        except requests.RequestException as exc:
            reply = ProviderFailure("OpenAI API request failed", detail=str(exc))
        else:
            reply = self._read_response(response)
        finally:
            latency_ms = int((time.perf_counter() - start) * 1000)

        self._log_call(request_id, prompt_variant, latency_ms, reply)
        return reply

    def _read_response(self, response: Any) -> ProviderReply:
        status = getattr(response, "status_code", 200)
        try:
            data = response.json()
        except ValueError:
            data = None

        if isinstance(data, dict) and data.get("error"):
            logger.error("Provider returned error (HTTP %s): %s", status, str(data["error"])[:300])
            return ProviderFailure(PROVIDER_ERROR_MESSAGE, detail=str(data["error"])[:300], status_code=status)
        if status >= 400:
            text = getattr(response, "text", "") or ""
            logger.error("Provider HTTP error %s: %s", status, text[:300])
            return ProviderFailure(
                f"OpenAI API request failed: {status}", detail=text[:300], status_code=status
            )
        if data is None:
            return ProviderEmpty(raw=getattr(response, "text", None))
        return interpret_reply(data)

    def complete(self, messages: List[Dict[str, str]], *, prompt_variant: str = "default") -> str:
        """Return the first choice's content or raise :class:`UpstreamError`."""
        reply = self.send(messages, prompt_variant=prompt_variant)
        if isinstance(reply, ProviderContent):
            return reply.content
        if isinstance(reply, ProviderFailure):
            raise UpstreamError(reply.message)
        logger.error("Empty AI response. Raw result: %s", str(reply.raw)[:300])
        raise UpstreamError(EMPTY_RESPONSE_MESSAGE)

    def _log_call(self, request_id: str, prompt_variant: str, latency_ms: int, reply: ProviderReply) -> None:
        record = {
            "event": "llm_call",
            "request_id": request_id,
            "prompt_variant": prompt_variant,
            "model": self.settings.model_id,
            "latency_ms": latency_ms,
            "tokens_in": getattr(reply, "tokens_in", None),
            "tokens_out": getattr(reply, "tokens_out", None),
            "outcome": type(reply).__name__,
        }
        _LLM_LOGGER.info(json.dumps(record, ensure_ascii=False))
