# archeohub/services/llm.py
import json
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any, Dict, List, Optional

import requests
from loguru import logger

from archeohub.config import Settings


class LLMError(RuntimeError):
    pass


class LLMConfigError(LLMError):
    pass


class LLMTimeoutError(LLMError):
    pass


class LLMUpstreamError(LLMError):
    def __init__(self, status_code: int, body: str):
        super().__init__(f"OpenAI error: {status_code} {body}")
        self.status_code = status_code
        self.body = body


MOCK_PREFIX = "Mock response (development). Received prompt: "


def _first_choice(payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    choices = payload.get("choices")
    if isinstance(choices, list) and choices and isinstance(choices[0], dict):
        return choices[0]
    return None


def _message_content(payload: Dict[str, Any]) -> Any:
    choice = _first_choice(payload)
    if choice is None:
        return None
    message = choice.get("message")
    return message.get("content") if isinstance(message, dict) else None


def _choice_text(payload: Dict[str, Any]) -> Any:
    choice = _first_choice(payload)
    return choice.get("text") if choice is not None else None


def _choice_output(payload: Dict[str, Any]) -> Any:
    choice = _first_choice(payload)
    if choice is None:
        return None
    output = choice.get("output")
    if isinstance(output, list) and output and isinstance(output[0], dict):
        return output[0].get("content")
    return None


def _top_level_text(payload: Dict[str, Any]) -> Any:
    return payload.get("text")


# Tried in order; the first non-empty value wins.
_SHAPES = (_message_content, _choice_text, _choice_output, _top_level_text)


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or value == [] or value == {}


def extract_completion_text(payload: Any) -> str:
    """
    Pull the answer text out of a completion payload.

    Known shapes: a bare string, {"choices": [{"message": {"content"}}]},
    {"choices": [{"text"}]}, {"choices": [{"output": [{"content"}]}]} and a
    top-level {"text"}. Non-string values are serialized as JSON. Always
    returns a string, "" when nothing matches.
    """
    if isinstance(payload, str):
        return payload
    if not isinstance(payload, dict):
        return ""

    for shape in _SHAPES:
        value = shape(payload)
        if _is_empty(value):
            continue
        if isinstance(value, str):
            return value
        return json.dumps(value)
    return ""


class CompletionClient:
    """OpenAI-compatible /chat/completions client."""

    def __init__(self, settings: Settings, session: Optional[requests.Session] = None):
        self.settings = settings
        self.session = session or requests.Session()

    @property
    def url(self) -> str:
        return f"{self.settings.openai_base_url.rstrip('/')}/chat/completions"

    def _post_within_budget(self, payload: Dict[str, Any], headers: Dict[str, str]) -> requests.Response:
        """
        POST and read the whole body under one wall-clock deadline of
        `completion_timeout` seconds. `requests`' own timeout only bounds
        each socket read, so a slowly trickling upstream is cut off here.
        """
        budget = self.settings.completion_timeout
        in_flight: List[requests.Response] = []

        def fetch() -> requests.Response:
            r = self.session.post(self.url, json=payload, headers=headers, timeout=budget, stream=True)
            in_flight.append(r)
            _ = r.content  # read the body inside the deadline
            return r

        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="openai-call")
        future = executor.submit(fetch)
        try:
            return future.result(timeout=budget)
        except FutureTimeoutError as e:
            future.cancel()
            for r in in_flight:
                r.close()
            logger.error("OpenAI call exceeded {}s budget", budget)
            raise LLMTimeoutError("OpenAI request timed out") from e
        finally:
            executor.shutdown(wait=False)

    def complete(self, system_prompt: str, user_prompt: str) -> str:
        if not self.settings.openai_api_key:
            if self.settings.is_development:
                logger.warning("OPENAI_API_KEY missing, returning development mock response")
                return f"{MOCK_PREFIX}{user_prompt[:500]}"
            raise LLMConfigError("Missing OPENAI_API_KEY")

        messages: List[Dict[str, str]] = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ]
        payload = {
            "model": self.settings.openai_model,
            "messages": messages,
            "temperature": 0.2,
            "max_tokens": 800,
        }
        headers = {"Authorization": f"Bearer {self.settings.openai_api_key}"}

        try:
            r = self._post_within_budget(payload, headers)
        except requests.exceptions.Timeout as e:
            raise LLMTimeoutError("OpenAI request timed out") from e
        except requests.exceptions.RequestException as e:
            raise LLMError(f"Error calling OpenAI at {self.url}: {e}") from e

        if not r.ok:
            logger.error("OpenAI returned {}: {}", r.status_code, r.text[:500])
            raise LLMUpstreamError(r.status_code, r.text)

        try:
            data = r.json()
        except ValueError as e:
            raise LLMError("OpenAI response is not valid JSON") from e
        return extract_completion_text(data)
