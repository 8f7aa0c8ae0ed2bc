import os
import random
import time
from typing import Any, Callable, Dict, Optional

import requests
from loguru import logger
from pydantic import ValidationError

from archeohub.schemas import ChatOptions, ChatResponse

DEFAULT_API_URL = "http://127.0.0.1:9000"


class ClientError(RuntimeError):
    """Raised when the API answers with an error or cannot be reached."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ChatReply(ChatResponse):
    """A ChatResponse the UI can always render; `error` marks failures."""

    error: bool = False


class ArcheoHubClient:
    """Client for the ArcheoHub HTTP API."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        max_attempts: int = 3,
        base_delay: float = 0.5,
        max_delay: float = 4.0,
        timeout: float = 45.0,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Args:
            base_url: Server URL. Defaults to $ARCHEOHUB_API_URL or http://127.0.0.1:9000
            max_attempts: Total tries for transient network errors (>= 1)
            base_delay: First backoff delay in seconds, doubled per attempt
            max_delay: Cap for a single backoff delay
            timeout: Per-request timeout in seconds
        """
        self.base_url = (base_url or os.getenv("ARCHEOHUB_API_URL", DEFAULT_API_URL)).rstrip("/")
        self.max_attempts = max(1, max_attempts)
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.timeout = timeout
        self.session = session or requests.Session()
        self._sleep = sleep

    def backoff_delay(self, attempt: int) -> float:
        """Full-jitter delay before retry number `attempt` (1-based)."""
        cap = min(self.max_delay, self.base_delay * (2 ** (attempt - 1)))
        return random.uniform(0, cap)

    def _request(self, method: str, endpoint: str, **kwargs: Any) -> Any:
        url = f"{self.base_url}{endpoint}"
        for attempt in range(1, self.max_attempts + 1):
            try:
                response = self.session.request(method, url, timeout=self.timeout, **kwargs)
                break
            except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as e:
                if attempt == self.max_attempts:
                    raise ClientError(f"Could not reach {url} after {attempt} attempts: {e}") from e
                delay = self.backoff_delay(attempt)
                logger.warning("Attempt {} for {} failed ({}), retrying in {:.2f}s", attempt, url, e, delay)
                self._sleep(delay)

        try:
            data = response.json()
        except ValueError:
            data = {}
        if not response.ok:
            message = data.get("error") if isinstance(data, dict) else None
            raise ClientError(message or f"HTTP {response.status_code}", status_code=response.status_code)
        return data

    def health(self) -> Dict[str, Any]:
        return self._request("GET", "/api/health")

    def ask(self, query: str, options: Optional[ChatOptions] = None) -> ChatResponse:
        body: Dict[str, Any] = {"query": query}
        if options is not None:
            body["options"] = options.model_dump(exclude_none=True)
        data = self._request("POST", "/api/chat", json=body)
        if not isinstance(data, dict):
            raise ClientError(f"Unexpected chat response: expected an object, got {type(data).__name__}")
        try:
            return ChatResponse(**data)
        except ValidationError as e:
            raise ClientError(f"Malformed chat response: {e.error_count()} invalid field(s)") from e

    def ask_or_error(self, query: str, options: Optional[ChatOptions] = None) -> ChatReply:
        """Like `ask`, but failures come back as a reply flagged with `error`."""
        try:
            answer = self.ask(query, options)
        except ClientError as e:
            return ChatReply(text=str(e) or "Sorry, an unexpected error occurred.", error=True)
        return ChatReply(**answer.model_dump())
