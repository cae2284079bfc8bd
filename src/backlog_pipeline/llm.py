from __future__ import annotations

import json
import logging
import os
import threading
from pathlib import Path
from typing import Any, Callable, Protocol

import openai
from dotenv import load_dotenv
from langchain_openai import ChatOpenAI

from .errors import GenerationCancelled, RateLimitExceeded, TransientRateLimit
from .settings import RuntimeSettings

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT: int = 120
_RATE_LIMIT_CLASS_NAMES = frozenset({"RateLimitError", "TooManyRequestsError", "ResourceExhausted"})


class SupportsInvoke(Protocol):
    """Protocol for any LangChain-compatible runnable that supports invoke."""

    def invoke(self, input: Any) -> Any:  # noqa: ANN401 - external runnable protocol.
        ...


class Delay(Protocol):
    def wait(self, seconds: float) -> bool:
        """Block for ``seconds``; return False if the delay was cancelled early."""
        ...


class BackoffTimer:
    """Cancellable delay used between retry attempts.

    ``wait`` blocks only the calling thread. Any other thread (or a scheduler that owns
    the run) may call ``cancel`` to cut the current and every later delay short.
    """

    def __init__(self) -> None:
        self._cancelled = threading.Event()

    def wait(self, seconds: float) -> bool:
        if seconds <= 0:
            return not self._cancelled.is_set()
        return not self._cancelled.wait(timeout=seconds)

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()


def ensure_openai_api_key(repo_root: Path | None = None) -> str:
    """Return the generation credential, loading ``<repo_root>/.env`` (default cwd) first.

    Values already in the environment win over the ``.env`` file.

    Raises:
        RuntimeError: If OPENAI_API_KEY is unavailable after all sources are checked.
    """
    repo = repo_root if repo_root is not None else Path.cwd()
    env_path = repo / ".env"
    if env_path.is_file():
        load_dotenv(env_path)

    key = os.getenv("OPENAI_API_KEY", "").strip()
    if not key:
        raise RuntimeError("OPENAI_API_KEY is required to call the generation service")
    return key


def get_chat_model(
    *,
    model_name: str,
    temperature: float = 0.0,
    timeout: int = _DEFAULT_TIMEOUT,
    repo_root: Path | None = None,
) -> ChatOpenAI:
    """Construct a ChatOpenAI instance with SDK-level retries disabled.

    Rate-limit retries are owned by ``GenerationClient`` so the retry budget and
    backoff schedule stay explicit.

    Raises:
        ValueError: If ``model_name`` is blank.
        RuntimeError: If OPENAI_API_KEY is not available.
    """
    if not model_name or not model_name.strip():
        raise ValueError("model_name must be a non-empty string")
    ensure_openai_api_key(repo_root=repo_root)
    return ChatOpenAI(
        model=model_name,
        temperature=temperature,
        timeout=timeout,
        max_retries=0,
    )


def is_rate_limit_error(exc: BaseException) -> bool:
    """True for any recognizable "too many requests" condition."""
    if isinstance(exc, (TransientRateLimit, openai.RateLimitError)):
        return True
    if exc.__class__.__name__ in _RATE_LIMIT_CLASS_NAMES:
        return True
    status = getattr(exc, "status_code", None)
    if status is None:
        status = getattr(getattr(exc, "response", None), "status_code", None)
    return status == 429


def _content_to_text(content: Any) -> str:
    """Flatten chat message content (a string or a list of text blocks) into one string."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, dict):
                text = block.get("text")
                parts.append(text if isinstance(text, str) else _content_to_text(block.get("content", "")))
            else:
                parts.append(str(block))
        return "\n".join(part for part in parts if part.strip())
    if isinstance(content, dict):
        return _content_to_text(content.get("content", json.dumps(content, sort_keys=True)))
    return str(content)


def extract_response_text(response: Any) -> str:
    """Return the text of a chat model response (AIMessage, str, or dict)."""
    if isinstance(response, str):
        return response
    content = getattr(response, "content", None)
    if content is not None:
        return _content_to_text(content)
    return _content_to_text(response)


class GenerationClient:
    """Calls the generation service, retrying only on rate limits.

    Attempt ``n`` (1-based) that hits a rate limit waits
    ``initial_delay * backoff_factor ** (n - 1)`` before attempt ``n + 1``. No wait follows
    the final attempt. Every other error propagates from the attempt that raised it.
    """

    def __init__(
        self,
        model: SupportsInvoke | None = None,
        *,
        model_factory: Callable[[], SupportsInvoke] | None = None,
        max_attempts: int = 3,
        initial_delay: float = 60.0,
        backoff_factor: float = 1.5,
        delay: Delay | None = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if (model is None) == (model_factory is None):
            raise ValueError("pass exactly one of model or model_factory")
        self._model = model
        self._model_factory = model_factory
        self.max_attempts = max_attempts
        self.initial_delay = initial_delay
        self.backoff_factor = backoff_factor
        self.delay = delay if delay is not None else BackoffTimer()

    @classmethod
    def from_settings(cls, settings: RuntimeSettings, *, delay: Delay | None = None) -> "GenerationClient":
        """The chat model (and its credential check) is only built on the first ``generate``."""

        def build_model() -> ChatOpenAI:
            return get_chat_model(
                model_name=settings.model,
                temperature=settings.temperature,
                timeout=settings.request_timeout,
                repo_root=settings.workspace_root_path,
            )

        return cls(
            model_factory=build_model,
            max_attempts=settings.max_attempts,
            initial_delay=settings.initial_delay,
            backoff_factor=settings.backoff_factor,
            delay=delay,
        )

    @property
    def model(self) -> SupportsInvoke:
        if self._model is None and self._model_factory is not None:
            self._model = self._model_factory()
        return self._model  # type: ignore[return-value]

    def generate(self, prompt: str) -> str:
        """Return the response text for ``prompt``.

        Raises:
            RateLimitExceeded: Every attempt was rate-limited.
            GenerationCancelled: The backoff delay was cancelled.
        """
        model = self.model
        wait_seconds = self.initial_delay
        last_error: BaseException | None = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                response = model.invoke(prompt)
            except Exception as exc:
                if not is_rate_limit_error(exc):
                    raise
                last_error = exc
                if attempt == self.max_attempts:
                    break
                logger.warning(
                    "Rate limited (attempt %d/%d); retrying in %.1fs",
                    attempt,
                    self.max_attempts,
                    wait_seconds,
                )
                if not self.delay.wait(wait_seconds):
                    raise GenerationCancelled("Backoff cancelled before the next attempt") from exc
                wait_seconds *= self.backoff_factor
                continue
            return extract_response_text(response)

        raise RateLimitExceeded(self.max_attempts, last_error) from last_error
