# SPDX-License-Identifier: MIT
"""Client wrapping the external "suggest improvements for code" call.

:class:`SuggestionClient` validates the submitted code, builds the fixed
prompt and runs the model call through :class:`llm.retry.TimeoutRace` and
:func:`llm.retry.with_retry`. Failures are raised as subclasses of
:class:`llm.errors.SuggestionError`; nothing is recovered silently.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

import logfire
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from .errors import ConfigurationFailure, TransientServiceFailure, ValidationFailure
from .prompt import build_prompt
from .retry import TimeoutRace, with_retry

if TYPE_CHECKING:  # pragma: no cover - for type checkers only
    from runtime.settings import Settings

DEFAULT_MODEL = "openai:gpt-4o-mini"


class SuggestionAgent(Protocol):
    """Anything exposing the Pydantic-AI ``Agent.run`` coroutine."""

    async def run(self, user_prompt: str) -> Any: ...


@dataclass(frozen=True)
class Suggestion:
    """Successful suggestion text with attempt count and latency."""

    text: str
    attempts: int
    elapsed: float


class SuggestionConfig(BaseModel):
    """Read-only view of the client configuration for status reporting."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    configured: bool
    model: str
    max_retries: int
    timeout: float
    max_input_length: int


def build_agent(model_name: str, api_key: str) -> SuggestionAgent:
    """Return a Pydantic-AI agent for ``model_name`` using ``api_key``.

    Provider-prefixed names such as ``openai:gpt-4o-mini`` are accepted.
    """
    from pydantic_ai import Agent
    from pydantic_ai.models.openai import OpenAIResponsesModel
    from pydantic_ai.providers.openai import OpenAIProvider

    name = model_name.split(":", 1)[-1]
    model = OpenAIResponsesModel(
        name,
        provider=OpenAIProvider(api_key=api_key),
        settings={"temperature": 0, "top_p": 1},
    )
    return Agent(model, output_type=str)


class SuggestionClient:
    """Issue suggestion requests with validation, timeout and retry."""

    def __init__(
        self,
        *,
        api_key: str | None,
        model: str = DEFAULT_MODEL,
        request_timeout: float = 30.0,
        max_retries: int = 2,
        retry_delay: float = 1.0,
        max_input_length: int = 10_000,
        agent: SuggestionAgent | None = None,
    ) -> None:
        """Initialise the client.

        Args:
            api_key: External service credential. ``None`` leaves the client
                unconfigured; every call then fails with
                :class:`ConfigurationFailure`.
            model: ``<provider>:<model>`` identifier of the service model.
            request_timeout: Per-attempt timeout in seconds.
            max_retries: Extra attempts allowed for transient failures.
            retry_delay: Fixed delay in seconds between attempts.
            max_input_length: Maximum accepted code length in characters.
            agent: Pre-built agent, mainly for tests. Built lazily otherwise.
        """
        self._api_key = api_key
        self.model = model
        self.request_timeout = request_timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.max_input_length = max_input_length
        self._agent = agent
        self._race = TimeoutRace()
        self._attempts = logfire.metric_counter("suggestion_attempts")

    @classmethod
    def from_settings(
        cls, settings: "Settings", *, agent: SuggestionAgent | None = None
    ) -> "SuggestionClient":
        """Return a client configured from application ``settings``."""
        return cls(
            api_key=settings.api_key,
            model=settings.model,
            request_timeout=settings.request_timeout,
            max_retries=settings.max_retries,
            retry_delay=settings.retry_delay,
            max_input_length=settings.max_input_length,
            agent=agent,
        )

    @property
    def configured(self) -> bool:
        """Return ``True`` when a credential is available."""
        return bool(self._api_key)

    def config_summary(self) -> SuggestionConfig:
        """Return the configuration exposed to health reporting."""
        return SuggestionConfig(
            configured=self.configured,
            model=self.model,
            max_retries=self.max_retries,
            timeout=self.request_timeout,
            max_input_length=self.max_input_length,
        )

    def _get_agent(self) -> SuggestionAgent:
        if self._agent is None:
            self._agent = build_agent(self.model, self._api_key or "")
        return self._agent

    def _validate(self, code: str) -> None:
        if not self.configured:
            raise ConfigurationFailure(
                "Suggestion service API key is not configured."
            )
        if not code or not code.strip():
            raise ValidationFailure("Code input cannot be empty")
        if len(code) > self.max_input_length:
            raise ValidationFailure(
                f"Code input too long. Maximum {self.max_input_length} "
                "characters allowed."
            )

    async def _attempt(self, prompt: str, attempt: int) -> str:
        total = self.max_retries + 1
        logfire.info(
            "Calling suggestion service",
            attempt=attempt + 1,
            max_attempts=total,
            model=self.model,
        )
        self._attempts.add(1)
        result = await self._race.run(
            self._get_agent().run(prompt), self.request_timeout
        )
        text = getattr(result, "output", None)
        if not isinstance(text, str) or not text.strip():
            raise TransientServiceFailure("Empty response from suggestion service")
        logfire.info("Suggestion received", characters=len(text))
        return text

    async def get_suggestion(self, code: str, attempt: int = 0) -> Suggestion:
        """Return a suggestion for ``code``.

        Args:
            code: Source code submitted by the client.
            attempt: Zero-based index of the first attempt; the retry budget
                covers the remaining attempts.

        Raises:
            ValidationFailure: Empty or oversized ``code``.
            ConfigurationFailure: Missing, rejected or unauthorised credential.
            QuotaFailure: Quota or rate limit reached.
            InvalidRequestFailure: The service rejected the input.
            TerminalServiceFailure: Timeouts or other failures exhausted the
                retry budget.
        """
        self._validate(code)
        prompt = build_prompt(code)
        started = time.monotonic()
        with logfire.span("suggestion.get", attributes={"length": len(code)}):
            text, attempts = await with_retry(
                lambda index: self._attempt(prompt, index),
                max_retries=self.max_retries,
                delay=self.retry_delay,
                first_attempt=attempt,
            )
        return Suggestion(
            text=text, attempts=attempts, elapsed=time.monotonic() - started
        )

    def abandon_late_calls(self) -> None:
        """Cancel calls that lost their timeout race and are still running."""
        self._race.abandon_all()


__all__ = [
    "DEFAULT_MODEL",
    "Suggestion",
    "SuggestionAgent",
    "SuggestionClient",
    "SuggestionConfig",
    "build_agent",
]
