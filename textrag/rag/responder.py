"""Retry wrapper around generation for backends that start up slowly.

Right after start-up some chat backends answer every request with a
"not initialized" placeholder instead of failing.  ``GenerationRetrier``
treats that placeholder as a retryable result: it keeps it away from the
caller's partial-text sink, waits a fixed backoff, and tries again a bounded
number of times before raising :class:`BackendNotReadyError`.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Optional, Sequence

from tenacity import AsyncRetrying, RetryCallState, retry_if_result, stop_after_attempt, wait_fixed

from textrag.rag.errors import BackendNotReadyError, is_placeholder

logger = logging.getLogger(__name__)

PartialSink = Callable[[str], None]
GenerateFn = Callable[[str, PartialSink], Awaitable[str]]
SleepFn = Callable[[float], Awaitable[Any]]


class GenerationRetrier:
    """Call *generate* until it returns something other than the placeholder.

    Args:
        generate: ``async generate(prompt, on_partial) -> final text``.
        markers: Case-insensitive substrings identifying the placeholder.
        attempts: Total number of attempts, first one included.
        backoff_seconds: Fixed delay between attempts.
        sleep: Awaitable sleep used for the backoff (injectable for tests).
    """

    def __init__(
        self,
        generate: GenerateFn,
        markers: Sequence[str],
        attempts: int = 3,
        backoff_seconds: float = 0.5,
        sleep: Optional[SleepFn] = None,
    ) -> None:
        if attempts < 1:
            raise ValueError(f"attempts must be >= 1, got {attempts}")
        self._generate = generate
        self.markers = tuple(markers)
        self.attempts = attempts
        self.backoff_seconds = backoff_seconds
        self._sleep = sleep

    def _is_placeholder(self, text: Optional[str]) -> bool:
        return is_placeholder(text, self.markers)

    def _retrying(self) -> AsyncRetrying:
        def give_up(retry_state: RetryCallState) -> str:
            last = retry_state.outcome.result() if retry_state.outcome else None
            logger.error(
                "Generation backend still not ready after %d attempt(s)",
                retry_state.attempt_number,
            )
            raise BackendNotReadyError(last)

        def log_retry(retry_state: RetryCallState) -> None:
            logger.warning(
                "Generation attempt %d returned the not-ready placeholder; retrying in %.2fs",
                retry_state.attempt_number,
                self.backoff_seconds,
            )

        kwargs: dict[str, Any] = {}
        if self._sleep is not None:
            kwargs["sleep"] = self._sleep

        return AsyncRetrying(
            stop=stop_after_attempt(self.attempts),
            wait=wait_fixed(self.backoff_seconds),
            retry=retry_if_result(self._is_placeholder),
            before_sleep=log_retry,
            retry_error_callback=give_up,
            **kwargs,
        )

    async def _attempt(self, prompt: str, on_partial: Optional[PartialSink]) -> str:
        def forward(text: str) -> None:
            if on_partial is not None and not self._is_placeholder(text):
                on_partial(text)

        text = await self._generate(prompt, forward)
        return (text or "").strip()

    async def respond(self, prompt: str, on_partial: Optional[PartialSink] = None) -> str:
        """Return the backend's final reply to *prompt*.

        Partial updates are forwarded to *on_partial* unless they are the
        placeholder.  Errors raised by the backend itself are not retried.

        Raises:
            BackendNotReadyError: If every attempt ended on the placeholder;
                carries the last text observed.
        """
        return await self._retrying()(self._attempt, prompt, on_partial)
