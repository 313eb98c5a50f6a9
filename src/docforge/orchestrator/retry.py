"""Per-stage retry policy with exponential backoff.

Only ``TransientError`` failures are retried. Every other exception
propagates on its first occurrence so the orchestrator can fail the run.

Key Components:
- BackoffConfig: Exponential backoff configuration
- ExponentialBackoff: Exponential backoff with jitter
- RetryPolicy: Bounded per-stage retries driven by PipelineConfig
"""

from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable
from typing import TypeVar

import structlog
from pydantic import BaseModel, Field

from docforge.config import PipelineConfig
from docforge.errors import RateLimitedError, TransientError
from docforge.pipeline.stages import StageKind

logger = structlog.get_logger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


class BackoffConfig(BaseModel):
    """Exponential backoff configuration.

    Attributes:
        initial_delay_seconds: Initial backoff delay
        max_delay_seconds: Maximum backoff delay
        multiplier: Backoff multiplier per attempt
        jitter: Add random jitter to delays
    """

    initial_delay_seconds: float = Field(default=1.0, ge=0.0, le=60.0)
    max_delay_seconds: float = Field(default=60.0, ge=0.0, le=600.0)
    multiplier: float = Field(default=2.0, ge=1.0, le=10.0)
    jitter: bool = Field(default=True)

    @classmethod
    def from_pipeline(cls, config: PipelineConfig) -> BackoffConfig:
        return cls(
            initial_delay_seconds=config.backoff_initial_seconds,
            max_delay_seconds=config.backoff_max_seconds,
            multiplier=config.backoff_multiplier,
            jitter=config.backoff_jitter,
        )


class ExponentialBackoff:
    """Exponential backoff with jitter.

    Args:
        config: Backoff configuration
    """

    def __init__(self, config: BackoffConfig) -> None:
        self._config = config

    def next_delay(self, attempt: int) -> float:
        """Calculate next backoff delay.

        Formula: min(initial_delay * multiplier^attempt, max_delay)
        With jitter: delay * (0.5 + random() * 0.5)

        Args:
            attempt: Attempt number (0-indexed)

        Returns:
            Delay in seconds
        """
        delay = self._config.initial_delay_seconds * (self._config.multiplier**attempt)
        delay = min(delay, self._config.max_delay_seconds)

        if self._config.jitter:
            # multiply by a random factor between 0.5 and 1.0
            jitter_factor = 0.5 + random.random() * 0.5
            delay *= jitter_factor

        return delay


class RetryPolicy:
    """Runs a stage body with bounded retries on transient failures.

    Args:
        config: Pipeline configuration (attempt limits and backoff)
        sleep: Awaitable sleep function, replaceable in tests
    """

    def __init__(self, config: PipelineConfig, sleep: Sleep = asyncio.sleep) -> None:
        self.config = config
        self.backoff = ExponentialBackoff(BackoffConfig.from_pipeline(config))
        self._sleep = sleep
        self._logger = logger.bind(component="RetryPolicy")

    def max_attempts(self, stage: StageKind) -> int:
        """Return the attempt bound for a stage."""
        return self.config.stage_max_attempts.get(stage.value, self.config.default_max_attempts)

    def delay_for(self, attempt: int, error: TransientError) -> float:
        """Return the wait before the next attempt.

        A server-suggested ``Retry-After`` is honoured when it exceeds the
        computed backoff.
        """
        delay = self.backoff.next_delay(attempt)
        if isinstance(error, RateLimitedError) and error.retry_after_seconds is not None:
            delay = max(delay, error.retry_after_seconds)
        return delay

    async def run(
        self,
        stage: StageKind,
        body: Callable[[int], Awaitable[T]],
    ) -> T:
        """Invoke ``body(attempt)`` until it succeeds or retries are exhausted.

        Args:
            stage: Stage being executed (selects the attempt bound).
            body: Coroutine function receiving the 1-based attempt number.

        Returns:
            The body's result.

        Raises:
            TransientError: The last transient failure once attempts run out.
            Exception: Any non-transient failure, immediately.
        """
        limit = self.max_attempts(stage)
        attempt = 1
        while True:
            try:
                return await body(attempt)
            except TransientError as e:
                if attempt >= limit:
                    self._logger.warning(
                        "stage_retries_exhausted",
                        stage=stage.value,
                        attempts=attempt,
                        error=str(e),
                    )
                    raise
                delay = self.delay_for(attempt - 1, e)
                self._logger.warning(
                    "stage_retry_scheduled",
                    stage=stage.value,
                    attempt=attempt,
                    max_attempts=limit,
                    delay=delay,
                    error=str(e),
                )
                await self._sleep(delay)
                attempt += 1
