"""Retry policy for generation dispatch."""

from __future__ import annotations

import random

from pydantic import BaseModel, Field, field_validator


class RetryPolicy(BaseModel):
    """Exponential backoff for transient backend failures.

    Args:
        max_attempts: Maximum number of attempts (including the first dispatch)
        base_delay_s: Delay before the first retry; doubles for each later retry
        max_delay_s: Cap on a single delay
        jitter: Jitter as fraction of delay (0.0 disables randomization)
    """

    model_config = {"frozen": True}

    max_attempts: int = Field(default=3, ge=1)
    base_delay_s: float = Field(default=2.0, ge=0.0)
    max_delay_s: float = Field(default=30.0, ge=0.0)
    jitter: float = Field(default=0.0, ge=0.0, le=1.0)

    @field_validator("max_delay_s")
    @classmethod
    def validate_max_delay(cls, v: float, info) -> float:
        """Ensure max_delay_s >= base_delay_s."""
        base = info.data.get("base_delay_s", 2.0)
        if v < base:
            raise ValueError("max_delay_s must be >= base_delay_s")
        return v

    def compute_delay(self, attempt: int) -> float:
        """Compute the delay before the next attempt.

        Args:
            attempt: Retry number (1-indexed, 1 = first retry after the initial failure)

        Returns:
            Delay in seconds
        """
        delay: float = min(self.max_delay_s, self.base_delay_s * (2 ** (attempt - 1)))
        if self.jitter > 0:
            spread: float = delay * self.jitter
            delay = max(0.0, delay + random.uniform(-spread, spread))
        return delay

    def total_backoff_s(self) -> float:
        """Upper bound of the summed delays across all retries."""
        return sum(
            min(self.max_delay_s, self.base_delay_s * (2 ** (n - 1))) * (1 + self.jitter)
            for n in range(1, self.max_attempts)
        )
