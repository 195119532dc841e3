"""Remote generation gateway: dispatch, retry and error classification."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

from models.generation_models import ClassifiedError, ErrorKind, GatewayResult, GenerationRequest, GenerationSuccess
from services.generation.classification import classified_error, classify_reply
from services.generation.retry import RetryPolicy
from services.generation.transports import GenerationTransport

LOGGER = logging.getLogger(__name__)


class GenerationGateway:
    """Send generation requests to a backend transport.

    Only errors classified as `TransientBackend` are retried, with
    exponential backoff bounded by the retry policy. When retries run out
    the last classified error is returned.
    """

    def __init__(
        self,
        transport: GenerationTransport,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if transport is None:
            raise ValueError("A generation transport is required.")
        self.transport = transport
        self.retry_policy = retry_policy or RetryPolicy()
        self._sleep = sleep

    async def dispatch(self, request: GenerationRequest) -> GatewayResult:
        """Dispatch `request` and return a success or a classified error."""
        start = time.time()
        max_attempts = self.retry_policy.max_attempts
        attempt = 0
        while True:
            attempt += 1
            LOGGER.info(
                "Dispatching generation (model=%s, attempt %d/%d)",
                request.backend_model,
                attempt,
                max_attempts,
            )
            try:
                reply = await self.transport.send(request)
            except Exception as exc:
                LOGGER.exception("Generation transport raised unexpectedly")
                result = classified_error(ErrorKind.UNKNOWN, f"{type(exc).__name__}: {exc}")
                break
            result = classify_reply(reply)

            if isinstance(result, GenerationSuccess):
                LOGGER.info("Generation succeeded in %.3fs after %d attempt(s)", time.time() - start, attempt)
                return result

            if not result.retryable or attempt >= max_attempts:
                break

            delay = self.retry_policy.compute_delay(attempt)
            LOGGER.warning(
                "Transient generation failure on attempt %d: %s; retrying in %.2fs",
                attempt,
                result.raw_message,
                delay,
            )
            await self._sleep(delay)

        self._log_failure(result)
        return result

    @staticmethod
    def _log_failure(error: ClassifiedError) -> None:
        if error.kind is ErrorKind.CONTENT_REFUSAL:
            LOGGER.warning("Backend refused to generate: %s", error.raw_message)
        elif error.kind is ErrorKind.UNKNOWN:
            LOGGER.error("Unclassified generation failure: %s", error.raw_message)
        else:
            LOGGER.warning("Generation failed (%s): %s", error.kind.value, error.raw_message)
