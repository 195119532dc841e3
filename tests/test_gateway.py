"""Tests for GenerationGateway retry and classification behavior."""

from unittest.mock import AsyncMock

import pytest

from models.generation_models import ErrorKind, GenerationSuccess
from services.generation.classification import BackendReply
from services.generation.gateway import GenerationGateway
from services.generation.response_parser import parse_backend_envelope
from services.generation.retry import RetryPolicy


class ExplodingTransport:
    def __init__(self):
        self.calls = 0

    async def send(self, request):
        self.calls += 1
        raise RuntimeError("unexpected decoder state")


class TestGenerationGateway:
    @pytest.mark.asyncio
    async def test_success_on_first_attempt(self, scripted_transport, success_reply, generation_request):
        transport = scripted_transport(success_reply)
        sleep = AsyncMock()
        gateway = GenerationGateway(transport, sleep=sleep)

        result = await gateway.dispatch(generation_request)

        assert isinstance(result, GenerationSuccess)
        assert transport.calls == 1
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_retries_transient_with_backoff(
        self, scripted_transport, transient_reply, success_reply, generation_request
    ):
        transport = scripted_transport(transient_reply, transient_reply, success_reply)
        sleep = AsyncMock()
        gateway = GenerationGateway(transport, RetryPolicy(), sleep=sleep)

        result = await gateway.dispatch(generation_request)

        assert result.result_ref == "https://cdn.example/result.png"
        assert transport.calls == 3
        assert [call.args[0] for call in sleep.await_args_list] == [2.0, 4.0]

    @pytest.mark.asyncio
    async def test_exhausted_retries_return_last_error(self, scripted_transport, transient_reply, generation_request):
        transport = scripted_transport(transient_reply)
        sleep = AsyncMock()
        gateway = GenerationGateway(transport, RetryPolicy(max_attempts=3), sleep=sleep)

        result = await gateway.dispatch(generation_request)

        assert result.kind is ErrorKind.TRANSIENT_BACKEND
        assert "overloaded" in result.raw_message
        assert transport.calls == 3
        assert sleep.await_count == 2

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "reply,kind",
        [
            (BackendReply(status_code=402, error_code="INSUFFICIENT_CREDITS"), ErrorKind.INSUFFICIENT_CREDIT),
            (BackendReply(status_code=200, text="Not allowed."), ErrorKind.CONTENT_REFUSAL),
            (BackendReply(status_code=400, error_message="bad image"), ErrorKind.INVALID_INPUT),
            (BackendReply(status_code=418), ErrorKind.UNKNOWN),
        ],
    )
    async def test_non_transient_errors_are_not_retried(self, scripted_transport, generation_request, reply, kind):
        transport = scripted_transport(reply)
        sleep = AsyncMock()
        gateway = GenerationGateway(transport, sleep=sleep)

        result = await gateway.dispatch(generation_request)

        assert result.kind is kind
        assert transport.calls == 1
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_transport_exception_is_unknown(self, generation_request):
        transport = ExplodingTransport()
        gateway = GenerationGateway(transport, sleep=AsyncMock())

        result = await gateway.dispatch(generation_request)

        assert result.kind is ErrorKind.UNKNOWN
        assert "unexpected decoder state" in result.raw_message
        assert transport.calls == 1

    @pytest.mark.asyncio
    async def test_single_attempt_policy(self, scripted_transport, transient_reply, generation_request):
        transport = scripted_transport(transient_reply)
        gateway = GenerationGateway(transport, RetryPolicy(max_attempts=1), sleep=AsyncMock())

        result = await gateway.dispatch(generation_request)

        assert result.kind is ErrorKind.TRANSIENT_BACKEND
        assert transport.calls == 1

    def test_transport_is_required(self):
        with pytest.raises(ValueError):
            GenerationGateway(None)


class TestEnvelopeRetries:
    @pytest.mark.asyncio
    async def test_numeric_code_envelope_is_retried(self, scripted_transport, success_reply, generation_request):
        busy = parse_backend_envelope(503, {"error": {"message": "busy", "code": 503}})
        transport = scripted_transport(busy, success_reply)
        gateway = GenerationGateway(transport, sleep=AsyncMock())

        result = await gateway.dispatch(generation_request)

        assert isinstance(result, GenerationSuccess)
        assert transport.calls == 2
