"""Shared pytest fixtures for generation tests."""

from __future__ import annotations

import asyncio
import base64
import io
from pathlib import Path
from typing import Callable, List, Optional

import pytest
from PIL import Image

from models.generation_models import EncodedImage, GenerationRequest, ModelSelector, QualityTier
from services.credits.credit_ledger import CreditLedgerError
from services.generation.classification import BackendReply

# ============================================================================
# Image Fixtures
# ============================================================================


def _image_bytes(size=(400, 200), fmt="PNG", mode="RGBA") -> bytes:
    color = (200, 30, 30, 128) if mode == "RGBA" else (200, 30, 30)
    img = Image.new(mode, size, color)
    out = io.BytesIO()
    img.save(out, format=fmt)
    return out.getvalue()


@pytest.fixture
def image_bytes() -> Callable[..., bytes]:
    """Factory returning encoded image bytes of a given size."""
    return _image_bytes


@pytest.fixture
def image_file(tmp_path: Path) -> Callable[..., str]:
    """Factory writing an image to disk and returning its path."""

    def _make(name: str = "person.png", size=(400, 200)) -> str:
        path = tmp_path / name
        path.write_bytes(_image_bytes(size))
        return str(path)

    return _make


@pytest.fixture
def data_uri() -> Callable[..., str]:
    """Factory returning a base64 PNG data URI."""

    def _make(size=(40, 80)) -> str:
        return "data:image/png;base64," + base64.b64encode(_image_bytes(size)).decode("utf-8")

    return _make


# ============================================================================
# Request Fixtures
# ============================================================================


def _encoded(ref: str) -> EncodedImage:
    return EncodedImage(source_ref=ref, mime_type="image/jpeg", encoded_payload="aGVsbG8=")


@pytest.fixture
def generation_request() -> GenerationRequest:
    return GenerationRequest(
        person_image=_encoded("person.jpg"),
        garment_image=_encoded("garment.jpg"),
        quality=QualityTier.STANDARD,
        model=ModelSelector.GEMINI2,
        backend_model="gemini-2.5-flash-image",
        instructions="swap the garment",
    )


# ============================================================================
# Collaborator Fakes
# ============================================================================


class ScriptedTransport:
    """Return scripted replies in order; the last reply repeats."""

    def __init__(self, replies: List[BackendReply]) -> None:
        self.replies = list(replies)
        self.calls = 0

    async def send(self, request: GenerationRequest) -> BackendReply:
        self.calls += 1
        if len(self.replies) > 1:
            return self.replies.pop(0)
        return self.replies[0]


class GatedTransport:
    """Hold every call until the test releases its gate."""

    def __init__(self) -> None:
        self.gates: List[asyncio.Event] = []

    async def send(self, request: GenerationRequest) -> BackendReply:
        index = len(self.gates)
        gate = asyncio.Event()
        self.gates.append(gate)
        await gate.wait()
        return BackendReply(status_code=200, image_ref=f"https://cdn.example/result-{index}.png")

    async def wait_for_calls(self, count: int) -> None:
        while len(self.gates) < count:
            await asyncio.sleep(0)


class StubBuilder:
    """Request builder fake that records calls and returns a fixed request."""

    def __init__(self, request: GenerationRequest, error: Optional[Exception] = None) -> None:
        self.request = request
        self.error = error
        self.calls: list = []

    async def build(self, person_ref, garment_ref, quality, model, style_hint=None, garment_category=None):
        self.calls.append((person_ref, garment_ref, quality, model, style_hint, garment_category))
        if self.error is not None:
            raise self.error
        return self.request


class StubLedger:
    """Credit ledger fake with a fixed balance."""

    def __init__(self, balance: int = 5, fail_fetch: bool = False, fail_current: bool = False) -> None:
        self.balance = balance
        self.fail_fetch = fail_fetch
        self.fail_current = fail_current
        self.fetch_calls = 0

    async def current_balance(self) -> int:
        if self.fail_current:
            raise CreditLedgerError("ledger offline")
        return self.balance

    async def fetch_balance(self) -> int:
        self.fetch_calls += 1
        if self.fail_fetch:
            raise CreditLedgerError("ledger offline")
        return self.balance


@pytest.fixture
def scripted_transport() -> Callable[..., ScriptedTransport]:
    return lambda *replies: ScriptedTransport(list(replies))


@pytest.fixture
def gated_transport() -> GatedTransport:
    return GatedTransport()


@pytest.fixture
def stub_builder(generation_request) -> Callable[..., StubBuilder]:
    return lambda error=None: StubBuilder(generation_request, error)


@pytest.fixture
def stub_ledger() -> Callable[..., StubLedger]:
    return StubLedger


@pytest.fixture
def success_reply() -> BackendReply:
    return BackendReply(status_code=200, image_ref="https://cdn.example/result.png")


@pytest.fixture
def transient_reply() -> BackendReply:
    return BackendReply(status_code=503, error_code="SERVICE_UNAVAILABLE", error_message="overloaded")
