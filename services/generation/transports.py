"""Backend transports used by the generation gateway.

Each transport performs one exchange with an inference backend and returns
a `BackendReply`. Transports never retry and never raise for backend or
network failures; those are reported in the reply for classification.
"""

from __future__ import annotations

import logging
import os
import time
from typing import Any, Dict, List, Optional, Protocol

import httpx
from openai import APIConnectionError, APIStatusError, AsyncOpenAI

from models.generation_models import GenerationRequest, ModelSelector, QualityTier
from services.generation.classification import BackendReply
from services.generation.prompts import build_system_prompt
from services.generation.response_parser import parse_backend_envelope, parse_responses_output

LOGGER = logging.getLogger(__name__)


class GenerationTransport(Protocol):
    async def send(self, request: GenerationRequest) -> BackendReply:
        ...


class HttpBackendTransport:
    """POST the request to the HTTP generation backend.

    The backend owns credit deduction/refund and result storage, and answers
    with a JSON envelope (see `parse_backend_envelope`).
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        url: str,
        *,
        token: Optional[str] = None,
        timeout_s: float = 120.0,
    ) -> None:
        if client is None:
            raise ValueError("httpx.AsyncClient is required.")
        if not url:
            raise ValueError("Generation backend URL is required.")
        self.client = client
        self.url = url
        self.token = token
        self.timeout_s = timeout_s

    @staticmethod
    def build_payload(request: GenerationRequest) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "personImageBase64": request.person_image.data_url,
            "dressImageBase64": request.garment_image.data_url,
            "quality": request.quality.value,
            "modelType": request.model.value,
            "backendModel": request.backend_model,
            "inferenceSteps": request.quality.inference_steps,
            "instructions": request.instructions,
        }
        if request.style_hint:
            payload["userPrompt"] = request.style_hint
        if request.garment_category:
            payload["category"] = request.garment_category.value
        return payload

    async def send(self, request: GenerationRequest) -> BackendReply:
        headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}
        try:
            response = await self.client.post(
                self.url,
                json=self.build_payload(request),
                headers=headers,
                timeout=self.timeout_s,
            )
        except httpx.HTTPError as exc:
            LOGGER.warning("Generation backend request failed: %s", exc)
            return BackendReply(error_message=f"{type(exc).__name__}: {exc}", transport_failure=True)

        try:
            payload = response.json()
        except ValueError:
            payload = None
        return parse_backend_envelope(response.status_code, payload, response.text)


OPENAI_MODEL_FOR_SELECTOR = {
    ModelSelector.FAL: os.getenv("OPENAI_IMAGE_MODEL", "gpt-4.1"),
    ModelSelector.GEMINI2: os.getenv("OPENAI_IMAGE_MODEL", "gpt-4.1"),
    ModelSelector.GEMINIPRO: os.getenv("OPENAI_IMAGE_PRO_MODEL", "gpt-5"),
}
OPENAI_IMAGE_QUALITY = {
    QualityTier.STANDARD: "medium",
    QualityTier.STUDIO: "high",
}


class OpenAIImageTransport:
    """Generate the try-on image with the OpenAI Responses API image tool."""

    def __init__(self, client: AsyncOpenAI) -> None:
        if client is None:
            raise ValueError("OpenAI AsyncOpenAI client is required.")
        self.client = client
        self.system_prompt = build_system_prompt()

    def build_inputs(self, request: GenerationRequest) -> List[Dict[str, Any]]:
        """Build the Responses API input array with both images and the instructions."""
        return [
            {
                "type": "message",
                "role": "system",
                "content": [{"type": "input_text", "text": self.system_prompt}],
            },
            {
                "type": "message",
                "role": "user",
                "content": [
                    {"type": "input_image", "image_url": request.person_image.data_url},
                    {"type": "input_image", "image_url": request.garment_image.data_url},
                    {"type": "input_text", "text": request.instructions},
                ],
            },
        ]

    async def send(self, request: GenerationRequest) -> BackendReply:
        start = time.time()
        try:
            response = await self.client.responses.create(
                model=OPENAI_MODEL_FOR_SELECTOR[request.model],
                input=self.build_inputs(request),
                tools=[
                    {
                        "type": "image_generation",
                        "quality": OPENAI_IMAGE_QUALITY[request.quality],
                        "size": "1024x1536",
                    }
                ],
            )
        except APIConnectionError as exc:
            LOGGER.warning("OpenAI connection error: %s", exc)
            return BackendReply(error_message=str(exc), transport_failure=True)
        except APIStatusError as exc:
            LOGGER.warning("OpenAI Responses API error (status %s): %s", exc.status_code, exc)
            return BackendReply(
                status_code=exc.status_code,
                error_code=getattr(exc, "code", None),
                error_message=str(exc),
            )

        LOGGER.info("OpenAI image generation latency: %.3fs", time.time() - start)
        return parse_responses_output(response)
