"""Assemble validated generation requests from two image references."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from models.generation_models import (
    GarmentCategory,
    GenerationRequest,
    ModelSelector,
    QualityTier,
)
from services.generation.policy import resolve_model_policy
from services.generation.prompts import build_try_on_instructions
from services.image_normalizer import ImageNormalizer

LOGGER = logging.getLogger(__name__)


class GenerationInputError(ValueError):
    """Raised when a request cannot be built from the supplied inputs."""


class GenerationRequestBuilder:
    """Build `GenerationRequest` values for the gateway."""

    def __init__(self, normalizer: ImageNormalizer) -> None:
        if normalizer is None:
            raise ValueError("ImageNormalizer is required.")
        self.normalizer = normalizer

    async def build(
        self,
        person_ref: Optional[str],
        garment_ref: Optional[str],
        quality: QualityTier,
        model: ModelSelector,
        style_hint: Optional[str] = None,
        garment_category: Optional[GarmentCategory] = None,
    ) -> GenerationRequest:
        """Validate inputs, encode both images concurrently, and compose the request.

        Args:
            person_ref: Reference to the person photo.
            garment_ref: Reference to the garment photo.
            quality: Quality tier for the generation.
            model: Model selector for the generation.
            style_hint: Optional styling note appended to the instructions.
            garment_category: Optional garment category hint.

        Raises:
            GenerationInputError: If an image reference is missing or the
                quality/model pair is not supported.
            ImageReadError: If an image cannot be read.
            ImageEncodeError: If an image cannot be resized or encoded.
        """
        if not (person_ref or "").strip():
            raise GenerationInputError("Person image is required.")
        if not (garment_ref or "").strip():
            raise GenerationInputError("Garment image is required.")

        try:
            quality = QualityTier(quality)
            model = ModelSelector(model)
            backend_model, max_dimension = resolve_model_policy(quality, model)
        except ValueError as exc:
            raise GenerationInputError(str(exc)) from exc

        person_image, garment_image = await asyncio.gather(
            self.normalizer.normalize(person_ref, max_dimension),
            self.normalizer.normalize(garment_ref, max_dimension),
        )
        LOGGER.info(
            "Built generation request (quality=%s, model=%s, max_dimension=%d)",
            quality.value,
            model.value,
            max_dimension,
        )

        hint = (style_hint or "").strip() or None
        return GenerationRequest(
            person_image=person_image,
            garment_image=garment_image,
            quality=quality,
            model=model,
            backend_model=backend_model,
            instructions=build_try_on_instructions(hint),
            style_hint=hint,
            garment_category=GarmentCategory(garment_category) if garment_category else None,
        )
