"""Static policy tables for generation: credit costs and per-model limits."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Tuple

from models.generation_models import ModelSelector, QualityTier


@dataclass(frozen=True)
class ModelPolicy:
	"""Backend identifier and image size limits for one model selector."""

	backend_model: str
	standard_max_dimension: int
	studio_max_dimension: int

	def max_dimension(self, quality: QualityTier) -> int:
		if QualityTier(quality) is QualityTier.STUDIO:
			return self.studio_max_dimension
		return self.standard_max_dimension


MODEL_POLICIES: Dict[ModelSelector, ModelPolicy] = {
	ModelSelector.FAL: ModelPolicy("fal-ai/cat-vton", 1024, 1024),
	ModelSelector.GEMINI2: ModelPolicy("gemini-2.5-flash-image", 1024, 1536),
	ModelSelector.GEMINIPRO: ModelPolicy("gemini-3-pro-image-preview", 2048, 2048),
}


def resolve_model_policy(quality: QualityTier, model: ModelSelector) -> Tuple[str, int]:
	"""Return `(backend_model, max_dimension)` for a quality/model pair.

	Raises:
		ValueError: If the model selector has no policy entry.
	"""
	policy = MODEL_POLICIES.get(ModelSelector(model))
	if policy is None:
		raise ValueError(f"No policy configured for model '{model}'.")
	return policy.backend_model, policy.max_dimension(quality)


class CreditCostTable:
	"""Estimate the credit cost of a generation.

	Total cost is the quality tier cost plus the model surcharge:
	- standard: 1 credit, studio: 2 credits
	- fal: +0, gemini2: +0, geminipro: +1

	The values above are defaults and should be kept in sync with the
	backend, which remains the system of record for billing.
	"""

	DEFAULT_TIER_COSTS = {
		QualityTier.STANDARD: 1,
		QualityTier.STUDIO: 2,
	}
	DEFAULT_MODEL_SURCHARGES = {
		ModelSelector.FAL: 0,
		ModelSelector.GEMINI2: 0,
		ModelSelector.GEMINIPRO: 1,
	}

	def __init__(self, tier_costs: dict | None = None, model_surcharges: dict | None = None):
		"""Create a CreditCostTable.

		Args:
			tier_costs: Optional mapping of QualityTier -> credits.
			model_surcharges: Optional mapping of ModelSelector -> credits.
		"""
		self.tier_costs = tier_costs or dict(self.DEFAULT_TIER_COSTS)
		self.model_surcharges = model_surcharges or dict(self.DEFAULT_MODEL_SURCHARGES)

	def total_cost(self, quality: QualityTier, model: ModelSelector) -> int:
		return self.estimate(quality, model)["total_cost"]

	def estimate(self, quality: QualityTier, model: ModelSelector) -> dict:
		"""Estimate the credits a single generation will cost.

		Args:
			quality: Selected quality tier.
			model: Selected model.

		Returns:
			A dictionary with breakdown: quality, model, tier_cost,
			model_surcharge, total_cost.

		Raises:
			ValueError: If the tier or model is not priced.
		"""
		quality = QualityTier(quality)
		model = ModelSelector(model)
		if quality not in self.tier_costs:
			raise ValueError(f"Unsupported quality tier '{quality.value}'.")
		if model not in self.model_surcharges:
			raise ValueError(
				f"Unsupported model '{model.value}'. Supported: {', '.join(m.value for m in self.model_surcharges)}"
			)

		tier_cost = int(self.tier_costs[quality])
		surcharge = int(self.model_surcharges[model])
		return {
			"quality": quality.value,
			"model": model.value,
			"tier_cost": tier_cost,
			"model_surcharge": surcharge,
			"total_cost": tier_cost + surcharge,
		}
