"""Tier limits and model routing tables loaded from YAML."""

import logging
from pathlib import Path
from typing import Optional, Union

import yaml

from schemas.context import Capability, Complexity, Tier

logger = logging.getLogger(__name__)

DATA_DIR = Path(__file__).parent / "data"


def _load_yaml(path: Union[str, Path]) -> dict:
    with open(path, "r") as f:
        return yaml.safe_load(f) or {}


class TierTable:
    """
    Daily caps, token budgets and upgrade reasons per subscription tier.

    A cap of 0 means the capability is not available on that tier.
    """

    def __init__(self, path: Optional[Union[str, Path]] = None):
        """
        Load the tier table.

        Args:
            path: Path to tiers.yaml (default: config/data/tiers.yaml)
        """
        self.path = Path(path) if path else DATA_DIR / "tiers.yaml"
        raw = _load_yaml(self.path)

        self.daily_limits: dict[Tier, dict[Capability, int]] = {}
        self.monthly_tokens: dict[Tier, int] = {}
        for tier in Tier:
            tier_data = raw.get("tiers", {}).get(tier.value, {})
            limits = tier_data.get("daily_limits", {})
            self.daily_limits[tier] = {
                capability: int(limits.get(capability.value, 0))
                for capability in Capability
            }
            self.monthly_tokens[tier] = int(tier_data.get("monthly_tokens", 0))

        self.max_video_seconds = {
            tier: int(raw.get("max_video_seconds", {}).get(tier.value, 0))
            for tier in Tier
        }
        self.upgrade_reasons = {
            capability: raw.get("upgrade_reasons", {}).get(
                capability.value,
                "This feature requires a higher plan."
            )
            for capability in Capability
        }
        logger.info(f"Tier table loaded from {self.path}")

    def daily_limit(self, tier: Tier, capability: Capability) -> int:
        """Daily cap for a tier and capability."""
        return self.daily_limits[Tier.parse(tier)][capability]

    def is_available(self, tier: Tier, capability: Capability) -> bool:
        """Whether a capability is offered at all on a tier."""
        return self.daily_limit(tier, capability) > 0

    def minimum_tier(self, capability: Capability) -> Optional[Tier]:
        """Lowest tier on which the capability is available."""
        for tier in Tier:
            if self.is_available(tier, capability):
                return tier
        return None

    def monthly_token_budget(self, tier: Tier) -> int:
        return self.monthly_tokens[Tier.parse(tier)]


class ModelRoutingTable:
    """Static (capability, complexity, tier) -> model lookup."""

    def __init__(self, path: Optional[Union[str, Path]] = None):
        """
        Load the routing table.

        Args:
            path: Path to model_routing.yaml (default: config/data/model_routing.yaml)
        """
        self.path = Path(path) if path else DATA_DIR / "model_routing.yaml"
        raw = _load_yaml(self.path)

        self.routing: dict = raw.get("routing", {})
        self.defaults: dict = raw.get("defaults", {})
        self.model_classes: dict[str, int] = {
            str(model): int(rank) for model, rank in raw.get("model_classes", {}).items()
        }
        self.orchestrator_model: str = raw.get("orchestrator_model", "google/gemini-2.0-flash-exp:free")
        self.fallback_chat_model: str = raw.get("fallback_chat_model", "openai/gpt-4o")
        self.interpretation_fallback_model: str = raw.get(
            "interpretation_fallback_model", "anthropic/claude-3.5-sonnet"
        )
        self.research_model: Optional[str] = raw.get("research_model")
        self.vision_models: list[str] = list(raw.get("vision_models", []))

    def select(self, capability: Capability, complexity: Complexity, tier: Tier) -> str:
        """
        Pick the downstream model for a request.

        Args:
            capability: Target capability
            complexity: Request complexity
            tier: Subscription tier

        Returns:
            Model identifier; the capability default when the combination is missing
        """
        model = (
            self.routing.get(capability.value, {})
            .get(complexity.value, {})
            .get(Tier.parse(tier).value)
        )
        if model:
            return str(model)
        logger.debug(
            f"No routing entry for {capability.value}/{complexity.value}/{tier}, using default"
        )
        return self.default_for(capability)

    def default_for(self, capability: Capability) -> str:
        return str(self.defaults.get(capability.value, self.interpretation_fallback_model))

    def model_class(self, model: str) -> int:
        return self.model_classes.get(model, 0)
