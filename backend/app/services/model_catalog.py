"""Supported model keys, their provider ids, usage counters and prices."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional


@dataclass(frozen=True)
class ModelChoice:
    key: str
    provider_model: str
    prompt_suffix: str


@dataclass(frozen=True)
class ModelPricing:
    input_per_million: float
    output_per_million: float


MODEL_CHOICES: Dict[str, ModelChoice] = {
    "openai4om": ModelChoice("openai4om", "openai/gpt-4o-mini", "openai4om"),
    "claude3h": ModelChoice("claude3h", "anthropic/claude-3-haiku", "claude3h"),
    "gemini25": ModelChoice("gemini25", "google/gemini-2.5-flash", "gemini25"),
    # Custom keys reuse the stock prompts of the underlying family.
    "custom_openai": ModelChoice("custom_openai", "openai/gpt-4o-mini", "openai4om"),
    "custom_anthropic": ModelChoice("custom_anthropic", "anthropic/claude-3-haiku", "claude3h"),
}

# User column that accumulates usage for each provider model.
USAGE_COUNTERS: Dict[str, str] = {
    "openai/gpt-4o-mini": "tokens_openai_4om",
    "openai/gpt-4o": "tokens_openai_4om",
    "openai/gpt-4": "tokens_openai_4om",
    "openai/gpt-3.5-turbo": "tokens_openai_4om",
    "anthropic/claude-3-haiku": "tokens_claude_3h",
    "anthropic/claude-3-sonnet": "tokens_claude_3h",
    "anthropic/claude-3-opus": "tokens_claude_3h",
    "google/gemini-2.5-flash": "tokens_gemini_25",
    "google/gemini-1.5-pro": "tokens_gemini_25",
    "google/gemini-pro": "tokens_gemini_25",
    "whisper-1": "whisper_units",
}

PRICING: Dict[str, ModelPricing] = {
    "openai/gpt-4o-mini": ModelPricing(0.15, 0.60),
    "anthropic/claude-3-haiku": ModelPricing(0.25, 1.25),
    "google/gemini-2.5-flash": ModelPricing(0.075, 0.30),
}

WHISPER_COST_PER_SECOND = 0.0001


def resolve_model(model_key: Optional[str], default_key: str) -> ModelChoice:
    """Map a user's model preference onto a supported choice, falling back to the default."""
    if model_key and model_key in MODEL_CHOICES:
        return MODEL_CHOICES[model_key]
    return MODEL_CHOICES.get(default_key, MODEL_CHOICES["openai4om"])


def usage_counter_for(provider_model: str) -> Optional[str]:
    return USAGE_COUNTERS.get(provider_model)
