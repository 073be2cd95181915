"""Cost estimation for coding-assistant sessions based on API pricing."""

from __future__ import annotations

# Pricing per million tokens, keyed by exact model id
MODEL_PRICING = {
    "claude-opus-4-6": {
        "input": 15.00,
        "output": 75.00,
        "cache_write": 18.75,
        "cache_read": 1.50,
    },
    "claude-opus-4-5-20251101": {
        "input": 15.00,
        "output": 75.00,
        "cache_write": 18.75,
        "cache_read": 1.50,
    },
    "claude-sonnet-4-6": {
        "input": 3.00,
        "output": 15.00,
        "cache_write": 3.75,
        "cache_read": 0.30,
    },
    "claude-sonnet-4-5-20250929": {
        "input": 3.00,
        "output": 15.00,
        "cache_write": 3.75,
        "cache_read": 0.30,
    },
    "claude-haiku-4-5-20251001": {
        "input": 0.80,
        "output": 4.00,
        "cache_write": 1.00,
        "cache_read": 0.08,
    },
}

# Used when a model id matches no known family
DEFAULT_MODEL = "claude-sonnet-4-5-20250929"

_FAMILIES = ("opus", "sonnet", "haiku")


def pricing_for(model: str) -> dict[str, float]:
    """Look up pricing for a model id, falling back to its family, then to the default."""
    if model in MODEL_PRICING:
        return MODEL_PRICING[model]
    for key, pricing in MODEL_PRICING.items():
        family = next((f for f in _FAMILIES if f in key), None)
        if family and family in model:
            return pricing
    return MODEL_PRICING[DEFAULT_MODEL]


def estimate_cost(
    model: str,
    input_tokens: int,
    output_tokens: int,
    cache_write_tokens: int = 0,
    cache_read_tokens: int = 0,
) -> float:
    """Estimate cost in USD for one model's token counts.

    Not rounded: callers sum many small per-message figures.
    """
    pricing = pricing_for(model or "")
    return (
        input_tokens * pricing["input"] / 1_000_000
        + output_tokens * pricing["output"] / 1_000_000
        + cache_write_tokens * pricing["cache_write"] / 1_000_000
        + cache_read_tokens * pricing["cache_read"] / 1_000_000
    )


def model_display_name(model: str) -> str:
    """Short family name for charts and tables, e.g. 'claude-opus-4-6' -> 'Opus'."""
    for family in _FAMILIES:
        if family in model:
            return family.capitalize()
    return model
