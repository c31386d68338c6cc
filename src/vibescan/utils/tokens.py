"""Token and cost estimation.

Tokens are approximated at four characters per token, which is fast and close
enough for code. Costs use a per-million-token pricing model.
"""

import math
from collections.abc import Iterable
from dataclasses import dataclass

from vibescan.config import PricingConfig

CHARS_PER_TOKEN = 4
OUTPUT_RATIO = 0.2

# Used when no observed tokens-per-file figure is available
AVG_TOKENS_PER_FILE = 500


@dataclass(frozen=True)
class PricingModel:
    """Price of tokens in USD per million.

    Attributes:
        input_per_million: Price of prompt tokens
        output_per_million: Price of completion tokens
    """

    input_per_million: float = 0.14
    output_per_million: float = 0.28

    @classmethod
    def from_config(cls, config: PricingConfig) -> "PricingModel":
        return cls(
            input_per_million=config.input_per_million,
            output_per_million=config.output_per_million,
        )


DEFAULT_PRICING = PricingModel()


def estimate_tokens(text: str) -> int:
    """Estimate the token count of a text."""
    if not text:
        return 0
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def estimate_tokens_for_files(contents: Iterable[str]) -> int:
    """Estimate the combined token count of several file bodies."""
    return sum(estimate_tokens(content) for content in contents)


def estimate_output_tokens(input_tokens: int) -> int:
    """Estimate completion tokens from prompt tokens (~20%)."""
    return math.ceil(input_tokens * OUTPUT_RATIO)


def calculate_cost(
    input_tokens: float,
    output_tokens: float,
    pricing: PricingModel = DEFAULT_PRICING,
) -> float:
    """Calculate the USD cost of a completion.

    Args:
        input_tokens: Tokens sent (files + prompts)
        output_tokens: Tokens received
        pricing: Pricing model

    Returns:
        Cost in USD
    """
    input_cost = (input_tokens / 1_000_000) * pricing.input_per_million
    output_cost = (output_tokens / 1_000_000) * pricing.output_per_million
    return input_cost + output_cost


def format_cost(cost: float) -> str:
    """Format a cost for display, e.g. ``$0.000140``."""
    return f"${cost:.6f}"


@dataclass(frozen=True)
class CostEstimate:
    """Token and cost estimate for a set of file bodies."""

    input_tokens: int
    output_tokens: int
    estimated_cost: float

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


def full_estimate(
    contents: Iterable[str],
    pricing: PricingModel = DEFAULT_PRICING,
) -> CostEstimate:
    """Estimate tokens and cost for analyzing the given file bodies."""
    input_tokens = estimate_tokens_for_files(contents)
    output_tokens = estimate_output_tokens(input_tokens)
    return CostEstimate(
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        estimated_cost=calculate_cost(input_tokens, output_tokens, pricing),
    )
