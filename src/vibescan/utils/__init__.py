"""vibescan utility modules.

- logging: Standardized logging with human/verbose/JSON modes
- tokens: Token and cost estimation
"""

from vibescan.utils.logging import get_logger, setup_logging
from vibescan.utils.tokens import (
    PricingModel,
    calculate_cost,
    estimate_output_tokens,
    estimate_tokens,
)

__all__ = [
    "PricingModel",
    "calculate_cost",
    "estimate_output_tokens",
    "estimate_tokens",
    "get_logger",
    "setup_logging",
]
