"""vibescan analyzers - deterministic path classification.

Classification runs BEFORE any network fetch or AI call: it only needs the
file tree listing.
"""

from vibescan.analyzers.classifier import (
    CategorizedPaths,
    categorize,
    classify,
    filter_by_tier,
    is_ignored,
    tier_description,
    tier_name,
)

__all__ = [
    "CategorizedPaths",
    "categorize",
    "classify",
    "filter_by_tier",
    "is_ignored",
    "tier_description",
    "tier_name",
]
