"""
Football data gateway: HTTP client and fixture value objects.
"""
from .client import FootballApiClient, round_name
from .fixtures import FINAL_STATUSES, FixtureResult, FixtureStatistics

__all__ = [
    "FootballApiClient",
    "round_name",
    "FINAL_STATUSES",
    "FixtureResult",
    "FixtureStatistics",
]
