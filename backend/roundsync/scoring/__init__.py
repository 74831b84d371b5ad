"""Scoring policies for the four session scoring modes."""

from typing import Iterable, Optional, Tuple

from ..schemas import ScoringConfig, ScoringMode
from .base import ScoreBorder, ScoringPolicy, classify_border, parse_score
from .first_to import FirstToPolicy
from .first_to_games import FirstToGamesPolicy
from .fixed import FixedTotalPolicy
from .total_games import TotalGamesPolicy

POLICIES: dict[ScoringMode, type[ScoringPolicy]] = {
    ScoringMode.FIXED: FixedTotalPolicy,
    ScoringMode.FIRST_TO: FirstToPolicy,
    ScoringMode.TOTAL_GAMES: TotalGamesPolicy,
    ScoringMode.FIRST_TO_GAMES: FirstToGamesPolicy,
}


def get_policy(config: ScoringConfig) -> ScoringPolicy:
    """Select the policy for a session's scoring configuration."""

    return POLICIES[config.mode](config.target)


def round_is_complete(
    policy: ScoringPolicy, pairs: Iterable[Tuple[Optional[int], Optional[int]]]
) -> bool:
    """Return ``True`` if every score pair is valid with no missing side.

    A round without matches is never complete.
    """

    pairs = list(pairs)
    if not pairs:
        return False
    return all(policy.is_valid(team1, team2) for team1, team2 in pairs)


__all__ = [
    "POLICIES",
    "FirstToGamesPolicy",
    "FirstToPolicy",
    "FixedTotalPolicy",
    "ScoreBorder",
    "ScoringPolicy",
    "TotalGamesPolicy",
    "classify_border",
    "get_policy",
    "parse_score",
    "round_is_complete",
]
