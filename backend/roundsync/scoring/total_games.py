"""Total-games scoring: a fixed number of games is played per match."""

from ..schemas import ScoringMode
from .fixed import FixedTotalPolicy


class TotalGamesPolicy(FixedTotalPolicy):
    mode = ScoringMode.TOTAL_GAMES
    unit = "games"
