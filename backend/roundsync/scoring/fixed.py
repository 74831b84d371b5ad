"""Fixed-total scoring: both teams' points add up to the points per match.

This is the classic Americano/Mexicano format (e.g. 24 points per match,
14-10 is a valid result).
"""

from typing import Optional

from ..exceptions import ScoreValidationError
from ..schemas import ScoringMode
from .base import ScoringPolicy


class FixedTotalPolicy(ScoringPolicy):
    mode = ScoringMode.FIXED
    unit = "points"
    auto_fills = True

    def _check_pair(self, team1: int, team2: int) -> None:
        if team1 + team2 != self.target:
            raise ScoreValidationError(
                f"Scores must total {self.target} {self.unit} "
                f"(got {team1 + team2})."
            )

    def auto_fill(self, known: Optional[int]) -> Optional[int]:
        """Suggest the other side so the pair adds up to the target.

        Returns ``None`` when ``known`` is missing, negative or already over
        the target, in which case the field is flagged instead.
        """

        if known is None or known < 0 or self.exceeds_target(known):
            return None
        return max(0, self.target - known)

    def requirement(self) -> str:
        return f"Each match must total {self.target} {self.unit}."
