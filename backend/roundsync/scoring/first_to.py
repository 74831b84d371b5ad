"""First-to scoring: one team reaches the target exactly, the other stays below."""

from ..exceptions import ScoreValidationError
from ..schemas import ScoringMode
from .base import ScoringPolicy


class FirstToPolicy(ScoringPolicy):
    mode = ScoringMode.FIRST_TO
    unit = "points"

    def _check_pair(self, team1: int, team2: int) -> None:
        high, low = max(team1, team2), min(team1, team2)
        if high != self.target:
            raise ScoreValidationError(
                f"One team must reach exactly {self.target} {self.unit}."
            )
        if low >= self.target:
            raise ScoreValidationError(
                f"Only one team can reach {self.target} {self.unit}."
            )

    def requirement(self) -> str:
        return f"One team must reach exactly {self.target} {self.unit}."
