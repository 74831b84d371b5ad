"""First-to-games scoring, the per-game variant used for sets.

The match score is the number of games each team won. Optional per-game
scores must agree with that tally.
"""

from typing import Sequence

from ..exceptions import ScoreValidationError
from ..schemas import GameScore, ScoringMode
from .first_to import FirstToPolicy


class FirstToGamesPolicy(FirstToPolicy):
    mode = ScoringMode.FIRST_TO_GAMES
    unit = "games"

    def requirement(self) -> str:
        return f"One team must win exactly {self.target} {self.unit}."

    def _check_games(
        self, team1: int, team2: int, game_scores: Sequence[GameScore]
    ) -> None:
        numbers = [game.game_number for game in game_scores]
        if len(numbers) != len(set(numbers)):
            raise ScoreValidationError("Game numbers must be unique.")

        won = {1: 0, 2: 0}
        for game in sorted(game_scores, key=lambda g: g.game_number):
            if not game.completed:
                continue
            if game.team1_score < 0 or game.team2_score < 0:
                raise ScoreValidationError(
                    f"Game #{game.game_number} scores must be >= 0."
                )
            if game.team1_score == game.team2_score:
                raise ScoreValidationError(
                    f"Game #{game.game_number} cannot be a tie."
                )
            if max(won.values()) >= self.target:
                raise ScoreValidationError(
                    f"Game #{game.game_number} was played after the match was decided."
                )
            won[1 if game.team1_score > game.team2_score else 2] += 1

        if (won[1], won[2]) != (team1, team2):
            raise ScoreValidationError(
                f"Game scores give {won[1]}-{won[2]} but the match score is "
                f"{team1}-{team2}."
            )
