"""Shared pieces of the scoring policies.

Every policy answers the same questions for a pair of team scores: is the
pair complete and valid, does a single value already break the rules, and
what should the other side be when only one is known.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional, Sequence

from ..exceptions import ScoreValidationError
from ..schemas import GameScore, ScoringMode


class ScoreBorder(str, Enum):
    """Validity of one score field as shown to the operator."""

    UNSET = "unset"
    INVALID = "invalid"
    PENDING_VALID = "pending_valid"
    SAVED = "saved"


def parse_score(text: Any) -> Optional[int]:
    """Return the integer typed into a score field, or ``None``.

    Blank and non-numeric text parse to ``None``. Negative numbers parse so
    callers can flag them as invalid rather than treating them as missing.
    """

    if text is None or isinstance(text, bool):
        return None
    if isinstance(text, int):
        return text
    value = str(text).strip()
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        return None


class ScoringPolicy:
    mode: ScoringMode
    unit = "points"
    auto_fills = False

    def __init__(self, target: int) -> None:
        if isinstance(target, bool) or not isinstance(target, int) or target < 1:
            raise ValueError(f"scoring target must be a positive integer, got {target!r}")
        self.target = target

    def __repr__(self) -> str:
        return f"{type(self).__name__}(target={self.target})"

    def _check_value(self, label: str, value: Any) -> int:
        if value is None:
            raise ScoreValidationError("Both team scores are required.")
        if isinstance(value, bool) or not isinstance(value, int):
            raise ScoreValidationError(f"{label} score must be an integer.")
        if value < 0:
            raise ScoreValidationError(f"{label} score must be >= 0.")
        if value > self.target:
            raise ScoreValidationError(
                f"{label} score cannot exceed {self.target} {self.unit}."
            )
        return value

    def check(
        self,
        team1: Optional[int],
        team2: Optional[int],
        game_scores: Optional[Sequence[GameScore]] = None,
    ) -> None:
        """Raise ``ScoreValidationError`` unless the pair can be committed."""

        a = self._check_value("Team 1", team1)
        b = self._check_value("Team 2", team2)
        self._check_pair(a, b)
        if game_scores is not None:
            self._check_games(a, b, game_scores)

    def is_valid(
        self,
        team1: Optional[int],
        team2: Optional[int],
        game_scores: Optional[Sequence[GameScore]] = None,
    ) -> bool:
        try:
            self.check(team1, team2, game_scores)
        except ScoreValidationError:
            return False
        return True

    def exceeds_target(self, value: int) -> bool:
        return value > self.target

    def auto_fill(self, known: Optional[int]) -> Optional[int]:
        return None

    def requirement(self) -> str:
        raise NotImplementedError

    def _check_pair(self, team1: int, team2: int) -> None:
        raise NotImplementedError

    def _check_games(
        self, team1: int, team2: int, game_scores: Sequence[GameScore]
    ) -> None:
        raise ScoreValidationError(
            f"Per-game scores are not recorded in {self.mode.value} mode."
        )


def classify_border(
    policy: ScoringPolicy,
    text: Optional[str],
    other_value: Optional[int],
    committed_value: Optional[int] = None,
) -> ScoreBorder:
    """Classify one score field.

    ``text`` is the local draft (``None`` when the operator has not typed
    anything), ``other_value`` the best known value of the opposing field and
    ``committed_value`` the last value saved for this field.
    """

    if text is not None and not text.strip():
        # A cleared field reads as empty, not as a bad number.
        return ScoreBorder.UNSET

    if text is None:
        return ScoreBorder.SAVED if committed_value is not None else ScoreBorder.UNSET

    value = parse_score(text)
    if value is None or value < 0 or policy.exceeds_target(value):
        return ScoreBorder.INVALID

    if other_value is not None:
        if not policy.is_valid(value, other_value):
            return ScoreBorder.INVALID
        if committed_value is not None and value == committed_value:
            return ScoreBorder.SAVED

    return ScoreBorder.PENDING_VALID
