"""Pairing engine contract and a reference Mexicano implementation."""

from __future__ import annotations

import logging
from typing import Iterable, Protocol, Sequence, runtime_checkable

from ..exceptions import PairingEngineError
from ..schemas import CourtAssignment, Match, Player, PlayerStatus, Round, SessionMode

logger = logging.getLogger(__name__)

MIN_PLAYERS = 4
RATING_MIN = 0.0
RATING_MAX = 10.0
# Elo on a 0-10 scale: a 4 point gap means 10:1 expected odds.
RATING_SPREAD = 4.0
K_FACTOR = 0.5


@runtime_checkable
class PairingEngine(Protocol):
    def generate_round(self, round_number: int) -> Round: ...

    def update_ratings(self, match: Match) -> None: ...


def _expected(rating: float, opponent: float) -> float:
    return 1 / (1 + 10 ** ((opponent - rating) / RATING_SPREAD))


def _clamp(value: float) -> float:
    return max(RATING_MIN, min(RATING_MAX, value))


class MexicanoPairingEngine:
    """Mexicano rounds: the strongest four share court 1, the next four court 2.

    Within a court the first and fourth ranked players face the second and
    third. When there are more eligible players than court places, those who
    have played most sit out first, ties going to whoever has sat least.
    Only ``active`` players are eligible.
    """

    def __init__(
        self,
        players: Iterable[Player],
        court_count: int = 1,
        mode: SessionMode = SessionMode.SEQUENTIAL,
        *,
        k_factor: float = K_FACTOR,
    ) -> None:
        if court_count < 1:
            raise PairingEngineError("At least one court is required.")
        self._players = [p.model_copy() for p in players]
        self._order = {p.id: index for index, p in enumerate(self._players)}
        self.court_count = court_count
        self.mode = SessionMode(mode)
        self.k_factor = k_factor

    @property
    def players(self) -> list[Player]:
        return list(self._players)

    def _by_id(self, player_id: str) -> Player | None:
        index = self._order.get(player_id)
        return self._players[index] if index is not None else None

    def set_status(self, player_id: str, status: PlayerStatus) -> None:
        player = self._by_id(player_id)
        if player is None:
            raise PairingEngineError(f"Unknown player: {player_id}")
        player.status = PlayerStatus(status)

    def generate_round(self, round_number: int) -> Round:
        eligible = [p for p in self._players if p.status == PlayerStatus.ACTIVE]
        if len(eligible) < MIN_PLAYERS:
            raise PairingEngineError(
                f"At least {MIN_PLAYERS} players are required to generate a round "
                f"(have {len(eligible)})."
            )

        courts = min(self.court_count, len(eligible) // MIN_PLAYERS)
        sit_out = len(eligible) - courts * MIN_PLAYERS
        by_sit_priority = sorted(
            eligible,
            key=lambda p: (-p.play_count, p.sit_count, self._order[p.id]),
        )
        sitting = by_sit_priority[:sit_out]
        sitting_ids = {p.id for p in sitting}
        playing = sorted(
            (p for p in eligible if p.id not in sitting_ids),
            key=lambda p: (-p.rating, self._order[p.id]),
        )

        matches: list[Match] = []
        assignments: list[CourtAssignment] = []
        for court in range(1, courts + 1):
            group = playing[(court - 1) * 4 : court * 4]
            snapshot = [p.model_copy() for p in group]
            matches.append(
                Match(
                    court=court,
                    team1=[snapshot[0], snapshot[3]],
                    team2=[snapshot[1], snapshot[2]],
                )
            )
            assignments.append(
                CourtAssignment(
                    court_number=court,
                    players=snapshot,
                    average_rating=round(sum(p.rating for p in group) / 4, 2),
                )
            )

        for player in playing:
            player.play_count += 1
            player.consecutive_plays += 1
            player.consecutive_sits = 0
        for player in sitting:
            player.sit_count += 1
            player.consecutive_sits += 1
            player.consecutive_plays = 0

        logger.debug(
            "Generated round %d: %d matches, %d sitting",
            round_number,
            len(matches),
            len(sitting),
        )
        return Round(
            number=round_number,
            matches=matches,
            sitting_players=[p.model_copy() for p in sitting],
            court_assignments=assignments if self.mode == SessionMode.PARALLEL else None,
        )

    def update_ratings(self, match: Match) -> None:
        """Move ratings by the share of points won versus the expected share."""

        if not match.is_scored:
            return
        team1 = self._resolve(match.team1)
        team2 = self._resolve(match.team2)
        if len(team1) != 2 or len(team2) != 2:
            logger.warning("Skipping rating update for match with unknown players")
            return

        total = match.team1_score + match.team2_score
        actual = match.team1_score / total if total else 0.5
        rating1 = sum(p.rating for p in team1) / 2
        rating2 = sum(p.rating for p in team2) / 2
        delta = self.k_factor * (actual - _expected(rating1, rating2))

        for player in team1:
            player.rating = round(_clamp(player.rating + delta), 3)
        for player in team2:
            player.rating = round(_clamp(player.rating - delta), 3)

    def _resolve(self, team: Sequence[Player]) -> list[Player]:
        return [p for p in (self._by_id(member.id) for member in team) if p is not None]
