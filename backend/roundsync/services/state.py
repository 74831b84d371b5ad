"""In-memory copy of a session shared by the engine components."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from ..exceptions import MatchNotFound, RoundNotFound
from ..schemas import Match, Player, Round, ScoringConfig, SessionMode, SessionOut


@dataclass
class SessionState:
    session_id: str
    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    rounds: List[Round] = field(default_factory=list)
    players: List[Player] = field(default_factory=list)
    mode: SessionMode = SessionMode.SEQUENTIAL
    court_count: int = 1
    current_round: int = 0

    @classmethod
    def from_session(cls, session: SessionOut) -> "SessionState":
        return cls(
            session_id=session.id,
            scoring=session.scoring,
            rounds=[r.model_copy(deep=True) for r in session.rounds],
            players=[p.model_copy() for p in session.players],
            mode=session.mode,
            court_count=session.court_count,
            current_round=session.current_round,
        )

    def round(self, round_index: int) -> Round:
        if not 0 <= round_index < len(self.rounds):
            raise RoundNotFound(round_index)
        return self.rounds[round_index]

    def match(self, round_index: int, match_index: int) -> Match:
        matches = self.round(round_index).matches
        if not 0 <= match_index < len(matches):
            raise MatchNotFound(match_index)
        return matches[match_index]

    def stored_pair(
        self, round_index: int, match_index: int
    ) -> Tuple[Optional[int], Optional[int]]:
        match = self.match(round_index, match_index)
        return match.team1_score, match.team2_score
