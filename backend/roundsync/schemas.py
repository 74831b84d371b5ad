from typing import Any, Dict, List, Literal, Optional
from datetime import datetime
from enum import Enum
from pydantic import BaseModel, Field, model_validator, field_validator, ConfigDict

from .time_utils import coerce_utc


class ScoringMode(str, Enum):
    FIXED = "fixed"
    FIRST_TO = "first_to"
    TOTAL_GAMES = "total_games"
    FIRST_TO_GAMES = "first_to_games"


class PlayerStatus(str, Enum):
    ACTIVE = "active"
    LATE = "late"
    NO_SHOW = "no_show"
    DEPARTED = "departed"


class SessionMode(str, Enum):
    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Player(_CamelModel):
    id: str
    name: str
    rating: float = 5.0
    play_count: int = Field(default=0, alias="playCount")
    sit_count: int = Field(default=0, alias="sitCount")
    consecutive_sits: int = Field(default=0, alias="consecutiveSits")
    consecutive_plays: int = Field(default=0, alias="consecutivePlays")
    status: PlayerStatus = PlayerStatus.ACTIVE

    @field_validator("name", mode="before")
    @classmethod
    def _validate_name(cls, value: str) -> str:
        if not isinstance(value, str):
            raise TypeError("name must be a string")
        trimmed = value.strip()
        if not trimmed:
            raise ValueError("name must not be empty")
        return trimmed


class GameScore(_CamelModel):
    game_number: int = Field(alias="gameNumber", ge=1)
    team1_score: int = Field(default=0, alias="team1Score")
    team2_score: int = Field(default=0, alias="team2Score")
    completed: bool = False


class Match(_CamelModel):
    court: int
    team1: List[Player]
    team2: List[Player]
    team1_score: Optional[int] = Field(default=None, alias="team1Score")
    team2_score: Optional[int] = Field(default=None, alias="team2Score")
    game_scores: Optional[List[GameScore]] = Field(default=None, alias="gameScores")

    @model_validator(mode="after")
    def _ensure_doubles(self) -> "Match":
        if len(self.team1) != 2 or len(self.team2) != 2:
            raise ValueError("each team must have exactly two players")
        return self

    @property
    def is_scored(self) -> bool:
        return self.team1_score is not None and self.team2_score is not None

    def describe(self) -> str:
        team1 = " & ".join(p.name for p in self.team1)
        team2 = " & ".join(p.name for p in self.team2)
        return f"{team1} vs {team2}: {self.team1_score}-{self.team2_score}"


class CourtAssignment(_CamelModel):
    court_number: int = Field(alias="courtNumber")
    players: List[Player]
    average_rating: float = Field(alias="averageRating")


class Round(_CamelModel):
    number: int = Field(ge=1)
    matches: List[Match]
    sitting_players: List[Player] = Field(default_factory=list, alias="sittingPlayers")
    court_assignments: Optional[List[CourtAssignment]] = Field(
        default=None, alias="courtAssignments"
    )

    def match_for_court(self, court: int) -> Optional[int]:
        for index, match in enumerate(self.matches):
            if match.court == court:
                return index
        return None


class ScoringConfig(_CamelModel):
    mode: ScoringMode = ScoringMode.FIXED
    points_per_match: int = Field(default=21, alias="pointsPerMatch", ge=1, le=100)
    games_to_win: Optional[int] = Field(default=None, alias="gamesToWin", ge=1)
    total_games: Optional[int] = Field(default=None, alias="totalGames", ge=1)

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @field_validator("mode", mode="before")
    @classmethod
    def _normalize_mode(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip().lower()
            # "points" is the name the mobile clients used for fixed totals.
            if value == "points":
                return ScoringMode.FIXED
        return value

    @property
    def target(self) -> int:
        if self.mode in (ScoringMode.FIRST_TO, ScoringMode.FIRST_TO_GAMES):
            return self.games_to_win or self.points_per_match
        if self.mode == ScoringMode.TOTAL_GAMES:
            return self.total_games or self.points_per_match
        return self.points_per_match


# -----------------------------------------------------------------------------
# API payloads
# -----------------------------------------------------------------------------
class PlayerIn(BaseModel):
    id: Optional[str] = None
    name: str = Field(..., min_length=1, max_length=100)
    rating: float = Field(default=5.0, ge=0, le=10)


class SessionCreate(_CamelModel):
    name: str = Field(..., min_length=1, max_length=200)
    scoring: ScoringConfig = Field(default_factory=ScoringConfig)
    mode: SessionMode = SessionMode.SEQUENTIAL
    court_count: int = Field(default=1, alias="courtCount", ge=1, le=20)
    players: List[PlayerIn] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    @field_validator("name", mode="before")
    @classmethod
    def _validate_name(cls, value: str) -> str:
        if not isinstance(value, str):
            raise TypeError("name must be a string")
        trimmed = value.strip()
        if not trimmed:
            raise ValueError("name must not be empty")
        return trimmed


class SessionOut(_CamelModel):
    id: str
    name: str
    scoring: ScoringConfig
    mode: SessionMode
    court_count: int = Field(alias="courtCount")
    current_round: int = Field(alias="currentRound")
    rounds: List[Round]
    players: List[Player]


class ScoreUpdateIn(_CamelModel):
    team1_score: int = Field(alias="team1Score")
    team2_score: int = Field(alias="team2Score")
    game_scores: Optional[List[GameScore]] = Field(default=None, alias="gameScores")

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    @field_validator("team1_score", "team2_score", mode="before")
    @classmethod
    def _reject_booleans(cls, value: Any) -> Any:
        # bool is a subclass of int
        if isinstance(value, bool):
            raise ValueError("scores must be integers (not booleans)")
        return value


class ScoreUpdateOut(_CamelModel):
    success: bool = True
    match: Match
    timestamp: datetime


class RoundsWriteIn(_CamelModel):
    rounds: List[Round]
    current_round: int = Field(alias="currentRound", ge=0)
    players: Optional[List[Player]] = None


class EventIn(_CamelModel):
    event_type: str = Field(alias="eventType", min_length=1, max_length=64)
    description: str = Field(..., min_length=1)
    metadata: Optional[Dict[str, Any]] = None


class EventOut(_CamelModel):
    id: str
    session_id: str = Field(alias="sessionId")
    event_type: str = Field(alias="eventType")
    description: str
    metadata: Optional[Dict[str, Any]] = None
    created_at: datetime = Field(alias="createdAt")

    @field_validator("created_at", mode="after")
    @classmethod
    def _ensure_utc(cls, value: datetime) -> datetime:
        return coerce_utc(value)


class OperationKind(str, Enum):
    GENERATE_ROUND = "GENERATE_ROUND"
    UPDATE_SCORE = "UPDATE_SCORE"


class PendingOperationOut(_CamelModel):
    id: str
    kind: OperationKind
    session_id: str = Field(alias="sessionId")
    payload: Dict[str, Any]
    created_at: datetime = Field(alias="createdAt")
    retry_count: int = Field(default=0, alias="retryCount")


SyncStatus = Literal["syncing", "synced", "failed"]
