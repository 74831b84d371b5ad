from fastapi import HTTPException
from pydantic import BaseModel
from typing import Optional


class ProblemDetail(BaseModel):
    """RFC 7807 compliant error response."""

    type: str = "about:blank"
    title: str
    detail: Optional[str] = None
    status: int
    instance: Optional[str] = None
    code: str


class DomainException(Exception):
    """Base class for domain-specific exceptions."""

    def __init__(
        self,
        status_code: int,
        title: str,
        *,
        code: str,
        detail: str | None = None,
        type_: str = "about:blank",
    ) -> None:
        super().__init__(detail or title)
        self.status_code = status_code
        self.title = title
        self.detail = detail
        self.type = type_
        self.code = code


class ScoreValidationError(DomainException):
    """A score pair violates the session's scoring policy. Never retried."""

    def __init__(self, detail: str) -> None:
        super().__init__(
            status_code=422,
            title="Invalid Score",
            detail=detail,
            code="score_validation_error",
        )


class LockContentionError(DomainException):
    """Another commit holds the lock for the same match, or the lock timed out."""

    def __init__(self, detail: str | None = None, *, timeout: bool = False) -> None:
        super().__init__(
            status_code=409,
            title="Score locked",
            detail=detail or "score is locked by another update",
            code="score_lock_contention",
        )
        self.timeout = timeout


class NetworkError(DomainException):
    def __init__(self, detail: str | None = None) -> None:
        super().__init__(
            status_code=503,
            title="Network error",
            detail=detail or "the server could not be reached",
            code="network_error",
        )


class IncompleteRoundError(DomainException):
    """Raised when advancing from a round that still has unscored matches."""

    def __init__(self, requirement: str) -> None:
        super().__init__(
            status_code=409,
            title="Incomplete Round",
            detail=f"Please enter valid scores for all matches. {requirement}",
            code="incomplete_round",
        )
        self.requirement = requirement


class NotOnLatestRoundError(DomainException):
    """A new round is only generated from the latest round."""

    def __init__(self, round_index: int, latest_index: int) -> None:
        super().__init__(
            status_code=409,
            title="Not On Latest Round",
            detail=(
                f"Round {round_index + 1} is not the latest round. "
                f"Go to round {latest_index + 1} to generate the next one."
            ),
            code="not_latest_round",
        )
        self.round_index = round_index
        self.latest_index = latest_index


class ScoresNotSavedError(DomainException):
    """A round's scores could not all be saved, so no new round is generated."""

    def __init__(self, detail: str = "Failed to save scores. Please try again.") -> None:
        super().__init__(
            status_code=409,
            title="Save Failed",
            detail=detail,
            code="scores_not_saved",
        )


class PairingEngineError(DomainException):
    def __init__(self, detail: str) -> None:
        super().__init__(
            status_code=422,
            title="Failed to Generate Round",
            detail=detail,
            code="pairing_error",
        )


class SessionNotFound(DomainException):
    def __init__(self, session_id: str) -> None:
        super().__init__(
            status_code=404,
            title="Session not found",
            detail=f"session '{session_id}' not found",
            code="session_not_found",
        )


class RoundNotFound(DomainException):
    def __init__(self, round_index: int) -> None:
        super().__init__(
            status_code=404,
            title="Round not found",
            detail=f"invalid round index: {round_index}",
            code="round_not_found",
        )


class MatchNotFound(DomainException):
    def __init__(self, match_index: int) -> None:
        super().__init__(
            status_code=404,
            title="Match not found",
            detail=f"match not found at index: {match_index}",
            code="match_not_found",
        )


def http_problem(
    status_code: int,
    detail: str,
    code: str,
    *,
    headers: Optional[dict[str, str]] = None,
) -> HTTPException:
    """Create an HTTPException with an attached problem code."""

    exc = HTTPException(status_code=status_code, detail=detail, headers=headers)
    setattr(exc, "code", code)
    return exc
