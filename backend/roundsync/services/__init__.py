"""Round progression and score synchronisation services."""

from .advancement import AdvanceResult, RoundAdvancementGuard
from .backend import KeyedLocks, SessionBackend, SqlSessionBackend
from .commit import CommitOutcome, CommitPipeline, CommitState
from .edit_cache import CommitStatus, LocalEditCache, MatchKey, ScoreRead
from .http_backend import HttpSessionBackend
from .navigator import NavigationResult, RoundNavigator
from .network import NetworkStatus
from .notices import Notice, NoticeLevel, Notifier
from .offline_queue import OfflineQueue
from .pairing import MexicanoPairingEngine, PairingEngine
from .reconciler import SyncReconciler, SyncResult
from .retry import RetryPolicy, db_retry_policy, score_retry_policy
from .rounds import MatchView, RoundsController
from .state import SessionState

__all__ = [
    "AdvanceResult",
    "CommitOutcome",
    "CommitPipeline",
    "CommitState",
    "CommitStatus",
    "HttpSessionBackend",
    "KeyedLocks",
    "LocalEditCache",
    "MatchKey",
    "MatchView",
    "MexicanoPairingEngine",
    "NavigationResult",
    "NetworkStatus",
    "Notice",
    "NoticeLevel",
    "Notifier",
    "OfflineQueue",
    "PairingEngine",
    "RetryPolicy",
    "RoundAdvancementGuard",
    "RoundNavigator",
    "RoundsController",
    "ScoreRead",
    "SessionBackend",
    "SessionState",
    "SqlSessionBackend",
    "SyncReconciler",
    "SyncResult",
    "db_retry_policy",
    "score_retry_policy",
]
