"""Replay the offline queue against the session backend."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Sequence

from .. import config
from ..exceptions import (
    MatchNotFound,
    RoundNotFound,
    ScoreValidationError,
    SessionNotFound,
)
from ..schemas import (
    GameScore,
    OperationKind,
    PendingOperationOut,
    Player,
    Round,
    SyncStatus,
)
from .backend import SessionBackend
from .network import NetworkStatus
from .offline_queue import OfflineQueue

logger = logging.getLogger(__name__)

# Replaying these again can never succeed.
NON_RETRYABLE = (
    ScoreValidationError,
    SessionNotFound,
    RoundNotFound,
    MatchNotFound,
    KeyError,
    ValueError,
)

SyncListener = Callable[[SyncStatus, int, int], None]


@dataclass(frozen=True)
class SyncResult:
    success: int
    failed: int


class SyncReconciler:
    """Drain the offline queue in enqueue order.

    Each operation waits ``delays[retry_count]`` before it is attempted.
    Operations that fail ``max_retries`` times, or fail in a way a retry
    cannot fix, are dropped and counted as failed. Once an operation for a
    session stays in the queue, later operations for that session wait for
    the next pass so a session's writes are never reordered.
    """

    def __init__(
        self,
        queue: OfflineQueue,
        backend: SessionBackend,
        network: Optional[NetworkStatus] = None,
        *,
        delays: Sequence[float] = config.SYNC_RETRY_DELAYS,
        max_retries: int = config.SYNC_MAX_RETRIES,
        reconnect_delay: float = config.SYNC_RECONNECT_DELAY_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._queue = queue
        self._backend = backend
        self._network = network
        self._delays = tuple(delays) or (0.0,)
        self._max_retries = max_retries
        self._reconnect_delay = reconnect_delay
        self._sleep = sleep
        self._running = False
        self._listeners: set[SyncListener] = set()
        self._auto_task: Optional[asyncio.Task] = None
        self._unsubscribe = (
            network.subscribe(self._on_network_change) if network is not None else None
        )

    @property
    def is_syncing(self) -> bool:
        return self._running

    @property
    def auto_sync_task(self) -> Optional[asyncio.Task]:
        return self._auto_task

    def subscribe(self, listener: SyncListener) -> Callable[[], None]:
        self._listeners.add(listener)
        return lambda: self._listeners.discard(listener)

    def _emit(self, status: SyncStatus, current: int, total: int) -> None:
        for listener in list(self._listeners):
            try:
                listener(status, current, total)
            except Exception:
                logger.exception("Sync listener failed")

    def delay_for(self, retry_count: int) -> float:
        return self._delays[min(retry_count, len(self._delays) - 1)]

    async def process_queue(self) -> SyncResult:
        if self._running:
            return SyncResult(0, 0)
        if self._network is not None and not self._network.is_online:
            return SyncResult(0, 0)
        self._running = True
        try:
            return await self._process()
        finally:
            self._running = False

    async def _process(self) -> SyncResult:
        operations = await self._queue.list_operations()
        total = len(operations)
        if not total:
            return SyncResult(0, 0)

        logger.info("Syncing %d queued operations", total)
        self._emit("syncing", 0, total)
        success = failed = 0
        blocked: set[str] = set()
        for position, operation in enumerate(operations, start=1):
            if operation.session_id in blocked:
                continue
            delay = self.delay_for(operation.retry_count)
            if delay:
                await self._sleep(delay)
            try:
                await self._execute(operation)
            except NON_RETRYABLE as exc:
                logger.warning(
                    "Dropping %s %s: %s", operation.kind.value, operation.id, exc
                )
                await self._queue.remove_operation(operation.id)
                failed += 1
            except Exception as exc:
                retry_count = await self._queue.record_failure(operation.id)
                if retry_count >= self._max_retries:
                    logger.error(
                        "Dropping %s %s after %d attempts: %s",
                        operation.kind.value,
                        operation.id,
                        retry_count,
                        exc,
                    )
                    await self._queue.remove_operation(operation.id)
                    failed += 1
                else:
                    logger.warning(
                        "Replay of %s %s failed (attempt %d): %s",
                        operation.kind.value,
                        operation.id,
                        retry_count,
                        exc,
                    )
                    blocked.add(operation.session_id)
            else:
                await self._queue.remove_operation(operation.id)
                success += 1
            self._emit("syncing", position, total)

        self._emit("failed" if failed or blocked else "synced", success, total)
        logger.info("Sync finished: %d succeeded, %d failed", success, failed)
        return SyncResult(success, failed)

    async def _execute(self, operation: PendingOperationOut) -> None:
        payload = operation.payload
        if operation.kind == OperationKind.UPDATE_SCORE:
            game_scores = payload.get("gameScores")
            await self._backend.update_score_with_lock(
                operation.session_id,
                int(payload["roundIndex"]),
                int(payload["matchIndex"]),
                int(payload["team1Score"]),
                int(payload["team2Score"]),
                [GameScore.model_validate(g) for g in game_scores]
                if game_scores is not None
                else None,
            )
            await self._log_event(
                operation,
                "score_updated",
                {
                    "roundIndex": payload["roundIndex"],
                    "matchIndex": payload["matchIndex"],
                    "team1Score": payload["team1Score"],
                    "team2Score": payload["team2Score"],
                },
            )
        elif operation.kind == OperationKind.GENERATE_ROUND:
            rounds = [Round.model_validate(r) for r in payload["rounds"]]
            players = payload.get("players")
            await self._backend.save_rounds(
                operation.session_id,
                rounds,
                int(payload["currentRound"]),
                [Player.model_validate(p) for p in players]
                if players is not None
                else None,
            )
            await self._log_event(
                operation, "round_generated", {"roundNumber": len(rounds)}
            )
        else:
            raise ValueError(f"unknown operation kind: {operation.kind!r}")

    async def _log_event(
        self, operation: PendingOperationOut, event_type: str, metadata: dict
    ) -> None:
        try:
            await self._backend.append_event(
                operation.session_id,
                event_type,
                operation.payload.get("description") or event_type,
                {**metadata, "offline": True, "operationId": operation.id},
            )
        except Exception:
            logger.exception("Could not record %s event", event_type)

    def _on_network_change(self, online: bool) -> None:
        if not online:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("Back online outside an event loop; skipping auto-sync")
            return
        if self._auto_task is not None and not self._auto_task.done():
            return
        self._auto_task = loop.create_task(self._sync_after_reconnect())

    async def _sync_after_reconnect(self) -> None:
        await self._sleep(self._reconnect_delay)
        if self._network is not None and not self._network.is_online:
            return
        try:
            await self.process_queue()
        except Exception:
            logger.exception("Automatic sync failed")

    async def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if self._auto_task is not None and not self._auto_task.done():
            self._auto_task.cancel()
            try:
                await self._auto_task
            except asyncio.CancelledError:
                pass
        self._auto_task = None
