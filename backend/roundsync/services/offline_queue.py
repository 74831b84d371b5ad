"""Durable queue of writes made while offline."""

from __future__ import annotations

import logging
import uuid
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import sessionmaker

from ..db import get_queue_sessionmaker
from ..models import PendingOperation
from ..schemas import OperationKind, PendingOperationOut
from ..time_utils import coerce_utc

logger = logging.getLogger(__name__)


def _to_out(row: PendingOperation) -> PendingOperationOut:
    return PendingOperationOut(
        id=row.id,
        kind=OperationKind(row.kind),
        session_id=row.session_id,
        payload=dict(row.payload or {}),
        created_at=coerce_utc(row.created_at),
        retry_count=row.retry_count or 0,
    )


class OfflineQueue:
    """Pending operations stored in the device-local database.

    Operations are returned in enqueue order. Replay is at-least-once, so the
    server applies every operation idempotently.
    """

    def __init__(self, session_factory: Optional[sessionmaker] = None) -> None:
        self._session_factory = session_factory
        self._listeners: set[Callable[[], None]] = set()

    def _sessions(self) -> sessionmaker:
        return self._session_factory or get_queue_sessionmaker()

    async def initialize(self) -> None:
        """Create the queue table in the local store if it is missing."""

        factory = self._sessions()
        async with factory() as session:
            conn = await session.connection()
            await conn.run_sync(
                lambda sync_conn: PendingOperation.__table__.create(
                    bind=sync_conn, checkfirst=True
                )
            )
            await session.commit()

    async def add_operation(
        self, kind: OperationKind | str, session_id: str, payload: Dict[str, Any]
    ) -> str:
        kind = OperationKind(kind)
        op_id = uuid.uuid4().hex
        async with self._sessions()() as session:
            session.add(
                PendingOperation(
                    id=op_id,
                    kind=kind.value,
                    session_id=session_id,
                    payload=payload,
                    retry_count=0,
                )
            )
            await session.commit()
        logger.info(
            "Queued %s for session %s (operation %s)", kind.value, session_id, op_id
        )
        self._notify()
        return op_id

    async def list_operations(
        self, session_id: Optional[str] = None
    ) -> List[PendingOperationOut]:
        stmt = select(PendingOperation).order_by(PendingOperation.seq)
        if session_id is not None:
            stmt = stmt.where(PendingOperation.session_id == session_id)
        async with self._sessions()() as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [_to_out(row) for row in rows]

    async def remove_operation(self, op_id: str) -> None:
        async with self._sessions()() as session:
            await session.execute(
                delete(PendingOperation).where(PendingOperation.id == op_id)
            )
            await session.commit()
        self._notify()

    async def record_failure(self, op_id: str) -> int:
        """Bump the retry count of an operation and return the new value."""

        async with self._sessions()() as session:
            await session.execute(
                update(PendingOperation)
                .where(PendingOperation.id == op_id)
                .values(retry_count=PendingOperation.retry_count + 1)
            )
            await session.commit()
            retry_count = (
                await session.execute(
                    select(PendingOperation.retry_count).where(
                        PendingOperation.id == op_id
                    )
                )
            ).scalar_one_or_none()
        return retry_count or 0

    async def count(self, session_id: Optional[str] = None) -> int:
        stmt = select(func.count()).select_from(PendingOperation)
        if session_id is not None:
            stmt = stmt.where(PendingOperation.session_id == session_id)
        async with self._sessions()() as session:
            return (await session.execute(stmt)).scalar_one()

    async def has_unsynced(self, session_id: Optional[str] = None) -> bool:
        return await self.count(session_id) > 0

    async def clear(self) -> None:
        async with self._sessions()() as session:
            await session.execute(delete(PendingOperation))
            await session.commit()
        self._notify()

    def on_change(self, callback: Callable[[], None]) -> Callable[[], None]:
        self._listeners.add(callback)
        return lambda: self._listeners.discard(callback)

    def _notify(self) -> None:
        for callback in list(self._listeners):
            try:
                callback()
            except Exception:
                logger.exception("Offline queue listener failed")
