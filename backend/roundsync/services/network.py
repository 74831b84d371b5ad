"""Connectivity signal the commit pipeline branches on."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)

NetworkListener = Callable[[bool], None]


class NetworkStatus:
    """Holds the current online/offline belief and notifies on changes.

    Only this provider flips the state; a failed write does not make the
    engine go offline by itself.
    """

    def __init__(self, online: bool = True) -> None:
        self._online = online
        self._listeners: set[NetworkListener] = set()

    @property
    def is_online(self) -> bool:
        return self._online

    def set_online(self, online: bool) -> None:
        online = bool(online)
        if online == self._online:
            return
        self._online = online
        logger.info("Network status changed: %s", "online" if online else "offline")
        for listener in list(self._listeners):
            try:
                listener(online)
            except Exception:
                logger.exception("Network status listener failed")

    async def refresh(self, probe: Callable[[], Awaitable[bool]]) -> bool:
        """Run ``probe`` and adopt its answer; a probe that raises means offline."""

        try:
            online = bool(await probe())
        except Exception:
            logger.warning("Network probe failed", exc_info=True)
            online = False
        self.set_online(online)
        return online

    def subscribe(self, listener: NetworkListener) -> Callable[[], None]:
        self._listeners.add(listener)
        return lambda: self._listeners.discard(listener)
