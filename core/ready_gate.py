"""
Queue-before-ready delivery.

Messages sent before the other side has announced readiness are held in
order and flushed exactly once when it does; afterwards they go straight
through.
"""
import logging
from collections import deque
from enum import Enum
from typing import Any, Callable, Deque, List

logger = logging.getLogger(__name__)


class GateState(Enum):
    NOT_READY = "not_ready"
    READY = "ready"


class ReadyGate:
    """Two-state gate in front of a dispatch function."""

    def __init__(self, dispatch: Callable[[Any], None], name: str = "gate"):
        self._dispatch = dispatch
        self.name = name
        self.state = GateState.NOT_READY
        self._queue: Deque[Any] = deque()

    @property
    def is_ready(self) -> bool:
        return self.state is GateState.READY

    @property
    def pending(self) -> List[Any]:
        return list(self._queue)

    def send(self, message: Any) -> bool:
        """Dispatch now if ready, else queue. Returns True if dispatched."""
        if self.state is GateState.READY:
            self._dispatch(message)
            return True
        self._queue.append(message)
        logger.debug("%s: queued message (%d pending)", self.name, len(self._queue))
        return False

    def mark_ready(self) -> int:
        """
        Enter READY and flush queued messages in FIFO order.
        Returns the number flushed. Calling it while already ready flushes nothing.

        If a dispatch raises, the failed message and everything after it stay
        queued, the gate stays NOT_READY and the error propagates.
        """
        if self.state is GateState.READY:
            return 0
        flushed = 0
        while self._queue:
            self._dispatch(self._queue[0])
            self._queue.popleft()
            flushed += 1
        self.state = GateState.READY
        if flushed:
            logger.debug("%s: flushed %d queued messages", self.name, flushed)
        return flushed

    def reset(self, drop_pending: bool = True):
        """Go back to NOT_READY (the other side went away)."""
        self.state = GateState.NOT_READY
        if drop_pending:
            self._queue.clear()
