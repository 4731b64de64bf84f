"""Lifecycle notifications for container creation requests.

Observers subscribe either to one operation (``created`` / ``started``)
or to the generic lifecycle stream, which receives every event tagged
with its operation. Dispatch is synchronous and in subscription order, so
observers see ``created`` before ``started`` for the same request.
"""

from __future__ import annotations

import contextlib
import logging
from collections import defaultdict
from collections.abc import Callable
from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class LifecycleOperation(str, Enum):
    """Which lifecycle transition an event reports."""

    CREATED = "created"
    STARTED = "started"


class LifecycleEvent(BaseModel):
    """A state transition of a container creation request."""

    operation: LifecycleOperation
    task_id: str
    success: bool
    container_id: str | None = None
    command: str | None = None
    error: str | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))


Listener = Callable[[LifecycleEvent], None]


class LifecycleNotifier:
    """Observer registry owned by a :class:`ContainerManager`."""

    def __init__(self) -> None:
        self._listeners: defaultdict[LifecycleOperation | None, list[Listener]] = defaultdict(list)
        self._last_timestamp: datetime | None = None

    def subscribe(
        self,
        listener: Listener,
        operation: LifecycleOperation | None = None,
    ) -> Callable[[], None]:
        """Register *listener*; ``operation=None`` means every event.

        Returns an unsubscribe function.
        """
        self._listeners[operation].append(listener)

        def _unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._listeners[operation].remove(listener)

        return _unsubscribe

    def timestamp(self) -> datetime:
        """Current UTC time, never earlier than the previous call."""
        now = datetime.now(UTC)
        if self._last_timestamp is not None and now < self._last_timestamp:
            now = self._last_timestamp
        self._last_timestamp = now
        return now

    def emit(self, event: LifecycleEvent) -> None:
        """Deliver *event* to operation listeners, then to generic listeners."""
        targets = [*self._listeners[event.operation], *self._listeners[None]]
        for listener in targets:
            try:
                listener(event)
            except Exception as exc:
                logger.warning(
                    "Lifecycle listener failed for %s event of task %s: %s",
                    event.operation.value,
                    event.task_id,
                    exc,
                )
