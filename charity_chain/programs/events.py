"""
Program lifecycle notifications.

The ledger emits one event when a program is completed and one when it is
cancelled. Each carries the receiver and the program's index in creation
order, which is what UI layers use to refresh state after a call commits.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


class EventType(Enum):
    PROGRAM_COMPLETED = "projectCompleted"
    PROGRAM_CANCELLED = "projectCanceled"


@dataclass(frozen=True)
class ProgramEvent:
    event_type: EventType
    receiver: str
    program_index: int
    timestamp: float

    @property
    def name(self) -> str:
        """Wire name of the event (projectCompleted / projectCanceled)."""
        return self.event_type.value

    @property
    def args(self) -> tuple:
        return (self.receiver, self.program_index)

    def to_dict(self) -> dict:
        return {
            "event": self.name,
            "receiver": self.receiver,
            "program_index": self.program_index,
            "timestamp": self.timestamp,
        }


Listener = Callable[[ProgramEvent], None]


class EventBus:
    """
    Listener registry.

    Listeners subscribed without an event type receive everything.
    """

    def __init__(self):
        self._listeners: Dict[Optional[EventType], List[Listener]] = {}

    def subscribe(self, listener: Listener, event_type: EventType = None) -> Callable[[], None]:
        """Register a listener. Returns a function that unsubscribes it."""
        self._listeners.setdefault(event_type, []).append(listener)

        def unsubscribe() -> None:
            listeners = self._listeners.get(event_type, [])
            if listener in listeners:
                listeners.remove(listener)

        return unsubscribe

    def publish(self, event: ProgramEvent) -> None:
        """
        Deliver an event to every matching listener.

        The event describes state that has already committed, so a failing
        listener is logged and the remaining listeners still run.
        """
        targets = self._listeners.get(event.event_type, []) + self._listeners.get(None, [])
        for listener in list(targets):
            try:
                listener(event)
            except Exception:
                logger.exception("Listener %r failed on %s", listener, event.name)

    def listener_count(self) -> int:
        return sum(len(listeners) for listeners in self._listeners.values())
