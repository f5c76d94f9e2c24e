"""EventBus for decoupled publish/subscribe communication."""

from enum import Enum, auto
from typing import Any, Callable
from collections import defaultdict


class EventType(Enum):
    # Freeform keypoint dragging
    JOINT_MOVED = auto()          # data: joint (str), position (Vec3), converged (bool)

    # Chain IK
    CHAIN_CREATED = auto()        # data: chain (str), bones (list[str])
    CHAIN_REMOVED = auto()        # data: chain (str)
    CHAIN_SOLVED = auto()         # data: chain (str), target (Vec3), converged (bool)

    # Pose snapshots
    POSE_APPLIED = auto()         # data: name (str | None)
    POSE_SAVED = auto()           # data: name (str)

    # Manipulator level of detail
    DEPTH_LIMIT_CHANGED = auto()  # data: limit (int), visible (dict[str, bool])

    # Lifecycle
    CHARACTER_DISPOSED = auto()   # data: name (str)


class EventBus:
    """Simple publish/subscribe event system."""

    def __init__(self):
        self._handlers: dict[EventType, list[Callable]] = defaultdict(list)

    def subscribe(self, event_type: EventType, handler: Callable) -> None:
        self._handlers[event_type].append(handler)

    def unsubscribe(self, event_type: EventType, handler: Callable) -> None:
        handlers = self._handlers[event_type]
        if handler in handlers:
            handlers.remove(handler)

    def publish(self, event_type: EventType, **data: Any) -> None:
        for handler in self._handlers[event_type]:
            handler(**data)

    def clear(self) -> None:
        self._handlers.clear()
