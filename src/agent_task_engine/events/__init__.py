from .bus import EventBus, TaskEvent, TaskEventType
from .mirror import TaskMirror

__all__ = [
    "EventBus",
    "TaskEvent",
    "TaskEventType",
    "TaskMirror",
]
