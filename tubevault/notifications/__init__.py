"""Job lifecycle notifications."""

from .fanout import (
    BatchProgressEvent,
    CompletedEvent,
    ErrorEvent,
    Observer,
    ObserverRegistry,
    ProgressEvent,
)

__all__ = [
    "BatchProgressEvent",
    "CompletedEvent",
    "ErrorEvent",
    "Observer",
    "ObserverRegistry",
    "ProgressEvent",
]
