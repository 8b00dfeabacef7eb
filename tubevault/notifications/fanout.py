"""
Notification fan-out: best-effort broadcast of job lifecycle events.

Push delivery is an optimization. Observers that miss events recover by
polling the job store.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Protocol

from ..config.logging_config import get_logger

logger = get_logger(__name__)


class Observer(Protocol):
    async def send(self, message: Dict[str, Any]) -> None:
        ...


@dataclass
class ProgressEvent:
    job_id: str
    progress: float
    type: str = field(default="progress", init=False)

    def to_message(self) -> Dict[str, Any]:
        return {"type": self.type, "jobId": self.job_id, "progress": round(self.progress, 1)}


@dataclass
class BatchProgressEvent:
    batch_id: str
    total: int
    completed: int
    current_item: Optional[str] = None
    type: str = field(default="batchProgress", init=False)

    @property
    def progress(self) -> float:
        if self.total <= 0:
            return 100.0
        return min(100.0, self.completed * 100.0 / self.total)

    def to_message(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "batchId": self.batch_id,
            "total": self.total,
            "completed": self.completed,
            "progress": round(self.progress, 1),
            "currentItem": self.current_item,
        }


@dataclass
class CompletedEvent:
    job_id: str
    item: Dict[str, Any]
    type: str = field(default="download_completed", init=False)

    def to_message(self) -> Dict[str, Any]:
        return {"type": self.type, "jobId": self.job_id, "item": self.item}


@dataclass
class ErrorEvent:
    job_id: str
    error: str
    is_age_restricted: bool = False
    type: str = field(default="error", init=False)

    def to_message(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "jobId": self.job_id,
            "error": self.error,
            "isAgeRestricted": self.is_age_restricted,
        }


class ObserverRegistry:
    """Registered observers keyed by client ID.

    An observer whose send fails is dropped on the spot and never retried.
    """

    def __init__(self, on_prune: Optional[Callable[[str], None]] = None):
        self._observers: Dict[str, Observer] = {}
        self._on_prune = on_prune

    def add(self, observer_id: str, observer: Observer) -> None:
        self._observers[observer_id] = observer
        logger.info(
            "Observer registered",
            extra={"observer_id": observer_id, "observers": len(self._observers)}
        )

    def remove(self, observer_id: str) -> None:
        if self._observers.pop(observer_id, None) is not None:
            logger.info(
                "Observer removed",
                extra={"observer_id": observer_id, "observers": len(self._observers)}
            )

    def __len__(self) -> int:
        return len(self._observers)

    def __contains__(self, observer_id: str) -> bool:
        return observer_id in self._observers

    async def broadcast(self, event) -> int:
        """Send an event to every observer; returns how many received it."""
        if not self._observers:
            return 0

        message = event.to_message()
        targets = list(self._observers.items())
        results = await asyncio.gather(
            *(observer.send(message) for _, observer in targets),
            return_exceptions=True,
        )

        delivered = 0
        for (observer_id, _), result in zip(targets, results):
            if isinstance(result, Exception):
                logger.debug(
                    "Pruning unreachable observer",
                    extra={"observer_id": observer_id, "error": str(result)}
                )
                self._observers.pop(observer_id, None)
                if self._on_prune:
                    self._on_prune(observer_id)
            else:
                delivered += 1
        return delivered
