"""
Per-run event trail.

The controller emits one WorkflowEvent per phase transition (analysis,
action, PR, worktree, hook aborts). Subscribers see them as they
happen; `history` keeps the whole trail for the run result.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from loguru import logger
from pydantic import BaseModel, Field

Subscriber = Callable[["WorkflowEvent"], None]


class WorkflowEvent(BaseModel):
    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    event_type: str
    phase: str
    payload: Dict[str, Any] = Field(default_factory=dict)


class EventBus:
    """Synchronous, in-process. One bus per provisioning run."""

    def __init__(self):
        self._subscribers: List[Tuple[Optional[str], Subscriber]] = []
        self.history: List[WorkflowEvent] = []

    def subscribe(self, callback: Subscriber, event_type: Optional[str] = None) -> None:
        """Receive every event, or only those of `event_type`."""
        self._subscribers.append((event_type, callback))

    def emit(self, event_type: str, phase: str, payload: Optional[Dict[str, Any]] = None) -> WorkflowEvent:
        event = WorkflowEvent(event_type=event_type, phase=phase, payload=payload or {})
        self.history.append(event)

        for wanted, subscriber in self._subscribers:
            if wanted is not None and wanted != event_type:
                continue
            try:
                subscriber(event)
            except Exception as e:
                logger.warning(f"[EVENTS] Subscriber failed on {event_type}: {e}")
        return event

    def events_of(self, event_type: str) -> List[WorkflowEvent]:
        return [e for e in self.history if e.event_type == event_type]

    def dump(self) -> List[Dict[str, Any]]:
        return [e.model_dump() for e in self.history]
