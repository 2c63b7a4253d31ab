"""Event notifications emitted by evaluation matrices."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal, Protocol, runtime_checkable

EventKind = Literal["submission_accepted", "state_changed", "consensus_not_reached"]


@dataclass(slots=True, frozen=True)
class MatrixEvent:
    """Committed change published for notification and persistence layers."""

    kind: EventKind
    matrix_id: str
    timestamp: datetime
    payload: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "matrix_id": self.matrix_id,
            "timestamp": self.timestamp.isoformat(),
            "payload": self.payload,
        }


@runtime_checkable
class EventSink(Protocol):
    """Consumer of matrix events.

    The engine only hands events over; delivery is the sink's concern.
    """

    def publish(self, event: MatrixEvent) -> None:
        """Receive one committed event."""


class CollectingSink:
    """Sink that keeps every event in memory."""

    def __init__(self) -> None:
        self.events: list[MatrixEvent] = []

    def publish(self, event: MatrixEvent) -> None:
        self.events.append(event)

    def kinds(self) -> list[str]:
        return [event.kind for event in self.events]


__all__ = ["EventKind", "MatrixEvent", "EventSink", "CollectingSink"]
