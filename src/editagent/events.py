"""Wire events and the fan-out channel that carries them.

Every event a collaborator can observe is a pydantic model tagged by its
``type`` field. Session chunks (text, reasoning, tool, error, done) are
ephemeral; ledger and history publications carry a full snapshot so a
consumer never has to replay earlier events.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from editagent.logging import get_logger

log = get_logger("events")


class EventModel(BaseModel):
    """Base model for wire events with populate_by_name enabled."""

    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class TextChunk(EventModel):
    type: Literal["text"] = "text"
    content: str


class ReasoningStartChunk(EventModel):
    type: Literal["reasoning-start"] = "reasoning-start"


class ReasoningChunk(EventModel):
    type: Literal["reasoning"] = "reasoning"
    content: str


class ReasoningEndChunk(EventModel):
    type: Literal["reasoning-end"] = "reasoning-end"


class ToolCallChunk(EventModel):
    type: Literal["tool-call"] = "tool-call"
    id: str
    name: str
    args: dict[str, Any] = Field(default_factory=dict)


class ToolResultChunk(EventModel):
    type: Literal["tool-result"] = "tool-result"
    id: str
    name: str
    result: dict[str, Any]


class ErrorChunk(EventModel):
    type: Literal["error"] = "error"
    content: str


class DoneChunk(EventModel):
    type: Literal["done"] = "done"
    conversation_id: str | None = Field(default=None, alias="conversationId")


class PendingChangesEvent(EventModel):
    """Full pending-change ledger, published after every transition."""

    type: Literal["pending-changes"] = "pending-changes"
    changes: list[dict[str, Any]]


class HistoryUpdatedEvent(EventModel):
    """Conversation metadata list, published after every save or delete."""

    type: Literal["history-updated"] = "history-updated"
    conversations: list[dict[str, Any]]


StreamChunk = Annotated[
    TextChunk
    | ReasoningStartChunk
    | ReasoningChunk
    | ReasoningEndChunk
    | ToolCallChunk
    | ToolResultChunk
    | ErrorChunk
    | DoneChunk,
    Field(discriminator="type"),
]

Event = Annotated[
    TextChunk
    | ReasoningStartChunk
    | ReasoningChunk
    | ReasoningEndChunk
    | ToolCallChunk
    | ToolResultChunk
    | ErrorChunk
    | DoneChunk
    | PendingChangesEvent
    | HistoryUpdatedEvent,
    Field(discriminator="type"),
]

_event_adapter: TypeAdapter[Any] = TypeAdapter(Event)


def parse_event(data: dict[str, Any]) -> EventModel:
    """Validate a wire dict back into its event model."""
    return _event_adapter.validate_python(data)


TERMINAL_TYPES = frozenset({"error", "done"})


class Subscription:
    """One consumer's view of an EventChannel.

    Iterate it with ``async for``; iteration ends when the subscription or
    the channel is closed.
    """

    _CLOSED = object()

    def __init__(self, channel: EventChannel, maxsize: int) -> None:
        self._channel = channel
        # Unbounded queue; the semaphore enforces the bound so the close
        # sentinel always fits.
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._slots = asyncio.Semaphore(maxsize)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def _deliver(self, event: EventModel) -> None:
        if self._closed:
            return
        await self._slots.acquire()
        if self._closed:
            return
        self._queue.put_nowait(event)

    def _finish(self) -> None:
        self._closed = True
        self._queue.put_nowait(self._CLOSED)
        # Wake a publisher blocked on a full queue
        self._slots.release()

    def close(self) -> None:
        if not self._closed:
            self._channel._detach(self)
            self._finish()

    async def get(self) -> EventModel | None:
        """Next event, or None once closed."""
        item = await self._queue.get()
        if item is self._CLOSED:
            self._queue.put_nowait(self._CLOSED)
            return None
        self._slots.release()
        return item

    def __aiter__(self) -> AsyncIterator[EventModel]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[EventModel]:
        while True:
            event = await self.get()
            if event is None:
                return
            yield event

    async def __aenter__(self) -> Subscription:
        return self

    async def __aexit__(self, *exc: object) -> None:
        self.close()


class EventChannel:
    """Ordered fan-out of events to any number of bounded subscriber queues.

    ``publish`` awaits space in every subscriber queue, so a slow consumer
    applies back-pressure instead of losing or reordering events.
    """

    def __init__(self, maxsize: int = 256) -> None:
        self._maxsize = maxsize
        self._subscribers: list[Subscription] = []
        self._lock = asyncio.Lock()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> Subscription:
        subscription = Subscription(self, self._maxsize)
        self._subscribers.append(subscription)
        return subscription

    def _detach(self, subscription: Subscription) -> None:
        if subscription in self._subscribers:
            self._subscribers.remove(subscription)

    async def publish(self, event: EventModel) -> None:
        # Serialize publishers so every subscriber sees one global order
        async with self._lock:
            for subscription in list(self._subscribers):
                await subscription._deliver(event)
        log.debug("Published %s to %d subscribers", event.type, len(self._subscribers))

    def close(self) -> None:
        for subscription in list(self._subscribers):
            subscription.close()
