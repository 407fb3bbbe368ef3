"""Envelope validator cache. Owned by the process container, never module-level."""

import threading
import time
from typing import Callable, Dict, Optional, Tuple, Type

from pydantic import BaseModel, TypeAdapter

from billing_pipeline.domain.exceptions import InvalidEnvelopeError
from billing_pipeline.domain.models.event import EventType
from billing_pipeline.domain.schemas.event import EventEnvelopeSchema

DEFAULT_SCHEMAS: Dict[str, Type[BaseModel]] = {
    EventType.SUBSCRIPTION_CREATED.value: EventEnvelopeSchema,
}


class ValidatorCache:
    """
    Lazily builds one TypeAdapter per event type. Entries expire after ttl_seconds
    and are rebuilt on next access; invalidate() drops one or all entries.
    Thread-safe.
    """

    def __init__(
        self,
        ttl_seconds: float = 300.0,
        schemas: Optional[Dict[str, Type[BaseModel]]] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds
        self._schemas = dict(schemas or DEFAULT_SCHEMAS)
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: Dict[str, Tuple[TypeAdapter, float]] = {}
        self.builds = 0

    def get(self, event_type: str) -> TypeAdapter:
        """Return the validator for event_type. Raises InvalidEnvelopeError if the type is unknown."""
        now = self._clock()
        with self._lock:
            entry = self._entries.get(event_type)
            if entry is not None and now < entry[1]:
                return entry[0]
            schema = self._schemas.get(event_type)
            if schema is None:
                raise InvalidEnvelopeError(f"Unknown eventType: {event_type!r}")
            adapter = TypeAdapter(schema)
            self._entries[event_type] = (adapter, now + self._ttl)
            self.builds += 1
            return adapter

    def register(self, event_type: str, schema: Type[BaseModel]) -> None:
        """Add or replace a schema; its cached validator is dropped."""
        with self._lock:
            self._schemas[event_type] = schema
            self._entries.pop(event_type, None)

    def invalidate(self, event_type: Optional[str] = None) -> None:
        with self._lock:
            if event_type is None:
                self._entries.clear()
            else:
                self._entries.pop(event_type, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
