"""Event envelope sent as the body of every webhook request."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic_core import PydanticSerializationError

from shophook.exceptions import SerializationError

from .base import utc_now
from .events import EventType


class EventEnvelope(BaseModel):
    """JSON wrapper around event-specific data.

    Field aliases are the wire names receivers parse, so they must not
    change. ``teste`` is only present on test deliveries.
    """

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    event: EventType = Field(alias="evento")
    event_name: str = Field(alias="eventoNome")
    timestamp: datetime = Field(default_factory=utc_now)
    test: bool | None = Field(default=None, alias="teste")
    entity_id: str | None = Field(default=None, alias="entidadeId")
    entity_type: str | None = Field(default=None, alias="entidadeTipo")
    data: Any = Field(default=None, alias="dados")

    @classmethod
    def for_event(
        cls,
        event_type: EventType,
        entity_id: str | None = None,
        entity_type: str | None = None,
        data: Any = None,
        timestamp: datetime | None = None,
    ) -> EventEnvelope:
        """Build the envelope for a production dispatch."""
        return cls(
            event=event_type,
            event_name=event_type.display_name,
            timestamp=timestamp or utc_now(),
            entity_id=entity_id,
            entity_type=entity_type,
            data=data,
        )

    def to_json(self) -> str:
        """Serialize to the exact string that is signed and sent.

        Raises:
            SerializationError: If ``data`` holds values JSON cannot encode.
        """
        exclude = None if self.test else {"test"}
        try:
            return self.model_dump_json(by_alias=True, exclude=exclude)
        except (PydanticSerializationError, TypeError, ValueError) as e:
            raise SerializationError(f"Cannot serialize {self.event.value} payload: {e}") from e


__all__ = ["EventEnvelope"]
