"""EventRecord model: append-only domain events read by signal collectors."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlalchemy import Index, String
from sqlalchemy.orm import Mapped, mapped_column

from threatgate.db.session import Base
from threatgate.db.types import JSONType, UTCDateTime


class EventRecord(Base):
    """Single event (review, install, transaction, report, message, registration, ...).

    ``payload`` carries the stream-specific fields. Collectors treat every
    payload field as optional.
    """

    __tablename__ = "event_records"

    __table_args__ = (
        Index("ix_event_records_stream_entity_time", "stream", "entity_id", "occurred_at"),
    )

    id: Mapped[str] = mapped_column(
        String(64), primary_key=True, default=lambda: uuid.uuid4().hex
    )
    stream: Mapped[str] = mapped_column(String(64), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(128), nullable=False)
    occurred_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    actor_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    payload: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    ingested_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )
