"""TrackedEntity model: entity roster and operator manual hold."""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import Boolean, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from threatgate.db.session import Base
from threatgate.db.types import JSONType, UTCDateTime


class TrackedEntity(Base):
    """Entity enrolled for scheduled re-evaluation (store, user, country).

    ``hold_reason`` set means an operator paused the entity; gate checks deny
    every operation until the hold is released.
    ``phase`` and ``ceilings`` carry a staged rollout: per-operation ceiling
    overrides replace the profile ceiling before throttling, and phase
    "pause" denies every operation.
    """

    __tablename__ = "tracked_entities"

    __table_args__ = (
        UniqueConstraint("entity_class", "entity_id", name="uq_tracked_entities_class_entity"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    entity_class: Mapped[str] = mapped_column(String(64), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(128), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    hold_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    held_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
    held_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    phase: Mapped[str | None] = mapped_column(String(16), nullable=True)
    ceilings: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    phase_set_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
    phase_set_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )
