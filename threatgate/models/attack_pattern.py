"""AttackPattern model: a run of evaluations sharing one signal signature."""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from threatgate.db.session import Base
from threatgate.db.types import UTCDateTime


class AttackPattern(Base):
    """Opened when a signature first appears for an entity, closed when it changes or clears.

    ``ended_at`` is NULL while the pattern is open. At most one open pattern
    exists per entity.
    """

    __tablename__ = "attack_patterns"

    __table_args__ = (
        Index("ix_attack_patterns_class_entity", "entity_class", "entity_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    entity_class: Mapped[str] = mapped_column(String(64), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(128), nullable=False)
    signature: Mapped[str] = mapped_column(String(255), nullable=False)
    started_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    ended_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    intensity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_seen_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )
