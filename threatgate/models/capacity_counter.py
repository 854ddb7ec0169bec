"""CapacityCounter model: per entity/operation/time-bucket rate-limit counter."""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from threatgate.db.session import Base
from threatgate.db.types import UTCDateTime


class CapacityCounter(Base):
    """Monotonic counter for one time bucket; a new bucket key starts a new row.

    ``count`` only moves through the conditional increment in
    threatgate.engine.capacity; ``ceiling_applied`` records the last effective
    ceiling (after throttling) that an increment was checked against.
    """

    __tablename__ = "capacity_counters"

    __table_args__ = (
        UniqueConstraint(
            "entity_class",
            "entity_id",
            "operation",
            "bucket",
            name="uq_capacity_counters_key",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    entity_class: Mapped[str] = mapped_column(String(64), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(128), nullable=False)
    operation: Mapped[str] = mapped_column(String(64), nullable=False)
    bucket: Mapped[str] = mapped_column(String(32), nullable=False)
    count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    ceiling_applied: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )
    updated_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
