"""ThreatState model: latest classification per scored entity."""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import Float, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from threatgate.db.session import Base
from threatgate.db.types import JSONType, UTCDateTime


class ThreatState(Base):
    """Persisted score/state for one entity of one entity class.

    Written only by the evaluator; gate checks read it. ``score`` is always
    derived from ``signals`` and never edited by hand.
    """

    __tablename__ = "threat_states"

    __table_args__ = (
        UniqueConstraint("entity_class", "entity_id", name="uq_threat_states_class_entity"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    entity_class: Mapped[str] = mapped_column(String(64), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(128), nullable=False)
    score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    state: Mapped[str] = mapped_column(String(32), nullable=False)
    previous_state: Mapped[str | None] = mapped_column(String(32), nullable=True)
    signals: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    explain: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    profile_checksum: Mapped[str | None] = mapped_column(String(64), nullable=True)
    last_evaluated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )
    next_evaluation_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
