"""JobRun model."""

from datetime import UTC, datetime

from sqlalchemy import Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from threatgate.db.session import Base
from threatgate.db.types import UTCDateTime


class JobRun(Base):
    """Records for scheduled batch runs (/internal/re_evaluate, scripts)."""

    __tablename__ = "job_runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    job_type: Mapped[str] = mapped_column(String(64), nullable=False)
    entity_class: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False)
    started_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), default=lambda: datetime.now(UTC), nullable=False
    )
    finished_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    entities_processed: Mapped[int | None] = mapped_column(Integer, nullable=True)
    entities_failed: Mapped[int | None] = mapped_column(Integer, nullable=True)
    entities_deferred: Mapped[int | None] = mapped_column(
        Integer, nullable=True
    )  # not started before the wall-clock budget ran out
    profile_checksum: Mapped[str | None] = mapped_column(String(64), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
