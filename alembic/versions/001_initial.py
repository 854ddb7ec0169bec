"""Initial schema: events, threat states, capacity counters, roster, audit, incidents, job runs.

Revision ID: 001
Revises: 
Create Date: 2026-10-17

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

from threatgate.db.types import JSONType, UTCDateTime

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "event_records",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("stream", sa.String(64), nullable=False),
        sa.Column("entity_id", sa.String(128), nullable=False),
        sa.Column("occurred_at", UTCDateTime(), nullable=False),
        sa.Column("actor_id", sa.String(128), nullable=True),
        sa.Column("payload", JSONType, nullable=True),
        sa.Column("ingested_at", UTCDateTime(), nullable=False),
    )
    op.create_index(
        "ix_event_records_stream_entity_time",
        "event_records",
        ["stream", "entity_id", "occurred_at"],
    )

    op.create_table(
        "threat_states",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("entity_class", sa.String(64), nullable=False),
        sa.Column("entity_id", sa.String(128), nullable=False),
        sa.Column("score", sa.Float(), nullable=False),
        sa.Column("state", sa.String(32), nullable=False),
        sa.Column("previous_state", sa.String(32), nullable=True),
        sa.Column("signals", JSONType, nullable=False),
        sa.Column("explain", JSONType, nullable=True),
        sa.Column("profile_checksum", sa.String(64), nullable=True),
        sa.Column("last_evaluated_at", UTCDateTime(), nullable=False),
        sa.Column("next_evaluation_at", UTCDateTime(), nullable=False),
        sa.UniqueConstraint("entity_class", "entity_id", name="uq_threat_states_class_entity"),
    )

    op.create_table(
        "capacity_counters",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("entity_class", sa.String(64), nullable=False),
        sa.Column("entity_id", sa.String(128), nullable=False),
        sa.Column("operation", sa.String(64), nullable=False),
        sa.Column("bucket", sa.String(32), nullable=False),
        sa.Column("count", sa.Integer(), nullable=False),
        sa.Column("ceiling_applied", sa.Integer(), nullable=True),
        sa.Column("created_at", UTCDateTime(), nullable=False),
        sa.Column("updated_at", UTCDateTime(), nullable=True),
        sa.UniqueConstraint(
            "entity_class", "entity_id", "operation", "bucket", name="uq_capacity_counters_key"
        ),
    )

    op.create_table(
        "tracked_entities",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("entity_class", sa.String(64), nullable=False),
        sa.Column("entity_id", sa.String(128), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("hold_reason", sa.Text(), nullable=True),
        sa.Column("held_by", sa.String(128), nullable=True),
        sa.Column("held_at", UTCDateTime(), nullable=True),
        sa.Column("created_at", UTCDateTime(), nullable=False),
        sa.UniqueConstraint("entity_class", "entity_id", name="uq_tracked_entities_class_entity"),
    )

    op.create_table(
        "audit_records",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("entity_class", sa.String(64), nullable=False),
        sa.Column("entity_id", sa.String(128), nullable=False),
        sa.Column("action", sa.String(64), nullable=False),
        sa.Column("operation", sa.String(64), nullable=True),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("state", sa.String(32), nullable=True),
        sa.Column("score", sa.Float(), nullable=True),
        sa.Column("actor", sa.String(128), nullable=False),
        sa.Column("created_at", UTCDateTime(), nullable=False),
    )
    op.create_index("ix_audit_records_entity_class", "audit_records", ["entity_class"])
    op.create_index("ix_audit_records_entity_id", "audit_records", ["entity_id"])

    op.create_table(
        "incidents",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("entity_class", sa.String(64), nullable=False),
        sa.Column("entity_id", sa.String(128), nullable=False),
        sa.Column("previous_state", sa.String(32), nullable=True),
        sa.Column("new_state", sa.String(32), nullable=False),
        sa.Column("score", sa.Float(), nullable=False),
        sa.Column("dominant_kind", sa.String(64), nullable=True),
        sa.Column("payload", JSONType, nullable=True),
        sa.Column("status", sa.Text(), nullable=False),
        sa.Column("created_at", UTCDateTime(), nullable=False),
    )
    op.create_index("ix_incidents_entity_class", "incidents", ["entity_class"])
    op.create_index("ix_incidents_entity_id", "incidents", ["entity_id"])

    op.create_table(
        "job_runs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("job_type", sa.String(64), nullable=False),
        sa.Column("entity_class", sa.String(64), nullable=True),
        sa.Column("status", sa.String(32), nullable=False),
        sa.Column("started_at", UTCDateTime(), nullable=False),
        sa.Column("finished_at", UTCDateTime(), nullable=True),
        sa.Column("entities_processed", sa.Integer(), nullable=True),
        sa.Column("entities_failed", sa.Integer(), nullable=True),
        sa.Column("entities_deferred", sa.Integer(), nullable=True),
        sa.Column("profile_checksum", sa.String(64), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
    )
    op.create_index("ix_job_runs_entity_class", "job_runs", ["entity_class"])


def downgrade() -> None:
    op.drop_index("ix_job_runs_entity_class", table_name="job_runs")
    op.drop_table("job_runs")
    op.drop_index("ix_incidents_entity_id", table_name="incidents")
    op.drop_index("ix_incidents_entity_class", table_name="incidents")
    op.drop_table("incidents")
    op.drop_index("ix_audit_records_entity_id", table_name="audit_records")
    op.drop_index("ix_audit_records_entity_class", table_name="audit_records")
    op.drop_table("audit_records")
    op.drop_table("tracked_entities")
    op.drop_table("capacity_counters")
    op.drop_table("threat_states")
    op.drop_index("ix_event_records_stream_entity_time", table_name="event_records")
    op.drop_table("event_records")
