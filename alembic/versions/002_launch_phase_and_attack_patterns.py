"""Add launch phase and ceiling overrides to tracked_entities; add attack_patterns.

Revision ID: 002
Revises: 001
Create Date: 2026-10-17

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

from threatgate.db.types import JSONType, UTCDateTime

revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.add_column("tracked_entities", sa.Column("phase", sa.String(16), nullable=True))
    op.add_column("tracked_entities", sa.Column("ceilings", JSONType, nullable=True))
    op.add_column("tracked_entities", sa.Column("phase_set_by", sa.String(128), nullable=True))
    op.add_column("tracked_entities", sa.Column("phase_set_at", UTCDateTime(), nullable=True))

    op.create_table(
        "attack_patterns",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("entity_class", sa.String(64), nullable=False),
        sa.Column("entity_id", sa.String(128), nullable=False),
        sa.Column("signature", sa.String(255), nullable=False),
        sa.Column("started_at", UTCDateTime(), nullable=False),
        sa.Column("ended_at", UTCDateTime(), nullable=True),
        sa.Column("intensity", sa.Integer(), nullable=False),
        sa.Column("last_seen_at", UTCDateTime(), nullable=False),
    )
    op.create_index(
        "ix_attack_patterns_class_entity",
        "attack_patterns",
        ["entity_class", "entity_id"],
    )


def downgrade() -> None:
    op.drop_index("ix_attack_patterns_class_entity", table_name="attack_patterns")
    op.drop_table("attack_patterns")
    with op.batch_alter_table("tracked_entities") as batch_op:
        batch_op.drop_column("phase_set_at")
        batch_op.drop_column("phase_set_by")
        batch_op.drop_column("ceilings")
        batch_op.drop_column("phase")
