"""Create feedback analysis tables

Revision ID: 001_analysis_tables
Revises:
Create Date: 2026-10-17
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "001_analysis_tables"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "topics",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("scope_id", sa.String(length=64), nullable=True),
        sa.Column("summary_json", sa.Text(), nullable=True),
        sa.Column("summary_generated_at", sa.DateTime(), nullable=True),
        sa.Column("is_archived", sa.Boolean(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_topics_name", "topics", ["name"])
    op.create_index("ix_topics_scope_id", "topics", ["scope_id"])

    op.create_table(
        "inquiries",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="draft"),
        sa.Column("summary_json", sa.Text(), nullable=True),
        sa.Column("summary_generated_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_inquiries_status", "inquiries", ["status"])

    op.create_table(
        "feedback_items",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("type", sa.String(length=32), nullable=False, server_default="general"),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="pending"),
        sa.Column("inquiry_id", sa.String(length=36), sa.ForeignKey("inquiries.id"), nullable=True),
        sa.Column("topic_id", sa.String(length=36), sa.ForeignKey("topics.id"), nullable=True),
        sa.Column("scope_id", sa.String(length=64), nullable=True),
        sa.Column("sentiment", sa.String(length=16), nullable=True),
        sa.Column("tone", sa.String(length=16), nullable=True),
        sa.Column("theme", sa.String(length=64), nullable=True),
        sa.Column("urgency", sa.Float(), nullable=True),
        sa.Column("importance", sa.Float(), nullable=True),
        sa.Column("clarity", sa.Float(), nullable=True),
        sa.Column("quality", sa.Float(), nullable=True),
        sa.Column("helpfulness", sa.Float(), nullable=True),
        sa.Column("score", sa.Float(), nullable=True),
        sa.Column("severity", sa.String(length=16), nullable=True),
        sa.Column("claimed_by", sa.String(length=64), nullable=True),
        sa.Column("claimed_at", sa.DateTime(), nullable=True),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("analyzed_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_feedback_items_status", "feedback_items", ["status"])
    op.create_index("ix_feedback_items_inquiry_id", "feedback_items", ["inquiry_id"])
    op.create_index("ix_feedback_items_topic_id", "feedback_items", ["topic_id"])
    op.create_index("ix_feedback_items_scope_id", "feedback_items", ["scope_id"])
    op.create_index("ix_feedback_items_claimed_at", "feedback_items", ["claimed_at"])
    op.create_index("ix_feedback_items_updated_at", "feedback_items", ["updated_at"])

    op.create_table(
        "cost_log_entries",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("operation", sa.String(length=64), nullable=False),
        sa.Column("prompt_tokens", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("completion_tokens", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_tokens", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("cost", sa.Float(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("metadata_json", sa.Text(), nullable=True),
    )
    op.create_index("ix_cost_log_entries_operation", "cost_log_entries", ["operation"])
    op.create_index("ix_cost_log_entries_created_at", "cost_log_entries", ["created_at"])


def downgrade() -> None:
    op.drop_table("cost_log_entries")
    op.drop_table("feedback_items")
    op.drop_table("inquiries")
    op.drop_table("topics")
