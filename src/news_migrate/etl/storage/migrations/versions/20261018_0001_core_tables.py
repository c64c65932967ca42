"""Channels, profiles, articles, event templates and generated content."""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

revision = "20261018_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "news_channels",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("source_db_config", sa.JSON(), nullable=False),
        sa.Column("analysis_status", sa.String(), server_default="pending", nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "analysis_status IN ('pending', 'in_progress', 'completed', 'failed')",
            name="ck_news_channels_analysis_status",
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_news_channels_name", "news_channels", ["name"], unique=True)
    op.create_index("ix_news_channels_analysis_status", "news_channels", ["analysis_status"])

    op.create_table(
        "channel_profiles",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("channel_id", sa.String(), nullable=False),
        sa.Column("political_stance", sa.JSON(), nullable=False),
        sa.Column("language_style", sa.JSON(), nullable=False),
        sa.Column("confidence_score", sa.Float(), nullable=True),
        sa.Column("analysis_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["channel_id"], ["news_channels.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_channel_profiles_channel_id",
        "channel_profiles",
        ["channel_id"],
        unique=True,
    )

    op.create_table(
        "news_articles",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("channel_id", sa.String(), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("summary", sa.Text(), nullable=True),
        sa.Column("vector_id", sa.String(), nullable=True),
        sa.Column("analysis_completed", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("categories", sa.JSON(), nullable=False),
        sa.Column("topics", sa.JSON(), nullable=False),
        sa.Column("source_metadata", sa.JSON(), nullable=False),
        sa.Column("migrated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["channel_id"], ["news_channels.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_news_articles_channel_id", "news_articles", ["channel_id"])
    op.create_index("ix_news_articles_vector_id", "news_articles", ["vector_id"])
    op.create_index("ix_news_articles_published_at", "news_articles", ["published_at"])
    op.create_index(
        "ix_news_articles_analysis_completed",
        "news_articles",
        ["analysis_completed"],
    )

    op.create_table(
        "event_templates",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("channel_id", sa.String(), nullable=False),
        sa.Column("event_category", sa.String(), nullable=False),
        sa.Column("language_template", sa.Text(), nullable=False),
        sa.Column("effectiveness_score", sa.Float(), nullable=True),
        sa.Column("usage_count", sa.Integer(), server_default="0", nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["channel_id"], ["news_channels.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_event_templates_channel_id", "event_templates", ["channel_id"])
    op.create_index("ix_event_templates_event_category", "event_templates", ["event_category"])

    op.create_table(
        "generated_content",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("channel_id", sa.String(), nullable=False),
        sa.Column("topic", sa.Text(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("content_type", sa.String(), server_default="article", nullable=False),
        sa.Column("consistency_scores", sa.JSON(), nullable=False),
        sa.Column("human_approved", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("feedback", sa.Text(), nullable=True),
        sa.Column("generation_prompt", sa.Text(), nullable=True),
        sa.Column("model_used", sa.String(), nullable=True),
        sa.Column("generation_time_ms", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "content_type IN ('article', 'headline', 'summary', 'analysis')",
            name="ck_generated_content_content_type",
        ),
        sa.ForeignKeyConstraint(["channel_id"], ["news_channels.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_generated_content_channel_id", "generated_content", ["channel_id"])
    op.create_index("ix_generated_content_content_type", "generated_content", ["content_type"])
    op.create_index(
        "ix_generated_content_human_approved",
        "generated_content",
        ["human_approved"],
    )


def downgrade() -> None:
    op.drop_index("ix_generated_content_human_approved", table_name="generated_content")
    op.drop_index("ix_generated_content_content_type", table_name="generated_content")
    op.drop_index("ix_generated_content_channel_id", table_name="generated_content")
    op.drop_table("generated_content")
    op.drop_index("ix_event_templates_event_category", table_name="event_templates")
    op.drop_index("ix_event_templates_channel_id", table_name="event_templates")
    op.drop_table("event_templates")
    op.drop_index("ix_news_articles_analysis_completed", table_name="news_articles")
    op.drop_index("ix_news_articles_published_at", table_name="news_articles")
    op.drop_index("ix_news_articles_vector_id", table_name="news_articles")
    op.drop_index("ix_news_articles_channel_id", table_name="news_articles")
    op.drop_table("news_articles")
    op.drop_index("ix_channel_profiles_channel_id", table_name="channel_profiles")
    op.drop_table("channel_profiles")
    op.drop_index("ix_news_channels_analysis_status", table_name="news_channels")
    op.drop_index("ix_news_channels_name", table_name="news_channels")
    op.drop_table("news_channels")
