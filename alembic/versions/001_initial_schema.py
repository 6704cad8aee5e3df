"""Initial schema — the 8 WAXFEED core tables.

Revision ID: 001_initial
Revises:
Create Date: 2026-06-01 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ── 1. users ────────────────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("username", sa.String, unique=True, index=True, nullable=False),
        sa.Column("email", sa.String, unique=True, nullable=False),
        sa.Column(
            "subscription_tier",
            sa.String,
            server_default="FREE",
            nullable=False,
            comment="FREE / WAX_PLUS / WAX_PRO (owned by the billing integration)",
        ),
        sa.Column("tastemaker_score", sa.Integer, server_default="0", nullable=False),
        sa.Column("gold_spin_count", sa.Integer, server_default="0", nullable=False),
        sa.Column("silver_spin_count", sa.Integer, server_default="0", nullable=False),
        sa.Column("bronze_spin_count", sa.Integer, server_default="0", nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )

    # ── 2. albums ───────────────────────────────────────────────────
    op.create_table(
        "albums",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("title", sa.String, nullable=False),
        sa.Column("artist_name", sa.String, index=True, nullable=False),
        sa.Column(
            "genres",
            postgresql.JSONB,
            nullable=False,
            comment="Array of genre tags",
        ),
        sa.Column("release_year", sa.Integer, nullable=True),
        sa.Column("average_rating", sa.Float, nullable=True),
        sa.Column("total_reviews", sa.Integer, server_default="0", nullable=False),
        sa.Column("is_trending", sa.Boolean, server_default="false", nullable=False),
        sa.Column("trended_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "trend_threshold",
            sa.Integer,
            nullable=True,
            comment="Override for the trending review count",
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )

    # ── 3. ratings ──────────────────────────────────────────────────
    op.create_table(
        "ratings",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "user_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            index=True,
            nullable=False,
        ),
        sa.Column(
            "album_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("albums.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("score", sa.Float, nullable=False, comment="0-10"),
        sa.Column("text", sa.Text, nullable=True),
        sa.Column(
            "review_position",
            sa.Integer,
            nullable=True,
            comment="Nth review of this album (First Spin)",
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("user_id", "album_id", name="uq_rating_user_album"),
    )
    op.create_index(
        "ix_ratings_album_position", "ratings", ["album_id", "review_position"]
    )

    # ── 4. taste_profiles ───────────────────────────────────────────
    op.create_table(
        "taste_profiles",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "user_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            unique=True,
            nullable=False,
        ),
        sa.Column("version", sa.Integer, nullable=False),
        sa.Column(
            "genre_vector",
            postgresql.JSONB,
            nullable=False,
            comment="genre -> weight, sums to 1",
        ),
        sa.Column("artist_affinity", postgresql.JSONB, nullable=False),
        sa.Column("decade_histogram", postgresql.JSONB, nullable=False),
        sa.Column("adventurousness", sa.Float, nullable=False),
        sa.Column("polarity", sa.Float, nullable=False),
        sa.Column("rating_mean", sa.Float, nullable=False),
        sa.Column("rating_median", sa.Float, nullable=False),
        sa.Column("rating_stddev", sa.Float, nullable=False),
        sa.Column("rating_skew", sa.Float, nullable=False),
        sa.Column(
            "rating_tendency",
            sa.String,
            nullable=False,
            comment="harsh / balanced / lenient",
        ),
        sa.Column(
            "review_depth",
            sa.String,
            nullable=False,
            comment="rater / writer / essayist",
        ),
        sa.Column("primary_archetype", sa.String, nullable=False),
        sa.Column("secondary_archetype", sa.String, nullable=True),
        sa.Column("archetype_confidence", sa.Float, nullable=False),
        sa.Column(
            "confidence_level",
            sa.String,
            nullable=False,
            comment="provisional / complete",
        ),
        sa.Column("review_count", sa.Integer, nullable=False),
        sa.Column("top_genres", postgresql.JSONB, nullable=False),
        sa.Column("top_artists", postgresql.JSONB, nullable=False),
        sa.Column(
            "listening_signature",
            postgresql.JSONB,
            nullable=False,
            server_default="{}",
            comment="mode -> activation, sums to 1",
        ),
        sa.Column(
            "computed_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )

    # ── 5. taste_profile_snapshots ──────────────────────────────────
    op.create_table(
        "taste_profile_snapshots",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "user_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            index=True,
            nullable=False,
        ),
        sa.Column("year", sa.Integer, nullable=False),
        sa.Column("month", sa.Integer, nullable=False),
        sa.Column("version", sa.Integer, nullable=False),
        sa.Column("genre_vector", postgresql.JSONB, nullable=False),
        sa.Column("primary_archetype", sa.String, nullable=False),
        sa.Column("adventurousness", sa.Float, nullable=False),
        sa.Column("polarity", sa.Float, nullable=False),
        sa.Column("review_count", sa.Integer, nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.UniqueConstraint("user_id", "year", "month", name="uq_snapshot_user_month"),
    )

    # ── 6. wax_wallets ──────────────────────────────────────────────
    op.create_table(
        "wax_wallets",
        sa.Column(
            "user_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("balance", sa.Integer, server_default="0", nullable=False),
        sa.Column("lifetime_earned", sa.Integer, server_default="0", nullable=False),
        sa.Column("lifetime_spent", sa.Integer, server_default="0", nullable=False),
        sa.Column("weekly_earned", sa.Integer, server_default="0", nullable=False),
        sa.Column("weekly_reset_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("current_streak", sa.Integer, server_default="0", nullable=False),
        sa.Column("last_daily_claim_on", sa.Date, nullable=True),
        sa.Column("last_review_reward_on", sa.Date, nullable=True),
        sa.Column("is_frozen", sa.Boolean, server_default="false", nullable=False),
        sa.Column("frozen_reason", sa.String, nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )

    # ── 7. wax_transactions ─────────────────────────────────────────
    op.create_table(
        "wax_transactions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "user_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "amount",
            sa.Integer,
            nullable=False,
            comment="Signed delta; negative for spends",
        ),
        sa.Column("type", sa.String, nullable=False),
        sa.Column("description", sa.String, nullable=False),
        sa.Column(
            "metadata",
            postgresql.JSONB,
            nullable=True,
            comment="Extra metadata (column name: metadata)",
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index(
        "ix_wax_transactions_user_created",
        "wax_transactions",
        ["user_id", "created_at"],
    )

    # ── 8. first_spin_badges ────────────────────────────────────────
    op.create_table(
        "first_spin_badges",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "user_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "album_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("albums.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "badge_type",
            sa.String,
            nullable=False,
            comment="GOLD / SILVER / BRONZE",
        ),
        sa.Column("position", sa.Integer, nullable=False),
        sa.Column("wax_awarded", sa.Integer, nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.UniqueConstraint("user_id", "album_id", name="uq_first_spin_user_album"),
    )


def downgrade() -> None:
    # Drop in reverse order (children / dependents first).
    op.drop_table("first_spin_badges")

    op.drop_index(
        "ix_wax_transactions_user_created", table_name="wax_transactions"
    )
    op.drop_table("wax_transactions")
    op.drop_table("wax_wallets")

    op.drop_table("taste_profile_snapshots")
    op.drop_table("taste_profiles")

    op.drop_index("ix_ratings_album_position", table_name="ratings")
    op.drop_table("ratings")
    op.drop_table("albums")
    op.drop_table("users")
