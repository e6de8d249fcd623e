"""create track store tables

Revision ID: a1c4e7b20f11
Revises:
Create Date: 2026-10-17 10:00:00.000000

Hey future me - this is the WHOLE schema the sync and the workers share!

Tables:
- tracks: one row per Navidrome track, upsert key navidrome_id
- navidrome_syncs: one audit row per reconciliation session
- navidrome_track_sync_status: last_synced_at per track (PK = track_id)
- track_audio_jobs / track_embedding_jobs: one job per track per kind

Every child table points at tracks.id with ON DELETE CASCADE, so deleting a
track takes its sync status and both jobs with it. SQLite only honours that
with PRAGMA foreign_keys=ON, which Database sets per connection.
"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic
revision: str = "a1c4e7b20f11"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JOB_TABLES = ("track_audio_jobs", "track_embedding_jobs")


def upgrade() -> None:
    """Create track, sync and job tables."""
    op.create_table(
        "tracks",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("navidrome_id", sa.String(255), nullable=False),
        sa.Column("title", sa.String(512), nullable=False),
        sa.Column("artist", sa.String(512), nullable=False),
        sa.Column("artist_id", sa.String(255), nullable=True),
        sa.Column("album", sa.String(512), nullable=False),
        sa.Column("album_id", sa.String(255), nullable=True),
        sa.Column("album_artist", sa.String(512), nullable=True),
        sa.Column("genre", sa.String(255), nullable=True),
        sa.Column("year", sa.Integer, nullable=True),
        sa.Column("track_number", sa.Integer, nullable=True),
        sa.Column("disc_number", sa.Integer, nullable=True),
        sa.Column("duration_seconds", sa.Integer, nullable=False),
        sa.Column("bitrate", sa.Integer, nullable=True),
        sa.Column("file_size", sa.Integer, nullable=True),
        sa.Column("path", sa.Text, nullable=False),
        sa.Column("content_type", sa.String(100), nullable=True),
        sa.Column("suffix", sa.String(20), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("navidrome_id", name="uq_tracks_navidrome_id"),
    )

    op.create_table(
        "navidrome_syncs",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("tracks_processed", sa.Integer, nullable=False),
        sa.Column("tracks_updated", sa.Integer, nullable=False),
        sa.Column("tracks_deleted", sa.Integer, nullable=False),
    )

    op.create_table(
        "navidrome_track_sync_status",
        sa.Column(
            "track_id",
            sa.Integer,
            sa.ForeignKey("tracks.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("navidrome_id", sa.String(255), nullable=False),
        sa.Column("last_synced_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "sync_id",
            sa.Integer,
            sa.ForeignKey("navidrome_syncs.id"),
            nullable=False,
        ),
    )
    op.create_index(
        "ix_navidrome_track_sync_status_navidrome_id",
        "navidrome_track_sync_status",
        ["navidrome_id"],
    )

    for table in JOB_TABLES:
        op.create_table(
            table,
            sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
            sa.Column(
                "track_id",
                sa.Integer,
                sa.ForeignKey("tracks.id", ondelete="CASCADE"),
                nullable=False,
            ),
            sa.Column("status", sa.String(20), nullable=False),
            sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("error", sa.Text, nullable=True),
            sa.Column("attempts", sa.Integer, nullable=False, server_default="0"),
            sa.Column("last_attempt_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.UniqueConstraint("track_id", name=f"uq_{table}_track_id"),
        )
        # list_pending: WHERE status = 'pending' ORDER BY id
        op.create_index(f"ix_{table}_status_id", table, ["status", "id"])


def downgrade() -> None:
    """Drop everything (children first)."""
    for table in JOB_TABLES:
        op.drop_index(f"ix_{table}_status_id", table_name=table)
        op.drop_table(table)
    op.drop_index(
        "ix_navidrome_track_sync_status_navidrome_id",
        table_name="navidrome_track_sync_status",
    )
    op.drop_table("navidrome_track_sync_status")
    op.drop_table("navidrome_syncs")
    op.drop_table("tracks")
