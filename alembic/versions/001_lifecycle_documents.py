"""Create lifecycle_documents.

Revision ID: 001
Create Date: 2026-10-16

One row per uploaded document. ``deleted_at`` and ``purge_at`` are Unix
epoch seconds and stay NULL until the document reaches ``deleted``.
"""

from alembic import op

revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute(
        """
        CREATE TABLE lifecycle_documents (
            document_id TEXT PRIMARY KEY,
            file_name TEXT NOT NULL,
            size BIGINT NOT NULL CHECK (size >= 0),
            mimetype TEXT NOT NULL,
            status TEXT NOT NULL DEFAULT 'pending'
                CHECK (status IN ('pending', 'running', 'finished', 'failed',
                                  'deleting', 'deleted', 'delete_failed')),

            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            deleted_at BIGINT,
            purge_at BIGINT,

            -- deletion stamps are always written together
            CHECK ((deleted_at IS NULL) = (purge_at IS NULL))
        )
    """
    )

    # Keyset pagination: unfiltered listing and per-status listing
    op.execute(
        """
        CREATE INDEX ix_lifecycle_documents_created
        ON lifecycle_documents (created_at, document_id)
    """
    )
    op.execute(
        """
        CREATE INDEX ix_lifecycle_documents_status_created
        ON lifecycle_documents (status, created_at, document_id)
    """
    )

    # Candidates for a purge sweep
    op.execute(
        """
        CREATE INDEX ix_lifecycle_documents_purge_at
        ON lifecycle_documents (purge_at)
        WHERE purge_at IS NOT NULL
    """
    )


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS lifecycle_documents")
