"""005: create favorites table

Revision ID: 005
Revises: 004
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "005"
down_revision: Union[str, None] = "004"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE favorites (
            id              BIGSERIAL       PRIMARY KEY,
            account_id      VARCHAR(64)     NOT NULL,
            listing_id      VARCHAR(64)     NOT NULL REFERENCES listings (id) ON DELETE CASCADE,
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_favorites_account_listing UNIQUE (account_id, listing_id)
        );
    """)
    op.execute("CREATE INDEX idx_favorites_listing ON favorites (listing_id);")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS favorites CASCADE;")
