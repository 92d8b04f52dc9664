"""002: create listings table

Revision ID: 002
Revises: 001
Create Date: 2026-10-19

Only the columns the trade core reads or flips. Title, media, category and
search fields belong to the catalogue service and are added by its own
migrations.
"""
from typing import Sequence, Union
from alembic import op

revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE listings (
            id              VARCHAR(64)     PRIMARY KEY,
            seller_id       VARCHAR(64)     NOT NULL,
            title           VARCHAR(255)    NOT NULL,
            price           BIGINT          NOT NULL,
            is_available    BOOLEAN         NOT NULL DEFAULT TRUE,
            status          VARCHAR(20)     NOT NULL DEFAULT 'ACTIVE',
            trade_count     INT             NOT NULL DEFAULT 0,
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_listings_price_gte_0      CHECK (price >= 0),
            CONSTRAINT ck_listings_trade_count_gte_0 CHECK (trade_count >= 0),
            CONSTRAINT ck_listings_status CHECK (
                status IN ('ACTIVE', 'IN_TRADE', 'COMPLETED')
            ),
            CONSTRAINT ck_listings_available_status CHECK (
                NOT is_available OR status = 'ACTIVE'
            )
        );
    """)
    op.execute("CREATE INDEX idx_listings_seller ON listings (seller_id, status);")
    op.execute("""
        CREATE TRIGGER trg_listings_updated_at
            BEFORE UPDATE ON listings
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)
    op.execute("COMMENT ON TABLE listings IS 'Marketplace listings: price in kobo, availability driven by trades';")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS listings CASCADE;")
