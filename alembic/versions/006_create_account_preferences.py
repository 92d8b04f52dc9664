"""006: create account_preferences and account_activity tables

Revision ID: 006
Revises: 005
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "006"
down_revision: Union[str, None] = "005"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE account_preferences (
            account_id      VARCHAR(64)     PRIMARY KEY,
            categories      TEXT[],
            location        VARCHAR(255),
            price_min       BIGINT,
            price_max       BIGINT,
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_account_preferences_price CHECK (
                price_min IS NULL OR price_max IS NULL OR (price_min >= 0 AND price_min <= price_max)
            )
        );
    """)
    op.execute("""
        CREATE TRIGGER trg_account_preferences_updated_at
            BEFORE UPDATE ON account_preferences
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)

    op.execute("""
        CREATE TABLE account_activity (
            account_id          VARCHAR(64)     PRIMARY KEY,
            recent_searches     TEXT[]          NOT NULL DEFAULT '{}',
            viewed_listing_ids  TEXT[]          NOT NULL DEFAULT '{}',
            created_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_account_activity_searches_cap CHECK (cardinality(recent_searches) <= 10),
            CONSTRAINT ck_account_activity_viewed_cap   CHECK (cardinality(viewed_listing_ids) <= 50)
        );
    """)
    op.execute("""
        CREATE TRIGGER trg_account_activity_updated_at
            BEFORE UPDATE ON account_activity
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS account_activity CASCADE;")
    op.execute("DROP TABLE IF EXISTS account_preferences CASCADE;")
