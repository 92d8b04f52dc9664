"""004: create trade_events table

Revision ID: 004
Revises: 003
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "004"
down_revision: Union[str, None] = "003"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE trade_events (
            id              BIGSERIAL       PRIMARY KEY,
            trade_id        VARCHAR(36)     NOT NULL REFERENCES trades (id),
            event_type      VARCHAR(30)     NOT NULL,
            recipient_id    VARCHAR(64)     NOT NULL,
            payload         JSONB           NOT NULL,
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_trade_event_type CHECK (
                event_type IN (
                    'TRADE_PROPOSED',
                    'TRADE_ACCEPTED',
                    'TRADE_REJECTED',
                    'TRADE_CANCELLED',
                    'TRADE_COMPLETED',
                    'TRADE_EXPIRED'
                )
            )
        );
    """)
    op.execute("CREATE INDEX idx_trade_events_trade ON trade_events (trade_id, created_at);")
    op.execute("CREATE INDEX idx_trade_events_recipient ON trade_events (recipient_id, created_at DESC);")
    op.execute("COMMENT ON TABLE trade_events IS 'Trade lifecycle events, Append-Only; written in the transition transaction';")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS trade_events CASCADE;")
