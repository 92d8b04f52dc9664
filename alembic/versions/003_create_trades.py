"""003: create trades and trade_offer_lines tables

Revision ID: 003
Revises: 002
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "003"
down_revision: Union[str, None] = "002"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE trades (
            id                  VARCHAR(36)     PRIMARY KEY,
            proposer_id         VARCHAR(64)     NOT NULL,
            receiver_id         VARCHAR(64)     NOT NULL,
            target_listing_id   VARCHAR(64)     NOT NULL REFERENCES listings (id),
            status              VARCHAR(20)     NOT NULL DEFAULT 'PENDING',
            estimated_value     BIGINT          NOT NULL,
            target_value        BIGINT          NOT NULL,
            fairness            VARCHAR(10)     NOT NULL,
            message             TEXT,
            meeting_location    VARCHAR(255),
            meeting_time        TIMESTAMPTZ,
            completion_code     VARCHAR(6),
            completion_notes    TEXT,
            rejection_reason    TEXT,
            created_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            completed_at        TIMESTAMPTZ,
            CONSTRAINT ck_trades_status CHECK (
                status IN ('PENDING', 'ACCEPTED', 'REJECTED', 'CANCELLED', 'EXPIRED', 'COMPLETED')
            ),
            CONSTRAINT ck_trades_fairness       CHECK (fairness IN ('FAIR', 'UNFAIR')),
            CONSTRAINT ck_trades_diff_users     CHECK (proposer_id != receiver_id),
            CONSTRAINT ck_trades_values_gte_0   CHECK (estimated_value >= 0 AND target_value >= 0),
            CONSTRAINT ck_trades_rejection      CHECK (
                status != 'REJECTED' OR rejection_reason IS NOT NULL
            ),
            CONSTRAINT ck_trades_completion     CHECK (
                status != 'COMPLETED' OR (completion_code IS NOT NULL AND completed_at IS NOT NULL)
            )
        );
    """)
    # At most one live trade per target listing; the lifecycle service maps a
    # violation of this index to ListingUnavailableError.
    op.execute("""
        CREATE UNIQUE INDEX uq_trades_active_target
        ON trades (target_listing_id)
        WHERE status IN ('PENDING', 'ACCEPTED');
    """)
    op.execute("CREATE INDEX idx_trades_proposer ON trades (proposer_id, created_at DESC, id DESC);")
    op.execute("CREATE INDEX idx_trades_receiver ON trades (receiver_id, created_at DESC, id DESC);")
    op.execute("""
        CREATE INDEX idx_trades_pending_created
        ON trades (created_at)
        WHERE status = 'PENDING';
    """)
    op.execute("COMMENT ON TABLE trades IS 'Barter trades: one target listing, one proposer offer, value snapshot at proposal';")

    op.execute("""
        CREATE TABLE trade_offer_lines (
            id              BIGSERIAL       PRIMARY KEY,
            trade_id        VARCHAR(36)     NOT NULL REFERENCES trades (id) ON DELETE CASCADE,
            position        SMALLINT        NOT NULL,
            line_type       VARCHAR(10)     NOT NULL,
            listing_id      VARCHAR(64),
            owner_id        VARCHAR(64),
            declared_value  BIGINT,
            amount          BIGINT,
            description     VARCHAR(500),
            hours           NUMERIC(7, 2),
            CONSTRAINT uq_trade_offer_lines_position UNIQUE (trade_id, position),
            CONSTRAINT ck_trade_offer_lines_type CHECK (line_type IN ('LISTING', 'CASH', 'SERVICE')),
            CONSTRAINT ck_trade_offer_lines_shape CHECK (
                (line_type = 'LISTING' AND listing_id IS NOT NULL AND owner_id IS NOT NULL
                    AND declared_value >= 0)
                OR (line_type = 'CASH' AND amount >= 0)
                OR (line_type = 'SERVICE' AND description IS NOT NULL
                    AND hours > 0 AND hours <= 1000)
            )
        );
    """)
    op.execute("CREATE INDEX idx_trade_offer_lines_listing ON trade_offer_lines (listing_id) WHERE listing_id IS NOT NULL;")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS trade_offer_lines CASCADE;")
    op.execute("DROP TABLE IF EXISTS trades CASCADE;")
