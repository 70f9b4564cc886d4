"""Create ai_usage_metrics: append-only cost log, one row per successful AI call.

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""
from alembic import op

revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE IF NOT EXISTS ai_usage_metrics (
            id BIGSERIAL PRIMARY KEY,
            function_name VARCHAR(255) NOT NULL,
            provider VARCHAR(50) NOT NULL,
            model VARCHAR(100) NOT NULL,
            input_tokens INTEGER NOT NULL DEFAULT 0,
            output_tokens INTEGER NOT NULL DEFAULT 0,
            cost_usd NUMERIC(12, 6) NOT NULL,
            request_id VARCHAR(255),
            user_id VARCHAR(255),
            execution_time_ms INTEGER,
            retry_count INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS idx_ai_usage_created_at ON ai_usage_metrics(created_at)")
    op.execute("CREATE INDEX IF NOT EXISTS idx_ai_usage_function ON ai_usage_metrics(function_name, created_at)")
    op.execute("CREATE INDEX IF NOT EXISTS idx_ai_usage_user ON ai_usage_metrics(user_id) WHERE user_id IS NOT NULL")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS ai_usage_metrics")
