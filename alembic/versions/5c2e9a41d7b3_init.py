"""init

Revision ID: 5c2e9a41d7b3
Revises:
Create Date: 2026-10-18 10:02:11.418305

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "5c2e9a41d7b3"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "snippets",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("title", sa.String(100), nullable=False),
        sa.Column("content", sa.Text, nullable=False),
        sa.Column("created", sa.DateTime, nullable=False),
        sa.Column("expires", sa.DateTime, nullable=False),
    )
    op.create_index("idx_snippets_created", "snippets", ["created"])

    # Server-side session data, keyed by the token in the session cookie
    op.create_table(
        "sessions",
        sa.Column("token", sa.String(43), primary_key=True),
        sa.Column("data", sa.JSON, nullable=False),
        sa.Column("expiry", sa.DateTime, nullable=False),
    )
    op.create_index("idx_sessions_expiry", "sessions", ["expiry"])


def downgrade() -> None:
    op.drop_table("sessions")
    op.drop_table("snippets")
