"""initial portfolio schema

Revision ID: 4b7e2a91c0d3
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

from portfolio.tables import metadata


# revision identifiers, used by Alembic.
revision: str = "4b7e2a91c0d3"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    bind = op.get_bind()
    insp = sa.inspect(bind)

    # tables are created in dependency order (idempotent)
    for table in metadata.sorted_tables:
        if not insp.has_table(table.name):
            table.create(bind)

    op.execute(
        sa.text(
            "CREATE INDEX IF NOT EXISTS ix_logged_requests_ip_created "
            "ON logged_requests (ip_address, created_at)"
        )
    )
    op.execute(
        sa.text(
            "CREATE INDEX IF NOT EXISTS ix_translations_locale ON translations (locale)"
        )
    )


def downgrade() -> None:
    bind = op.get_bind()
    op.execute(sa.text("DROP INDEX IF EXISTS ix_translations_locale"))
    op.execute(sa.text("DROP INDEX IF EXISTS ix_logged_requests_ip_created"))
    for table in reversed(metadata.sorted_tables):
        table.drop(bind, checkfirst=True)
