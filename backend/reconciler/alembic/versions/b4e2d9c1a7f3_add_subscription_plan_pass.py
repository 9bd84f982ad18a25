"""Add plan pass window to subscriptions

Revision ID: b4e2d9c1a7f3
Revises: a1c7e3f0b2d4
Create Date: 2026-10-18

"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "b4e2d9c1a7f3"
down_revision = "a1c7e3f0b2d4"
branch_labels = None
depends_on = None


def upgrade() -> None:
    # pass bought on top of a recurring subscription
    op.add_column("subscriptions", sa.Column("pass_plan", sa.String(length=16), nullable=True))
    op.add_column(
        "subscriptions", sa.Column("pass_end", sa.DateTime(timezone=True), nullable=True)
    )


def downgrade() -> None:
    op.drop_column("subscriptions", "pass_end")
    op.drop_column("subscriptions", "pass_plan")
