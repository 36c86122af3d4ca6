"""initial schema creation

Revision ID: 20261001_init_schema
Revises:
Create Date: 2026-10-01 00:00:00

"""
from alembic import op


# revision identifiers, used by Alembic.
revision = '20261001_init_schema'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Bootstrap an empty database to the current model schema
    from moveeazy.models import Base
    Base.metadata.create_all(op.get_bind())


def downgrade() -> None:
    from moveeazy.models import Base
    Base.metadata.drop_all(op.get_bind())
