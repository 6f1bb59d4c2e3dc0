"""create blog tables

Revision ID: 3c1f9a7be2d4
Revises: 
Create Date: 2025-10-23 11:31:34.000000

"""
from typing import Sequence, Union

from alembic import op
from blogapi import models  # noqa: F401
from blogapi.database import Base


# revision identifiers, used by Alembic.
revision: str = '3c1f9a7be2d4'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create users, categories, posts, comments and access tokens."""
    bind = op.get_bind()
    Base.metadata.create_all(bind)


def downgrade() -> None:
    """Drop every blog table."""
    bind = op.get_bind()
    Base.metadata.drop_all(bind)
