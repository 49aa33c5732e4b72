"""account_linking_baseline

Creates oauth_states, platform_credentials, rate_limit_windows and
ad_accounts from the model metadata.

Revision ID: 5b1e7c2a9d40
Revises: 
Create Date: 2026-10-19 09:12:41.018342

"""
from typing import Sequence, Union

from alembic import op

from adlink.db_base import Base
import adlink.models  # noqa: F401 - required to register all model metadata


# revision identifiers, used by Alembic.
revision: str = '5b1e7c2a9d40'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    bind = op.get_bind()
    Base.metadata.create_all(bind=bind)


def downgrade() -> None:
    bind = op.get_bind()
    Base.metadata.drop_all(bind=bind)
