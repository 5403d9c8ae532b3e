"""reconcile_store_schema

Brings any historically deployed store (integer or UUID keys, free-text
category tags, single image_url, text roles) onto the current models by
running the schema reconciler inside the migration transaction.

Revision ID: 0001_reconcile
Revises:
Create Date: 2025-01-24 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op

from libs.common.config import get_settings
from services.store_service.reconciler import Reconciler


# revision identifiers, used by Alembic.
revision: str = "0001_reconcile"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema - reconcile store tables, constraints and policies."""
    settings = get_settings()
    Reconciler(
        op.get_bind(), accept_data_loss=settings.RECONCILE_ACCEPT_DATA_LOSS
    ).run()


def downgrade() -> None:
    """Reconciliation is forward-only; restore from a backup instead."""
    raise NotImplementedError("The store reconciliation cannot be downgraded")
