"""Post-restore consistency repair.

Derived state that plain row inserts do not maintain is rebuilt here, on
the restore transaction, after every collection has been inserted.
"""

import logging

from governor_backup.adapters.base import Transaction

logger = logging.getLogger(__name__)

REFRESH_NOTIFICATION_DEFAULTS_SQL = "REFRESH MATERIALIZED VIEW notification_defaults"


async def refresh_notification_defaults(tx: Transaction) -> None:
    """Rebuild the ``notification_defaults`` materialized view.

    Idempotent.  The view combines notification types and targets, so it
    is stale after a restore until refreshed.
    """
    logger.debug("Refreshing notification_defaults")
    await tx.execute(REFRESH_NOTIFICATION_DEFAULTS_SQL)
