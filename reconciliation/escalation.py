from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Sequence

from storage.database import Database

logger = logging.getLogger(__name__)

INCIDENT_RECONCILIATION_REQUIRED = "reconciliation_required"
SEVERITY_CRITICAL = "critical"


class ReconciliationEscalator:
    """Operator-visible channel for venue/store divergence.

    Used when a venue accepted an order but the local record could not be
    written. Nothing here retries or compensates: an operator reconciles by hand.
    """

    def __init__(self, db: Database):
        self.db = db

    async def escalate(
        self,
        *,
        operation: str,
        venue_order_ids: Sequence[str],
        symbol: str,
        quantity: float,
        user_id: Optional[str],
        request: Optional[Dict[str, Any]] = None,
        error: Optional[BaseException] = None,
    ) -> None:
        ids = ", ".join(venue_order_ids)
        logger.critical(
            "MANUAL RECONCILIATION REQUIRED: %s succeeded on venue but local persistence failed "
            "(venue_order_ids=%s symbol=%s quantity=%s user=%s error=%s request=%s)",
            operation,
            ids,
            symbol,
            quantity,
            user_id,
            error,
            request,
        )
        try:
            await self.db.create_incident(
                incident_type=INCIDENT_RECONCILIATION_REQUIRED,
                severity=SEVERITY_CRITICAL,
                description=f"{operation} accepted by venue ({ids}) but not persisted locally: {error}",
                user_id=user_id,
                symbol=symbol,
                order_id=ids,
                metadata={
                    "operation": operation,
                    "venue_order_ids": list(venue_order_ids),
                    "quantity": quantity,
                    "request": request,
                    "error": str(error) if error else None,
                },
            )
        except Exception:
            # The store is likely what failed; the critical log line above is the record.
            logger.exception("Could not record reconciliation incident for %s", ids)
