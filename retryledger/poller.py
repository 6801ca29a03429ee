"""Helper for polling loops that drain ready records."""

import logging
from datetime import datetime
from typing import Callable, Dict, Optional

from retryledger.errors import ConcurrentUpdateError
from retryledger.ledger import Ledger
from retryledger.models import OperationRecord, OperationStatus, Payload
from retryledger.utils import ensure_utc, utc_now

logger = logging.getLogger(__name__)

Handler = Callable[[OperationRecord], Payload]


def process_ready(
    ledger: Ledger,
    handler: Handler,
    *,
    now: Optional[datetime] = None,
    limit: int = 50,
    include_pending: bool = False,
    actor_id: Optional[str] = None,
) -> Dict[str, int]:
    """Run handler for every record due for an attempt.

    The handler performs the external call and returns the response body.
    Raising PermanentOperationError fails the record; any other exception
    schedules a retry. Records another worker updated first are skipped.

    Args:
        ledger: The ledger to poll.
        handler: Callable performing the external call for one record.
        now: Poll time. Defaults to the current UTC time.
        limit: Maximum records picked per call.
        include_pending: Also pick records that were never attempted.
        actor_id: Recorded in the audit trail for each transition.

    Returns:
        Counts keyed by picked, succeeded, retrying, failed and conflicts.
    """
    now = ensure_utc(now) if now is not None else utc_now()

    records = []
    if include_pending:
        records.extend(ledger.select_pending(limit=limit))
    remaining = limit - len(records)
    if remaining > 0:
        records.extend(ledger.select_ready_for_retry(now, limit=remaining))

    summary = {"picked": len(records), "succeeded": 0, "retrying": 0, "failed": 0, "conflicts": 0}

    for record in records:
        try:
            with ledger.attempt(record, now=now, actor_id=actor_id, suppress=True) as ctx:
                ctx.respond(handler(record))
        except ConcurrentUpdateError:
            summary["conflicts"] += 1
            continue

        if record.status == OperationStatus.SUCCESS:
            summary["succeeded"] += 1
        elif record.status == OperationStatus.RETRYING:
            summary["retrying"] += 1
        else:
            summary["failed"] += 1

    if records:
        logger.info(
            "Processed %d ledger records: %d succeeded, %d retrying, %d failed, %d conflicts",
            summary["picked"],
            summary["succeeded"],
            summary["retrying"],
            summary["failed"],
            summary["conflicts"],
        )
    return summary
