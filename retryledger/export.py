"""Failure reports and record dumps for inspecting the ledger."""

import csv
import json
from collections import defaultdict
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence, Union

from retryledger.models import OperationRecord, OperationStatus

if TYPE_CHECKING:
    from retryledger.ledger import Ledger


# Bookkeeping columns, in report order
REPORT_FIELDS = (
    "id",
    "operation_type",
    "operation_id",
    "endpoint",
    "method",
    "status",
    "retry_count",
    "max_retries",
    "next_retry_at",
    "error_message",
    "response_code",
    "created_at",
    "completed_at",
)
PAYLOAD_FIELDS = ("request_data", "response_data", "metadata")


def report_rows(
    records: Sequence[OperationRecord],
    include_payloads: bool = False,
) -> List[Dict[str, Any]]:
    """Flatten records into JSON-ready rows with a fixed column order.

    Args:
        records: Records to flatten.
        include_payloads: Also include request, response and metadata.
    """
    fields = REPORT_FIELDS + (PAYLOAD_FIELDS if include_payloads else ())
    rows = []
    for record in records:
        data = record.model_dump(mode="json", include=set(fields))
        rows.append({field: data[field] for field in fields})
    return rows


def to_jsonl(
    records: Sequence[OperationRecord],
    path: Union[str, Path],
    include_payloads: bool = True,
) -> None:
    """Write one JSON object per record."""
    with Path(path).open("w", encoding="utf-8") as f:
        for row in report_rows(records, include_payloads):
            f.write(json.dumps(row) + "\n")


def to_csv(
    records: Sequence[OperationRecord],
    path: Union[str, Path],
    include_payloads: bool = False,
) -> None:
    """Write records as CSV. Payload columns hold JSON text.

    The header row is written even when there are no records.
    """
    fields = REPORT_FIELDS + (PAYLOAD_FIELDS if include_payloads else ())
    with Path(path).open("w", encoding="utf-8", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=fields)
        writer.writeheader()
        for row in report_rows(records, include_payloads):
            for field in PAYLOAD_FIELDS:
                if field in row and row[field] is not None:
                    row[field] = json.dumps(row[field])
            writer.writerow(row)


def to_dataframe(
    records: Sequence[OperationRecord],
    include_payloads: bool = False,
) -> "pandas.DataFrame":
    """Load records into a pandas DataFrame with the report columns.

    Raises:
        ImportError: If pandas is not installed.
    """
    try:
        import pandas as pd
    except ImportError:
        raise ImportError(
            "pandas is required for to_dataframe(). "
            "Install it with: pip install retryledger[export]"
        )

    fields = REPORT_FIELDS + (PAYLOAD_FIELDS if include_payloads else ())
    return pd.DataFrame(report_rows(records, include_payloads), columns=list(fields))


def summarize_failures(records: Sequence[OperationRecord]) -> List[Dict[str, Any]]:
    """Group failed records by operation type and error message.

    Non-failed records are ignored. Groups are ordered by count, largest first.

    Returns:
        Rows with operation_type, error_message, count, exhausted (how many
        ran out of retries) and last_failed_at.
    """
    groups: Dict[tuple, Dict[str, Any]] = defaultdict(
        lambda: {"count": 0, "exhausted": 0, "last_failed_at": None}
    )
    for record in records:
        if record.status != OperationStatus.FAILED:
            continue
        group = groups[(record.operation_type, record.error_message)]
        group["count"] += 1
        if record.retry_count >= record.max_retries:
            group["exhausted"] += 1
        last: Optional[datetime] = group["last_failed_at"]
        if last is None or record.completed_at > last:
            group["last_failed_at"] = record.completed_at

    summary = [
        {"operation_type": op_type, "error_message": message, **counts}
        for (op_type, message), counts in groups.items()
    ]
    summary.sort(key=lambda row: (-row["count"], row["operation_type"]))
    return summary


def failure_report(
    ledger: "Ledger",
    path: Union[str, Path],
    operation_type: Optional[str] = None,
    after: Optional[datetime] = None,
    before: Optional[datetime] = None,
) -> int:
    """Write every failed record, payloads included, to a CSV file.

    Args:
        ledger: Ledger to read from.
        path: Output file path.
        operation_type: Only report this operation type.
        after: Only records created after this time.
        before: Only records created before this time.

    Returns:
        Number of records written.
    """
    records = ledger.query(
        status=OperationStatus.FAILED,
        operation_type=operation_type,
        after=after,
        before=before,
    )
    to_csv(records, path, include_payloads=True)
    return len(records)
