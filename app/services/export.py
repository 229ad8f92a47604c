import csv
import io
from typing import Iterable, Optional, Tuple

from .filters import TransactionType


CSV_HEADER = ["Date", "Merchant", "Category", "Amount", "Type", "Added By", "Notes"]


def transactions_csv(rows: Iterable[Tuple[object, Optional[str], Optional[str]]]) -> str:
    """Render ``(transaction, category_name, added_by)`` rows as CSV.

    Fields holding a comma, quote or newline are wrapped in double quotes
    with inner quotes doubled; everything else is written bare.
    """
    buf = io.StringIO()
    writer = csv.writer(buf, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for txn, category_name, added_by in rows:
        writer.writerow(
            [
                txn.date.isoformat(),
                txn.merchant_name or "",
                category_name or "Uncategorized",
                f"{txn.amount:.2f}",
                "Joint" if txn.is_joint else "Personal",
                added_by or "Unknown",
                txn.description or "",
            ]
        )
    # No trailing newline after the last row
    return buf.getvalue().rstrip("\n")


def export_filename(txn_type: TransactionType, start: str, end: str) -> str:
    suffix = "" if txn_type == TransactionType.ALL else f"-{txn_type.value}"
    return f"duo-transactions{suffix}-{start}-to-{end}.csv"
