"""CSV export of a trip's expenses and settlement plan."""

import csv
import io
from datetime import date
from decimal import Decimal

from .models import Expense, Participant, Settlement

EXPENSE_HEADERS = [
    "Date",
    "Place",
    "Amount",
    "Description",
    "Paid By",
    "Participants",
    "Amount Per Person",
    "Created At",
]

SETTLEMENT_HEADERS = ["From", "To", "Amount"]


def _money(amount: Decimal) -> str:
    return f"{amount:.2f}"


def _write_csv(headers: list[str], rows: list[list[str]]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(headers)
    writer.writerows(rows)
    return buffer.getvalue()


def expenses_to_csv(expenses: list[Expense], participants: list[Participant]) -> str:
    """
    Render expenses as CSV text with participant names resolved.

    Ids that no longer resolve to a participant are shown as "Unknown".
    """
    names = {p.id: p.name for p in participants}

    rows = []
    for expense in expenses:
        sharers = expense.participants
        per_person = expense.amount / len(sharers) if sharers else expense.amount
        rows.append(
            [
                expense.date.isoformat(),
                expense.place,
                _money(expense.amount),
                expense.description,
                names.get(expense.paid_by, "Unknown"),
                "; ".join(names.get(pid, "Unknown") for pid in sharers),
                _money(per_person),
                expense.created_at.strftime("%Y-%m-%d %H:%M:%S"),
            ]
        )

    return _write_csv(EXPENSE_HEADERS, rows)


def settlements_to_csv(
    settlements: list[Settlement], participants: list[Participant]
) -> str:
    """Render settlements as CSV text; unresolved ids are printed as-is."""
    names = {p.id: p.name for p in participants}

    rows = [
        [
            names.get(s.from_id, s.from_id),
            names.get(s.to_id, s.to_id),
            _money(s.amount),
        ]
        for s in settlements
    ]

    return _write_csv(SETTLEMENT_HEADERS, rows)


def export_filename(kind: str, on: date | None = None) -> str:
    """File name for an export, e.g. `splitme-expenses-2024-03-01.csv`."""
    return f"splitme-{kind}-{(on or date.today()).isoformat()}.csv"
