"""Pydantic domain models for SplitMe."""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

# ============================================================================
# Trip Models
# ============================================================================


class Participant(BaseModel):
    """A person taking part in a trip."""

    id: str
    name: str
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)


class Expense(BaseModel):
    """A shared expense.

    `paid_by` does not have to be one of `participants`: a payer can cover an
    expense they did not consume and still be credited the full amount.
    """

    id: str
    amount: Decimal = Field(gt=0)
    date: date
    place: str = ""
    description: str = ""
    paid_by: str
    participants: list[str]  # cost-sharing set
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)


class Trip(BaseModel):
    """A trip (the unit that groups participants and expenses)."""

    id: str
    name: str
    slug: str
    locked: bool = False
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)


class TripDetail(BaseModel):
    """A trip together with all of its rows."""

    trip: Trip
    participants: list[Participant]
    expenses: list[Expense]

    def participant_name(self, participant_id: str, default: str = "Unknown") -> str:
        """Resolve a participant id to a display name."""
        for participant in self.participants:
            if participant.id == participant_id:
                return participant.name
        return default


# ============================================================================
# Settlement Models
# ============================================================================


class Settlement(BaseModel):
    """A directed payment from a debtor to a creditor."""

    model_config = ConfigDict(populate_by_name=True)

    from_id: str = Field(alias="from")
    to_id: str = Field(alias="to")
    amount: Decimal


# ============================================================================
# Import Models
# ============================================================================


class ParsedRow(BaseModel):
    """A normalized spreadsheet row awaiting human review."""

    index: int
    include: bool = True
    amount: Decimal | None = None
    date: str  # ISO yyyy-mm-dd
    description: str = ""
    merchant: str | None = None
    currency: str | None = None
    warnings: list[str] = Field(default_factory=list)

    @property
    def is_importable(self) -> bool:
        """Whether this row carries enough data to become an expense."""
        return (
            self.amount is not None
            and self.amount > 0
            and bool(self.description.strip())
        )


class ImportSummary(BaseModel):
    """Counts for a parsed upload."""

    total_rows: int
    valid_rows: int
    invalid_rows: int


class ImportResult(BaseModel):
    """Result of normalizing an uploaded spreadsheet."""

    rows: list[ParsedRow]
    summary: ImportSummary

    @classmethod
    def from_rows(cls, rows: list[ParsedRow]) -> "ImportResult":
        """Build a result, computing the summary from the rows."""
        valid = sum(1 for row in rows if row.is_importable)
        return cls(
            rows=rows,
            summary=ImportSummary(
                total_rows=len(rows),
                valid_rows=valid,
                invalid_rows=len(rows) - valid,
            ),
        )
