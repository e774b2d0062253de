"""Service layer that composes persistence, settlement and import logic.

This module provides the request-validate-persist operations behind the CLI:
trips, participants and expenses are validated here before they reach the
database, and the pure settlement / spreadsheet functions are run against a
trip's stored rows.
"""

import logging
import re
import uuid
from datetime import date, datetime
from decimal import Decimal, InvalidOperation

from .config import Settings
from .db import Database
from .exceptions import (
    ExpenseNotFoundError,
    ParticipantInUseError,
    ParticipantNotFoundError,
    TripLockedError,
    TripNotFoundError,
    ValidationError,
)
from .models import (
    Expense,
    ImportResult,
    ParsedRow,
    Participant,
    Settlement,
    Trip,
    TripDetail,
)
from .settlements import compute_balances, compute_settlements
from .spreadsheet import parse_spreadsheet

logger = logging.getLogger(__name__)

MAX_SLUG_LENGTH = 64


def slugify(name: str) -> str:
    """
    Turn a trip name into a URL-friendly slug.

    Example:
        "Lisbon 2024!" -> "lisbon-2024"
    """
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return slug[:MAX_SLUG_LENGTH]


def new_id() -> str:
    """Generate a new opaque row identifier."""
    return str(uuid.uuid4())


def to_amount(value: Decimal | float | int | str) -> Decimal:
    """
    Validate and convert an expense amount.

    Raises:
        ValidationError: If the value is not a finite positive number
    """
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation as e:
        raise ValidationError(
            f"amount must be a positive number, got {value!r}"
        ) from e
    if not amount.is_finite() or amount <= 0:
        raise ValidationError(f"amount must be a positive number, got {value!r}")
    return amount


class TripService:
    """Service for managing trips and settling their expenses."""

    def __init__(self, settings: Settings, database: Database):
        """Initialize the trip service."""
        self.settings = settings
        self.db = database

    # ========================================================================
    # Trips
    # ========================================================================

    def create_trip(self, name: str, slug: str | None = None) -> Trip:
        """
        Create a trip with a unique slug.

        The slug is derived from `slug` if given, otherwise from the name.
        Collisions get a numeric suffix (`paris`, `paris-1`, `paris-2`, ...).

        Args:
            name: Display name of the trip
            slug: Optional preferred slug

        Returns:
            The created trip
        """
        name = name.strip()
        if not name:
            raise ValidationError("name required")

        base_slug = slugify(slug) if slug else slugify(name)
        if not base_slug:
            base_slug = "trip"

        candidate = base_slug
        attempt = 1
        while self.db.slug_exists(candidate):
            candidate = f"{base_slug}-{attempt}"
            attempt += 1

        now = datetime.now()
        trip = Trip(
            id=new_id(), name=name, slug=candidate, created_at=now, updated_at=now
        )
        self.db.save_trip(trip)

        logger.info(f"Created trip '{trip.name}' ({trip.slug})")
        return trip

    def list_trips(self) -> list[Trip]:
        """List all trips."""
        return self.db.list_trips()

    def get_trip(self, slug: str) -> TripDetail:
        """
        Load a trip with its participants and expenses.

        Raises:
            TripNotFoundError: If no trip has this slug
        """
        trip = self._require_trip(slug)
        return TripDetail(
            trip=trip,
            participants=self.db.list_participants(trip.id),
            expenses=self.db.list_expenses(trip.id),
        )

    def set_locked(self, slug: str, locked: bool) -> Trip:
        """Lock or unlock a trip against further changes."""
        trip = self._require_trip(slug)
        now = datetime.now()
        self.db.set_trip_locked(trip.id, locked, now)

        logger.info(f"Trip {slug} {'locked' if locked else 'unlocked'}")
        return trip.model_copy(update={"locked": locked, "updated_at": now})

    def _require_trip(self, slug: str) -> Trip:
        trip = self.db.get_trip_by_slug(slug)
        if trip is None:
            raise TripNotFoundError(slug)
        return trip

    def _require_unlocked(self, slug: str) -> Trip:
        trip = self._require_trip(slug)
        if trip.locked:
            raise TripLockedError(slug)
        return trip

    # ========================================================================
    # Participants
    # ========================================================================

    def add_participant(self, slug: str, name: str) -> Participant:
        """Add a participant to a trip."""
        name = name.strip()
        if not name:
            raise ValidationError("name required")

        trip = self._require_unlocked(slug)
        now = datetime.now()
        participant = Participant(
            id=new_id(), name=name, created_at=now, updated_at=now
        )
        self.db.save_participant(trip.id, participant)

        logger.info(f"Added participant '{name}' to {slug}")
        return participant

    def remove_participant(self, slug: str, participant_id: str):
        """
        Remove a participant that no expense refers to.

        Raises:
            ParticipantInUseError: If the participant paid for or shares an expense
            ParticipantNotFoundError: If the participant is not in the trip
        """
        trip = self._require_unlocked(slug)

        for expense in self.db.list_expenses(trip.id):
            if (
                participant_id == expense.paid_by
                or participant_id in expense.participants
            ):
                raise ParticipantInUseError(participant_id, expense.id)

        if not self.db.delete_participant(trip.id, participant_id):
            raise ParticipantNotFoundError(participant_id)

        logger.info(f"Removed participant {participant_id} from {slug}")

    # ========================================================================
    # Expenses
    # ========================================================================

    def _validate_members(
        self, trip: Trip, paid_by: str | None, participants: list[str] | None
    ):
        roster = {p.id for p in self.db.list_participants(trip.id)}

        if paid_by is not None and paid_by not in roster:
            raise ValidationError(f"payer is not a participant: {paid_by}")
        if participants is not None:
            if not participants:
                raise ValidationError("participants must be a non-empty list")
            if len(set(participants)) != len(participants):
                raise ValidationError("participants must not contain duplicates")
            for participant_id in participants:
                if participant_id not in roster:
                    raise ValidationError(f"participant not found: {participant_id}")

    def add_expense(
        self,
        slug: str,
        amount: Decimal | float | int | str,
        paid_by: str,
        participants: list[str],
        expense_date: date | None = None,
        place: str = "",
        description: str = "",
    ) -> Expense:
        """
        Record an expense on a trip.

        Args:
            slug: Trip slug
            amount: Positive amount
            paid_by: Id of the participant who paid
            participants: Ids of the participants sharing the cost
            expense_date: Date of the expense (defaults to today)
            place: Where the money was spent
            description: What it was for

        Returns:
            The stored expense
        """
        value = to_amount(amount)
        trip = self._require_unlocked(slug)
        self._validate_members(trip, paid_by, participants)

        now = datetime.now()
        expense = Expense(
            id=new_id(),
            amount=value,
            date=expense_date or date.today(),
            place=place,
            description=description,
            paid_by=paid_by,
            participants=list(participants),
            created_at=now,
            updated_at=now,
        )
        self.db.save_expense(trip.id, expense)

        logger.info(f"Added expense {expense.id} ({value}) to {slug}")
        return expense

    def update_expense(
        self,
        slug: str,
        expense_id: str,
        amount: Decimal | float | int | str | None = None,
        paid_by: str | None = None,
        participants: list[str] | None = None,
        expense_date: date | None = None,
        place: str | None = None,
        description: str | None = None,
    ) -> Expense:
        """Change the given fields of an expense; None leaves a field as is."""
        value = to_amount(amount) if amount is not None else None
        trip = self._require_unlocked(slug)

        existing = self.db.get_expense(trip.id, expense_id)
        if existing is None:
            raise ExpenseNotFoundError(expense_id)
        self._validate_members(trip, paid_by, participants)

        changes: dict = {"updated_at": datetime.now()}
        if value is not None:
            changes["amount"] = value
        if paid_by is not None:
            changes["paid_by"] = paid_by
        if participants is not None:
            changes["participants"] = list(participants)
        if expense_date is not None:
            changes["date"] = expense_date
        if place is not None:
            changes["place"] = place
        if description is not None:
            changes["description"] = description

        updated = existing.model_copy(update=changes)
        self.db.update_expense(trip.id, updated)

        logger.info(f"Updated expense {expense_id} on {slug}")
        return updated

    def delete_expense(self, slug: str, expense_id: str):
        """Delete an expense from a trip."""
        trip = self._require_unlocked(slug)
        if not self.db.delete_expense(trip.id, expense_id):
            raise ExpenseNotFoundError(expense_id)

        logger.info(f"Deleted expense {expense_id} from {slug}")

    # ========================================================================
    # Settlement
    # ========================================================================

    def compute_trip_balances(self, slug: str) -> dict[str, Decimal]:
        """Net balance per participant for a trip."""
        detail = self.get_trip(slug)
        return compute_balances(detail.expenses, detail.participants)

    def compute_trip_settlements(self, slug: str) -> list[Settlement]:
        """Payments that settle a trip."""
        detail = self.get_trip(slug)
        settlements = compute_settlements(detail.expenses, detail.participants)

        logger.debug(
            f"Computed {len(settlements)} settlements from "
            f"{len(detail.expenses)} expenses for {slug}"
        )
        return settlements

    # ========================================================================
    # Spreadsheet import
    # ========================================================================

    def preview_import(
        self, slug: str, paid_by: str, file_name: str, content: bytes
    ) -> ImportResult:
        """
        Parse an uploaded spreadsheet for review.

        Nothing is written; see `commit_import`.

        Raises:
            UnsupportedFileTypeError: If the file is not .csv or .xlsx
        """
        trip = self._require_trip(slug)
        self._validate_members(trip, paid_by, None)

        result = parse_spreadsheet(
            content, file_name, max_rows=self.settings.import_max_rows
        )

        logger.info(
            f"Parsed {file_name} for {slug}: {result.summary.total_rows} rows "
            f"({result.summary.valid_rows} valid, "
            f"{result.summary.invalid_rows} invalid)"
        )
        return result

    def commit_import(
        self, slug: str, paid_by: str, rows: list[ParsedRow]
    ) -> list[Expense]:
        """
        Create expenses from reviewed import rows.

        Only rows that are included and importable become expenses. Every
        imported expense is paid by `paid_by` and split across the whole
        current roster.

        Returns:
            The created expenses, in row order

        Raises:
            ValidationError: If an importable row has a date that is not
                YYYY-MM-DD; nothing is imported in that case
        """
        trip = self._require_unlocked(slug)
        self._validate_members(trip, paid_by, None)
        roster = [p.id for p in self.db.list_participants(trip.id)]

        created: list[Expense] = []
        for row in rows:
            if not (row.include and row.is_importable):
                continue

            try:
                expense_date = date.fromisoformat(row.date)
            except ValueError as e:
                raise ValidationError(
                    f"row {row.index}: invalid date {row.date!r}"
                ) from e

            now = datetime.now()
            created.append(
                Expense(
                    id=new_id(),
                    amount=row.amount,
                    date=expense_date,
                    place=row.merchant or "",
                    description=row.description.strip(),
                    paid_by=paid_by,
                    participants=list(roster),
                    created_at=now,
                    updated_at=now,
                )
            )

        # every row is checked before anything is written
        for expense in created:
            self.db.save_expense(trip.id, expense)

        skipped = len(rows) - len(created)
        logger.info(
            f"Imported {len(created)} expenses into {slug} ({skipped} rows skipped)"
        )
        return created
