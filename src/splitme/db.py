"""SQLite database operations for SplitMe."""

import sqlite3
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path

from .models import Expense, Participant, Trip


class Database:
    """SQLite database manager."""

    def __init__(self, db_path: Path):
        """Initialize database connection."""
        self.db_path = db_path
        self.conn = sqlite3.connect(str(db_path))
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA foreign_keys = ON")
        self._init_schema()

    def _init_schema(self):
        """Initialize database schema."""
        cursor = self.conn.cursor()

        # Trips table
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS trips (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                slug TEXT NOT NULL UNIQUE,
                locked INTEGER NOT NULL DEFAULT 0,
                created_at TIMESTAMP NOT NULL,
                updated_at TIMESTAMP NOT NULL
            )
        """
        )

        # Participants table
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS participants (
                id TEXT PRIMARY KEY,
                trip_id TEXT NOT NULL REFERENCES trips(id) ON DELETE CASCADE,
                name TEXT NOT NULL,
                created_at TIMESTAMP NOT NULL,
                updated_at TIMESTAMP NOT NULL
            )
        """
        )

        # Expenses table (participant_ids is a comma-separated list)
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS expenses (
                id TEXT PRIMARY KEY,
                trip_id TEXT NOT NULL REFERENCES trips(id) ON DELETE CASCADE,
                amount TEXT NOT NULL,
                date DATE NOT NULL,
                place TEXT NOT NULL DEFAULT '',
                description TEXT NOT NULL DEFAULT '',
                paid_by TEXT NOT NULL,
                participant_ids TEXT NOT NULL,
                created_at TIMESTAMP NOT NULL,
                updated_at TIMESTAMP NOT NULL
            )
        """
        )

        self.conn.commit()

    def close(self):
        """Close database connection."""
        self.conn.close()

    # ========================================================================
    # Trip operations
    # ========================================================================

    def save_trip(self, trip: Trip):
        """Insert a new trip."""
        cursor = self.conn.cursor()
        cursor.execute(
            """
            INSERT INTO trips (id, name, slug, locked, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                trip.id,
                trip.name,
                trip.slug,
                int(trip.locked),
                trip.created_at.isoformat(),
                trip.updated_at.isoformat(),
            ),
        )
        self.conn.commit()

    def get_trip_by_slug(self, slug: str) -> Trip | None:
        """Get a trip by its slug."""
        cursor = self.conn.cursor()
        cursor.execute(
            """
            SELECT id, name, slug, locked, created_at, updated_at
            FROM trips
            WHERE slug = ?
            """,
            (slug,),
        )
        row = cursor.fetchone()
        return self._row_to_trip(row) if row else None

    def slug_exists(self, slug: str) -> bool:
        """Check whether a slug is already taken."""
        cursor = self.conn.cursor()
        cursor.execute("SELECT id FROM trips WHERE slug = ?", (slug,))
        return cursor.fetchone() is not None

    def list_trips(self) -> list[Trip]:
        """Get all trips, oldest first."""
        cursor = self.conn.cursor()
        cursor.execute(
            """
            SELECT id, name, slug, locked, created_at, updated_at
            FROM trips
            ORDER BY rowid
            """
        )
        return [self._row_to_trip(row) for row in cursor.fetchall()]

    def set_trip_locked(self, trip_id: str, locked: bool, updated_at: datetime):
        """Set the lock flag on a trip."""
        cursor = self.conn.cursor()
        cursor.execute(
            "UPDATE trips SET locked = ?, updated_at = ? WHERE id = ?",
            (int(locked), updated_at.isoformat(), trip_id),
        )
        self.conn.commit()

    @staticmethod
    def _row_to_trip(row: sqlite3.Row) -> Trip:
        return Trip(
            id=row["id"],
            name=row["name"],
            slug=row["slug"],
            locked=bool(row["locked"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    # ========================================================================
    # Participant operations
    # ========================================================================

    def save_participant(self, trip_id: str, participant: Participant):
        """Insert a participant into a trip."""
        cursor = self.conn.cursor()
        cursor.execute(
            """
            INSERT INTO participants (id, trip_id, name, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                participant.id,
                trip_id,
                participant.name,
                participant.created_at.isoformat(),
                participant.updated_at.isoformat(),
            ),
        )
        self.conn.commit()

    def list_participants(self, trip_id: str) -> list[Participant]:
        """Get a trip's participants in the order they were added."""
        cursor = self.conn.cursor()
        cursor.execute(
            """
            SELECT id, name, created_at, updated_at
            FROM participants
            WHERE trip_id = ?
            ORDER BY rowid
            """,
            (trip_id,),
        )
        return [
            Participant(
                id=row["id"],
                name=row["name"],
                created_at=datetime.fromisoformat(row["created_at"]),
                updated_at=datetime.fromisoformat(row["updated_at"]),
            )
            for row in cursor.fetchall()
        ]

    def delete_participant(self, trip_id: str, participant_id: str) -> bool:
        """Delete a participant. Returns True if a row was removed."""
        cursor = self.conn.cursor()
        cursor.execute(
            "DELETE FROM participants WHERE trip_id = ? AND id = ?",
            (trip_id, participant_id),
        )
        self.conn.commit()
        return cursor.rowcount > 0

    # ========================================================================
    # Expense operations
    # ========================================================================

    def save_expense(self, trip_id: str, expense: Expense):
        """Insert an expense into a trip."""
        cursor = self.conn.cursor()
        cursor.execute(
            """
            INSERT INTO expenses (
                id, trip_id, amount, date, place, description,
                paid_by, participant_ids, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                expense.id,
                trip_id,
                str(expense.amount),
                expense.date.isoformat(),
                expense.place,
                expense.description,
                expense.paid_by,
                ",".join(expense.participants),
                expense.created_at.isoformat(),
                expense.updated_at.isoformat(),
            ),
        )
        self.conn.commit()

    def update_expense(self, trip_id: str, expense: Expense):
        """Overwrite an existing expense."""
        cursor = self.conn.cursor()
        cursor.execute(
            """
            UPDATE expenses SET
                amount = ?,
                date = ?,
                place = ?,
                description = ?,
                paid_by = ?,
                participant_ids = ?,
                updated_at = ?
            WHERE trip_id = ? AND id = ?
            """,
            (
                str(expense.amount),
                expense.date.isoformat(),
                expense.place,
                expense.description,
                expense.paid_by,
                ",".join(expense.participants),
                expense.updated_at.isoformat(),
                trip_id,
                expense.id,
            ),
        )
        self.conn.commit()

    def get_expense(self, trip_id: str, expense_id: str) -> Expense | None:
        """Get a single expense."""
        cursor = self.conn.cursor()
        cursor.execute(
            """
            SELECT id, amount, date, place, description, paid_by,
                   participant_ids, created_at, updated_at
            FROM expenses
            WHERE trip_id = ? AND id = ?
            """,
            (trip_id, expense_id),
        )
        row = cursor.fetchone()
        return self._row_to_expense(row) if row else None

    def list_expenses(self, trip_id: str) -> list[Expense]:
        """Get a trip's expenses in the order they were added."""
        cursor = self.conn.cursor()
        cursor.execute(
            """
            SELECT id, amount, date, place, description, paid_by,
                   participant_ids, created_at, updated_at
            FROM expenses
            WHERE trip_id = ?
            ORDER BY rowid
            """,
            (trip_id,),
        )
        return [self._row_to_expense(row) for row in cursor.fetchall()]

    def delete_expense(self, trip_id: str, expense_id: str) -> bool:
        """Delete an expense. Returns True if a row was removed."""
        cursor = self.conn.cursor()
        cursor.execute(
            "DELETE FROM expenses WHERE trip_id = ? AND id = ?",
            (trip_id, expense_id),
        )
        self.conn.commit()
        return cursor.rowcount > 0

    @staticmethod
    def _row_to_expense(row: sqlite3.Row) -> Expense:
        return Expense(
            id=row["id"],
            amount=Decimal(row["amount"]),
            date=date.fromisoformat(row["date"]),
            place=row["place"],
            description=row["description"],
            paid_by=row["paid_by"],
            participants=[pid for pid in row["participant_ids"].split(",") if pid],
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )
