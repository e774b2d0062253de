"""Tests for TripService layer."""

from datetime import date
from decimal import Decimal

import pytest

from splitme.config import Settings
from splitme.db import Database
from splitme.exceptions import (
    ExpenseNotFoundError,
    ParticipantInUseError,
    ParticipantNotFoundError,
    TripLockedError,
    TripNotFoundError,
    UnsupportedFileTypeError,
    ValidationError,
)
from splitme.service import TripService, slugify, to_amount
from splitme.spreadsheet import TRUNCATED_ROWS


@pytest.fixture
def mock_settings(tmp_path):
    """Create settings pointing at a temporary directory."""
    return Settings(database_path=tmp_path / "test.db", export_dir=tmp_path)


@pytest.fixture
def mock_db(mock_settings):
    """Create a temporary database."""
    db = Database(mock_settings.database_path)
    yield db
    db.close()


@pytest.fixture
def service(mock_settings, mock_db):
    """Create a TripService instance."""
    return TripService(mock_settings, mock_db)


@pytest.fixture
def trip(service):
    """A trip with three participants: Alice, Bob and Carol."""
    created = service.create_trip("Lisbon 2024")
    for name in ("Alice", "Bob", "Carol"):
        service.add_participant(created.slug, name)
    return service.get_trip(created.slug)


def ids(detail) -> dict[str, str]:
    """Map participant names to ids."""
    return {p.name: p.id for p in detail.participants}


class TestHelpers:
    """Tests for module-level helpers."""

    @pytest.mark.parametrize(
        "name, expected",
        [
            ("Lisbon 2024!", "lisbon-2024"),
            ("  Ski   Trip  ", "ski-trip"),
            ("Café & Bar", "caf-bar"),
            ("!!!", ""),
        ],
    )
    def test_slugify(self, name, expected):
        assert slugify(name) == expected

    def test_slugify_truncates(self):
        assert len(slugify("a" * 100)) == 64

    def test_to_amount(self):
        assert to_amount("12.50") == Decimal("12.50")
        assert to_amount(3) == Decimal("3")

    @pytest.mark.parametrize("value", ["abc", "0", "-5", "NaN", "Infinity", ""])
    def test_to_amount_rejects(self, value):
        with pytest.raises(ValidationError):
            to_amount(value)


class TestTrips:
    """Trip lifecycle."""

    def test_create_trip(self, service):
        trip = service.create_trip("  Lisbon 2024 ")

        assert trip.name == "Lisbon 2024"
        assert trip.slug == "lisbon-2024"
        assert trip.locked is False
        assert service.get_trip("lisbon-2024").trip.id == trip.id

    def test_slug_collisions_get_a_suffix(self, service):
        slugs = [service.create_trip("Paris").slug for _ in range(3)]

        assert slugs == ["paris", "paris-1", "paris-2"]

    def test_explicit_slug(self, service):
        trip = service.create_trip("Weekend away", slug="Porto Run")

        assert trip.slug == "porto-run"

    def test_unsluggable_name_falls_back(self, service):
        assert service.create_trip("???").slug == "trip"

    def test_blank_name_is_rejected(self, service):
        with pytest.raises(ValidationError):
            service.create_trip("   ")

    def test_unknown_trip(self, service):
        with pytest.raises(TripNotFoundError) as exc_info:
            service.get_trip("nowhere")

        assert exc_info.value.slug == "nowhere"

    def test_list_trips_in_creation_order(self, service):
        service.create_trip("B trip")
        service.create_trip("A trip")

        assert [t.slug for t in service.list_trips()] == ["b-trip", "a-trip"]


class TestParticipants:
    """Participant management."""

    def test_participants_keep_insertion_order(self, trip):
        assert [p.name for p in trip.participants] == ["Alice", "Bob", "Carol"]

    def test_duplicate_names_are_allowed(self, service, trip):
        service.add_participant(trip.trip.slug, "Alice")

        names = [p.name for p in service.get_trip(trip.trip.slug).participants]
        assert names.count("Alice") == 2

    def test_blank_name_is_rejected(self, service, trip):
        with pytest.raises(ValidationError):
            service.add_participant(trip.trip.slug, " ")

    def test_remove_unused_participant(self, service, trip):
        service.remove_participant(trip.trip.slug, ids(trip)["Carol"])

        remaining = service.get_trip(trip.trip.slug).participants
        assert [p.name for p in remaining] == ["Alice", "Bob"]

    @pytest.mark.parametrize("who", ["Alice", "Bob"])
    def test_remove_participant_in_use(self, service, trip, who):
        people = ids(trip)
        expense = service.add_expense(
            trip.trip.slug, "10", people["Alice"], [people["Bob"]]
        )

        with pytest.raises(ParticipantInUseError) as exc_info:
            service.remove_participant(trip.trip.slug, people[who])

        assert exc_info.value.expense_id == expense.id

    def test_remove_unknown_participant(self, service, trip):
        with pytest.raises(ParticipantNotFoundError):
            service.remove_participant(trip.trip.slug, "missing")


class TestExpenses:
    """Expense validation and persistence."""

    def test_add_expense(self, service, trip):
        people = ids(trip)
        expense = service.add_expense(
            trip.trip.slug,
            "30.00",
            people["Alice"],
            [people["Alice"], people["Bob"], people["Carol"]],
            expense_date=date(2024, 3, 1),
            place="Time Out Market",
            description="Lunch",
        )

        stored = service.get_trip(trip.trip.slug).expenses
        assert len(stored) == 1
        assert stored[0].id == expense.id
        assert stored[0].amount == Decimal("30.00")
        assert stored[0].date == date(2024, 3, 1)
        assert stored[0].place == "Time Out Market"
        assert stored[0].participants == expense.participants

    def test_date_defaults_to_today(self, service, trip):
        people = ids(trip)
        expense = service.add_expense(
            trip.trip.slug, 5, people["Bob"], [people["Bob"]]
        )

        assert expense.date == date.today()

    def test_unknown_payer(self, service, trip):
        people = ids(trip)

        with pytest.raises(ValidationError, match="payer is not a participant"):
            service.add_expense(trip.trip.slug, "10", "ghost", [people["Alice"]])

    def test_duplicate_participants(self, service, trip):
        people = ids(trip)

        with pytest.raises(ValidationError, match="duplicates"):
            service.add_expense(
                trip.trip.slug, "10", people["Alice"], [people["Bob"], people["Bob"]]
            )

        assert service.get_trip(trip.trip.slug).expenses == []

    def test_update_rejects_duplicate_participants(self, service, trip):
        people = ids(trip)
        expense = service.add_expense(
            trip.trip.slug, "10", people["Alice"], [people["Bob"]]
        )

        with pytest.raises(ValidationError, match="duplicates"):
            service.update_expense(
                trip.trip.slug, expense.id, participants=[people["Bob"]] * 2
            )

    def test_empty_participants(self, service, trip):
        with pytest.raises(ValidationError, match="non-empty"):
            service.add_expense(trip.trip.slug, "10", ids(trip)["Alice"], [])

    def test_unknown_participant(self, service, trip):
        with pytest.raises(ValidationError, match="participant not found: ghost"):
            service.add_expense(trip.trip.slug, "10", ids(trip)["Alice"], ["ghost"])

    def test_invalid_amount(self, service, trip):
        people = ids(trip)

        with pytest.raises(ValidationError, match="positive"):
            service.add_expense(trip.trip.slug, "-1", people["Alice"], [people["Bob"]])

        assert service.get_trip(trip.trip.slug).expenses == []

    def test_update_expense(self, service, trip):
        people = ids(trip)
        expense = service.add_expense(
            trip.trip.slug, "10", people["Alice"], [people["Bob"]], description="Taxi"
        )

        updated = service.update_expense(
            trip.trip.slug,
            expense.id,
            amount="12.40",
            participants=[people["Bob"], people["Carol"]],
        )

        stored = service.get_trip(trip.trip.slug).expenses[0]
        assert updated.amount == stored.amount == Decimal("12.40")
        assert stored.participants == [people["Bob"], people["Carol"]]
        assert stored.description == "Taxi"
        assert stored.paid_by == people["Alice"]

    def test_update_unknown_expense(self, service, trip):
        with pytest.raises(ExpenseNotFoundError):
            service.update_expense(trip.trip.slug, "missing", amount="1")

    def test_delete_expense(self, service, trip):
        people = ids(trip)
        expense = service.add_expense(
            trip.trip.slug, "10", people["Alice"], [people["Bob"]]
        )

        service.delete_expense(trip.trip.slug, expense.id)

        assert service.get_trip(trip.trip.slug).expenses == []
        with pytest.raises(ExpenseNotFoundError):
            service.delete_expense(trip.trip.slug, expense.id)


class TestLocking:
    """Locked trips reject changes but can still be read and settled."""

    @pytest.fixture
    def locked(self, service, trip):
        people = ids(trip)
        expense = service.add_expense(
            trip.trip.slug, "30", people["Alice"], list(people.values())
        )
        service.set_locked(trip.trip.slug, True)
        return trip.trip.slug, people, expense

    def test_mutations_are_rejected(self, service, locked):
        slug, people, expense = locked

        with pytest.raises(TripLockedError):
            service.add_participant(slug, "Dave")
        with pytest.raises(TripLockedError):
            service.remove_participant(slug, people["Carol"])
        with pytest.raises(TripLockedError):
            service.add_expense(slug, "5", people["Bob"], [people["Bob"]])
        with pytest.raises(TripLockedError):
            service.update_expense(slug, expense.id, description="changed")
        with pytest.raises(TripLockedError):
            service.delete_expense(slug, expense.id)

    def test_reads_still_work(self, service, locked):
        slug, _, _ = locked

        assert service.get_trip(slug).trip.locked is True
        assert len(service.compute_trip_settlements(slug)) == 2

    def test_unlock(self, service, locked):
        slug, people, _ = locked

        trip = service.set_locked(slug, False)

        assert trip.locked is False
        service.add_expense(slug, "5", people["Bob"], [people["Bob"]])


class TestSettlement:
    """Settlement over stored expenses."""

    def test_three_way_split(self, service, trip):
        people = ids(trip)
        service.add_expense(
            trip.trip.slug, "30", people["Alice"], list(people.values())
        )

        balances = service.compute_trip_balances(trip.trip.slug)
        settlements = service.compute_trip_settlements(trip.trip.slug)

        assert balances[people["Alice"]] == Decimal("20")
        assert [(s.from_id, s.to_id, s.amount) for s in settlements] == [
            (people["Bob"], people["Alice"], Decimal("10")),
            (people["Carol"], people["Alice"], Decimal("10")),
        ]

    def test_no_expenses(self, service, trip):
        assert service.compute_trip_settlements(trip.trip.slug) == []


CSV_UPLOAD = (
    b"date,description,merchant,amount\n"
    b"2024-03-01,Dinner,Cervejaria,60\n"
    b"2024-03-02,,Pingo Doce,12.30\n"
    b"2024-03-03,Broken,,abc\n"
    b"2024-03-04,Tram,,3\n"
)


class TestImport:
    """Spreadsheet preview and commit."""

    def test_preview(self, service, trip):
        result = service.preview_import(
            trip.trip.slug, ids(trip)["Alice"], "bank.csv", CSV_UPLOAD
        )

        assert result.summary.total_rows == 4
        assert result.summary.valid_rows == 3
        assert service.get_trip(trip.trip.slug).expenses == []

    def test_preview_rejects_unknown_payer(self, service, trip):
        with pytest.raises(ValidationError):
            service.preview_import(trip.trip.slug, "ghost", "bank.csv", CSV_UPLOAD)

    def test_preview_rejects_unsupported_file(self, service, trip):
        with pytest.raises(UnsupportedFileTypeError):
            service.preview_import(
                trip.trip.slug, ids(trip)["Alice"], "bank.pdf", CSV_UPLOAD
            )

    def test_preview_uses_configured_row_limit(self, trip, mock_db, tmp_path):
        settings = Settings(database_path=tmp_path / "test.db", import_max_rows=2)
        service = TripService(settings, mock_db)

        result = service.preview_import(
            trip.trip.slug, ids(trip)["Alice"], "bank.csv", CSV_UPLOAD
        )

        assert len(result.rows) == 2
        assert TRUNCATED_ROWS in result.rows[1].warnings

    def test_commit(self, service, trip):
        people = ids(trip)
        preview = service.preview_import(
            trip.trip.slug, people["Alice"], "bank.csv", CSV_UPLOAD
        )
        rows = [
            row.model_copy(update={"include": False}) if row.index == 3 else row
            for row in preview.rows
        ]

        created = service.commit_import(trip.trip.slug, people["Bob"], rows)

        assert [e.description for e in created] == ["Dinner", "Pingo Doce"]
        assert [e.amount for e in created] == [Decimal("60.00"), Decimal("12.30")]
        assert [e.place for e in created] == ["Cervejaria", "Pingo Doce"]
        assert created[0].date == date(2024, 3, 1)
        for expense in created:
            assert expense.paid_by == people["Bob"]
            assert expense.participants == list(people.values())

        stored = service.get_trip(trip.trip.slug).expenses
        assert [e.id for e in stored] == [e.id for e in created]

    def test_commit_on_locked_trip(self, service, trip):
        people = ids(trip)
        preview = service.preview_import(
            trip.trip.slug, people["Alice"], "bank.csv", CSV_UPLOAD
        )
        service.set_locked(trip.trip.slug, True)

        with pytest.raises(TripLockedError):
            service.commit_import(trip.trip.slug, people["Alice"], preview.rows)

    def test_commit_rejects_edited_bad_date(self, service, trip):
        people = ids(trip)
        preview = service.preview_import(
            trip.trip.slug, people["Alice"], "bank.csv", CSV_UPLOAD
        )
        rows = [
            row.model_copy(update={"date": "01/03/2024"}) if row.index == 1 else row
            for row in preview.rows
        ]

        with pytest.raises(ValidationError, match="row 1"):
            service.commit_import(trip.trip.slug, people["Alice"], rows)

        assert service.get_trip(trip.trip.slug).expenses == []
