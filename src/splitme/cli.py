"""CLI for SplitMe using Typer."""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from .config import load_settings
from .db import Database
from .exceptions import SplitMeError, ValidationError
from .export import expenses_to_csv, export_filename, settlements_to_csv
from .models import ImportResult, Settlement, TripDetail
from .service import TripService
from .settlements import apply_settlements
from .ui import confirm, exclude_rows_interactive, select_participant_interactive

app = typer.Typer(
    name="splitme",
    help="Split shared trip expenses and work out who owes whom",
)
trip_app = typer.Typer(help="Create, inspect and lock trips")
participant_app = typer.Typer(help="Manage the people on a trip")
expense_app = typer.Typer(help="Record and edit shared expenses")

app.add_typer(trip_app, name="trip")
app.add_typer(participant_app, name="participant")
app.add_typer(expense_app, name="expense")

console = Console()

VERBOSE_OPTION = typer.Option(False, "--verbose", "-v", help="Verbose output")


def setup_logging(verbose: bool = False):
    """Setup logging configuration."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


@contextmanager
def open_service(verbose: bool) -> Iterator[TripService]:
    """Open the database, yield a service and report errors consistently."""
    setup_logging(verbose)
    db = None
    try:
        settings = load_settings()
        db = Database(settings.database_path)
        yield TripService(settings, db)
    except SplitMeError as e:
        console.print(f"\n[bold yellow]⚠️  {e}[/bold yellow]\n")
        if verbose:
            raise
        sys.exit(1)
    except Exception as e:
        console.print(f"\n[bold red]Error:[/bold red] {e}")
        if verbose:
            raise
        sys.exit(1)
    finally:
        if db is not None:
            db.close()


def format_money(amount: Decimal | float, use_color: bool = True) -> str:
    """
    Format money in accounting style with alignment.

    Negative amounts use parentheses: ($85.02)
    Positive amounts have spaces:      $85.02
    The spaces ensure decimal points align in tables.
    """
    abs_amount = abs(amount)
    if amount < 0:
        if use_color:
            return f"($[red]{abs_amount:,.2f}[/red])"
        return f"(${abs_amount:,.2f})"
    if use_color:
        return f" [green]${abs_amount:,.2f}[/green] "
    return f" ${abs_amount:,.2f} "


def resolve_participant(detail: TripDetail, ref: str) -> str:
    """
    Resolve a participant reference (id, id prefix or name) to an id.

    Raises:
        ValidationError: If the reference matches no one or several people
    """
    for p in detail.participants:
        if p.id == ref:
            return p.id

    matches = [p for p in detail.participants if p.name.lower() == ref.lower()]
    if not matches:
        matches = [p for p in detail.participants if p.id.startswith(ref)]

    if len(matches) == 1:
        return matches[0].id
    if not matches:
        raise ValidationError(f"No participant matches '{ref}'")
    raise ValidationError(f"'{ref}' is ambiguous; use the participant id instead")


def _parse_date_option(value: datetime | None):
    return value.date() if value else None


# ============================================================================
# Display
# ============================================================================


def display_trip(detail: TripDetail):
    """Display a trip's participants and expenses."""
    trip = detail.trip
    console.print(f"\n[bold]{trip.name}[/bold] [dim]({trip.slug})[/dim]")
    if trip.locked:
        console.print("  [yellow]🔒 Locked[/yellow]")
    console.print()

    people = Table(title="Participants", show_header=True, header_style="bold magenta")
    people.add_column("ID", style="dim", width=10)
    people.add_column("Name", style="cyan")
    for p in detail.participants:
        people.add_row(p.id[:8], p.name)
    console.print(people)

    table = Table(title="Expenses", show_header=True, header_style="bold magenta")
    table.add_column("ID", style="dim", width=10)
    table.add_column("Date", width=10)
    table.add_column("Description", style="cyan", width=30)
    table.add_column("Amount", justify="right", width=12)
    table.add_column("Paid By", style="yellow")
    table.add_column("Split Between")

    total = Decimal("0")
    for expense in detail.expenses:
        desc = expense.description or expense.place
        table.add_row(
            expense.id[:8],
            expense.date.isoformat(),
            desc[:30] + "..." if len(desc) > 30 else desc,
            format_money(expense.amount),
            detail.participant_name(expense.paid_by),
            ", ".join(detail.participant_name(pid) for pid in expense.participants),
        )
        total += expense.amount

    console.print(table)
    console.print(f"  Total spent: {format_money(total)}")


def display_settlements(
    settlements: list[Settlement],
    detail: TripDetail,
    balances: dict[str, Decimal] | None = None,
):
    """Display settlements (and optionally balances) in table format."""
    if balances is not None:
        table = Table(title="Balances", show_header=True, header_style="bold magenta")
        table.add_column("Participant", style="cyan")
        table.add_column("Balance", justify="right", width=14)
        for pid, balance in balances.items():
            table.add_row(
                detail.participant_name(pid, default=pid), format_money(balance)
            )
        console.print(table)

    if not settlements:
        console.print("\n[green]✓ Everyone is settled up![/green]\n")
        return

    table = Table(title="Settlements", show_header=True, header_style="bold magenta")
    table.add_column("From", style="yellow")
    table.add_column("To", style="cyan")
    table.add_column("Amount", justify="right", width=12)
    for s in settlements:
        table.add_row(
            detail.participant_name(s.from_id, default=s.from_id),
            detail.participant_name(s.to_id, default=s.to_id),
            format_money(s.amount),
        )
    console.print(table)

    if balances is not None:
        remaining = apply_settlements(balances, settlements)
        worst = max((abs(v) for v in remaining.values()), default=Decimal("0"))
        if worst <= Decimal("0.01"):
            console.print("  [green]✓ Settlements clear every balance[/green]")
        else:
            console.print(f"  [red]✗ Residual balance of {worst:.2f} remains[/red]")


def display_import(result: ImportResult):
    """Display parsed import rows with their warnings."""
    table = Table(title="Parsed Rows", show_header=True, header_style="bold magenta")
    table.add_column("#", style="dim", width=4)
    table.add_column("Use", justify="center", width=4)
    table.add_column("Date", width=10)
    table.add_column("Description", style="cyan", width=30)
    table.add_column("Amount", justify="right", width=12)
    table.add_column("Cur", width=4)
    table.add_column("Warnings", style="yellow")

    for row in result.rows:
        amount = (
            format_money(row.amount) if row.amount is not None else "[red]-[/red]"
        )
        desc = row.description or "[red]missing[/red]"
        table.add_row(
            str(row.index),
            "✓" if row.include else "✗",
            row.date,
            desc[:30] + "..." if len(desc) > 30 else desc,
            amount,
            row.currency or "",
            ", ".join(row.warnings),
        )

    console.print(table)
    summary = result.summary
    console.print(
        f"  Rows: {summary.total_rows}  "
        f"[green]Valid: {summary.valid_rows}[/green]  "
        f"[red]Invalid: {summary.invalid_rows}[/red]"
    )


# ============================================================================
# Trip commands
# ============================================================================


@trip_app.command("create")
def trip_create(
    name: str = typer.Argument(..., help="Trip name"),
    slug: str | None = typer.Option(None, "--slug", help="Preferred slug"),
    verbose: bool = VERBOSE_OPTION,
):
    """Create a new trip."""
    with open_service(verbose) as service:
        trip = service.create_trip(name, slug)
        console.print(f"[green]✓ Created trip {trip.name} ({trip.slug})[/green]")


@trip_app.command("list")
def trip_list(verbose: bool = VERBOSE_OPTION):
    """List all trips."""
    with open_service(verbose) as service:
        trips = service.list_trips()
        if not trips:
            console.print("[yellow]No trips yet.[/yellow]")
            return

        table = Table(title="Trips", show_header=True, header_style="bold magenta")
        table.add_column("Slug", style="cyan")
        table.add_column("Name")
        table.add_column("Created", style="dim")
        table.add_column("Locked", justify="center")
        for trip in trips:
            table.add_row(
                trip.slug,
                trip.name,
                trip.created_at.date().isoformat(),
                "🔒" if trip.locked else "",
            )
        console.print(table)


@trip_app.command("show")
def trip_show(slug: str, verbose: bool = VERBOSE_OPTION):
    """Show a trip's participants and expenses."""
    with open_service(verbose) as service:
        display_trip(service.get_trip(slug))


@trip_app.command("lock")
def trip_lock(slug: str, verbose: bool = VERBOSE_OPTION):
    """Lock a trip against further changes."""
    with open_service(verbose) as service:
        service.set_locked(slug, True)
        console.print(f"[green]✓ {slug} locked[/green]")


@trip_app.command("unlock")
def trip_unlock(slug: str, verbose: bool = VERBOSE_OPTION):
    """Unlock a trip."""
    with open_service(verbose) as service:
        service.set_locked(slug, False)
        console.print(f"[green]✓ {slug} unlocked[/green]")


# ============================================================================
# Participant commands
# ============================================================================


@participant_app.command("add")
def participant_add(
    slug: str,
    names: list[str] = typer.Argument(..., help="One or more names"),
    verbose: bool = VERBOSE_OPTION,
):
    """Add participants to a trip."""
    with open_service(verbose) as service:
        for name in names:
            participant = service.add_participant(slug, name)
            console.print(
                f"[green]✓ Added {participant.name}[/green] "
                f"[dim]({participant.id[:8]})[/dim]"
            )


@participant_app.command("remove")
def participant_remove(
    slug: str,
    participant: str = typer.Argument(..., help="Participant name or id"),
    verbose: bool = VERBOSE_OPTION,
):
    """Remove a participant who is not part of any expense."""
    with open_service(verbose) as service:
        participant_id = resolve_participant(service.get_trip(slug), participant)
        service.remove_participant(slug, participant_id)
        console.print(f"[green]✓ Removed {participant}[/green]")


# ============================================================================
# Expense commands
# ============================================================================


@expense_app.command("add")
def expense_add(
    slug: str,
    amount: str = typer.Argument(..., help="Amount, e.g. 42.50"),
    paid_by: str | None = typer.Option(
        None, "--paid-by", "-p", help="Who paid (prompted if omitted)"
    ),
    split: list[str] | None = typer.Option(
        None, "--split", "-s", help="Who shares the cost (default: everyone)"
    ),
    on: datetime | None = typer.Option(
        None, "--date", "-d", formats=["%Y-%m-%d"], help="Expense date"
    ),
    place: str = typer.Option("", "--place", help="Where the money was spent"),
    description: str = typer.Option("", "--description", "-m", help="What for"),
    verbose: bool = VERBOSE_OPTION,
):
    """Record a shared expense."""
    with open_service(verbose) as service:
        detail = service.get_trip(slug)

        if paid_by:
            payer_id = resolve_participant(detail, paid_by)
        else:
            payer_id = select_participant_interactive(detail.participants)
            if payer_id is None:
                console.print("[yellow]No payer selected.[/yellow]")
                return

        sharers = (
            [resolve_participant(detail, ref) for ref in split]
            if split
            else [p.id for p in detail.participants]
        )

        expense = service.add_expense(
            slug,
            amount=amount,
            paid_by=payer_id,
            participants=sharers,
            expense_date=_parse_date_option(on),
            place=place,
            description=description,
        )
        console.print(
            f"[green]✓ Added {format_money(expense.amount, use_color=False).strip()} "
            f"paid by {detail.participant_name(payer_id)}[/green] "
            f"[dim]({expense.id[:8]})[/dim]"
        )


@expense_app.command("edit")
def expense_edit(
    slug: str,
    expense_id: str,
    amount: str | None = typer.Option(None, "--amount", "-a"),
    paid_by: str | None = typer.Option(None, "--paid-by", "-p"),
    split: list[str] | None = typer.Option(None, "--split", "-s"),
    on: datetime | None = typer.Option(None, "--date", "-d", formats=["%Y-%m-%d"]),
    place: str | None = typer.Option(None, "--place"),
    description: str | None = typer.Option(None, "--description", "-m"),
    verbose: bool = VERBOSE_OPTION,
):
    """Change fields of an existing expense."""
    with open_service(verbose) as service:
        detail = service.get_trip(slug)
        full_id = _resolve_expense(detail, expense_id)

        expense = service.update_expense(
            slug,
            full_id,
            amount=amount,
            paid_by=resolve_participant(detail, paid_by) if paid_by else None,
            participants=(
                [resolve_participant(detail, ref) for ref in split] if split else None
            ),
            expense_date=_parse_date_option(on),
            place=place,
            description=description,
        )
        console.print(f"[green]✓ Updated expense {expense.id[:8]}[/green]")


@expense_app.command("delete")
def expense_delete(slug: str, expense_id: str, verbose: bool = VERBOSE_OPTION):
    """Delete an expense."""
    with open_service(verbose) as service:
        full_id = _resolve_expense(service.get_trip(slug), expense_id)
        service.delete_expense(slug, full_id)
        console.print(f"[green]✓ Deleted expense {full_id[:8]}[/green]")


def _resolve_expense(detail: TripDetail, ref: str) -> str:
    """Resolve an expense id or unique id prefix."""
    matches = [e.id for e in detail.expenses if e.id.startswith(ref)]
    if len(matches) != 1:
        raise ValidationError(f"No single expense matches '{ref}'")
    return matches[0]


# ============================================================================
# Settlement / import / export commands
# ============================================================================


@app.command()
def settle(
    slug: str,
    show_balances: bool = typer.Option(
        False, "--balances", "-b", help="Also show each participant's balance"
    ),
    verbose: bool = VERBOSE_OPTION,
):
    """Show who pays whom to settle a trip."""
    with open_service(verbose) as service:
        detail = service.get_trip(slug)
        settlements = service.compute_trip_settlements(slug)
        balances = service.compute_trip_balances(slug) if show_balances else None
        display_settlements(settlements, detail, balances)


@app.command("import")
def import_file(
    slug: str,
    file: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True),
    paid_by: str | None = typer.Option(
        None, "--paid-by", "-p", help="Who paid for every imported row"
    ),
    review: bool = typer.Option(
        False, "--review", "-r", help="Interactively exclude rows before importing"
    ),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompt"),
    verbose: bool = VERBOSE_OPTION,
):
    """
    Import expenses from a .csv or .xlsx file.

    Columns are detected from the header row. Every imported expense is paid
    by one participant and split across everyone on the trip.
    """
    with open_service(verbose) as service:
        detail = service.get_trip(slug)

        if paid_by:
            payer_id = resolve_participant(detail, paid_by)
        else:
            payer_id = select_participant_interactive(detail.participants)
            if payer_id is None:
                console.print("[yellow]No payer selected.[/yellow]")
                return

        console.print(f"\n[bold blue]Parsing {file.name}...[/bold blue]")
        result = service.preview_import(
            slug, payer_id, file.name, file.read_bytes()
        )

        if not result.rows:
            console.print("[yellow]No rows found in file.[/yellow]")
            return

        display_import(result)

        rows = result.rows
        if review:
            rows = exclude_rows_interactive(rows)

        selected = [row for row in rows if row.include and row.is_importable]
        if not selected:
            console.print("[yellow]No importable rows selected.[/yellow]")
            return

        if not yes and not confirm(
            f"\nImport {len(selected)} expenses paid by "
            f"{detail.participant_name(payer_id)}?"
        ):
            console.print("[yellow]Cancelled.[/yellow]")
            return

        created = service.commit_import(slug, payer_id, rows)
        console.print(
            f"\n[bold green]✓ Imported {len(created)} expenses[/bold green]"
        )


@app.command()
def export(
    slug: str,
    settlements: bool = typer.Option(
        False, "--settlements", help="Export the settlement plan instead of expenses"
    ),
    output_dir: Path | None = typer.Option(
        None, "--output-dir", "-o", file_okay=False, help="Directory to write to"
    ),
    verbose: bool = VERBOSE_OPTION,
):
    """Export a trip's expenses (or settlements) to CSV."""
    with open_service(verbose) as service:
        detail = service.get_trip(slug)

        if settlements:
            content = settlements_to_csv(
                service.compute_trip_settlements(slug), detail.participants
            )
            filename = export_filename("settlements")
        else:
            content = expenses_to_csv(detail.expenses, detail.participants)
            filename = export_filename("expenses")

        directory = output_dir or service.settings.export_dir
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / filename
        path.write_text(content, encoding="utf-8")

        console.print(f"[green]✓ Wrote {path}[/green]")


if __name__ == "__main__":
    app()
