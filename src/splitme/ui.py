"""Interactive UI components for choosing payers and reviewing imports."""

import logging
from typing import Any

from prompt_toolkit import PromptSession
from prompt_toolkit.completion import Completer, Completion
from prompt_toolkit.document import Document

from .models import ParsedRow, Participant

logger = logging.getLogger(__name__)


class ParticipantCompleter(Completer):
    """Fuzzy search completer for trip participants."""

    def __init__(self, participants: list[Participant]):
        """Initialize the completer with the trip roster."""
        self.participants = participants

        # Duplicate names are allowed, so disambiguate them with the id prefix
        counts: dict[str, int] = {}
        for p in participants:
            counts[p.name] = counts.get(p.name, 0) + 1

        self.name_to_id: dict[str, str] = {}
        for p in participants:
            label = p.name if counts[p.name] == 1 else f"{p.name} ({p.id[:8]})"
            self.name_to_id[label] = p.id

    def get_completions(self, document: Document, complete_event: Any):
        """Get fuzzy-matched completions."""
        query = document.text.lower()

        for label in self.name_to_id:
            if not query or fuzzy_match(query, label.lower()):
                yield Completion(
                    text=label,
                    start_position=-len(document.text),
                    display=label,
                )


def fuzzy_match(query: str, text: str) -> bool:
    """
    Fuzzy match: all characters in query must appear in order in text.

    Example:
        query="ali" matches "Alice"
        query="bb" matches "Bob"
    """
    query_idx = 0
    for char in text:
        if query_idx < len(query) and char == query[query_idx]:
            query_idx += 1
    return query_idx == len(query)


def select_participant_interactive(
    participants: list[Participant], label: str = "Paid by"
) -> str | None:
    """
    Interactive participant selection with fuzzy search.

    Args:
        participants: Trip roster
        label: Prompt label

    Returns:
        Selected participant ID, or None to cancel
    """
    if not participants:
        return None

    print("   Type to search, press Enter to confirm, Ctrl+C to cancel\n")

    completer = ParticipantCompleter(participants)
    session: PromptSession[str] = PromptSession(completer=completer)

    try:
        while True:
            result = session.prompt(f"{label}: ", complete_while_typing=True)

            if not result:
                return None

            participant_id = completer.name_to_id.get(result.strip())
            if participant_id:
                logger.info(f"User selected participant: {result.strip()}")
                return participant_id

            print("❌ Unknown participant. Press Tab to see the list.")

    except KeyboardInterrupt:
        print("\n⏭️  Cancelled")
        return None
    except EOFError:
        return None


def parse_row_selection(text: str, row_count: int) -> set[int] | None:
    """
    Parse a row selection such as "0, 3, 5-7" into row indexes.

    Returns:
        The selected indexes, or None if the text is not a valid selection
    """
    selected: set[int] = set()
    for part in text.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            if "-" in part:
                start_text, end_text = part.split("-", 1)
                start, end = int(start_text), int(end_text)
            else:
                start = end = int(part)
        except ValueError:
            return None
        if start > end or start < 0 or end >= row_count:
            return None
        selected.update(range(start, end + 1))
    return selected


def exclude_rows_interactive(rows: list[ParsedRow]) -> list[ParsedRow]:
    """
    Let the user untick rows before import.

    Returns:
        The rows with `include` cleared on every excluded index
    """
    print("\n📝 Rows to exclude (e.g. 0, 3, 5-7). Press Enter to keep all.")
    session: PromptSession[str] = PromptSession()

    try:
        while True:
            text = session.prompt("Exclude: ")
            excluded = parse_row_selection(text, len(rows))
            if excluded is not None:
                break
            print(
                f"❌ Invalid selection. Use row indexes between 0 and {len(rows) - 1}."
            )
    except (KeyboardInterrupt, EOFError):
        return rows

    if excluded:
        logger.info(f"User excluded rows: {sorted(excluded)}")

    return [
        row.model_copy(update={"include": False}) if row.index in excluded else row
        for row in rows
    ]


def confirm(message: str) -> bool:
    """Simple yes/no confirmation, defaulting to no."""
    response = input(f"{message} [y/N] ").strip().lower()
    return response in ("y", "yes")
