"""Custom exceptions for SplitMe."""


class SplitMeError(Exception):
    """Base exception for all SplitMe errors."""

    pass


class ConfigurationError(SplitMeError):
    """Raised when configuration is invalid or missing."""

    pass


class UnsupportedFileTypeError(SplitMeError):
    """Raised when an uploaded file is neither .csv nor .xlsx."""

    def __init__(self, file_name: str, message: str | None = None):
        self.file_name = file_name
        super().__init__(
            message
            or f"Unsupported file type for '{file_name}' (must be .csv or .xlsx)"
        )


class EmptyParticipantsError(SplitMeError, ValueError):
    """Raised when an expense with no cost-sharers reaches the settlement engine."""

    def __init__(self, expense_id: str):
        self.expense_id = expense_id
        super().__init__(f"Expense {expense_id} has no participants to split between")


class ValidationError(SplitMeError):
    """Raised when service input fails validation."""

    pass


class TripNotFoundError(SplitMeError):
    """Raised when no trip exists for a slug."""

    def __init__(self, slug: str):
        self.slug = slug
        super().__init__(f"Trip '{slug}' not found")


class ParticipantNotFoundError(SplitMeError):
    """Raised when a participant id is not part of the trip."""

    def __init__(self, participant_id: str):
        self.participant_id = participant_id
        super().__init__(f"Participant not found: {participant_id}")


class ExpenseNotFoundError(SplitMeError):
    """Raised when an expense id is not part of the trip."""

    def __init__(self, expense_id: str):
        self.expense_id = expense_id
        super().__init__(f"Expense not found: {expense_id}")


class TripLockedError(SplitMeError):
    """Raised when modifying a locked trip."""

    def __init__(self, slug: str):
        self.slug = slug
        super().__init__(f"Trip '{slug}' is locked")


class ParticipantInUseError(SplitMeError):
    """Raised when deleting a participant that is referenced by an expense."""

    def __init__(self, participant_id: str, expense_id: str):
        self.participant_id = participant_id
        self.expense_id = expense_id
        super().__init__(
            f"Participant {participant_id} is in use by expense {expense_id}"
        )
