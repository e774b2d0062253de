"""Debt-netting: turn an expense ledger into a list of settlement payments."""

from decimal import Decimal

from .exceptions import EmptyParticipantsError
from .models import Expense, Participant, Settlement

# Balances and payments at or below one cent are treated as zero.
SETTLEMENT_EPSILON = Decimal("0.01")


def compute_balances(
    expenses: list[Expense], participants: list[Participant]
) -> dict[str, Decimal]:
    """
    Compute each participant's net balance.

    Every known participant starts at zero (in roster order). The payer of an
    expense is credited the full amount and every id in the cost-sharing set
    is debited an equal share. Ids referenced by expenses but missing from the
    roster are added to the map the first time they are seen.

    Args:
        expenses: Expense ledger
        participants: Trip roster

    Returns:
        Mapping of participant id to balance (positive = is owed money)

    Raises:
        EmptyParticipantsError: If an expense has no cost-sharers
    """
    balances: dict[str, Decimal] = {p.id: Decimal("0") for p in participants}

    for expense in expenses:
        if not expense.participants:
            raise EmptyParticipantsError(expense.id)

        share = expense.amount / len(expense.participants)

        balances[expense.paid_by] = (
            balances.get(expense.paid_by, Decimal("0")) + expense.amount
        )
        for participant_id in expense.participants:
            balances[participant_id] = (
                balances.get(participant_id, Decimal("0")) - share
            )

    return balances


def settle_balances(balances: dict[str, Decimal]) -> list[Settlement]:
    """
    Greedily match debtors to creditors.

    Both sides keep the insertion order of `balances`; nothing is sorted by
    magnitude, so the result does not always have the fewest payments.

    Args:
        balances: Net balances as returned by `compute_balances`

    Returns:
        Settlements in the order they were matched
    """
    creditors = [
        [pid, balance]
        for pid, balance in balances.items()
        if balance > SETTLEMENT_EPSILON
    ]
    debtors = [
        [pid, -balance]
        for pid, balance in balances.items()
        if balance < -SETTLEMENT_EPSILON
    ]

    settlements: list[Settlement] = []
    creditor_idx = 0
    debtor_idx = 0

    while creditor_idx < len(creditors) and debtor_idx < len(debtors):
        creditor = creditors[creditor_idx]
        debtor = debtors[debtor_idx]

        amount = min(creditor[1], debtor[1])
        if amount > SETTLEMENT_EPSILON:
            settlements.append(
                Settlement(from_id=debtor[0], to_id=creditor[0], amount=amount)
            )

        creditor[1] -= amount
        debtor[1] -= amount

        if creditor[1] <= SETTLEMENT_EPSILON:
            creditor_idx += 1
        if debtor[1] <= SETTLEMENT_EPSILON:
            debtor_idx += 1

    return settlements


def compute_settlements(
    expenses: list[Expense], participants: list[Participant]
) -> list[Settlement]:
    """
    Compute the payments that settle all balances for a trip.

    Args:
        expenses: Expense ledger
        participants: Trip roster

    Returns:
        Ordered list of settlements (empty when there is nothing to settle)
    """
    if not expenses or not participants:
        return []

    return settle_balances(compute_balances(expenses, participants))


def apply_settlements(
    balances: dict[str, Decimal], settlements: list[Settlement]
) -> dict[str, Decimal]:
    """
    Return the balances left after every settlement has been paid.

    The input mapping is not modified.
    """
    remaining = dict(balances)
    for settlement in settlements:
        remaining[settlement.to_id] = (
            remaining.get(settlement.to_id, Decimal("0")) - settlement.amount
        )
        remaining[settlement.from_id] = (
            remaining.get(settlement.from_id, Decimal("0")) + settlement.amount
        )
    return remaining
