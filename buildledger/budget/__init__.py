"""Budget authority, ledger and history presentation."""

from buildledger.budget.authority import BudgetValueAuthority, parse_budget_value
from buildledger.budget.history_view import (
    HistoryEntryView,
    HistoryTimeline,
    actor_initials,
    format_money,
)
from buildledger.budget.ledger import BudgetLedgerService, history_order

__all__ = [
    "BudgetLedgerService",
    "BudgetValueAuthority",
    "HistoryEntryView",
    "HistoryTimeline",
    "actor_initials",
    "format_money",
    "history_order",
    "parse_budget_value",
]
