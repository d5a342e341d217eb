"""
History View Assembly

Presentation state for a project's budget history: a short preview that
can be expanded to the full list. Nothing here is persisted.
"""

from decimal import Decimal
from typing import Literal, Sequence

from buildledger.models.budget import BudgetHistoryEntry


DEFAULT_PREVIEW_COUNT = 3


def format_money(amount: Decimal, currency: str = "CZK") -> str:
    return f"{amount:,.2f} {currency}"


def actor_initials(name: str) -> str:
    """First letter of each word, uppercased, at most two; "A" for no name."""
    initials = "".join(token[0] for token in (name or "").split(" ") if token)
    return initials.upper()[:2] or "A"


class HistoryEntryView:
    """Display values for one ledger entry."""

    def __init__(self, entry: BudgetHistoryEntry, currency: str = "CZK"):
        self.entry = entry
        self.currency = currency

    @property
    def direction(self) -> Literal["increase", "decrease"]:
        # A zero change is shown as a decrease
        return "increase" if self.entry.change_amount > 0 else "decrease"

    @property
    def amount_label(self) -> str:
        sign = "+" if self.direction == "increase" else ""
        return sign + format_money(self.entry.change_amount, self.currency)

    @property
    def old_value_label(self) -> str:
        return format_money(self.entry.old_value, self.currency)

    @property
    def new_value_label(self) -> str:
        return format_money(self.entry.new_value, self.currency)

    @property
    def actor_name(self) -> str:
        return self.entry.actor_name

    @property
    def actor_initials(self) -> str:
        return actor_initials(self.entry.actor_name)

    @property
    def reason(self) -> str:
        return self.entry.reason or ""


class HistoryTimeline:
    """
    Collapsible history list.

    Shows the first `preview_count` entries until expanded. The entries
    are expected newest first, as BudgetLedgerService returns them.
    """

    def __init__(
        self,
        entries: Sequence[BudgetHistoryEntry],
        preview_count: int = DEFAULT_PREVIEW_COUNT,
        currency: str = "CZK",
    ):
        if preview_count < 1:
            raise ValueError("preview_count must be at least 1")
        self.entries = [HistoryEntryView(e, currency) for e in entries]
        self.preview_count = preview_count
        self.expanded = False

    @property
    def is_empty(self) -> bool:
        return not self.entries

    @property
    def has_more(self) -> bool:
        return len(self.entries) > self.preview_count

    @property
    def visible_entries(self) -> list[HistoryEntryView]:
        if self.expanded:
            return list(self.entries)
        return self.entries[:self.preview_count]

    @property
    def toggle_label(self) -> str:
        if self.expanded:
            return "Show less"
        return f"Show full history ({len(self.entries)})"

    def toggle(self) -> bool:
        """Flip between preview and full list. Returns the new state."""
        self.expanded = not self.expanded
        return self.expanded
