"""Pot accounting and payout splitting."""
from dataclasses import dataclass, field

from teenpatti.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class Pot:
    """Tracks every chip put into a game and who put it there."""

    total: int = 0
    _contributions: dict[str, int] = field(default_factory=dict)  # user_id -> total contributed

    def add_bet(self, user_id: str, amount: int) -> None:
        """Add a bet to the pot.

        Args:
            user_id: Player's user ID.
            amount: Bet amount (non-negative).
        """
        if amount < 0:
            raise ValueError(f"Bet amount cannot be negative: {amount}")
        self._contributions[user_id] = self._contributions.get(user_id, 0) + amount
        self.total += amount

    def get_total(self) -> int:
        """Get total pot amount."""
        return self.total

    def get_contribution(self, user_id: str) -> int:
        """Get a player's total contribution to the pot."""
        return self._contributions.get(user_id, 0)

    @property
    def contributions(self) -> dict[str, int]:
        return dict(self._contributions)

    def reset(self) -> None:
        """Reset pot for a new deal."""
        self.total = 0
        self._contributions = {}

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "total": self.total,
            "contributions": dict(self._contributions),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Pot":
        """Restore from dictionary."""
        pot = cls()
        pot.total = data.get("total", 0)
        pot._contributions = dict(data.get("contributions", {}))
        return pot


def split_amount(amount: int, winners: list[str]) -> dict[str, int]:
    """Divide an amount evenly between winners.

    Remainder chips go one each to the earliest winners in the given order.

    Args:
        amount: Chips to divide.
        winners: Winner user ids, in payout priority order.

    Returns:
        Dict of user_id -> share.
    """
    if not winners:
        return {}

    share = amount // len(winners)
    remainder = amount % len(winners)

    shares: dict[str, int] = {}
    for i, winner in enumerate(winners):
        shares[winner] = share + (1 if i < remainder else 0)

    if remainder:
        logger.debug(f"Split {amount} between {len(winners)} winners, {remainder} odd chip(s)")

    return shares
