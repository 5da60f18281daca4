"""Hand evaluation for 3-card Teen Patti."""
from enum import IntEnum
from dataclasses import dataclass
from collections import Counter

from teenpatti.game.deck import Card, Rank
from teenpatti.errors import ValidationError


class HandRank(IntEnum):
    """Teen Patti hand categories (higher is better)."""
    HIGH_CARD = 1
    PAIR = 2
    COLOR = 3
    SEQUENCE = 4
    PURE_SEQUENCE = 5
    TRAIL = 6

    @property
    def label(self) -> str:
        """Wire name, e.g. 'pure-sequence'."""
        return self.name.lower().replace("_", "-")

    @classmethod
    def from_label(cls, label: str) -> "HandRank":
        return cls[label.upper().replace("-", "_")]


# Category bases for hand_value. The spacing exceeds the largest kicker
# score (1542) so categories never overlap.
_CATEGORY_BASE = {
    HandRank.TRAIL: 60000,
    HandRank.PURE_SEQUENCE: 50000,
    HandRank.SEQUENCE: 40000,
    HandRank.COLOR: 30000,
    HandRank.PAIR: 20000,
    HandRank.HIGH_CARD: 0,
}


@dataclass
class HandResult:
    """Result of hand evaluation."""
    rank: HandRank
    value: int
    cards: list[Card]
    description: str

    def __lt__(self, other: "HandResult") -> bool:
        return self.value < other.value

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, HandResult):
            return False
        return self.value == other.value

    def __gt__(self, other: "HandResult") -> bool:
        return other < self

    def __le__(self, other: "HandResult") -> bool:
        return self == other or self < other

    def __ge__(self, other: "HandResult") -> bool:
        return self == other or self > other


def _check_hand(cards: list[Card]) -> None:
    if len(cards) != 3:
        raise ValidationError(f"Expected 3 cards, got {len(cards)}")
    if len(set(cards)) != 3:
        raise ValidationError(f"Hand contains duplicate cards: {cards}")


def _is_run(values: list[int]) -> bool:
    """Check if ascending values are consecutive (no wraparound)."""
    return values[1] == values[0] + 1 and values[2] == values[1] + 1


def evaluate_hand(cards: list[Card]) -> HandRank:
    """Rank a 3-card hand.

    Args:
        cards: Exactly 3 distinct cards, in any order.

    Returns:
        The hand's category.

    Raises:
        ValidationError: If the hand is not 3 distinct cards.
    """
    _check_hand(cards)

    values = sorted(c.rank.value for c in cards)
    same_suit = len({c.suit for c in cards}) == 1
    distinct = len(set(values))

    if distinct == 1:
        return HandRank.TRAIL
    if _is_run(values):
        return HandRank.PURE_SEQUENCE if same_suit else HandRank.SEQUENCE
    if same_suit:
        return HandRank.COLOR
    if distinct == 2:
        return HandRank.PAIR
    return HandRank.HIGH_CARD


def hand_value(cards: list[Card], rank: HandRank) -> int:
    """Comparable strength of a hand.

    Any hand of a higher category scores above every hand of a lower one;
    within a category the kickers decide.

    Args:
        cards: The 3 cards.
        rank: The category returned by ``evaluate_hand``.

    Returns:
        Integer strength.
    """
    _check_hand(cards)

    high, middle, low = sorted((c.rank.value for c in cards), reverse=True)
    base = _CATEGORY_BASE[rank]

    if rank == HandRank.TRAIL:
        return base + high
    if rank in (HandRank.PURE_SEQUENCE, HandRank.SEQUENCE):
        return base + low
    if rank == HandRank.PAIR:
        counts = Counter((high, middle, low))
        pair_value = next(v for v, n in counts.items() if n == 2)
        kicker = next(v for v, n in counts.items() if n == 1)
        return base + pair_value * 100 + kicker
    # Color and high card both score by descending kickers.
    return base + high * 100 + middle * 10 + low


def describe_hand(cards: list[Card], rank: HandRank) -> str:
    """Human-readable hand description."""
    high, _, low = sorted((c.rank.value for c in cards), reverse=True)

    if rank == HandRank.TRAIL:
        return f"Trail of {Rank(high).label}s"
    if rank == HandRank.PURE_SEQUENCE:
        return f"Pure Sequence, {Rank(low).label} to {Rank(high).label}"
    if rank == HandRank.SEQUENCE:
        return f"Sequence, {Rank(low).label} to {Rank(high).label}"
    if rank == HandRank.COLOR:
        return f"Color, {Rank(high).label} high"
    if rank == HandRank.PAIR:
        counts = Counter(c.rank.value for c in cards)
        pair_value = next(v for v, n in counts.items() if n == 2)
        return f"Pair of {Rank(pair_value).label}s"
    return f"High Card, {Rank(high).label}"


def evaluate(cards: list[Card]) -> HandResult:
    """Evaluate a hand into rank, value and description."""
    rank = evaluate_hand(cards)
    return HandResult(
        rank=rank,
        value=hand_value(cards, rank),
        cards=list(cards),
        description=describe_hand(cards, rank),
    )


def compare_hands(results: list[tuple[str, HandResult]]) -> list[list[str]]:
    """Compare multiple hands and return winners.

    Args:
        results: List of (user_id, HandResult) tuples.

    Returns:
        List of groups, strongest first (ties are in the same group).
    """
    if not results:
        return []

    # Stable sort keeps seat order inside a tied group
    sorted_results = sorted(results, key=lambda x: x[1].value, reverse=True)

    groups: list[list[str]] = []
    current_group: list[str] = [sorted_results[0][0]]
    current_hand = sorted_results[0][1]

    for user_id, hand in sorted_results[1:]:
        if hand == current_hand:
            current_group.append(user_id)
        else:
            groups.append(current_group)
            current_group = [user_id]
            current_hand = hand

    groups.append(current_group)
    return groups
