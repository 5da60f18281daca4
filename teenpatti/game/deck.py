"""Card deck implementation."""
import random
from enum import Enum
from dataclasses import dataclass
from typing import Optional

from teenpatti.errors import DeckExhausted, ValidationError


class Suit(str, Enum):
    """Card suits."""
    HEARTS = "hearts"
    DIAMONDS = "diamonds"
    CLUBS = "clubs"
    SPADES = "spades"

    @property
    def short(self) -> str:
        return self.value[0]

    def __str__(self) -> str:
        return self.short


class Rank(int, Enum):
    """Card ranks (2-14, where 14 is Ace)."""
    TWO = 2
    THREE = 3
    FOUR = 4
    FIVE = 5
    SIX = 6
    SEVEN = 7
    EIGHT = 8
    NINE = 9
    TEN = 10
    JACK = 11
    QUEEN = 12
    KING = 13
    ACE = 14

    @property
    def label(self) -> str:
        if self.value <= 10:
            return str(self.value)
        return {11: "J", 12: "Q", 13: "K", 14: "A"}[self.value]

    @classmethod
    def from_label(cls, label: str) -> "Rank":
        """Parse a rank label such as '7', '10', 'T' or 'Q'."""
        faces = {"A": 14, "K": 13, "Q": 12, "J": 11, "T": 10}
        label = label.upper()
        if label in faces:
            return cls(faces[label])
        try:
            return cls(int(label))
        except ValueError:
            raise ValidationError(f"Unknown rank '{label}'")

    def __str__(self) -> str:
        return self.label


@dataclass(frozen=True)
class Card:
    """A playing card."""
    rank: Rank
    suit: Suit

    def __str__(self) -> str:
        return f"{self.rank.label}{self.suit.short}"

    def __repr__(self) -> str:
        return str(self)

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {"suit": self.suit.value, "rank": self.rank.label}

    @classmethod
    def from_dict(cls, data: dict) -> "Card":
        """Create from dictionary."""
        return cls(rank=Rank.from_label(str(data["rank"])), suit=Suit(data["suit"]))

    @classmethod
    def from_string(cls, s: str) -> "Card":
        """Parse card from string like 'Ah', '10s', '2c'.

        Args:
            s: Card string (rank + suit letter).

        Returns:
            Card instance.
        """
        suits = {suit.short: suit for suit in Suit}
        suit = suits.get(s[-1:].lower())
        if suit is None:
            raise ValidationError(f"Unknown suit in card '{s}'")
        return cls(rank=Rank.from_label(s[:-1]), suit=suit)


def build_deck() -> list[Card]:
    """Build an ordered 52-card deck, suit by suit."""
    return [Card(rank=rank, suit=suit) for suit in Suit for rank in Rank]


def shuffle(cards: list[Card], rng: Optional[random.Random] = None) -> list[Card]:
    """Return a uniformly shuffled copy of ``cards`` (Fisher-Yates).

    Args:
        cards: Cards to shuffle; left untouched.
        rng: Random source owned by the caller. Defaults to a fresh
            ``SystemRandom`` so no module-level state is shared.
    """
    rng = rng or random.SystemRandom()
    shuffled = list(cards)
    for i in range(len(shuffled) - 1, 0, -1):
        j = rng.randint(0, i)
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled


class Deck:
    """A 52-card deck consumed from the top."""

    def __init__(self, cards: Optional[list[Card]] = None, rng: Optional[random.Random] = None):
        """Initialize a deck.

        Args:
            cards: Explicit card order (top first). A fresh shuffled deck is
                built when omitted.
            rng: Random source used for shuffling.
        """
        self._rng = rng or random.SystemRandom()
        self._cards: list[Card] = list(cards) if cards is not None else shuffle(build_deck(), self._rng)

    def reset(self) -> None:
        """Replace the contents with a freshly shuffled full deck."""
        self._cards = shuffle(build_deck(), self._rng)

    def deal(self, players: int, cards_each: int = 3) -> list[list[Card]]:
        """Deal hands from the top of the deck.

        Cards go out one at a time around the table, as at a real table.

        Args:
            players: Number of hands to deal.
            cards_each: Cards per hand.

        Returns:
            One list of cards per player, in seat order.

        Raises:
            DeckExhausted: If fewer than ``players * cards_each`` cards remain.
        """
        needed = players * cards_each
        if needed > len(self._cards):
            raise DeckExhausted(f"Cannot deal {needed} cards, only {len(self._cards)} remain")

        drawn = self._cards[:needed]
        self._cards = self._cards[needed:]
        return [drawn[seat::players] for seat in range(players)]

    @property
    def cards(self) -> list[Card]:
        """Remaining cards, top first (copy)."""
        return list(self._cards)

    @property
    def remaining(self) -> int:
        """Number of cards remaining in the deck."""
        return len(self._cards)

    def __len__(self) -> int:
        return len(self._cards)

    def to_list(self) -> list[dict]:
        """Serialize remaining cards."""
        return [c.to_dict() for c in self._cards]

    @classmethod
    def from_list(cls, data: list[dict]) -> "Deck":
        """Restore a deck from serialized cards."""
        return cls(cards=[Card.from_dict(c) for c in data])
