"""Shared fixtures."""
import random

import pytest

from teenpatti.game.deck import Card, Deck, build_deck
from teenpatti.game.game import Game


def make_cards(cards: str) -> list[Card]:
    """Create cards from a space-separated string like 'Ah Kh Qh'."""
    return [Card.from_string(c) for c in cards.split()]


def stacked_deck(*hands: str) -> Deck:
    """Build a deck that deals the given hands, in seat order.

    Hands are dealt one card at a time around the table, so the top of the
    deck interleaves them. The rest of the deck follows in a fixed order.
    """
    dealt = [make_cards(h) for h in hands]
    top = [hand[i] for i in range(3) for hand in dealt]
    rest = [c for c in build_deck() if c not in top]
    return Deck(cards=top + rest)


@pytest.fixture
def rng():
    """Seeded random source."""
    return random.Random(1234)


@pytest.fixture
def game():
    """A waiting game with bets 10-100 and two seated players."""
    g = Game(game_id="TPTEST", created_by="u1", min_bet=10, max_bet=100)
    g.join("u1", "alice", 1000)
    g.join("u2", "bob", 1000)
    return g
