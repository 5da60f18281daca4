"""Game engine module."""
from .deck import Deck, Card, Suit, Rank
from .player import Player
from .hand_eval import evaluate_hand, evaluate, compare_hands, HandRank, HandResult
from .betting import BettingRound, ActionType
from .pot import Pot
from .game import Game, GameStatus, ActionOutcome, SettlementRequest, generate_game_id

__all__ = [
    "Deck",
    "Card",
    "Suit",
    "Rank",
    "Player",
    "evaluate_hand",
    "evaluate",
    "compare_hands",
    "HandRank",
    "HandResult",
    "BettingRound",
    "ActionType",
    "Pot",
    "Game",
    "GameStatus",
    "ActionOutcome",
    "SettlementRequest",
    "generate_game_id",
]
