"""Player model."""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from teenpatti.game.deck import Card
from teenpatti.game.hand_eval import HandRank, HandResult, evaluate


@dataclass
class Player:
    """A player seated in a game."""

    user_id: str
    username: str
    position: int
    chips: int = 0  # Available balance, kept in step with the balance store
    hand: list[Card] = field(default_factory=list)
    hand_rank: Optional[HandRank] = None
    hand_value: int = 0
    hand_description: str = ""
    is_active: bool = True
    is_folded: bool = False
    is_blind: bool = True
    current_bet: int = 0
    total_bet: int = 0
    last_action: Optional[str] = None
    joined_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def reset_for_new_round(self) -> None:
        """Clear cards, bets and flags before a deal."""
        self.hand = []
        self.hand_rank = None
        self.hand_value = 0
        self.hand_description = ""
        self.is_active = True
        self.is_folded = False
        self.is_blind = True
        self.current_bet = 0
        self.total_bet = 0
        self.last_action = None

    def receive_cards(self, cards: list[Card]) -> None:
        """Take a dealt hand and score it.

        Args:
            cards: The 3 dealt cards.
        """
        result = evaluate(cards)
        self.hand = list(cards)
        self.hand_rank = result.rank
        self.hand_value = result.value
        self.hand_description = result.description

    def pay(self, amount: int) -> None:
        """Move chips from the player's balance into their bet.

        Callers validate affordability first.
        """
        self.chips -= amount
        self.current_bet += amount
        self.total_bet += amount

    def fold(self) -> None:
        """Fold the hand; the player never acts again this round."""
        self.is_folded = True
        self.is_active = False

    def show(self) -> None:
        """Reveal the hand."""
        self.is_blind = False

    @property
    def can_act(self) -> bool:
        """Check if player is still contesting the pot."""
        return self.is_active and not self.is_folded

    @property
    def hand_result(self) -> Optional[HandResult]:
        if not self.hand or self.hand_rank is None:
            return None
        return HandResult(
            rank=self.hand_rank,
            value=self.hand_value,
            cards=list(self.hand),
            description=self.hand_description,
        )

    def to_dict(self, hide_cards: bool = True) -> dict:
        """Convert to dictionary for serialization.

        Args:
            hide_cards: If True, replace each card with a hidden placeholder
                and omit the hand's rank and value.

        Returns:
            Player state dictionary.
        """
        data = {
            "user_id": self.user_id,
            "username": self.username,
            "position": self.position,
            "chips": self.chips,
            "is_active": self.is_active,
            "is_folded": self.is_folded,
            "is_blind": self.is_blind,
            "current_bet": self.current_bet,
            "total_bet": self.total_bet,
            "last_action": self.last_action,
            "joined_at": self.joined_at.isoformat(),
        }

        if hide_cards:
            data["cards"] = [{"hidden": True} for _ in self.hand]
        else:
            data["cards"] = [c.to_dict() for c in self.hand]
            data["hand_rank"] = self.hand_rank.label if self.hand_rank else None
            data["hand_value"] = self.hand_value
            data["hand_description"] = self.hand_description

        return data

    def to_private_dict(self) -> dict:
        """Convert to dictionary including cards (for the player themselves)."""
        return self.to_dict(hide_cards=False)

    @classmethod
    def from_dict(cls, data: dict) -> "Player":
        """Create from a dictionary produced by ``to_private_dict``."""
        player = cls(
            user_id=data["user_id"],
            username=data["username"],
            position=data["position"],
            chips=data.get("chips", 0),
            is_active=data.get("is_active", True),
            is_folded=data.get("is_folded", False),
            is_blind=data.get("is_blind", True),
            current_bet=data.get("current_bet", 0),
            total_bet=data.get("total_bet", 0),
            last_action=data.get("last_action"),
        )

        if data.get("joined_at"):
            player.joined_at = datetime.fromisoformat(data["joined_at"])

        cards = [Card.from_dict(c) for c in data.get("cards", []) if not c.get("hidden")]
        if cards:
            player.hand = cards
            player.hand_rank = HandRank.from_label(data["hand_rank"]) if data.get("hand_rank") else None
            player.hand_value = data.get("hand_value", 0)
            player.hand_description = data.get("hand_description", "")

        return player
