"""Pot settlement: commission, payouts and loss records."""
import math
from dataclasses import dataclass, field
from typing import Optional

from teenpatti.admin.ledger import TransactionType
from teenpatti.config import config
from teenpatti.errors import GameNotCompleted, ValidationError
from teenpatti.game.game import Game, GameStatus
from teenpatti.game.pot import split_amount
from teenpatti.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class SettlementInstruction:
    """One chip movement the ledger must record."""
    type: TransactionType
    amount: int
    from_user: Optional[str] = None
    to_user: Optional[str] = None
    reason: str = ""

    @property
    def credits_balance(self) -> bool:
        """Whether this instruction adds chips to a player's balance."""
        return self.type == TransactionType.GAME_WIN and self.to_user is not None

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "amount": self.amount,
            "from_user": self.from_user,
            "to_user": self.to_user,
            "reason": self.reason,
        }


@dataclass
class SettlementResult:
    """Everything needed to pay out one completed game."""
    game_id: str
    pot: int
    commission: int
    winnings: int
    winner_ids: list[str]
    stakes: dict[str, int] = field(default_factory=dict)  # user_id -> total bet, every seated player
    instructions: list[SettlementInstruction] = field(default_factory=list)

    @property
    def payouts(self) -> dict[str, int]:
        """Chips credited to each winner."""
        return {i.to_user: i.amount for i in self.instructions if i.credits_balance}

    def to_dict(self) -> dict:
        return {
            "game_id": self.game_id,
            "pot": self.pot,
            "commission": self.commission,
            "winnings": self.winnings,
            "winner_ids": list(self.winner_ids),
            "stakes": dict(self.stakes),
            "payouts": self.payouts,
            "instructions": [i.to_dict() for i in self.instructions],
        }


def compute_commission(pot: int, rate: float) -> int:
    """Platform cut of a pot, rounded down to whole chips."""
    if not 0 <= rate < 1:
        raise ValidationError(f"Commission rate must be in [0, 1), got {rate}")
    return math.floor(pot * rate)


def settle(game: Game, commission_rate: Optional[float] = None) -> SettlementResult:
    """Work out the payouts for a completed game.

    Winners share the pot minus commission evenly. Any odd chips go one each
    to winners in seat order starting from the first player to act. Players
    who bet and lost get an informational loss record.

    Args:
        game: A completed game.
        commission_rate: Fraction of the pot kept by the platform; defaults
            to ``config.commission_rate``.

    Returns:
        The settlement to apply.

    Raises:
        GameNotCompleted: If the game has no winner yet.
    """
    if game.status != GameStatus.COMPLETED or not game.winners:
        raise GameNotCompleted(f"Game {game.game_id} is {game.status.value}, cannot settle")

    rate = config.commission_rate if commission_rate is None else commission_rate
    pot = game.pot.get_total()
    commission = compute_commission(pot, rate)
    winnings = pot - commission

    result = SettlementResult(
        game_id=game.game_id,
        pot=pot,
        commission=commission,
        winnings=winnings,
        winner_ids=list(game.winners),
        stakes={p.user_id: p.total_bet for p in game.players},
    )

    shares = split_amount(winnings, game.winners)
    for user_id in game.winners:
        result.instructions.append(SettlementInstruction(
            type=TransactionType.GAME_WIN,
            amount=shares[user_id],
            to_user=user_id,
            reason=f"Won game {game.game_id}",
        ))

    result.instructions.append(SettlementInstruction(
        type=TransactionType.COMMISSION_DEDUCT,
        amount=commission,
        reason=f"Platform commission ({rate * 100:g}%) for game {game.game_id}",
    ))

    for player in game.players:
        if player.user_id in game.winners or player.total_bet <= 0:
            continue
        result.instructions.append(SettlementInstruction(
            type=TransactionType.GAME_LOSS,
            amount=player.total_bet,
            from_user=player.user_id,
            reason=f"Lost game {game.game_id}",
        ))

    logger.info(
        f"Settled {game.game_id}: pot={pot} commission={commission} payouts={result.payouts}"
    )
    return result
