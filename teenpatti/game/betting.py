"""Betting rules for a Teen Patti round."""
from enum import Enum
from typing import TYPE_CHECKING

from teenpatti.errors import (
    AlreadySeen,
    InsufficientChips,
    InvalidAction,
    InvalidRange,
    MustCallOrRaise,
    ValidationError,
)
from teenpatti.utils.logger import get_logger

if TYPE_CHECKING:
    from teenpatti.game.player import Player

logger = get_logger(__name__)


class ActionType(str, Enum):
    """Player action types."""
    FOLD = "fold"
    CALL = "call"
    RAISE = "raise"
    CHECK = "check"
    SHOW = "show"
    BLIND = "blind"


def parse_action(name: str) -> ActionType:
    """Resolve an action name.

    Raises:
        InvalidAction: If the name is not a known action.
    """
    try:
        return ActionType(str(name).lower())
    except ValueError:
        valid = ", ".join(a.value for a in ActionType)
        raise InvalidAction(f"Invalid action '{name}'. Valid: {valid}")


class BettingRound:
    """Prices and applies bets against the table's current bet.

    ``price`` only validates; nothing changes until ``apply`` is called, so a
    rejected action leaves player and table untouched.
    """

    def __init__(self, min_bet: int, max_bet: int, current_bet: int = 0):
        """Initialize betting limits.

        Args:
            min_bet: Smallest allowed raise, and the blind stake.
            max_bet: Largest allowed raise.
            current_bet: Table bet to match.
        """
        if min_bet < 1:
            raise ValidationError(f"Minimum bet must be at least 1, got {min_bet}")
        if max_bet < min_bet:
            raise ValidationError(f"Maximum bet {max_bet} is below minimum bet {min_bet}")

        self.min_bet = min_bet
        self.max_bet = max_bet
        self.current_bet = current_bet

    def reset(self) -> None:
        """Clear the table bet for a fresh deal."""
        self.current_bet = 0

    def get_call_amount(self, player: "Player") -> int:
        """Get the amount needed to match the table bet."""
        return max(0, self.current_bet - player.current_bet)

    def get_valid_actions(self, player: "Player") -> list[ActionType]:
        """Get actions the player could legally take now.

        Args:
            player: The player to check.

        Returns:
            List of valid action types.
        """
        actions = [ActionType.FOLD]
        to_call = self.get_call_amount(player)

        if to_call == 0:
            actions.append(ActionType.CHECK)
        elif player.chips >= to_call:
            actions.append(ActionType.CALL)

        if player.chips >= to_call + self.min_bet:
            actions.append(ActionType.RAISE)

        actions.append(ActionType.SHOW)

        if player.is_blind and player.chips >= self.min_bet:
            actions.append(ActionType.BLIND)

        return actions

    def price(self, player: "Player", action: ActionType, amount: int = 0) -> int:
        """Validate an action and return the chips it costs.

        Args:
            player: The acting player.
            action: The action type.
            amount: Raise increment (only used by raise).

        Returns:
            Chips the player must put in.

        Raises:
            InvalidRange: Raise outside [min_bet, max_bet].
            MustCallOrRaise: Check while behind the table bet.
            AlreadySeen: Blind after showing.
            InsufficientChips: Player cannot cover the cost.
        """
        if action in (ActionType.FOLD, ActionType.SHOW):
            return 0

        if action == ActionType.CHECK:
            if player.current_bet < self.current_bet:
                raise MustCallOrRaise(
                    f"Cannot check - must call or raise "
                    f"(table bet {self.current_bet}, yours {player.current_bet})"
                )
            return 0

        if action == ActionType.CALL:
            cost = self.get_call_amount(player)
            self._require_chips(player, cost, "call")
            return cost

        if action == ActionType.RAISE:
            if amount < self.min_bet or amount > self.max_bet:
                raise InvalidRange(
                    f"Raise amount must be between {self.min_bet} and {self.max_bet}, got {amount}"
                )
            cost = self.get_call_amount(player) + amount
            self._require_chips(player, cost, "raise")
            return cost

        if action == ActionType.BLIND:
            if not player.is_blind:
                raise AlreadySeen("Cannot play blind after showing cards")
            cost = self.min_bet
            self._require_chips(player, cost, "play blind")
            return cost

        raise InvalidAction(f"Invalid action '{action}'")

    def apply(self, player: "Player", action: ActionType, amount: int, cost: int) -> None:
        """Apply a priced action to the player and the table.

        Args:
            player: The acting player.
            action: The action type.
            amount: Raise increment.
            cost: Value returned by ``price``.
        """
        if action == ActionType.FOLD:
            player.fold()
        elif action == ActionType.SHOW:
            player.show()
        elif cost:
            player.pay(cost)

        if action == ActionType.RAISE:
            self.current_bet += amount
        elif action == ActionType.BLIND and cost > self.current_bet:
            self.current_bet = cost

        logger.debug(f"{player.username} {action.value} cost={cost} table_bet={self.current_bet}")

    @staticmethod
    def _require_chips(player: "Player", cost: int, verb: str) -> None:
        if player.chips < cost:
            raise InsufficientChips(f"insufficient chips to {verb}: need {cost}, have {player.chips}")
