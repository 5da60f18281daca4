"""Round state machine for Teen Patti."""
import random
import secrets
import string
import time
from enum import Enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from teenpatti.config import config
from teenpatti.errors import (
    AlreadyCompleted,
    AlreadyJoined,
    GameFull,
    GameInProgress,
    GameNotActive,
    InsufficientChips,
    InvariantViolation,
    NoActivePlayers,
    NotEnoughPlayers,
    NotYourTurn,
    PlayerNotFound,
    ValidationError,
)
from teenpatti.game.betting import ActionType, BettingRound, parse_action
from teenpatti.game.deck import Deck
from teenpatti.game.hand_eval import HandRank, compare_hands
from teenpatti.game.player import Player
from teenpatti.game.pot import Pot
from teenpatti.utils.logger import get_game_logger

CARDS_PER_HAND = 3
MAX_SEATS = 6


class GameStatus(str, Enum):
    """Game states."""
    WAITING = "waiting"          # Accepting players
    ACTIVE = "active"            # Cards dealt, betting in progress
    COMPLETED = "completed"      # Winner decided
    CANCELLED = "cancelled"      # Abandoned without a winner


def generate_game_id() -> str:
    """Generate a game id such as 'TP1718000000000AB12C'."""
    alphabet = string.ascii_uppercase + string.digits
    suffix = "".join(secrets.choice(alphabet) for _ in range(5))
    return f"TP{int(time.time() * 1000)}{suffix}"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


@dataclass
class HistoryEntry:
    """One line of the game's append-only action log."""
    action: str
    user_id: Optional[str]
    amount: int = 0
    note: str = ""
    timestamp: datetime = field(default_factory=_now)

    def to_dict(self) -> dict:
        return {
            "action": self.action,
            "user_id": self.user_id,
            "amount": self.amount,
            "note": self.note,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "HistoryEntry":
        return cls(
            action=data["action"],
            user_id=data.get("user_id"),
            amount=data.get("amount", 0),
            note=data.get("note", ""),
            timestamp=datetime.fromisoformat(data["timestamp"]),
        )


@dataclass
class SettlementRequest:
    """Emitted when a round ends with a winner; consumed by settlement."""
    game_id: str
    pot: int
    winner_ids: list[str]
    reason: str  # "last_player_standing" or "showdown"

    def to_dict(self) -> dict:
        return {
            "game_id": self.game_id,
            "pot": self.pot,
            "winner_ids": list(self.winner_ids),
            "reason": self.reason,
        }


@dataclass
class ActionOutcome:
    """What a transition did, for the caller to persist and broadcast."""
    action: str
    user_id: str
    amount: int = 0
    balance_deltas: dict[str, int] = field(default_factory=dict)
    round_ended: bool = False
    cancelled: bool = False
    settlement: Optional[SettlementRequest] = None
    note: str = ""

    def to_dict(self) -> dict:
        return {
            "action": self.action,
            "user_id": self.user_id,
            "amount": self.amount,
            "balance_deltas": dict(self.balance_deltas),
            "round_ended": self.round_ended,
            "cancelled": self.cancelled,
            "settlement": self.settlement.to_dict() if self.settlement else None,
            "note": self.note,
        }


class Game:
    """One Teen Patti round: seating, dealing, betting and resolution.

    All transitions are synchronous and validate before mutating, so a
    rejected call leaves the game exactly as it was. Callers serialize
    access per game.
    """

    def __init__(
        self,
        game_id: str,
        created_by: str,
        min_bet: int,
        max_bet: int,
        max_players: int = MAX_SEATS,
        time_limit: int = config.default_turn_time_seconds,
        dealer_index: int = 0,
        rng: Optional[random.Random] = None,
    ):
        """Initialize a waiting game.

        Args:
            game_id: Unique game identifier.
            created_by: User id of the creator.
            min_bet: Minimum raise and blind stake.
            max_bet: Maximum raise.
            max_players: Seats available (2-6).
            time_limit: Seconds allowed per turn (enforced externally).
            dealer_index: Seat that acts first after the deal.
            rng: Random source for shuffling.
        """
        if not config.min_players <= max_players <= MAX_SEATS:
            raise ValidationError(
                f"max_players must be between {config.min_players} and {MAX_SEATS}, got {max_players}"
            )

        self.game_id = game_id
        self.created_by = created_by
        self.max_players = max_players
        self.time_limit = time_limit
        self.dealer_index = dealer_index

        self.status = GameStatus.WAITING
        self.players: list[Player] = []
        self.current_player_index: int = 0
        self.betting = BettingRound(min_bet=min_bet, max_bet=max_bet)
        self.pot = Pot()
        self.deck = Deck(cards=[])
        self.history: list[HistoryEntry] = []
        self.winners: list[str] = []
        self.winning_hand_rank: Optional[HandRank] = None

        self.created_at: datetime = _now()
        self.started_at: Optional[datetime] = None
        self.completed_at: Optional[datetime] = None

        self._rng = rng
        self._log = get_game_logger(__name__, game_id)

    # Accessors

    @property
    def min_bet(self) -> int:
        return self.betting.min_bet

    @property
    def max_bet(self) -> int:
        return self.betting.max_bet

    @property
    def current_bet(self) -> int:
        return self.betting.current_bet

    @property
    def winner(self) -> Optional[str]:
        return self.winners[0] if self.winners else None

    @property
    def current_player(self) -> Optional[Player]:
        """The player whose turn it is, while active."""
        if self.status != GameStatus.ACTIVE or not self.players:
            return None
        return self.players[self.current_player_index]

    def get_player(self, user_id: str) -> Optional[Player]:
        """Get player by user ID."""
        for player in self.players:
            if player.user_id == user_id:
                return player
        return None

    def _require_player(self, user_id: str) -> Player:
        player = self.get_player(user_id)
        if player is None:
            raise PlayerNotFound(f"Player {user_id} is not in game {self.game_id}")
        return player

    def contenders(self) -> list[Player]:
        """Players still contesting the pot, in seat order."""
        return [p for p in self.players if p.can_act]

    def _seat_order_from_first_actor(self) -> list[Player]:
        if not self.players:
            return []
        start = self.dealer_index % len(self.players)
        return self.players[start:] + self.players[:start]

    def _record(self, action: str, user_id: Optional[str], amount: int = 0, note: str = "") -> None:
        self.history.append(HistoryEntry(action=action, user_id=user_id, amount=amount, note=note))

    # Seating

    def join(self, user_id: str, username: str, chips: int) -> Player:
        """Seat a player at the next position.

        Args:
            user_id: Joining user's ID.
            username: Display name.
            chips: The user's available balance.

        Returns:
            The seated player.

        Raises:
            GameInProgress: Game is no longer waiting.
            AlreadyJoined: User already seated.
            GameFull: No seats left.
            InsufficientChips: Balance below the minimum bet.
        """
        if self.status != GameStatus.WAITING:
            raise GameInProgress(f"Cannot join game {self.game_id}: it is {self.status.value}")
        if self.get_player(user_id):
            raise AlreadyJoined(f"{username} is already in game {self.game_id}")
        if len(self.players) >= self.max_players:
            raise GameFull(f"Game {self.game_id} is full ({self.max_players} players)")
        if chips < self.min_bet:
            raise InsufficientChips(f"insufficient chips to join: need {self.min_bet}, have {chips}")

        player = Player(user_id=user_id, username=username, position=len(self.players), chips=chips)
        self.players.append(player)
        self._record("join", user_id, note=f"{username} joined at seat {player.position}")
        self._log.info(f"{username} joined at seat {player.position}")
        return player

    def leave(self, user_id: str) -> ActionOutcome:
        """Remove a player, or fold them if the round is under way.

        While waiting the seat is freed and positions are re-indexed. While
        active the player is folded in place so the pot stays intact; if that
        leaves a single contender they win, unless nothing has been bet yet,
        in which case the game is cancelled.

        Raises:
            PlayerNotFound: User is not seated.
            GameNotActive: Game already finished.
        """
        player = self._require_player(user_id)
        outcome = ActionOutcome(action="leave", user_id=user_id)

        if self.status == GameStatus.WAITING:
            self.players.remove(player)
            for index, remaining in enumerate(self.players):
                remaining.position = index
            note = f"{player.username} left the game"
            if user_id == self.created_by and self.players:
                # The first remaining seat inherits the right to start
                self.created_by = self.players[0].user_id
                note += f", {self.players[0].username} now hosts"
            outcome.note = note
            self._record("leave", user_id, note=note)
            self._log.info(f"{player.username} left before the start")
            if not self.players:
                self._cancel("all players left")
                outcome.cancelled = True
            return outcome

        if self.status != GameStatus.ACTIVE:
            raise GameNotActive(f"Game {self.game_id} is {self.status.value}")

        if player.is_folded:
            self._record("leave", user_id, note=f"{player.username} left the game")
            return outcome

        was_their_turn = self.current_player is player
        player.fold()
        player.last_action = ActionType.FOLD.value
        outcome.action = ActionType.FOLD.value
        outcome.note = f"{player.username} left the game (folded)"
        self._record(ActionType.FOLD.value, user_id, note=outcome.note)
        self._log.info(outcome.note)

        remaining = self.contenders()
        if len(remaining) == 1:
            outcome.round_ended = True
            if self.pot.get_total() > 0:
                outcome.settlement = self._complete([remaining[0].user_id], "last_player_standing")
            else:
                self._cancel("not enough players")
                outcome.cancelled = True
        elif was_their_turn:
            self._advance_turn()

        return outcome

    # Round flow

    def start(self, deck: Optional[Deck] = None, balances: Optional[dict[str, int]] = None) -> None:
        """Deal a fresh round and open betting.

        Args:
            deck: Pre-ordered deck to deal from; a freshly shuffled one is
                used when omitted.
            balances: Current balance per user ID. Seated players' chips are
                refreshed from it before the chip check.

        Raises:
            GameInProgress: Game already started or finished.
            NotEnoughPlayers: Fewer than the minimum players seated.
            InsufficientChips: A player cannot cover the minimum bet.
        """
        if self.status != GameStatus.WAITING:
            raise GameInProgress(f"Game {self.game_id} has already started or ended")
        if len(self.players) < config.min_players:
            raise NotEnoughPlayers(
                f"Need at least {config.min_players} players to start, have {len(self.players)}"
            )
        balances = balances or {}
        chips = {p.user_id: balances.get(p.user_id, p.chips) for p in self.players}
        for player in self.players:
            if chips[player.user_id] < self.min_bet:
                raise InsufficientChips(
                    f"Player {player.username} has insufficient chips: "
                    f"need {self.min_bet}, have {chips[player.user_id]}"
                )

        deck = deck if deck is not None else Deck(rng=self._rng)
        hands = deck.deal(len(self.players), CARDS_PER_HAND)

        self.deck = deck
        self.betting.reset()
        self.pot.reset()
        for player, hand in zip(self.players, hands):
            player.chips = chips[player.user_id]
            player.reset_for_new_round()
            player.receive_cards(hand)

        self.status = GameStatus.ACTIVE
        self.started_at = _now()
        self.current_player_index = self.dealer_index % len(self.players)
        self._record("start", None, note=f"Dealt {len(self.players)} hands")
        self._log.info(f"Started with {len(self.players)} players, {self.deck.remaining} cards left")

    def act(self, user_id: str, action: str, amount: int = 0) -> ActionOutcome:
        """Apply a player's action.

        Args:
            user_id: Acting player's user ID.
            action: One of fold, call, raise, check, show, blind.
            amount: Raise increment (raise only).

        Returns:
            The outcome, including chips taken from the player.

        Raises:
            GameNotActive, PlayerNotFound, NotYourTurn, InvalidAction,
            InvalidRange, MustCallOrRaise, AlreadySeen, InsufficientChips.
        """
        if self.status != GameStatus.ACTIVE:
            raise GameNotActive(f"Game {self.game_id} is {self.status.value}")
        player = self._require_player(user_id)
        if self.current_player is not player:
            current = self.current_player
            raise NotYourTurn(f"Not your turn: waiting for {current.username if current else 'nobody'}")

        action_type = parse_action(action)
        cost = self.betting.price(player, action_type, amount)

        self.betting.apply(player, action_type, amount, cost)
        if cost:
            self.pot.add_bet(user_id, cost)
        player.last_action = action_type.value

        note = self._describe(player, action_type, amount, cost)
        self._record(action_type.value, user_id, cost, note)
        self._log.info(note)

        outcome = ActionOutcome(
            action=action_type.value,
            user_id=user_id,
            amount=cost,
            balance_deltas={user_id: -cost} if cost else {},
            note=note,
        )

        remaining = self.contenders()
        if action_type == ActionType.FOLD and len(remaining) == 1:
            outcome.round_ended = True
            outcome.settlement = self._complete([remaining[0].user_id], "last_player_standing")
        elif action_type == ActionType.SHOW and len(remaining) == 2:
            outcome.round_ended = True
            outcome.settlement = self.resolve()
        else:
            self._advance_turn()

        return outcome

    def _describe(self, player: Player, action: ActionType, amount: int, cost: int) -> str:
        if action == ActionType.FOLD:
            return f"{player.username} folded"
        if action == ActionType.CALL:
            return f"{player.username} called {cost}"
        if action == ActionType.RAISE:
            return f"{player.username} raised by {amount}"
        if action == ActionType.CHECK:
            return f"{player.username} checked"
        if action == ActionType.SHOW:
            return f"{player.username} showed cards"
        return f"{player.username} played blind for {cost}"

    def _advance_turn(self) -> None:
        """Move the turn to the next contender, wrapping around the table."""
        if not self.contenders():
            raise NoActivePlayers(f"No active players left in game {self.game_id}")

        count = len(self.players)
        for step in range(1, count + 1):
            candidate = (self.current_player_index + step) % count
            if self.players[candidate].can_act:
                self.current_player_index = candidate
                return

    def resolve(self, winner_ids: Optional[list[str]] = None) -> SettlementRequest:
        """End the round and name the winner(s).

        Without explicit winners every contender's hand is compared; players
        tied on hand value share the pot.

        Args:
            winner_ids: Decided winners, if the caller already knows them.

        Returns:
            The settlement request for the pot.

        Raises:
            AlreadyCompleted: The game already has a winner.
            GameNotActive: The game is not in progress.
            ValidationError: A named winner is not contesting the pot.
        """
        if self.status == GameStatus.COMPLETED:
            raise AlreadyCompleted(f"Game {self.game_id} is already completed")
        if self.status != GameStatus.ACTIVE:
            raise GameNotActive(f"Game {self.game_id} is {self.status.value}")

        contenders = self.contenders()
        if not contenders:
            raise NoActivePlayers(f"No active players left in game {self.game_id}")

        if winner_ids is None:
            ranked = compare_hands([(p.user_id, p.hand_result) for p in contenders])
            winner_ids = ranked[0]
            reason = "showdown" if len(contenders) > 1 else "last_player_standing"
        else:
            contender_ids = {p.user_id for p in contenders}
            strangers = [uid for uid in winner_ids if uid not in contender_ids]
            if strangers or not winner_ids:
                raise ValidationError(f"Winners must be active players, got {winner_ids}")
            reason = "showdown"

        return self._complete(winner_ids, reason)

    def _complete(self, winner_ids: list[str], reason: str) -> SettlementRequest:
        chosen = set(winner_ids)
        ordered = [p for p in self._seat_order_from_first_actor() if p.user_id in chosen]

        self.status = GameStatus.COMPLETED
        self.completed_at = _now()
        self.winners = [p.user_id for p in ordered]
        self.winning_hand_rank = ordered[0].hand_rank

        total = self.pot.get_total()
        if len(ordered) == 1:
            self._record("win", ordered[0].user_id, total, f"{ordered[0].username} won the pot of {total}")
        else:
            names = ", ".join(p.username for p in ordered)
            self._record("split", None, total, f"Pot of {total} split between {names}")
        self._log.info(f"Completed ({reason}): winners={self.winners} pot={total}")

        return SettlementRequest(
            game_id=self.game_id,
            pot=total,
            winner_ids=list(self.winners),
            reason=reason,
        )

    def _cancel(self, reason: str) -> None:
        self.status = GameStatus.CANCELLED
        self.completed_at = _now()
        self._record("cancel", None, note=f"Game cancelled: {reason}")
        self._log.info(f"Cancelled: {reason}")

    # Checks

    def check_invariants(self) -> None:
        """Verify pot and turn consistency.

        Raises:
            InvariantViolation: If the state is inconsistent.
        """
        bets = sum(p.total_bet for p in self.players)
        if self.status in (GameStatus.WAITING, GameStatus.ACTIVE) and self.pot.get_total() != bets:
            raise InvariantViolation(f"Pot {self.pot.get_total()} does not match bets {bets}")
        if len(self.players) > self.max_players:
            raise InvariantViolation(f"{len(self.players)} players exceed {self.max_players} seats")
        if self.status == GameStatus.ACTIVE:
            if not 0 <= self.current_player_index < len(self.players):
                raise InvariantViolation(f"Turn index {self.current_player_index} out of range")
            if not self.players[self.current_player_index].can_act:
                raise InvariantViolation("Turn points at a folded or inactive player")

    def valid_actions(self, user_id: str) -> list[str]:
        """Actions the user may take right now (empty when not their turn)."""
        player = self.get_player(user_id)
        if player is None or self.current_player is not player:
            return []
        return [a.value for a in self.betting.get_valid_actions(player)]

    # Views and serialization

    def _summary(self) -> dict:
        return {
            "game_id": self.game_id,
            "status": self.status.value,
            "created_by": self.created_by,
            "max_players": self.max_players,
            "min_bet": self.min_bet,
            "max_bet": self.max_bet,
            "current_bet": self.current_bet,
            "pot": self.pot.get_total(),
            "time_limit": self.time_limit,
            "dealer_index": self.dealer_index,
            "current_player_index": self.current_player_index,
            "winners": list(self.winners),
            "winner": self.winner,
            "winning_hand_rank": self.winning_hand_rank.label if self.winning_hand_rank else None,
            "history": [h.to_dict() for h in self.history],
            "created_at": self.created_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }

    def view_for(self, user_id: Optional[str]) -> dict:
        """Game state as one player (or a spectator, with None) may see it.

        Other players' cards are replaced with hidden placeholders unless
        they have shown, or won a completed game.

        Args:
            user_id: The viewing player.

        Returns:
            Redacted state dictionary.
        """
        data = self._summary()
        players_data = []
        for player in self.players:
            revealed = (
                player.user_id == user_id
                or not player.is_blind
                or (self.status == GameStatus.COMPLETED and player.user_id in self.winners)
            )
            player_data = player.to_dict(hide_cards=not revealed)
            player_data["is_you"] = player.user_id == user_id
            players_data.append(player_data)

        current = self.current_player
        viewer = self.get_player(user_id) if user_id else None
        data.update({
            "players": players_data,
            "current_player": current.user_id if current else None,
            "valid_actions": self.valid_actions(user_id) if user_id else [],
            "call_amount": self.betting.get_call_amount(viewer) if viewer else 0,
        })
        return data

    def to_dict(self) -> dict:
        """Serialize full game state for persistence."""
        data = self._summary()
        data["players"] = [p.to_private_dict() for p in self.players]
        data["pot"] = self.pot.to_dict()
        data["deck"] = self.deck.to_list()
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Game":
        """Restore a game from ``to_dict`` output."""
        game = cls(
            game_id=data["game_id"],
            created_by=data["created_by"],
            min_bet=data["min_bet"],
            max_bet=data["max_bet"],
            max_players=data.get("max_players", MAX_SEATS),
            time_limit=data.get("time_limit", config.default_turn_time_seconds),
            dealer_index=data.get("dealer_index", 0),
        )
        game.status = GameStatus(data["status"])
        game.betting.current_bet = data.get("current_bet", 0)
        game.current_player_index = data.get("current_player_index", 0)
        game.players = [Player.from_dict(p) for p in data.get("players", [])]
        game.pot = Pot.from_dict(data.get("pot", {}))
        game.deck = Deck.from_list(data.get("deck", []))
        game.history = [HistoryEntry.from_dict(h) for h in data.get("history", [])]
        game.winners = list(data.get("winners", []))
        if data.get("winning_hand_rank"):
            game.winning_hand_rank = HandRank.from_label(data["winning_hand_rank"])
        game.created_at = _parse_time(data.get("created_at")) or game.created_at
        game.started_at = _parse_time(data.get("started_at"))
        game.completed_at = _parse_time(data.get("completed_at"))
        return game
