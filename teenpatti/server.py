"""Game server: serializes transitions per game and commits their effects."""
import asyncio
from typing import Any, Callable, Optional, TypeVar

import asyncpg

from teenpatti.admin.ledger import Ledger, ledger as default_ledger
from teenpatti.admin.settlement import SettlementResult, settle
from teenpatti.config import config
from teenpatti.errors import AlreadyInGame, GameError, NotGameCreator, PersistenceError
from teenpatti.game.game import ActionOutcome, Game, GameStatus, generate_game_id
from teenpatti.protocol.broadcast import ConnectionManager, connection_manager
from teenpatti.protocol.messages import (
    GameCancelledMessage,
    GameEndedMessage,
    GameStartedMessage,
    GameStateMessage,
    PlayerActionMessage,
    PlayerJoinedMessage,
    PlayerLeftMessage,
)
from teenpatti.state.balance_store import BalanceStore, balance_store
from teenpatti.state.game_store import GameStore, game_store
from teenpatti.utils.logger import get_logger
from teenpatti.utils.retry import retry_async

logger = get_logger(__name__)

T = TypeVar("T")

UNFINISHED = (GameStatus.WAITING, GameStatus.ACTIVE)


class GameServer:
    """Runs game transitions one at a time per game.

    Each mutating call takes the game's lock, applies the transition, debits
    balances, then saves. If the save keeps failing the debits are refunded,
    the cached game is restored to its pre-transition state and a
    ``PersistenceError`` carrying the intended outcome is raised.
    """

    def __init__(
        self,
        store: Optional[GameStore] = None,
        balances: Optional[BalanceStore] = None,
        ledger: Optional[Ledger] = None,
        connections: Optional[ConnectionManager] = None,
        commission_rate: Optional[float] = None,
    ):
        self.store = store or game_store
        self.balances = balances or balance_store
        self.ledger = ledger or default_ledger
        self.connections = connections or connection_manager
        self.commission_rate = config.commission_rate if commission_rate is None else commission_rate

        self.games: dict[str, Game] = {}
        self._game_locks: dict[str, asyncio.Lock] = {}

    def _get_lock(self, game_id: str) -> asyncio.Lock:
        if game_id not in self._game_locks:
            self._game_locks[game_id] = asyncio.Lock()
        return self._game_locks[game_id]

    async def _load(self, game_id: str) -> Game:
        game = self.games.get(game_id)
        if game is None:
            game = await self.store.load_game(game_id)
            # Finished games are served from the store, never cached
            if game.status in UNFINISHED:
                game = self.games.setdefault(game_id, game)
        return game

    def _evict(self, game_id: str) -> None:
        self.games.pop(game_id, None)
        self._game_locks.pop(game_id, None)
        self.connections.close_game(game_id)
        logger.debug(f"Evicted finished game {game_id}")

    async def get_game(self, game_id: str) -> Game:
        """Get a game, loading it from the store if needed.

        Raises:
            GameNotFound: If the game does not exist.
        """
        if game_id not in self.games:
            return await self._load(game_id)
        async with self._get_lock(game_id):
            return await self._load(game_id)

    async def get_view(self, game_id: str, user_id: Optional[str]) -> dict:
        """Get a game as one player may see it."""
        game = await self.get_game(game_id)
        return game.view_for(user_id)

    # Commit machinery

    async def _save(self, game: Game) -> None:
        await retry_async(
            lambda: self.store.save_game(game),
            attempts=config.save_retry_attempts,
            backoff_seconds=config.save_retry_backoff_seconds,
            description=f"save game {game.game_id}",
        )

    async def _commit(self, game_id: str, transition: Callable[[Game], T]) -> tuple[Game, T]:
        """Apply a transition to a game and persist its effects.

        Must be called with the game's lock held.

        Args:
            game_id: The game to mutate.
            transition: Synchronous function that mutates the game.

        Returns:
            The game and whatever the transition returned.

        Raises:
            GameError: Rejected transitions propagate with nothing changed.
            PersistenceError: The effect could not be saved.
        """
        game = await self._load(game_id)
        snapshot = game.to_dict()

        result = transition(game)

        deltas = result.balance_deltas if isinstance(result, ActionOutcome) else {}
        applied: list[tuple[str, int]] = []
        try:
            for user_id, delta in deltas.items():
                if delta:
                    await self.balances.adjust_balance(user_id, delta)
                    applied.append((user_id, delta))
            await self._save(game)
        except GameError as e:
            await self._rollback(game_id, snapshot, applied)
            if isinstance(e, PersistenceError):
                raise PersistenceError(str(e), intended_effect=result) from e
            raise
        except (asyncpg.PostgresError, OSError, RuntimeError) as e:
            await self._rollback(game_id, snapshot, applied)
            raise PersistenceError(f"Failed to commit game {game_id}: {e}", intended_effect=result) from e

        return game, result

    async def _rollback(self, game_id: str, snapshot: dict, applied: list[tuple[str, int]]) -> None:
        for user_id, delta in reversed(applied):
            await self.balances.adjust_balance(user_id, -delta)
        self.games[game_id] = Game.from_dict(snapshot)
        logger.warning(f"Rolled back game {game_id} ({len(applied)} balance change(s) refunded)")

    async def _settle(self, game: Game) -> SettlementResult:
        result = settle(game, self.commission_rate)
        try:
            await retry_async(
                lambda: self.ledger.apply_settlement(result),
                attempts=config.save_retry_attempts,
                backoff_seconds=config.save_retry_backoff_seconds,
                description=f"settle game {game.game_id}",
            )
        except (asyncpg.PostgresError, OSError, RuntimeError) as e:
            raise PersistenceError(
                f"Game {game.game_id} completed but settlement failed: {e}",
                intended_effect=result,
            ) from e
        return result

    # Seats

    async def _claim_seat(self, user_id: str, game_id: str) -> None:
        """Record that a user sits in ``game_id``.

        Raises:
            AlreadyInGame: The user is seated in another unfinished game.
        """
        if await self.balances.claim_game(user_id, game_id):
            return

        current = await self.balances.get_current_game(user_id)
        other = self.games.get(current) if current else None
        if other is not None and other.status in UNFINISHED:
            raise AlreadyInGame(f"Already playing in game {current}")

        # The recorded seat belongs to a game that has since ended
        if current:
            logger.warning(f"Clearing stale seat of {user_id} in {current}")
            await self.balances.release_game(user_id, current)
        if not await self.balances.claim_game(user_id, game_id):
            raise AlreadyInGame("Already playing in another game")

    async def _release_seat(self, user_id: str, game_id: str) -> None:
        try:
            await self.balances.release_game(user_id, game_id)
        except (asyncpg.PostgresError, OSError) as e:
            logger.error(f"Could not release seat of {user_id} in {game_id}: {e}")

    async def _close_if_finished(self, game: Game) -> None:
        """Free the seats of a finished game and drop it from memory."""
        if game.status in UNFINISHED:
            return
        for player in game.players:
            await self._release_seat(player.user_id, game.game_id)
        self._evict(game.game_id)

    # Broadcasting

    async def broadcast_game_state(self, game: Game) -> None:
        """Send each follower their own redacted view of the game."""
        for user_id in sorted(self.connections.subscribers(game.game_id)):
            view = GameStateMessage(**game.view_for(user_id))
            await self.connections.publish_to_player(user_id, "game_state", view.model_dump())

    async def _announce_end(self, game: Game, settlement: Optional[SettlementResult]) -> None:
        if game.status == GameStatus.CANCELLED:
            reason = game.history[-1].note if game.history else "cancelled"
            message = GameCancelledMessage(game_id=game.game_id, reason=reason)
            await self.connections.publish(game.game_id, "game_cancelled", message.model_dump())
            return

        contenders = game.contenders()
        # Hands are only revealed when the round went to a showdown
        hands = {p.user_id: [c.to_dict() for c in p.hand] for p in contenders} if len(contenders) > 1 else {}
        message = GameEndedMessage(
            game_id=game.game_id,
            winners=list(game.winners),
            winning_hand_rank=game.winning_hand_rank.label if game.winning_hand_rank else None,
            pot=game.pot.get_total(),
            commission=settlement.commission if settlement else 0,
            payouts=settlement.payouts if settlement else {},
            hands=hands,
        )
        await self.connections.publish(game.game_id, "game_ended", message.model_dump())

    async def _finish_outcome(self, game: Game, outcome: ActionOutcome) -> None:
        settlement = None
        if outcome.settlement is not None:
            settlement = await self._settle(game)
        if outcome.round_ended or outcome.cancelled:
            await self._announce_end(game, settlement)

    # Operations

    async def create_game(
        self,
        user_id: str,
        min_bet: int,
        max_bet: int,
        max_players: int = 6,
        time_limit: int = config.default_turn_time_seconds,
    ) -> Game:
        """Create a game with the creator in the first seat.

        Raises:
            PlayerNotFound: Unknown creator.
            AlreadyInGame: The creator is playing elsewhere.
            ValidationError: Bad bet limits or seat count.
            InsufficientChips: Creator cannot cover the minimum bet.
            PersistenceError: The new game could not be saved.
        """
        username = await self.balances.get_username(user_id)
        chips = await self.balances.load_balance(user_id)

        game = Game(
            game_id=generate_game_id(),
            created_by=user_id,
            min_bet=min_bet,
            max_bet=max_bet,
            max_players=max_players,
            time_limit=time_limit,
        )
        game.join(user_id, username, chips)

        # The id is not shared with anyone until the game is saved
        await self._claim_seat(user_id, game.game_id)
        try:
            await self._save(game)
        except (GameError, asyncpg.PostgresError, OSError, RuntimeError) as e:
            await self._release_seat(user_id, game.game_id)
            raise PersistenceError(f"Failed to save new game {game.game_id}: {e}", intended_effect=game) from e
        self.games[game.game_id] = game
        self.connections.subscribe(game.game_id, user_id)

        logger.info(f"{username} created game {game.game_id} (bets {min_bet}-{max_bet})")
        return game

    async def join_game(self, game_id: str, user_id: str) -> Game:
        """Seat a user in a waiting game.

        Raises:
            AlreadyInGame: The user is playing elsewhere.
        """
        username = await self.balances.get_username(user_id)
        chips = await self.balances.load_balance(user_id)

        async with self._get_lock(game_id):
            await self._claim_seat(user_id, game_id)
            try:
                game, player = await self._commit(game_id, lambda g: g.join(user_id, username, chips))
            except GameError:
                seated = self.games.get(game_id)
                if seated is None or seated.get_player(user_id) is None:
                    await self._release_seat(user_id, game_id)
                raise
            self.connections.subscribe(game_id, user_id)

            message = PlayerJoinedMessage(
                game_id=game_id,
                user_id=user_id,
                username=username,
                position=player.position,
                chips=player.chips,
            )
            await self.connections.publish(game_id, "player_joined", message.model_dump())
            await self.broadcast_game_state(game)
        return game

    async def leave_game(self, game_id: str, user_id: str) -> ActionOutcome:
        """Remove a user from a game, folding them if it is under way."""
        async with self._get_lock(game_id):
            game = await self._load(game_id)
            player = game.get_player(user_id)
            username = player.username if player else user_id

            game, outcome = await self._commit(game_id, lambda g: g.leave(user_id))
            await self._release_seat(user_id, game_id)

            message = PlayerLeftMessage(game_id=game_id, user_id=user_id, username=username)
            await self.connections.publish(game_id, "player_left", message.model_dump())
            self.connections.unsubscribe(game_id, user_id)

            await self._finish_outcome(game, outcome)
            await self.broadcast_game_state(game)
            await self._close_if_finished(game)
        return outcome

    async def start_game(self, game_id: str, user_id: str) -> Game:
        """Deal the cards. Only the creator may start.

        Every seated player's balance is read again first, so the chip check
        runs against current funds.

        Raises:
            NotGameCreator: The caller did not create the game.
            InsufficientChips: A player can no longer cover the minimum bet.
        """
        async with self._get_lock(game_id):
            game = await self._load(game_id)
            if game.created_by != user_id:
                raise NotGameCreator("Only game creator can start the game")

            balances = {p.user_id: await self.balances.load_balance(p.user_id) for p in game.players}
            game, _ = await self._commit(game_id, lambda g: g.start(balances=balances))

            current = game.current_player
            message = GameStartedMessage(
                game_id=game_id,
                players=len(game.players),
                current_player=current.user_id if current else None,
            )
            await self.connections.publish(game_id, "game_started", message.model_dump())
            await self.broadcast_game_state(game)
        return game

    async def act(self, game_id: str, user_id: str, action: str, amount: int = 0) -> ActionOutcome:
        """Apply a player's action and publish its effects."""
        async with self._get_lock(game_id):
            game, outcome = await self._commit(game_id, lambda g: g.act(user_id, action, amount))

            player = game.get_player(user_id)
            message = PlayerActionMessage(
                game_id=game_id,
                user_id=user_id,
                username=player.username,
                action=outcome.action,
                amount=outcome.amount,
                pot=game.pot.get_total(),
                current_bet=game.current_bet,
                note=outcome.note,
            )
            await self.connections.publish(game_id, "player_action", message.model_dump())

            await self._finish_outcome(game, outcome)
            await self.broadcast_game_state(game)
            await self._close_if_finished(game)
        return outcome

    async def resolve(self, game_id: str, winner_ids: Optional[list[str]] = None) -> SettlementResult:
        """Force a showdown (or declare winners) and settle the pot."""
        async with self._get_lock(game_id):
            game, _ = await self._commit(game_id, lambda g: g.resolve(winner_ids))
            settlement = await self._settle(game)
            await self._announce_end(game, settlement)
            await self.broadcast_game_state(game)
            await self._close_if_finished(game)
        return settlement

    def list_games(self) -> list[dict[str, Any]]:
        """Summaries of the unfinished games held in memory."""
        return [
            {
                "game_id": game.game_id,
                "status": game.status.value,
                "players": len(game.players),
                "max_players": game.max_players,
                "min_bet": game.min_bet,
                "max_bet": game.max_bet,
                "pot": game.pot.get_total(),
            }
            for game in self.games.values()
            if game.status in UNFINISHED
        ]

    async def restore_games(self) -> None:
        """Load unfinished games into memory and pay out any unsettled ones."""
        for game_id in await self.store.list_games():
            try:
                game = await self.store.load_game(game_id)
            except GameError as e:
                logger.error(f"Could not restore game {game_id}: {e}")
                continue
            if game.status in UNFINISHED:
                self.games[game_id] = game
                for player in game.players:
                    self.connections.subscribe(game_id, player.user_id)
            elif game.status == GameStatus.COMPLETED:
                await self._settle_pending(game)
        logger.info(f"Restored {len(self.games)} unfinished game(s)")

    async def _settle_pending(self, game: Game) -> Optional[SettlementResult]:
        """Settle a completed game whose payout never reached the ledger."""
        try:
            if await self.ledger.is_settled(game.game_id):
                return None
            result = await self._settle(game)
        except (PersistenceError, asyncpg.PostgresError, OSError, RuntimeError) as e:
            logger.error(f"Settlement of game {game.game_id} still pending: {e}")
            return None

        logger.info(f"Settled game {game.game_id} on restore: payouts={result.payouts}")
        for player in game.players:
            await self._release_seat(player.user_id, game.game_id)
        return result
