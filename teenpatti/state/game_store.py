"""Game state persistence."""
import json
from datetime import datetime, timezone

import asyncpg
from redis.exceptions import RedisError

from teenpatti.db.connection import db
from teenpatti.errors import GameNotFound, PersistenceError
from teenpatti.game.game import Game
from teenpatti.state.redis_client import redis_client
from teenpatti.utils.logger import get_logger

logger = get_logger(__name__)

GAMES_KEY = "games"


class GameStore:
    """Persists games to Redis, with a PostgreSQL copy for durability."""
    
    def _game_key(self, game_id: str) -> str:
        """Get Redis key for game state."""
        return f"game:{game_id}"
    
    async def save_game(self, game: Game) -> None:
        """Save complete game state.
        
        Args:
            game: The game to persist.
            
        Raises:
            PersistenceError: If Redis rejects the write.
        """
        state = game.to_dict()
        state["_saved_at"] = datetime.now(timezone.utc).isoformat()
        
        try:
            await redis_client.set_json(self._game_key(game.game_id), state)
            await redis_client.sadd(GAMES_KEY, game.game_id)
        except (RedisError, OSError) as e:
            raise PersistenceError(f"Failed to save game {game.game_id}: {e}") from e
        logger.debug(f"Saved game state for {game.game_id}")
        
        await self._backup_to_postgres(game.game_id, game.status.value, state)
    
    async def _backup_to_postgres(self, game_id: str, status: str, state: dict) -> None:
        """Copy game state to PostgreSQL.
        
        A failed backup is logged; Redis remains the source of truth.
        """
        try:
            await db.execute(
                """
                INSERT INTO game_states (game_id, status, state, updated_at)
                VALUES ($1, $2, $3, NOW())
                ON CONFLICT (game_id)
                DO UPDATE SET status = $2, state = $3, updated_at = NOW()
                """,
                game_id,
                status,
                json.dumps(state)
            )
            logger.debug(f"Backed up game state to PostgreSQL for {game_id}")
        except (asyncpg.PostgresError, OSError) as e:
            logger.error(f"Failed to backup game {game_id} to PostgreSQL: {e}")
    
    async def load_game(self, game_id: str) -> Game:
        """Load a game.
        
        First tries Redis, falls back to PostgreSQL if not found.
        
        Args:
            game_id: Game identifier.
            
        Returns:
            The restored game.
            
        Raises:
            GameNotFound: If neither store has the game.
            PersistenceError: If the stores cannot be read.
        """
        try:
            state = await redis_client.get_json(self._game_key(game_id))
        except (RedisError, OSError) as e:
            raise PersistenceError(f"Failed to load game {game_id}: {e}") from e
        
        if state is None:
            state = await self._restore_from_postgres(game_id)
        if state is None:
            raise GameNotFound(f"Game {game_id} not found")
        
        game = Game.from_dict(state)
        game.check_invariants()
        return game
    
    async def _restore_from_postgres(self, game_id: str):
        try:
            row = await db.fetchrow(
                "SELECT state FROM game_states WHERE game_id = $1",
                game_id
            )
        except (asyncpg.PostgresError, OSError) as e:
            raise PersistenceError(f"Failed to load game {game_id} from PostgreSQL: {e}") from e
        if row is None:
            return None
        
        state = json.loads(row["state"])
        try:
            await redis_client.set_json(self._game_key(game_id), state)
        except (RedisError, OSError) as e:
            logger.warning(f"Could not re-cache game {game_id} in Redis: {e}")
        else:
            logger.info(f"Restored game {game_id} from PostgreSQL backup")
        return state
    
    async def list_games(self) -> list[str]:
        """List known game IDs.
        
        Combines games from Redis and the PostgreSQL backup.
        
        Returns:
            Sorted list of game IDs.
        """
        game_ids = set(await redis_client.smembers(GAMES_KEY))
        
        try:
            rows = await db.fetch("SELECT game_id FROM game_states")
            game_ids.update(row["game_id"] for row in rows)
        except (asyncpg.PostgresError, OSError) as e:
            logger.error(f"Failed to list games from PostgreSQL: {e}")
        
        return sorted(game_ids)


game_store = GameStore()
