"""User balances, seats and statistics."""
from typing import Optional

import asyncpg

from teenpatti.db.connection import db
from teenpatti.errors import InsufficientFunds, PlayerNotFound
from teenpatti.utils.logger import get_logger

logger = get_logger(__name__)


class BalanceStore:
    """Reads and adjusts the user rows: chips, current seat and statistics."""
    
    async def load_balance(self, user_id: str) -> int:
        """Get a user's balance.
        
        Raises:
            PlayerNotFound: If the user does not exist.
        """
        chips = await db.fetchval("SELECT chips FROM users WHERE id = $1", user_id)
        if chips is None:
            raise PlayerNotFound(f"User {user_id} not found")
        return chips
    
    async def get_username(self, user_id: str) -> str:
        """Get a user's display name.
        
        Raises:
            PlayerNotFound: If the user does not exist.
        """
        username = await db.fetchval("SELECT username FROM users WHERE id = $1", user_id)
        if username is None:
            raise PlayerNotFound(f"User {user_id} not found")
        return username
    
    async def adjust_balance(
        self,
        user_id: str,
        delta: int,
        conn: Optional[asyncpg.Connection] = None,
    ) -> int:
        """Add ``delta`` (negative to debit) to a balance atomically.
        
        Args:
            user_id: The user to adjust.
            delta: Chips to add.
            conn: Connection of an enclosing transaction, if any.
            
        Returns:
            The new balance.
            
        Raises:
            InsufficientFunds: If the balance would go negative.
            PlayerNotFound: If the user does not exist.
        """
        query = """
            UPDATE users SET chips = chips + $2
            WHERE id = $1 AND chips + $2 >= 0
            RETURNING chips
        """
        if conn is not None:
            balance = await conn.fetchval(query, user_id, delta)
        else:
            balance = await db.fetchval(query, user_id, delta)
        
        if balance is None:
            current = await self.load_balance(user_id)
            raise InsufficientFunds(
                f"insufficient funds: balance {current} cannot cover {-delta}"
            )
        
        logger.debug(f"Adjusted balance of {user_id} by {delta:+d} to {balance}")
        return balance
    
    async def get_current_game(self, user_id: str) -> Optional[str]:
        """Get the game a user is seated in, if any."""
        return await db.fetchval("SELECT current_game_id FROM users WHERE id = $1", user_id)
    
    async def claim_game(self, user_id: str, game_id: str) -> bool:
        """Mark a user as seated in a game.
    
        Returns:
            False if the user is already seated in a different game.
        """
        claimed = await db.fetchval(
            """
            UPDATE users SET current_game_id = $2
            WHERE id = $1 AND (current_game_id IS NULL OR current_game_id = $2)
            RETURNING id
            """,
            user_id,
            game_id
        )
        return claimed is not None
    
    async def release_game(self, user_id: str, game_id: str) -> None:
        """Clear a user's seat, but only if it still points at ``game_id``."""
        await db.execute(
            "UPDATE users SET current_game_id = NULL WHERE id = $1 AND current_game_id = $2",
            user_id,
            game_id
        )
        logger.debug(f"Released seat of {user_id} in {game_id}")
    
    async def get_stats(self, user_id: str) -> dict:
        """Get a user's lifetime results.
    
        Raises:
            PlayerNotFound: If the user does not exist.
        """
        row = await db.fetchrow(
            """
            SELECT id, username, chips, games_played, games_won, total_chips_won, total_chips_lost
            FROM users WHERE id = $1
            """,
            user_id
        )
        if row is None:
            raise PlayerNotFound(f"User {user_id} not found")
        return {
            "user_id": row["id"],
            "username": row["username"],
            "chips": row["chips"],
            "games_played": row["games_played"],
            "games_won": row["games_won"],
            "total_chips_won": row["total_chips_won"],
            "total_chips_lost": row["total_chips_lost"],
            "net_chips": row["total_chips_won"] - row["total_chips_lost"],
        }


balance_store = BalanceStore()
