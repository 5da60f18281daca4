"""Transaction ledger for chip movements using PostgreSQL."""
import json
import secrets
import string
import time
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Optional

import asyncpg

from teenpatti.db.connection import db
from teenpatti.state.balance_store import BalanceStore, balance_store
from teenpatti.utils.logger import get_logger

if TYPE_CHECKING:
    from teenpatti.admin.settlement import SettlementResult

logger = get_logger(__name__)


class TransactionType(str, Enum):
    """Types of chip transactions."""
    GAME_WIN = "game_win"
    GAME_LOSS = "game_loss"
    COMMISSION_DEDUCT = "commission_deduct"


def generate_transaction_id() -> str:
    """Generate a transaction id such as 'TXN1718000000000K3P9Z'."""
    alphabet = string.ascii_uppercase + string.digits
    suffix = "".join(secrets.choice(alphabet) for _ in range(5))
    return f"TXN{int(time.time() * 1000)}{suffix}"


@dataclass
class Transaction:
    """A chip transaction record."""
    transaction_id: str
    type: TransactionType
    from_user: Optional[str]
    to_user: Optional[str]
    amount: int
    game_id: Optional[str]
    reason: Optional[str]
    created_at: datetime

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "transaction_id": self.transaction_id,
            "type": self.type.value,
            "from_user": self.from_user,
            "to_user": self.to_user,
            "amount": self.amount,
            "game_id": self.game_id,
            "reason": self.reason,
            "timestamp": self.created_at.isoformat(),
        }

    @classmethod
    def from_record(cls, record) -> "Transaction":
        """Create from database record."""
        return cls(
            transaction_id=record["transaction_id"],
            type=TransactionType(record["type"]),
            from_user=record["from_user"],
            to_user=record["to_user"],
            amount=record["amount"],
            game_id=record["game_id"],
            reason=record["reason"],
            created_at=record["created_at"],
        )


_INSERT_TRANSACTION = """
    INSERT INTO ledger_transactions (transaction_id, type, from_user, to_user, amount, game_id, reason)
    VALUES ($1, $2, $3, $4, $5, $6, $7)
    RETURNING *
"""


class Ledger:
    """Append-only record of chip movements."""

    def __init__(self, balances: Optional[BalanceStore] = None):
        self.balances = balances or balance_store

    async def record_transaction(
        self,
        transaction_type: TransactionType,
        from_user: Optional[str],
        to_user: Optional[str],
        amount: int,
        game_id: Optional[str] = None,
        reason: Optional[str] = None,
        conn: Optional[asyncpg.Connection] = None,
    ) -> Transaction:
        """Record a chip transaction.

        Args:
            transaction_type: Type of transaction.
            from_user: Paying user, if any.
            to_user: Receiving user (None for the platform).
            amount: Chip amount (non-negative).
            game_id: Game the movement belongs to.
            reason: Free-text description.
            conn: Connection of an enclosing transaction, if any.

        Returns:
            The recorded transaction.
        """
        args = (
            generate_transaction_id(),
            transaction_type.value,
            from_user,
            to_user,
            amount,
            game_id,
            reason,
        )
        if conn is not None:
            record = await conn.fetchrow(_INSERT_TRANSACTION, *args)
        else:
            record = await db.fetchrow(_INSERT_TRANSACTION, *args)

        transaction = Transaction.from_record(record)
        logger.info(
            f"Recorded {transaction_type.value}: {amount} chips "
            f"{from_user or 'platform'} -> {to_user or 'platform'} (game {game_id})"
        )
        return transaction

    async def apply_settlement(self, result: "SettlementResult") -> bool:
        """Pay out a game: credits, ledger rows and player statistics in one transaction.

        Args:
            result: Output of ``settle``.

        Returns:
            True if applied, False if the game had already been settled.
        """
        async with db.transaction() as conn:
            claimed = await conn.fetchval(
                """
                INSERT INTO settlements (game_id, pot, commission, winner_ids)
                VALUES ($1, $2, $3, $4)
                ON CONFLICT (game_id) DO NOTHING
                RETURNING game_id
                """,
                result.game_id,
                result.pot,
                result.commission,
                json.dumps(result.winner_ids),
            )
            if claimed is None:
                logger.warning(f"Game {result.game_id} already settled, skipping")
                return False

            for instruction in result.instructions:
                if instruction.credits_balance:
                    await self.balances.adjust_balance(instruction.to_user, instruction.amount, conn=conn)
                await self.record_transaction(
                    instruction.type,
                    instruction.from_user,
                    instruction.to_user,
                    instruction.amount,
                    game_id=result.game_id,
                    reason=instruction.reason,
                    conn=conn,
                )

            await self._record_stats(result, conn)

        logger.info(f"Applied settlement for game {result.game_id}")
        return True

    async def _record_stats(self, result: "SettlementResult", conn: asyncpg.Connection) -> None:
        """Count the game towards every seated player's statistics."""
        payouts = result.payouts
        for user_id, stake in result.stakes.items():
            won = user_id in result.winner_ids
            await conn.execute(
                """
                UPDATE users SET
                    games_played = games_played + 1,
                    games_won = games_won + $2,
                    total_chips_won = total_chips_won + $3,
                    total_chips_lost = total_chips_lost + $4
                WHERE id = $1
                """,
                user_id,
                1 if won else 0,
                payouts.get(user_id, 0),
                0 if won else stake,
            )

    async def is_settled(self, game_id: str) -> bool:
        """Check whether a game's pot has already been paid out."""
        settled = await db.fetchval("SELECT game_id FROM settlements WHERE game_id = $1", game_id)
        return settled is not None


ledger = Ledger()
