"""Tests for the transaction ledger."""
import re
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from conftest import stacked_deck
from teenpatti.admin.ledger import Ledger, TransactionType, generate_transaction_id
from teenpatti.admin.settlement import settle
from teenpatti.game.game import Game


def fake_record(query, *args) -> dict:
    """Echo an INSERT ... RETURNING * row back from its arguments."""
    transaction_id, type_, from_user, to_user, amount, game_id, reason = args
    return {
        "transaction_id": transaction_id,
        "type": type_,
        "from_user": from_user,
        "to_user": to_user,
        "amount": amount,
        "game_id": game_id,
        "reason": reason,
        "created_at": datetime(2024, 1, 1, tzinfo=timezone.utc),
    }


def make_conn(already_settled: bool = False) -> MagicMock:
    conn = MagicMock()
    conn.fetchval = AsyncMock(return_value=None if already_settled else "TPSETTLE")
    conn.fetchrow = AsyncMock(side_effect=fake_record)
    conn.execute = AsyncMock()
    return conn


def patch_db(conn: MagicMock):
    """Patch the ledger's database so transactions run on ``conn``."""
    @asynccontextmanager
    async def transaction():
        yield conn
    
    mock_db = MagicMock()
    mock_db.transaction = transaction
    mock_db.fetchrow = AsyncMock(side_effect=fake_record)
    return patch("teenpatti.admin.ledger.db", mock_db)


@pytest.fixture
def settlement():
    """Settlement of a completed three-player game won by u2."""
    game = Game(game_id="TPSETTLE", created_by="u1", min_bet=10, max_bet=100)
    for i in (1, 2, 3):
        game.join(f"u{i}", f"player_{i}", 1000)
    game.start(deck=stacked_deck("2h 7d 9c", "Ks Kd 3c", "4h 5c 9s"))
    for _ in range(6):
        game.act(game.current_player.user_id, "blind")
    game.resolve()
    return settle(game, commission_rate=0.03)


class TestTransactionId:
    
    def test_format(self):
        assert re.fullmatch(r"TXN\d{13}[A-Z0-9]{5}", generate_transaction_id())


class TestRecordTransaction:
    """Test appending single transactions."""
    
    @pytest.mark.asyncio
    async def test_record(self):
        """Test a transaction is inserted with a generated id."""
        conn = make_conn()
        with patch_db(conn) as mock_db:
            ledger = Ledger(balances=MagicMock())
            txn = await ledger.record_transaction(
                TransactionType.GAME_WIN, None, "u2", 58, game_id="TPSETTLE", reason="Won game"
            )
        
        assert txn.transaction_id.startswith("TXN")
        assert txn.type == TransactionType.GAME_WIN
        assert txn.to_user == "u2"
        assert txn.amount == 58
        mock_db.fetchrow.assert_awaited_once()
        assert txn.to_dict()["type"] == "game_win"


class TestApplySettlement:
    """Test applying a whole settlement."""
    
    @pytest.mark.asyncio
    async def test_apply(self, settlement):
        """Test winners are credited and every instruction recorded."""
        conn = make_conn()
        balances = MagicMock()
        balances.adjust_balance = AsyncMock(return_value=1058)
        
        with patch_db(conn):
            applied = await Ledger(balances=balances).apply_settlement(settlement)
        
        assert applied is True
        balances.adjust_balance.assert_awaited_once_with("u2", settlement.winnings, conn=conn)
        assert conn.fetchrow.await_count == len(settlement.instructions)
        recorded_types = [c.args[2] for c in conn.fetchrow.await_args_list]
        assert recorded_types == ["game_win", "commission_deduct", "game_loss", "game_loss"]
    
    @pytest.mark.asyncio
    async def test_apply_twice_is_noop(self, settlement):
        """Test an already settled game pays nothing."""
        conn = make_conn(already_settled=True)
        balances = MagicMock()
        balances.adjust_balance = AsyncMock()
        
        with patch_db(conn):
            applied = await Ledger(balances=balances).apply_settlement(settlement)
        
        assert applied is False
        balances.adjust_balance.assert_not_awaited()
        conn.fetchrow.assert_not_awaited()
    
    @pytest.mark.asyncio
    async def test_credit_failure_propagates(self, settlement):
        """Test a failed credit aborts the transaction."""
        conn = make_conn()
        balances = MagicMock()
        balances.adjust_balance = AsyncMock(side_effect=OSError("connection reset"))
        
        with patch_db(conn):
            with pytest.raises(OSError):
                await Ledger(balances=balances).apply_settlement(settlement)
        
        conn.fetchrow.assert_not_awaited()
    
    @pytest.mark.asyncio
    async def test_apply_updates_player_stats(self, settlement):
        """Test every seated player's statistics move with the payout."""
        conn = make_conn()
        balances = MagicMock()
        balances.adjust_balance = AsyncMock(return_value=1058)
        
        with patch_db(conn):
            await Ledger(balances=balances).apply_settlement(settlement)
        
        # (user_id, games_won, chips_won, chips_lost) per seated player
        updates = {c.args[1]: c.args[2:] for c in conn.execute.await_args_list}
        assert updates == {
            "u1": (0, 0, 20),
            "u2": (1, settlement.winnings, 0),
            "u3": (0, 0, 20),
        }
        assert all("games_played = games_played + 1" in c.args[0] for c in conn.execute.await_args_list)
    
    @pytest.mark.asyncio
    async def test_replay_leaves_stats_alone(self, settlement):
        conn = make_conn(already_settled=True)
        
        with patch_db(conn):
            await Ledger(balances=MagicMock()).apply_settlement(settlement)
        
        conn.execute.assert_not_awaited()


class TestIsSettled:
    
    @pytest.mark.asyncio
    async def test_settled(self):
        with patch_db(make_conn()) as mock_db:
            mock_db.fetchval = AsyncMock(return_value="TPSETTLE")
            assert await Ledger(balances=MagicMock()).is_settled("TPSETTLE") is True
    
    @pytest.mark.asyncio
    async def test_not_settled(self):
        with patch_db(make_conn()) as mock_db:
            mock_db.fetchval = AsyncMock(return_value=None)
            assert await Ledger(balances=MagicMock()).is_settled("TPSETTLE") is False
