"""Database schema and initialization."""
from teenpatti.db.connection import db
from teenpatti.utils.logger import get_logger

logger = get_logger(__name__)

SCHEMA = """
-- Players and their chip balances
CREATE TABLE IF NOT EXISTS users (
    id VARCHAR(64) PRIMARY KEY,
    username VARCHAR(50) UNIQUE NOT NULL,
    chips INTEGER NOT NULL DEFAULT 0 CHECK (chips >= 0),
    current_game_id VARCHAR(40),
    games_played INTEGER NOT NULL DEFAULT 0,
    games_won INTEGER NOT NULL DEFAULT 0,
    total_chips_won INTEGER NOT NULL DEFAULT 0,
    total_chips_lost INTEGER NOT NULL DEFAULT 0,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_users_username ON users(username);

-- Game snapshots (backup of Redis state for durability)
CREATE TABLE IF NOT EXISTS game_states (
    game_id VARCHAR(40) PRIMARY KEY,
    status VARCHAR(20) NOT NULL,
    state JSONB NOT NULL,
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_game_states_status ON game_states(status);

-- Chip movements (game wins, losses, platform commission)
CREATE TABLE IF NOT EXISTS ledger_transactions (
    transaction_id VARCHAR(40) PRIMARY KEY,
    type VARCHAR(30) NOT NULL,  -- game_win, game_loss, commission_deduct
    from_user VARCHAR(64),
    to_user VARCHAR(64),
    amount INTEGER NOT NULL CHECK (amount >= 0),
    game_id VARCHAR(40),
    reason TEXT,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_ledger_game ON ledger_transactions(game_id);
CREATE INDEX IF NOT EXISTS idx_ledger_to_user ON ledger_transactions(to_user);
CREATE INDEX IF NOT EXISTS idx_ledger_from_user ON ledger_transactions(from_user);

-- One row per settled game; guards against paying a pot twice
CREATE TABLE IF NOT EXISTS settlements (
    game_id VARCHAR(40) PRIMARY KEY,
    pot INTEGER NOT NULL,
    commission INTEGER NOT NULL,
    winner_ids TEXT NOT NULL,  -- JSON array of winner user IDs
    settled_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

-- Update trigger for users.updated_at
CREATE OR REPLACE FUNCTION update_updated_at()
RETURNS TRIGGER AS $$
BEGIN
    NEW.updated_at = NOW();
    RETURN NEW;
END;
$$ LANGUAGE plpgsql;

DROP TRIGGER IF EXISTS users_updated_at ON users;
CREATE TRIGGER users_updated_at
    BEFORE UPDATE ON users
    FOR EACH ROW
    EXECUTE FUNCTION update_updated_at();
"""

# Migrations for existing databases
MIGRATIONS = [
    # Migration 1: Add status column to game_states
    """
    DO $$
    BEGIN
        IF NOT EXISTS (
            SELECT 1 FROM information_schema.columns
            WHERE table_name = 'game_states' AND column_name = 'status'
        ) THEN
            ALTER TABLE game_states ADD COLUMN status VARCHAR(20) NOT NULL DEFAULT 'waiting';
        END IF;
    END $$;
    """,
    # Migration 2: Index ledger rows by game
    """
    CREATE INDEX IF NOT EXISTS idx_ledger_game ON ledger_transactions(game_id);
    """,
    # Migration 3: Seat tracking and player statistics
    """
    ALTER TABLE users ADD COLUMN IF NOT EXISTS current_game_id VARCHAR(40);
    ALTER TABLE users ADD COLUMN IF NOT EXISTS games_played INTEGER NOT NULL DEFAULT 0;
    ALTER TABLE users ADD COLUMN IF NOT EXISTS games_won INTEGER NOT NULL DEFAULT 0;
    ALTER TABLE users ADD COLUMN IF NOT EXISTS total_chips_won INTEGER NOT NULL DEFAULT 0;
    ALTER TABLE users ADD COLUMN IF NOT EXISTS total_chips_lost INTEGER NOT NULL DEFAULT 0;
    """,
]


async def init_db() -> None:
    """Initialize database schema and run migrations."""
    logger.info("Initializing database schema...")
    await db.execute(SCHEMA)
    
    logger.info("Running migrations...")
    for i, migration in enumerate(MIGRATIONS, 1):
        try:
            await db.execute(migration)
            logger.info(f"Migration {i} completed")
        except Exception as e:
            logger.warning(f"Migration {i} skipped or failed: {e}")
    
    logger.info("Database schema initialized")
