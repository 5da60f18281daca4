"""Logging configuration."""
import logging
import sys
from typing import Optional, Any, MutableMapping

from teenpatti.config import config

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Get a configured logger instance.
    
    Args:
        name: Logger name, typically __name__ of the calling module.
        
    Returns:
        Configured logger instance.
    """
    logger = logging.getLogger(name or "teenpatti")
    
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        logger.addHandler(handler)
        logger.setLevel(getattr(logging, config.log_level.upper(), logging.INFO))
    
    return logger


class GameLogAdapter(logging.LoggerAdapter):
    """Prefixes every record with the game it concerns."""
    
    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        return f"[{self.extra['game_id']}] {msg}", kwargs


def get_game_logger(name: str, game_id: str) -> GameLogAdapter:
    """Get a logger that tags messages with a game id.
    
    Args:
        name: Logger name.
        game_id: Game the messages belong to.
    """
    return GameLogAdapter(get_logger(name), {"game_id": game_id})
