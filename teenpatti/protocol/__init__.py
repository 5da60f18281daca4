"""Protocol module for WebSocket message handling."""
from .messages import (
    ClientMessage,
    ServerMessage,
    ActionMessage,
    ErrorMessage,
    GameStateMessage,
    parse_client_message,
)
from .broadcast import ConnectionManager, connection_manager
from .handlers import MessageHandler

__all__ = [
    "ClientMessage",
    "ServerMessage",
    "ActionMessage",
    "ErrorMessage",
    "GameStateMessage",
    "parse_client_message",
    "ConnectionManager",
    "connection_manager",
    "MessageHandler",
]
