"""Message handlers for WebSocket protocol."""
import json
from typing import TYPE_CHECKING, Optional

from teenpatti.errors import GameError
from teenpatti.protocol.messages import (
    parse_client_message,
    ActionMessage,
    CreateGameMessage,
    ErrorMessage,
    GameCreatedMessage,
    GameStateMessage,
    GetStateMessage,
    JoinGameMessage,
    LeaveGameMessage,
    PingMessage,
    PongMessage,
    StartGameMessage,
)
from teenpatti.utils.logger import get_logger

if TYPE_CHECKING:
    from teenpatti.server import GameServer

logger = get_logger(__name__)


class MessageHandler:
    """Routes incoming WebSocket messages to the game server."""
    
    def __init__(self, server: "GameServer"):
        """Initialize handler.
        
        Args:
            server: The game server instance.
        """
        self.server = server
    
    async def handle_message(self, user_id: str, raw_message: str) -> Optional[dict]:
        """Handle an incoming message.
        
        Game errors are turned into ``error`` replies carrying the error code;
        anything else propagates to the connection loop.
        
        Args:
            user_id: The connected user.
            raw_message: Raw JSON message string.
            
        Returns:
            Response dict for the sender, or None.
        """
        try:
            data = json.loads(raw_message)
            if not isinstance(data, dict):
                raise ValueError("Message must be a JSON object")
            message = parse_client_message(data)
        except json.JSONDecodeError as e:
            return ErrorMessage(message=f"Invalid JSON: {e}", code="INVALID_JSON").model_dump()
        except ValueError as e:
            return ErrorMessage(message=str(e), code="INVALID_MESSAGE").model_dump()
        
        try:
            return await self._dispatch(user_id, message)
        except GameError as e:
            logger.info(f"Rejected {data.get('type')} from {user_id}: {e.code} {e.message}")
            return ErrorMessage(**e.to_dict()).model_dump()
    
    async def _dispatch(self, user_id: str, message) -> Optional[dict]:
        if isinstance(message, PingMessage):
            return PongMessage().model_dump()
        
        if isinstance(message, CreateGameMessage):
            return await self._handle_create_game(message, user_id)
        
        if isinstance(message, JoinGameMessage):
            await self.server.join_game(message.game_id, user_id)
            return await self._state_reply(message.game_id, user_id)
        
        if isinstance(message, LeaveGameMessage):
            await self.server.leave_game(message.game_id, user_id)
            return None
        
        if isinstance(message, StartGameMessage):
            await self.server.start_game(message.game_id, user_id)
            return None
        
        if isinstance(message, ActionMessage):
            await self.server.act(message.game_id, user_id, message.action, message.amount)
            return None
        
        if isinstance(message, GetStateMessage):
            return await self._state_reply(message.game_id, user_id)
        
        return ErrorMessage(message="Unhandled message type").model_dump()
    
    async def _handle_create_game(self, message: CreateGameMessage, user_id: str) -> dict:
        """Handle game creation."""
        game = await self.server.create_game(
            user_id,
            min_bet=message.min_bet,
            max_bet=message.max_bet,
            max_players=message.max_players,
            time_limit=message.time_limit,
        )
        return GameCreatedMessage(
            game_id=game.game_id,
            min_bet=game.min_bet,
            max_bet=game.max_bet,
            max_players=game.max_players,
        ).model_dump()
    
    async def _state_reply(self, game_id: str, user_id: str) -> dict:
        view = await self.server.get_view(game_id, user_id)
        return GameStateMessage(**view).model_dump()
