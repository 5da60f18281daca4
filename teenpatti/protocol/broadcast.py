"""Connection directory and event fan-out."""
from typing import Any, Optional

from teenpatti.utils.logger import get_logger

logger = get_logger(__name__)


class ConnectionManager:
    """Tracks open WebSocket connections and which games they follow."""
    
    def __init__(self):
        self.connections: dict[str, Any] = {}  # user_id -> websocket
        self.subscriptions: dict[str, set[str]] = {}  # game_id -> user_ids
    
    def register(self, user_id: str, websocket: Any) -> None:
        """Register a user's connection, replacing any older one."""
        self.connections[user_id] = websocket
        logger.debug(f"Registered connection for {user_id}")
    
    def unregister(self, user_id: str, websocket: Optional[Any] = None) -> None:
        """Forget a user's connection.
        
        Args:
            user_id: The user.
            websocket: Only unregister if this is still the current socket.
        """
        if websocket is not None and self.connections.get(user_id) is not websocket:
            return
        self.connections.pop(user_id, None)
    
    def subscribe(self, game_id: str, user_id: str) -> None:
        """Start sending a game's events to a user."""
        self.subscriptions.setdefault(game_id, set()).add(user_id)
    
    def unsubscribe(self, game_id: str, user_id: str) -> None:
        """Stop sending a game's events to a user."""
        members = self.subscriptions.get(game_id)
        if members is None:
            return
        members.discard(user_id)
        if not members:
            del self.subscriptions[game_id]
    
    def close_game(self, game_id: str) -> None:
        """Drop every follower of a finished game."""
        self.subscriptions.pop(game_id, None)
    
    def subscribers(self, game_id: str) -> set[str]:
        return set(self.subscriptions.get(game_id, set()))
    
    async def publish_to_player(self, user_id: str, event: str, payload: dict) -> bool:
        """Send one event to one user.
        
        Delivery failures are logged and reported through the return value.
        
        Returns:
            True if the message was handed to the socket.
        """
        websocket = self.connections.get(user_id)
        if websocket is None:
            return False
        try:
            await websocket.send_json({**payload, "type": event})
            return True
        except Exception as e:
            logger.error(f"Failed to send {event} to {user_id}: {e}")
            return False
    
    async def publish(self, game_id: str, event: str, payload: dict) -> int:
        """Send one event to everyone following a game.
        
        Returns:
            Number of users the event reached.
        """
        delivered = 0
        for user_id in sorted(self.subscribers(game_id)):
            if await self.publish_to_player(user_id, event, payload):
                delivered += 1
        return delivered


connection_manager = ConnectionManager()
