"""Pydantic message schemas for WebSocket protocol."""
from typing import Optional, Literal, Union
from pydantic import BaseModel, Field


# ============= Client -> Server Messages =============

class CreateGameMessage(BaseModel):
    """Create a new game; the creator takes the first seat."""
    type: Literal["create_game"] = "create_game"
    min_bet: int = Field(ge=1)
    max_bet: int = Field(ge=1)
    max_players: int = Field(default=6, ge=2, le=6)
    time_limit: int = Field(default=30, ge=1)


class JoinGameMessage(BaseModel):
    """Join a waiting game."""
    type: Literal["join_game"] = "join_game"
    game_id: str


class LeaveGameMessage(BaseModel):
    """Leave a game (folds if the round is under way)."""
    type: Literal["leave_game"] = "leave_game"
    game_id: str


class StartGameMessage(BaseModel):
    """Deal the cards (creator only)."""
    type: Literal["start_game"] = "start_game"
    game_id: str


class ActionMessage(BaseModel):
    """Game action (fold, call, raise, check, show, blind)."""
    type: Literal["action"] = "action"
    game_id: str
    action: str
    amount: int = 0


class GetStateMessage(BaseModel):
    """Request the current view of a game."""
    type: Literal["get_state"] = "get_state"
    game_id: str


class PingMessage(BaseModel):
    """Keep-alive ping from client."""
    type: Literal["ping"] = "ping"


ClientMessage = Union[
    CreateGameMessage,
    JoinGameMessage,
    LeaveGameMessage,
    StartGameMessage,
    ActionMessage,
    GetStateMessage,
    PingMessage,
]


# ============= Server -> Client Messages =============

class ErrorMessage(BaseModel):
    """Error response."""
    type: Literal["error"] = "error"
    message: str
    code: Optional[str] = None


class GameStateMessage(BaseModel):
    """Game state as seen by the receiving player."""
    type: Literal["game_state"] = "game_state"
    game_id: str
    status: str
    created_by: str
    max_players: int
    min_bet: int
    max_bet: int
    current_bet: int
    pot: int
    time_limit: int
    dealer_index: int
    current_player_index: int
    players: list[dict]
    current_player: Optional[str]
    valid_actions: list[str]
    call_amount: int
    winners: list[str]
    winner: Optional[str]
    winning_hand_rank: Optional[str]
    history: list[dict]
    created_at: str
    started_at: Optional[str]
    completed_at: Optional[str]


class PlayerActionMessage(BaseModel):
    """Broadcast a player's action."""
    type: Literal["player_action"] = "player_action"
    game_id: str
    user_id: str
    username: str
    action: str
    amount: int
    pot: int
    current_bet: int
    note: str = ""


class PlayerJoinedMessage(BaseModel):
    """Player joined a game."""
    type: Literal["player_joined"] = "player_joined"
    game_id: str
    user_id: str
    username: str
    position: int
    chips: int


class PlayerLeftMessage(BaseModel):
    """Player left a game."""
    type: Literal["player_left"] = "player_left"
    game_id: str
    user_id: str
    username: str


class GameStartedMessage(BaseModel):
    """Cards have been dealt."""
    type: Literal["game_started"] = "game_started"
    game_id: str
    players: int
    current_player: Optional[str]


class GameEndedMessage(BaseModel):
    """Round finished and the pot was paid out."""
    type: Literal["game_ended"] = "game_ended"
    game_id: str
    winners: list[str]
    winning_hand_rank: Optional[str]
    pot: int
    commission: int
    payouts: dict[str, int]
    hands: dict[str, list[dict]]  # Revealed hands of players still in at the end


class GameCancelledMessage(BaseModel):
    """Game abandoned without a winner."""
    type: Literal["game_cancelled"] = "game_cancelled"
    game_id: str
    reason: str


class GameCreatedMessage(BaseModel):
    """Game created confirmation."""
    type: Literal["game_created"] = "game_created"
    game_id: str
    min_bet: int
    max_bet: int
    max_players: int


class PongMessage(BaseModel):
    """Keep-alive pong response."""
    type: Literal["pong"] = "pong"


ServerMessage = Union[
    ErrorMessage,
    GameStateMessage,
    PlayerActionMessage,
    PlayerJoinedMessage,
    PlayerLeftMessage,
    GameStartedMessage,
    GameEndedMessage,
    GameCancelledMessage,
    GameCreatedMessage,
    PongMessage,
]


def parse_client_message(data: dict) -> ClientMessage:
    """Parse a client message from JSON dict.
    
    Args:
        data: Message data dictionary.
        
    Returns:
        Parsed client message.
        
    Raises:
        ValueError: If message type is unknown or invalid.
    """
    msg_type = data.get("type")
    
    type_map = {
        "create_game": CreateGameMessage,
        "join_game": JoinGameMessage,
        "leave_game": LeaveGameMessage,
        "start_game": StartGameMessage,
        "action": ActionMessage,
        "get_state": GetStateMessage,
        "ping": PingMessage,
    }
    
    if msg_type not in type_map:
        raise ValueError(f"Unknown message type: {msg_type}")
    
    return type_map[msg_type](**data)
