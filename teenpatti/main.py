"""FastAPI application with WebSocket support."""
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect

from teenpatti.config import config
from teenpatti.db.connection import db
from teenpatti.db.models import init_db
from teenpatti.errors import GameNotFound, PlayerNotFound
from teenpatti.protocol.broadcast import connection_manager
from teenpatti.protocol.handlers import MessageHandler
from teenpatti.protocol.messages import ErrorMessage
from teenpatti.server import GameServer
from teenpatti.state.balance_store import balance_store
from teenpatti.state.redis_client import redis_client
from teenpatti.utils.logger import get_logger

logger = get_logger(__name__)

# Global server instance
server = GameServer(connections=connection_manager)
handler = MessageHandler(server)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    await db.connect()
    await redis_client.connect()
    await init_db()
    await server.restore_games()
    logger.info(f"Teen Patti server ready on {config.host}:{config.port}")
    yield
    await redis_client.disconnect()
    await db.disconnect()
    logger.info("Teen Patti server shutdown complete")


app = FastAPI(
    title="Teen Patti Server",
    description="Real-time Teen Patti game server with WebSocket and REST API",
    version="0.1.0",
    lifespan=lifespan,
)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


@app.get("/api/games")
async def list_games():
    """List games held by this server."""
    return {"games": server.list_games()}


@app.get("/api/games/{game_id}")
async def get_game(game_id: str):
    """Get a game as a spectator sees it.
    
    Players see their own cards only over their WebSocket.
    """
    try:
        return await server.get_view(game_id, None)
    except GameNotFound as e:
        raise HTTPException(status_code=404, detail=e.message)


@app.get("/api/players/{user_id}/stats")
async def get_player_stats(user_id: str):
    """Lifetime results for a player."""
    try:
        return await balance_store.get_stats(user_id)
    except PlayerNotFound as e:
        raise HTTPException(status_code=404, detail=e.message)


@app.websocket("/ws/{user_id}")
async def websocket_endpoint(websocket: WebSocket, user_id: str):
    """WebSocket endpoint for game communication."""
    await websocket.accept()
    connection_manager.register(user_id, websocket)
    
    try:
        while True:
            data = await websocket.receive_text()
            response = await handler.handle_message(user_id, data)
            if response:
                await websocket.send_json(response)
    
    except WebSocketDisconnect:
        logger.debug(f"WebSocket disconnected for {user_id}")
    except Exception as e:
        logger.exception(f"WebSocket error for {user_id}: {e}")
        await websocket.send_json(
            ErrorMessage(message=str(e), code="SERVER_ERROR").model_dump()
        )
    finally:
        connection_manager.unregister(user_id, websocket)


def run() -> None:
    """Run the server with uvicorn."""
    import uvicorn
    uvicorn.run("teenpatti.main:app", host=config.host, port=config.port)


if __name__ == "__main__":
    run()
