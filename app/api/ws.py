"""
WebSocket manager for real-time guest updates
"""

import asyncio
import json
import logging
from typing import Dict, List, Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from starlette.concurrency import run_in_threadpool

from app.core.db import SessionLocal
from app.core.errors import AuthorizationError
from app.services.notifications import GuestChange
from app.services.repositories import get_repositories
from app.utils.security import resolve_account_context

logger = logging.getLogger(__name__)


class WebSocketManager:
    """Manages WebSocket connections, one room per account"""

    def __init__(self):
        # account_id -> list of websockets
        self.active_connections: Dict[str, List[WebSocket]] = {}
        self.loop: Optional[asyncio.AbstractEventLoop] = None

    def bind_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        """Remember the server loop so changes from worker threads can be scheduled on it"""
        self.loop = loop

    async def connect(self, websocket: WebSocket, account_id: str):
        """Accept WebSocket connection and add to the account room"""
        await websocket.accept()

        if account_id not in self.active_connections:
            self.active_connections[account_id] = []

        self.active_connections[account_id].append(websocket)
        logger.info(f"WebSocket connected to account {account_id}. Total connections: {len(self.active_connections[account_id])}")

    def disconnect(self, websocket: WebSocket, account_id: str):
        """Remove WebSocket connection from the account room"""
        connections = self.active_connections.get(account_id)
        if not connections or websocket not in connections:
            return
        connections.remove(websocket)
        logger.info(f"WebSocket disconnected from account {account_id}. Remaining connections: {len(connections)}")

        # Clean up empty rooms
        if not connections:
            del self.active_connections[account_id]

    async def send_personal_message(self, message: dict, websocket: WebSocket):
        """Send message to specific WebSocket"""
        try:
            await websocket.send_text(json.dumps(message))
        except (WebSocketDisconnect, RuntimeError) as e:
            logger.error(f"Error sending personal message: {e}")

    async def broadcast_to_account(self, account_id: str, message: dict):
        """Broadcast message to all WebSockets connected to an account"""
        if account_id not in self.active_connections:
            return

        # Create list copy to avoid modification during iteration
        connections = self.active_connections[account_id].copy()

        disconnected = []
        for websocket in connections:
            try:
                await websocket.send_text(json.dumps(message))
            except (WebSocketDisconnect, RuntimeError) as e:
                logger.error(f"Error broadcasting to websocket: {e}")
                disconnected.append(websocket)

        # Clean up disconnected websockets
        for websocket in disconnected:
            self.disconnect(websocket, account_id)

    def on_change(self, change: GuestChange) -> None:
        """ChangeNotifier listener; called from request worker threads"""
        if self.loop is None or self.loop.is_closed():
            return
        if change.account_id not in self.active_connections:
            return
        asyncio.run_coroutine_threadsafe(
            self.broadcast_to_account(change.account_id, change.to_message()),
            self.loop,
        )

    def get_connection_count(self, account_id: str) -> int:
        """Get number of active connections for an account"""
        return len(self.active_connections.get(account_id, []))


# Global WebSocket manager instance
websocket_manager = WebSocketManager()

# Router for WebSocket endpoints
router = APIRouter()


def _authenticate(token: Optional[str]) -> str:
    db = SessionLocal()
    try:
        return resolve_account_context(token, get_repositories(db).accounts).account_id
    finally:
        db.close()


@router.websocket("/guests")
async def websocket_endpoint(websocket: WebSocket, token: Optional[str] = None):
    """Per-account change feed; authenticate with ?token=<access token>"""
    try:
        account_id = await run_in_threadpool(_authenticate, token)
    except AuthorizationError as e:
        await websocket.close(code=4401, reason=e.message)
        return

    await websocket_manager.connect(websocket, account_id)

    try:
        welcome_message = {
            "type": "connection",
            "message": "Connected to guest updates",
            "connection_count": websocket_manager.get_connection_count(account_id)
        }
        await websocket_manager.send_personal_message(welcome_message, websocket)

        # Keep connection alive and answer heartbeats
        while True:
            data = await websocket.receive_text()
            try:
                client_message = json.loads(data)
            except json.JSONDecodeError:
                logger.warning(f"Invalid JSON received from WebSocket: {data}")
                continue

            if isinstance(client_message, dict) and client_message.get("type") == "ping":
                pong_message = {
                    "type": "pong",
                    "timestamp": client_message.get("timestamp")
                }
                await websocket_manager.send_personal_message(pong_message, websocket)

    except WebSocketDisconnect:
        pass
    finally:
        websocket_manager.disconnect(websocket, account_id)
