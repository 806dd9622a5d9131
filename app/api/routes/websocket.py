from typing import Optional

from fastapi import APIRouter, Query, WebSocket

websocket_router = APIRouter()


@websocket_router.websocket("/ws")
async def conversation_socket(websocket: WebSocket, token: Optional[str] = Query(None)):
    # the gateway does its own handshake so rejections reach the client as connect_error
    await websocket.app.state.gateway.handle(websocket, token)
