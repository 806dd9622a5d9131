import json
import logging
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Set, Tuple

from fastapi import WebSocket, WebSocketDisconnect, status
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from app.core.exceptions import AuthenticationError, TokenPurposeError
from app.models.principal import PrincipalKind, get_principal, is_restricted
from app.services.conversation_service import is_active_participant
from app.services.token_service import WEBSOCKET_PURPOSE, decode_access_token
from app.utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)

GATEWAY_KINDS = (PrincipalKind.TEACHER, PrincipalKind.STUDENT)


def user_room(principal_id: str) -> str:
    return f"user_{principal_id}"


def conversation_room(conversation_id: str) -> str:
    return f"conversation_{conversation_id}"


class HandshakeRejected(Exception):
    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


@dataclass(eq=False)
class Connection:
    websocket: WebSocket
    principal_id: str
    principal_kind: PrincipalKind
    rooms: Set[str] = field(default_factory=set)


class ConversationGateway:
    """
    Authenticated websocket hub.

    Every connection sits in its personal room ``user_{id}`` and in the
    ``conversation_{id}`` rooms it has joined. REST handlers push persisted
    messages and new conversations through ``broadcast_message`` and
    ``notify_new_conversation``; clients relay typing and read events among
    the members of a conversation room.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory
        self._rooms: Dict[str, Set[Connection]] = defaultdict(set)
        self._handlers = {
            "join_conversation": self._on_join_conversation,
            "leave_conversation": self._on_leave_conversation,
            "typing_start": self._on_typing_start,
            "typing_stop": self._on_typing_stop,
            "message_read": self._on_message_read,
        }

    @contextmanager
    def _session(self):
        db = self._session_factory()
        try:
            yield db
        finally:
            db.close()

    # =========================
    # connection lifecycle
    # =========================

    def authenticate(self, token: Optional[str]) -> Tuple[str, PrincipalKind]:
        """ Blocking: loads the principal from storage. Run it off the event loop. """
        if not token:
            raise HandshakeRejected("Authentication token required")

        try:
            payload = decode_access_token(token, purpose=WEBSOCKET_PURPOSE)
        except TokenPurposeError:
            raise HandshakeRejected("Invalid token type for WebSocket connection")
        except AuthenticationError:
            raise HandshakeRejected("Invalid authentication token")

        if payload.principal_kind not in GATEWAY_KINDS:
            raise HandshakeRejected("User not found or inactive")
        try:
            with self._session() as db:
                principal = get_principal(db, payload.principal_kind, payload.principal_id)
                inactive = principal is None or is_restricted(principal)
        except Exception:
            logger.exception(f"Principal lookup failed during WebSocket handshake for {payload.principal_id}")
            raise HandshakeRejected("Invalid authentication token")
        if inactive:
            raise HandshakeRejected("User not found or inactive")

        return payload.principal_id, payload.principal_kind

    async def handle(self, websocket: WebSocket, token: Optional[str]) -> None:
        await websocket.accept()

        try:
            principal_id, kind = await run_in_threadpool(self.authenticate, token)
        except HandshakeRejected as e:
            logger.info(f"WebSocket handshake rejected: {e.reason}")
            await websocket.send_json({"event": "connect_error", "data": {"message": e.reason}})
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return

        connection = Connection(websocket, principal_id, kind)
        self._join(connection, user_room(principal_id))
        logger.info(f"WebSocket connected: {kind.value} {principal_id}")
        await self._send(connection, "connected", {"user_id": principal_id, "user_type": kind.value})

        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    raise WebSocketDisconnect(message.get("code", status.WS_1000_NORMAL_CLOSURE))
                if message.get("text") is None:
                    await self._send(connection, "error", {"message": "Malformed message"})
                    continue
                await self._dispatch(connection, message["text"])
        except WebSocketDisconnect:
            logger.info(f"WebSocket disconnected: {kind.value} {principal_id}")
        finally:
            self._drop(connection)

    def _join(self, connection: Connection, room: str) -> None:
        self._rooms[room].add(connection)
        connection.rooms.add(room)

    def _leave(self, connection: Connection, room: str) -> None:
        members = self._rooms.get(room)
        if members is not None:
            members.discard(connection)
            if not members:
                del self._rooms[room]
        connection.rooms.discard(room)

    def _drop(self, connection: Connection) -> None:
        for room in list(connection.rooms):
            self._leave(connection, room)

    def room_size(self, room: str) -> int:
        return len(self._rooms.get(room, ()))

    # =========================
    # sending
    # =========================

    async def _send(self, connection: Connection, event: str, data: Any) -> bool:
        try:
            await connection.websocket.send_json({"event": event, "data": data})
            return True
        except Exception as e:
            logger.warning(
                f"WebSocket send failed for {connection.principal_kind.value} "
                f"{connection.principal_id}, dropping connection: {e}"
            )
            self._drop(connection)
            await self._close_quietly(connection)
            return False

    async def _close_quietly(self, connection: Connection) -> None:
        # a connection outside every room is unreachable, so end its receive loop too
        try:
            await connection.websocket.close(code=status.WS_1011_INTERNAL_ERROR)
        except Exception as e:
            logger.debug(f"Closing failed WebSocket for {connection.principal_id}: {e}")

    async def emit_to_room(self, room: str, event: str, data: Any, exclude: Connection = None) -> int:
        delivered = 0
        for connection in list(self._rooms.get(room, ())):
            if connection is exclude:
                continue
            if await self._send(connection, event, data):
                delivered += 1
        return delivered

    async def broadcast_message(self, conversation_id: str, message: Dict[str, Any]) -> int:
        return await self.emit_to_room(conversation_room(conversation_id), "new_message", message)

    async def notify_new_conversation(self, principal_id: str, conversation: Dict[str, Any]) -> int:
        return await self.emit_to_room(user_room(principal_id), "new_conversation", conversation)

    # =========================
    # client events
    # =========================

    async def _dispatch(self, connection: Connection, raw: str) -> None:
        try:
            frame = json.loads(raw)
        except ValueError:
            await self._send(connection, "error", {"message": "Malformed message"})
            return
        if not isinstance(frame, dict) or not isinstance(frame.get("event"), str):
            await self._send(connection, "error", {"message": "Malformed message"})
            return

        handler = self._handlers.get(frame["event"])
        if handler is None:
            await self._send(connection, "error", {"message": f"Unknown event: {frame['event']}"})
            return
        await handler(connection, frame.get("data"))

    async def _require_conversation_id(self, connection: Connection, data: Any) -> Optional[str]:
        conversation_id = data.get("conversation_id") if isinstance(data, dict) else data
        if not isinstance(conversation_id, str) or not conversation_id:
            await self._send(connection, "error", {"message": "conversation_id is required"})
            return None
        return conversation_id

    def _may_join(self, connection: Connection, conversation_id: str) -> bool:
        with self._session() as db:
            return is_active_participant(
                db, conversation_id, connection.principal_id, connection.principal_kind
            )

    async def _on_join_conversation(self, connection: Connection, data: Any) -> None:
        conversation_id = await self._require_conversation_id(connection, data)
        if conversation_id is None:
            return

        try:
            allowed = await run_in_threadpool(self._may_join, connection, conversation_id)
        except Exception:
            logger.exception(f"Participation check failed for conversation {conversation_id}")
            await self._send(connection, "error", {"message": "Failed to join conversation"})
            return
        if not allowed:
            await self._send(connection, "error", {"message": "Access denied to conversation"})
            return

        self._join(connection, conversation_room(conversation_id))
        logger.info(f"{connection.principal_kind.value} {connection.principal_id} joined conversation {conversation_id}")
        await self._send(connection, "joined_conversation", {"conversation_id": conversation_id})

    async def _on_leave_conversation(self, connection: Connection, data: Any) -> None:
        conversation_id = await self._require_conversation_id(connection, data)
        if conversation_id is None:
            return
        self._leave(connection, conversation_room(conversation_id))
        logger.info(f"{connection.principal_kind.value} {connection.principal_id} left conversation {conversation_id}")

    async def _relay_to_conversation(self, connection: Connection, conversation_id: str, event: str, data: dict) -> None:
        room = conversation_room(conversation_id)
        if room not in connection.rooms:
            await self._send(connection, "error", {"message": "Join the conversation first"})
            return
        await self.emit_to_room(room, event, data, exclude=connection)

    async def _typing(self, connection: Connection, data: Any, is_typing: bool) -> None:
        conversation_id = await self._require_conversation_id(connection, data)
        if conversation_id is None:
            return
        await self._relay_to_conversation(connection, conversation_id, "user_typing", {
            "conversation_id": conversation_id,
            "user_id": connection.principal_id,
            "user_type": connection.principal_kind.value,
            "is_typing": is_typing,
        })

    async def _on_typing_start(self, connection: Connection, data: Any) -> None:
        await self._typing(connection, data, True)

    async def _on_typing_stop(self, connection: Connection, data: Any) -> None:
        await self._typing(connection, data, False)

    async def _on_message_read(self, connection: Connection, data: Any) -> None:
        conversation_id = await self._require_conversation_id(connection, data)
        if conversation_id is None:
            return
        message_ids = data.get("message_ids") if isinstance(data, dict) else None
        await self._relay_to_conversation(connection, conversation_id, "messages_read", {
            "conversation_id": conversation_id,
            "user_id": connection.principal_id,
            "user_type": connection.principal_kind.value,
            "message_ids": message_ids if isinstance(message_ids, list) else [],
            "read_at": utcnow().isoformat(),
        })
