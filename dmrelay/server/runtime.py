from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import websockets
from websockets.asyncio.server import Server, ServerConnection, serve

from dmrelay.core import proto
from dmrelay.core.errors import InvalidInput
from dmrelay.core.model import Message
from dmrelay.core.relay import Relay

log = logging.getLogger("dmrelay.server.runtime")

CONNECTED = "CONNECTED"
JOINED = "JOINED"
DISCONNECTED = "DISCONNECTED"


@dataclass(slots=True)
class Connection:
    websocket: ServerConnection
    session_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    user_id: Optional[str] = None
    state: str = CONNECTED
    outbox: asyncio.Queue = field(default_factory=asyncio.Queue)

    def post(self, frame: Dict[str, Any]) -> None:
        """Queue a frame for the writer task. Never blocks."""
        if self.state != DISCONNECTED:
            self.outbox.put_nowait(frame)


class ServerRuntime:
    """WebSocket front end for the relay; also the relay's Transport."""

    def __init__(self, config: Dict[str, Any]) -> None:
        self.cfg = config
        self.server_id = config.get("server_id", "dmrelay")
        self.listen_host, self.listen_port = self._parse_listen(config.get("listen", "0.0.0.0:7001"))

        self.relay = Relay(self, lock_stripes=int(config.get("lock_stripes", 64)))
        self._connections: Dict[str, Connection] = {}
        self._ws_server: Optional[Server] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        self._ws_server = await serve(self._handle_connection, self.listen_host, self.listen_port)
        log.info("dmrelay %s listening on ws://%s:%d", self.server_id, self.listen_host, self.port)

    async def stop(self) -> None:
        for conn in list(self._connections.values()):
            await conn.websocket.close()

        if self._ws_server is not None:
            self._ws_server.close()
            await self._ws_server.wait_closed()
            self._ws_server = None

    @property
    def port(self) -> int:
        if self._ws_server is None:
            return self.listen_port
        sock = next(iter(self._ws_server.sockets))
        return sock.getsockname()[1]

    # ------------------------------------------------------------------
    # Connection handling
    # ------------------------------------------------------------------

    async def _handle_connection(self, websocket: ServerConnection) -> None:
        conn = Connection(websocket=websocket)
        self._connections[conn.session_id] = conn
        self.relay.on_connected(conn.session_id)
        writer = asyncio.create_task(self._writer(conn), name=f"writer-{conn.session_id}")
        log.debug("Accepted connection from %s as %s", self._fmt_remote(websocket), conn.session_id)
        try:
            async for raw in websocket:
                try:
                    env = proto.parse_frame(raw)
                except ValueError as e:
                    self._send_error(conn, "BAD_FRAME", str(e))
                    continue
                self._dispatch(conn, env)
        except websockets.ConnectionClosed:
            pass
        finally:
            conn.state = DISCONNECTED
            self._connections.pop(conn.session_id, None)
            self.relay.on_disconnected(conn.session_id)
            writer.cancel()
            await asyncio.gather(writer, return_exceptions=True)

    async def _writer(self, conn: Connection) -> None:
        while True:
            frame = await conn.outbox.get()
            try:
                await conn.websocket.send(proto.encode_frame(frame))
            except websockets.ConnectionClosed:
                return

    def _dispatch(self, conn: Connection, envelope: proto.Envelope) -> None:
        type_ = envelope.type
        try:
            if type_ == proto.JOIN:
                self._handle_join(conn, envelope)
            elif type_ == proto.LEAVE:
                self._handle_leave(conn)
            elif type_ == proto.CHAT:
                self._handle_chat(conn, envelope)
            elif type_ == proto.LIST_USERS:
                self._send(conn, proto.LIST_USERS_RESULT, {"users": self.relay.list_online_users()})
            elif type_ == proto.HISTORY:
                self._handle_history(conn, envelope)
            else:
                self._send_error(conn, "UNKNOWN_TYPE", f"unsupported type {type_}")
        except InvalidInput as e:
            self._send_error(conn, e.code, e.detail)

    # ------------------------------------------------------------------
    # Client requests
    # ------------------------------------------------------------------

    def _handle_join(self, conn: Connection, envelope: proto.Envelope) -> None:
        display_name = envelope.payload.get("display_name")
        joined = self.relay.submit_join(envelope.from_, display_name, conn.session_id)
        conn.user_id = envelope.from_
        conn.state = JOINED
        self._ack(conn, proto.JOIN, joined)

    def _handle_leave(self, conn: Connection) -> None:
        if conn.user_id is None:
            self._send_error(conn, "NOT_JOINED", "LEAVE before JOIN")
            return
        left = self.relay.submit_leave(conn.user_id)
        conn.user_id = None
        conn.state = CONNECTED
        self._ack(conn, proto.LEAVE, left)

    def _handle_chat(self, conn: Connection, envelope: proto.Envelope) -> None:
        routed = self.relay.submit_chat(
            envelope.payload.get("content", ""),
            envelope.from_,
            envelope.to or None,
        )
        self._send(conn, proto.ACK, {"msg_ref": proto.CHAT, "id": routed.id})

    def _handle_history(self, conn: Connection, envelope: proto.Envelope) -> None:
        user_id = envelope.from_ or conn.user_id
        if not user_id:
            raise InvalidInput("HISTORY needs a user id")
        peer = envelope.payload.get("with")
        if peer:
            messages = self.relay.get_history_between(user_id, peer)
        else:
            messages = self.relay.get_history(user_id)
        payload = {"with": peer, "messages": [proto.message_payload(m) for m in messages]}
        self._send(conn, proto.HISTORY_RESULT, payload)

    # ------------------------------------------------------------------
    # Transport (called by the relay core)
    # ------------------------------------------------------------------

    def deliver_to_user(self, user_id: str, message: Message) -> None:
        session_id = self.relay.registry.resolve_session(user_id)
        conn = self._connections.get(session_id) if session_id else None
        if conn is None:
            log.debug("No live connection for %s; %s kept in history only", user_id, message.id)
            return
        self._send(conn, proto.USER_DELIVER, {"message": proto.message_payload(message)}, to=user_id)

    def broadcast_presence(self, online_users: Dict[str, str]) -> None:
        payload = {"users": dict(online_users)}
        for conn in list(self._connections.values()):
            self._send(conn, proto.PRESENCE, payload, to="*")

    # ------------------------------------------------------------------
    # Utilities
    # ------------------------------------------------------------------

    def _send(self, conn: Connection, type_: str, payload: Dict[str, Any], *, to: Optional[str] = None) -> None:
        conn.post(proto.build_frame(type_, self.server_id, to or conn.user_id or "*", payload))

    def _ack(self, conn: Connection, ref: str, message: Message) -> None:
        self._send(conn, proto.ACK, {"msg_ref": ref, "message": proto.message_payload(message)})

    def _send_error(self, conn: Connection, code: str, detail: str) -> None:
        self._send(conn, proto.ERROR, proto.error_payload(code, detail))

    @staticmethod
    def _parse_listen(value: str) -> tuple[str, int]:
        host, port = value.rsplit(":", 1)
        return host, int(port)

    @staticmethod
    def _fmt_remote(websocket: ServerConnection) -> str:
        peer = websocket.remote_address
        if isinstance(peer, tuple):
            return f"{peer[0]}:{peer[1]}"
        return str(peer)


__all__ = ["ServerRuntime", "Connection"]
