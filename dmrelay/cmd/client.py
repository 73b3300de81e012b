from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import sys
from typing import Any, Dict, Optional, Tuple

import websockets
from websockets.asyncio.client import ClientConnection, connect

from dmrelay.core import proto

log = logging.getLogger("dmrelay.cmd.client")

HELP = "Commands: /msg <user> <text>, /users, /history [user], /quit"


def parse_command(line: str) -> Optional[Tuple[str, str, Dict[str, Any]]]:
    """Map one input line to (frame type, to, payload); None for /quit.

    Raises ValueError for anything it cannot understand.
    """
    line = line.strip()
    parts = line.split(" ", 2)
    cmd = parts[0]
    if cmd == "/msg" and len(parts) == 3 and parts[2].strip():
        return proto.CHAT, parts[1], {"content": parts[2]}
    if cmd == "/users" and len(parts) == 1:
        return proto.LIST_USERS, "", {}
    if cmd == "/history":
        peer = parts[1] if len(parts) > 1 else None
        return proto.HISTORY, "", ({"with": peer} if peer else {})
    if cmd in {"/quit", "/exit"}:
        return None
    raise ValueError(f"unknown command: {line}")


def render(env: proto.Envelope) -> Optional[str]:
    """Text to show for an incoming frame, or None for frames kept quiet."""
    payload = env.payload
    if env.type == proto.USER_DELIVER:
        msg = payload.get("message") or {}
        return f"[{msg.get('sender')} -> {msg.get('receiver') or '*'}] {msg.get('content', '')}"
    if env.type in {proto.PRESENCE, proto.LIST_USERS_RESULT}:
        users = payload.get("users") or {}
        names = ", ".join(f"{name} ({uid})" for uid, name in sorted(users.items()))
        return f"Online: {names or '-'}"
    if env.type == proto.HISTORY_RESULT:
        lines = [
            f"  {m.get('timestamp')} {m.get('sender')} -> {m.get('receiver')}: {m.get('content', '')}"
            for m in payload.get("messages", [])
        ]
        return "\n".join(["History:"] + lines)
    if env.type == proto.ERROR:
        return f"ERROR ({payload.get('code')}): {payload.get('detail')}"
    return None


class ClientApp:
    def __init__(self, server_url: str, user_id: str, display_name: Optional[str] = None) -> None:
        self.server_url = server_url
        self.user_id = user_id
        self.display_name = display_name or user_id
        self.ws: Optional[ClientConnection] = None
        self.stop_event = asyncio.Event()

    async def run(self) -> None:
        async with connect(self.server_url) as ws:
            self.ws = ws
            await self._send_frame(proto.JOIN, "", {"display_name": self.display_name})
            receiver = asyncio.create_task(self._rx_loop())
            try:
                await self._command_loop()
                with contextlib.suppress(websockets.ConnectionClosed):
                    await self._send_frame(proto.LEAVE, "", {})
            finally:
                self.stop_event.set()
                receiver.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await receiver

    async def _command_loop(self) -> None:
        loop = asyncio.get_running_loop()
        print(HELP)
        while not self.stop_event.is_set():
            line = await loop.run_in_executor(None, sys.stdin.readline)
            if not line:
                break
            if not line.strip():
                continue
            try:
                parsed = parse_command(line)
            except ValueError as e:
                print(f"{e}. {HELP}")
                continue
            if parsed is None:
                break
            await self._send_frame(*parsed)

    async def _rx_loop(self) -> None:
        assert self.ws is not None
        try:
            async for raw in self.ws:
                try:
                    env = proto.parse_frame(raw)
                except ValueError:
                    log.warning("Dropped invalid frame: %s", raw)
                    continue
                text = render(env)
                if text:
                    print(text)
                else:
                    log.debug("Frame %s: %s", env.type, env.payload)
        except websockets.ConnectionClosed:
            pass
        finally:
            self.stop_event.set()

    async def _send_frame(self, type_: str, to: str, payload: Dict[str, Any]) -> None:
        assert self.ws is not None
        frame = proto.build_frame(type_, self.user_id, to, payload)
        await self.ws.send(proto.encode_frame(frame))


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Interactive relay client")
    parser.add_argument("--server", default="ws://127.0.0.1:7001", help="Server WebSocket URL")
    parser.add_argument("--user", required=True, help="User id to join as")
    parser.add_argument("--name", help="Display name (defaults to the user id)")
    parser.add_argument("--log-level", default="WARNING")
    args = parser.parse_args(argv)

    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    app = ClientApp(args.server, args.user, args.name)
    asyncio.run(app.run())


if __name__ == "__main__":
    main()
