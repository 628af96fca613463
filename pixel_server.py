#!/usr/bin/env python3
"""
Pixel Canvas Backend

Answers pixel color queries over a WebSocket with random colors.

    GET /    -> 200 "Pixel Canvas Backend"
    GET /ws  -> WebSocket upgrade, or 500 "WebSocket upgrade failed"

Wire protocol on /ws (JSON text frames):
    in:  {"type": "getPixelColor", "x": 10, "y": 20}
    out: {"type": "pixelColor", "x": 10, "y": 20, "color": {"r": .., "g": .., "b": ..}}
"""
import asyncio
import json
import logging
import random
from contextlib import asynccontextmanager
from dataclasses import dataclass
from http import HTTPStatus
from typing import Any, Optional, Union

from websockets.asyncio.server import ServerConnection
from websockets.asyncio.server import serve as ws_serve
from websockets.exceptions import ConnectionClosed
from websockets.http11 import Request, Response

HOST = "0.0.0.0"
PORT = 3001
WS_PATH = "/ws"
MILESTONE = 1000  # log a line every N processed requests on a connection

BANNER = "Pixel Canvas Backend"
UPGRADE_FAILED = "WebSocket upgrade failed"

REQUEST_TYPE = "getPixelColor"
RESPONSE_TYPE = "pixelColor"

logger = logging.getLogger(__name__)


class MalformedMessage(ValueError):
    """Inbound frame is not standard JSON, or is a bare null."""


@dataclass(frozen=True)
class PixelColorRequest:
    x: Any
    y: Any


@dataclass(frozen=True)
class Color:
    r: int
    g: int
    b: int


@dataclass(frozen=True)
class PixelColorResponse:
    x: Any
    y: Any
    color: Color

    def to_json(self) -> str:
        return json.dumps({
            "type": RESPONSE_TYPE,
            "x": self.x,
            "y": self.y,
            "color": {"r": self.color.r, "g": self.color.g, "b": self.color.b},
        }, allow_nan=False)


def _reject_constant(name):
    raise ValueError(f"non-standard constant {name}")


def decode_request(raw: Union[str, bytes]) -> Optional[PixelColorRequest]:
    """
    Decode one frame into a known request.

    Returns None when the frame is valid JSON but carries a type we don't
    answer, or isn't an object at all. Raises MalformedMessage for frames
    that can't be read and for a bare null. Coordinates are passed through
    exactly as received, missing ones as None.
    """
    try:
        data = json.loads(raw, parse_constant=_reject_constant)
    except ValueError as e:
        raise MalformedMessage(f"invalid JSON: {e}") from e

    if data is None:
        raise MalformedMessage("expected a JSON object, got null")

    if not isinstance(data, dict):
        return None

    if data.get("type") != REQUEST_TYPE:
        return None

    return PixelColorRequest(x=data.get("x"), y=data.get("y"))


def random_color(rng=random) -> Color:
    return Color(
        r=rng.randint(0, 255),
        g=rng.randint(0, 255),
        b=rng.randint(0, 255),
    )


class PixelSession:
    """State and lifecycle hooks for a single WebSocket connection."""

    def __init__(self, rng=random):
        self.rng = rng
        self.message_count = 0

    def on_open(self) -> None:
        self.message_count = 0
        logger.info("Client connected")

    def on_message(self, raw: Union[str, bytes]) -> Optional[str]:
        """Handle one frame; return the reply text, or None for no reply."""
        try:
            request = decode_request(raw)
        except MalformedMessage as e:
            logger.error(f"Error processing message: {e}")
            return None

        if request is None:
            return None

        reply = PixelColorResponse(
            x=request.x,
            y=request.y,
            color=random_color(self.rng),
        ).to_json()

        self.message_count += 1
        if self.message_count % MILESTONE == 0:
            logger.info(f"Processed {self.message_count} pixel color requests")

        return reply

    def on_close(self) -> None:
        logger.info(f"Client disconnected. Processed {self.message_count} total messages")


def _path(request: Request) -> str:
    return request.path.split("?", 1)[0]


def process_request(connection: ServerConnection, request: Request) -> Optional[Response]:
    """Plain HTTP routing; returning None lets the WebSocket handshake run."""
    if _path(request) == WS_PATH:
        return None

    return connection.respond(HTTPStatus.OK, BANNER)


def process_response(
    connection: ServerConnection, request: Request, response: Response
) -> Optional[Response]:
    """Any handshake on /ws that didn't switch protocols becomes a 500."""
    if _path(request) == WS_PATH and response.status_code != HTTPStatus.SWITCHING_PROTOCOLS:
        return connection.respond(HTTPStatus.INTERNAL_SERVER_ERROR, UPGRADE_FAILED)
    return None


async def handler(websocket: ServerConnection):
    session = PixelSession()
    session.on_open()
    try:
        async for message in websocket:
            try:
                reply = session.on_message(message)
            except Exception:
                logger.exception("Unexpected error processing message")
                continue
            if reply is not None:
                await websocket.send(reply)
    except ConnectionClosed:
        pass
    finally:
        session.on_close()


@asynccontextmanager
async def serve(host: str = HOST, port: int = PORT):
    async with ws_serve(
        handler,
        host,
        port,
        process_request=process_request,
        process_response=process_response,
    ) as server:
        yield server


async def main(host: str = HOST, port: int = PORT):
    async with serve(host, port):
        logger.info(f"WebSocket server running on ws://localhost:{port}{WS_PATH}")
        await asyncio.Future()  # run forever


def run():
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
    )
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Server stopped")


if __name__ == "__main__":
    run()
