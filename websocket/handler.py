"""WebSocket connection handling and frame parsing"""
import json
import logging
from fastapi import WebSocket, WebSocketDisconnect

from domain.constants import EVENT_FILE_CHUNK
from domain.errors import InvalidFrameError
from events.router import EventRouter
from websocket.connection_manager import ConnectionManager

logger = logging.getLogger(__name__)


def parse_frame(text: str) -> tuple[str, list]:
    """Decode a text frame into (event name, positional arguments)

    Frames look like {"event": "sendMessage", "args": [{...}]}. A single
    argument may be sent as {"event": ..., "data": ...} instead.
    """
    try:
        frame = json.loads(text)
    except json.JSONDecodeError as e:
        raise InvalidFrameError(f"invalid JSON: {e.msg}") from e

    if not isinstance(frame, dict):
        raise InvalidFrameError("frame must be a JSON object")

    event = frame.get("event")
    if not isinstance(event, str) or not event.strip():
        raise InvalidFrameError("frame has no event name")

    if "args" in frame:
        args = frame["args"]
        if not isinstance(args, list):
            args = [args]
    elif "data" in frame:
        args = [frame["data"]]
    else:
        args = []
    return event.strip(), args


async def handle_websocket_connection(websocket: WebSocket, router: EventRouter, connection_manager: ConnectionManager) -> None:
    """Serve one client until it disconnects

    Frames from one connection are dispatched in arrival order, which keeps
    upload chunks in the order they were sent. Binary frames are file chunks.
    """
    connection = await connection_manager.connect(websocket)
    logger.info("Client %r connected. Total clients: %d", connection, connection_manager.get_connection_count())

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000))

            if message.get("bytes") is not None:
                await router.dispatch(connection, EVENT_FILE_CHUNK, [message["bytes"]])
                continue

            text = message.get("text")
            if text is None:
                continue
            try:
                event, args = parse_frame(text)
            except InvalidFrameError as e:
                # No error event exists in the protocol; the frame is dropped
                logger.warning("Ignoring frame from %r: %s", connection, e)
                continue
            await router.dispatch(connection, event, args)

    except WebSocketDisconnect:
        logger.info("Client %r disconnected", connection)
    except Exception:
        logger.exception("WebSocket error on %r", connection)
    finally:
        await router.handle_disconnect(connection)
        logger.info("Total clients: %d", connection_manager.get_connection_count())
