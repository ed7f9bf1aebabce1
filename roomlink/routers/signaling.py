from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
import asyncio
import json
import logging
import uuid

from roomlink.services.rooms import RoomRouter

logger = logging.getLogger(__name__)

router = APIRouter()

room_router = RoomRouter()


def get_room_router() -> RoomRouter:
    return room_router


async def _pump(websocket: WebSocket, outbox: asyncio.Queue, client_id: str):
    """Drain one client's outbox to its websocket, in enqueue order."""
    while True:
        message = await outbox.get()
        try:
            await websocket.send_json(message)
        except Exception as e:
            logger.error(f"❌ Error sending to client {client_id}: {e}")
            return


@router.websocket("/ws")
async def signaling_endpoint(websocket: WebSocket, rooms: RoomRouter = Depends(get_room_router)):
    await websocket.accept()
    client_id = uuid.uuid4().hex
    outbox: asyncio.Queue = asyncio.Queue()
    writer = asyncio.create_task(_pump(websocket, outbox, client_id))
    rooms.connect(client_id, outbox.put_nowait)

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            text = message.get("text")
            if text is None:
                logger.warning(f"⚠️  Dropping binary frame from {client_id}")
                continue
            try:
                data = json.loads(text)
            except json.JSONDecodeError:
                logger.warning(f"⚠️  Dropping non-JSON frame from {client_id}")
                continue
            rooms.handle_frame(client_id, data)
    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.error(f"❌ Error in websocket: {e}")
    finally:
        # Runs on graceful close and on abrupt transport loss alike
        rooms.disconnect(client_id)
        writer.cancel()
