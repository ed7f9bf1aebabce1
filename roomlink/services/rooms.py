from typing import Any, Callable, Dict, Optional
import logging

from pydantic import ValidationError

from roomlink.models import (
    JoinedMessage,
    JoinMessage,
    LeaveMessage,
    PeerJoinedMessage,
    PeerLeftMessage,
    RelayedSignalMessage,
    SignalMessage,
    WelcomeMessage,
    WireModel,
    client_message_adapter,
)

logger = logging.getLogger(__name__)

# Fire-and-forget delivery of one server frame to one client
Outbox = Callable[[dict], None]


class RoomRouter:
    """Room membership index and signal routing.

    Every method is synchronous: membership changes and the recipient lists
    derived from them happen without yielding to the event loop, and frames
    are handed to each client's outbox in the order they are produced.
    """

    def __init__(self):
        self.clients: Dict[str, Outbox] = {}
        # room -> {client_id: outbox}, in join order
        self.rooms: Dict[str, Dict[str, Outbox]] = {}
        # Join is exclusive, so each client is in at most one room
        self.client_room: Dict[str, str] = {}

    def connect(self, client_id: str, outbox: Outbox):
        self.clients[client_id] = outbox
        logger.info(f"🔌 Client {client_id} connected")
        self.send_to_client(WelcomeMessage(client_id=client_id), client_id)

    def disconnect(self, client_id: str):
        self.leave(client_id)
        if self.clients.pop(client_id, None) is not None:
            logger.info(f"🔌 Client {client_id} disconnected")

    def join(self, client_id: str, room: str):
        if client_id not in self.clients:
            logger.warning(f"⚠️  Ignoring join of {room} from unknown client {client_id}")
            return

        current = self.client_room.get(client_id)
        if current == room:
            self.send_to_client(JoinedMessage(room_id=room, client_id=client_id), client_id)
            return
        if current is not None:
            self.leave(client_id)

        # The newcomer learns about existing members before they learn about it
        for peer_id in self.get_room_clients(room):
            self.send_to_client(PeerJoinedMessage(room_id=room, client_id=peer_id), client_id)

        self.rooms.setdefault(room, {})[client_id] = self.clients[client_id]
        self.client_room[client_id] = room
        logger.info(f"✅ Client {client_id} joined room {room}")

        self.broadcast_to_room(PeerJoinedMessage(room_id=room, client_id=client_id), room, exclude_client=client_id)
        self.send_to_client(JoinedMessage(room_id=room, client_id=client_id), client_id)

    def leave(self, client_id: str) -> Optional[str]:
        room = self.client_room.pop(client_id, None)
        if room is None:
            return None

        members = self.rooms.get(room, {})
        members.pop(client_id, None)
        logger.info(f"❌ Client {client_id} left room {room}")
        if not members:
            self.rooms.pop(room, None)
            logger.info(f"🗑️  Room {room} is now empty")
        else:
            self.broadcast_to_room(PeerLeftMessage(client_id=client_id), room)
        return room

    def relay(self, client_id: str, message: SignalMessage):
        payload = message.data
        outgoing = RelayedSignalMessage(sender=client_id, data=payload)
        if payload.to:
            if payload.to == client_id:
                logger.warning(f"⚠️  Dropping {payload.type} addressed by {client_id} to itself")
                return
            if not self.send_to_client(outgoing, payload.to):
                # The recipient may have just disconnected
                logger.debug("Dropped %s from %s to unknown client %s", payload.type, client_id, payload.to)
            return
        self.broadcast_to_room(outgoing, message.room_id, exclude_client=client_id)

    def handle(self, client_id: str, message: WireModel):
        if isinstance(message, JoinMessage):
            self.join(client_id, message.room_id)
        elif isinstance(message, LeaveMessage):
            self.leave(client_id)
        elif isinstance(message, SignalMessage):
            self.relay(client_id, message)
        else:
            logger.warning(f"⚠️  Unhandled message {type(message).__name__} from {client_id}")

    def handle_frame(self, client_id: str, data: Any):
        """Validate one decoded client frame and act on it; invalid frames are dropped."""
        try:
            message = client_message_adapter.validate_python(data)
        except ValidationError as e:
            logger.warning(f"⚠️  Dropping malformed frame from {client_id}: {e.error_count()} error(s)")
            return
        logger.info(f"📨 Received {message.event} from {client_id}")
        self.handle(client_id, message)

    def send_to_client(self, message: WireModel, client_id: str) -> bool:
        outbox = self.clients.get(client_id)
        if outbox is None:
            return False
        try:
            outbox(message.to_wire())
        except Exception as e:
            logger.error(f"❌ Error sending to client {client_id}: {e}")
            return False
        return True

    def broadcast_to_room(self, message: WireModel, room: str, exclude_client: str = None):
        for client_id in self.get_room_clients(room):
            if client_id != exclude_client:
                self.send_to_client(message, client_id)

    def get_room_clients(self, room: str) -> list:
        if room in self.rooms:
            return list(self.rooms[room].keys())
        return []

    def get_client_room(self, client_id: str) -> Optional[str]:
        return self.client_room.get(client_id)
