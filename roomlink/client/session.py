"""Client end of the signaling channel.

A session joins one room at a time. While a join is pending, every
``peer-joined`` names a member that was already in the room and this
client offers to it; once the ``joined`` ack arrives, further
``peer-joined`` frames name newcomers, who will offer to us.

Announces are tagged with their room and signals are accepted only from
known members of the current room, so frames still in flight from a room
this client has left are dropped.
"""
import asyncio
import json
import logging
from typing import Any, Callable, List, Optional

import websockets
from aiortc import RTCIceServer

from roomlink.client.errors import SessionError
from roomlink.client.ice import peer_connection_factory
from roomlink.client.media import LocalMedia, SinkFactory, default_sink_factory
from roomlink.client.negotiation import NegotiationEngine
from roomlink.client.registry import ConnectionRegistry
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
    server_message_adapter,
)

logger = logging.getLogger(__name__)


class SignalingSession:
    """One client's view of one room.

    Args:
        channel: Connected signaling channel: async ``send(str)``, async
            iteration over incoming text frames and async ``close()``.
        local_media: Capture shared by every PeerLink (receive-only if omitted).
        ice_servers: STUN/TURN servers for the default peer connection factory.
        pc_factory: Builds one peer connection; overrides ``ice_servers``.
        sink_factory: Builds the sink consuming one remote peer's media.
    """

    def __init__(self, channel, local_media: Optional[LocalMedia] = None,
                 ice_servers: Optional[List[RTCIceServer]] = None,
                 pc_factory: Optional[Callable[[], Any]] = None,
                 sink_factory: SinkFactory = default_sink_factory):
        self.channel = channel
        self.local_media = local_media or LocalMedia()
        self.registry = ConnectionRegistry(
            pc_factory or peer_connection_factory(ice_servers or []),
            local_media=self.local_media,
            sink_factory=sink_factory,
        )
        self.engine = NegotiationEngine(self.registry, self.send_signal)
        self.client_id: Optional[str] = None
        self.room_id: Optional[str] = None
        self._joining = False
        self._joined = asyncio.Event()
        # Peers of the current room, as announced by the server
        self._members: set = set()
        self._tasks: set = set()

    @classmethod
    async def connect(cls, url: str, **kwargs) -> "SignalingSession":
        channel = await websockets.connect(url)
        logger.info("Connected to signaling server %s", url)
        return cls(channel, **kwargs)

    @property
    def peers(self) -> List[str]:
        return self.registry.peer_ids()

    async def join(self, room_id: str, timeout: float = 10.0):
        if not room_id:
            raise SessionError("room id must not be empty")
        # Media failure is fatal to joining: raise before anything is sent
        self.local_media.acquire()

        switching = self.room_id is not None and self.room_id != room_id
        if self.room_id != room_id:
            self._members.clear()
        self.room_id = room_id
        self._joining = True
        self._joined.clear()
        if switching:
            await self.engine.close_all()
        await self._send(JoinMessage(room_id=room_id))
        try:
            await asyncio.wait_for(self._joined.wait(), timeout)
        except asyncio.TimeoutError:
            logger.warning("No ack for room %s after %ss; giving up", room_id, timeout)
            self._reset()
            await self.engine.close_all()
            await self._send(LeaveMessage())
            raise
        logger.info("Joined room %s as %s", room_id, self.client_id)

    async def leave(self):
        if self.room_id is None:
            return
        await self._send(LeaveMessage())
        logger.info("Left room %s", self.room_id)
        self._reset()
        await self.engine.close_all()

    def _reset(self):
        self.room_id = None
        self._joining = False
        self._members.clear()

    async def send_signal(self, payload):
        if self.room_id is None:
            logger.debug("Not in a room; dropping outgoing %s", payload.type)
            return
        await self._send(SignalMessage(room_id=self.room_id, data=payload))

    async def _send(self, message: WireModel):
        await self.channel.send(json.dumps(message.to_wire()))

    async def run(self):
        """Dispatch incoming frames until the channel closes."""
        try:
            async for raw in self.channel:
                self.dispatch(raw)
        except websockets.ConnectionClosed as e:
            logger.warning("Signaling channel closed: %s", e)
        # Without signaling every remote peer has been told we left
        self._reset()
        await self.engine.close_all()

    def dispatch(self, raw):
        """Handle one server frame (text or already-decoded)."""
        try:
            data = json.loads(raw) if isinstance(raw, (str, bytes)) else raw
            message = server_message_adapter.validate_python(data)
        except ValueError as e:
            logger.warning("Dropping malformed frame from server: %s", e)
            return

        if isinstance(message, WelcomeMessage):
            self.client_id = message.client_id
        elif isinstance(message, PeerJoinedMessage):
            if message.room_id != self.room_id:
                logger.debug("Ignoring peer-joined for %s from room %s", message.client_id, message.room_id)
                return
            self._members.add(message.client_id)
            if self._joining:
                logger.info("Offering to existing member %s", message.client_id)
                self._spawn(self.engine.connect_to(message.client_id))
            else:
                logger.info("Peer %s joined; waiting for its offer", message.client_id)
        elif isinstance(message, JoinedMessage):
            if message.room_id == self.room_id:
                self._joining = False
                self._joined.set()
        elif isinstance(message, RelayedSignalMessage):
            if message.sender not in self._members:
                logger.debug("Dropping %s from %s, not a member of this room", message.data.type, message.sender)
                return
            self._spawn(self.engine.handle_signal(message.sender, message.data))
        elif isinstance(message, PeerLeftMessage):
            logger.info("Peer %s left", message.client_id)
            self._members.discard(message.client_id)
            self._spawn(self.engine.close_peer(message.client_id))

    def _spawn(self, coro):
        task = asyncio.ensure_future(self._guard(coro))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    @staticmethod
    async def _guard(coro):
        try:
            await coro
        except Exception:
            logger.exception("Signal handler failed")

    async def drain(self):
        """Wait until every in-flight handler has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    def set_video_enabled(self, enabled: bool):
        self.local_media.set_video_enabled(enabled)

    def set_audio_enabled(self, enabled: bool):
        self.local_media.set_audio_enabled(enabled)

    async def close(self):
        for task in list(self._tasks):
            task.cancel()
        self._reset()
        await self.engine.close_all()
        self.local_media.stop()
        await self.channel.close()
