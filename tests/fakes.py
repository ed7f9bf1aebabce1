import asyncio
import json

from aiortc import RTCSessionDescription

from roomlink.client.session import SignalingSession


class FakePeerConnection:
    """In-memory stand-in for aiortc's RTCPeerConnection."""

    def __init__(self, owner: str = "local"):
        self.owner = owner
        self.handlers = {}
        self.tracks = []
        self.localDescription = None
        self.remoteDescription = None
        self.candidates = []
        self.closed = False

    def on(self, event, f=None):
        def register(func):
            self.handlers.setdefault(event, []).append(func)
            return func
        return register(f) if f is not None else register

    def emit(self, event, *args):
        for handler in self.handlers.get(event, []):
            handler(*args)

    def addTrack(self, track):
        self.tracks.append(track)

    async def createOffer(self):
        await asyncio.sleep(0)
        return RTCSessionDescription(sdp=f"offer from {self.owner}", type="offer")

    async def createAnswer(self):
        await asyncio.sleep(0)
        return RTCSessionDescription(sdp=f"answer from {self.owner}", type="answer")

    async def setLocalDescription(self, description):
        await asyncio.sleep(0)
        self.localDescription = description

    async def setRemoteDescription(self, description):
        await asyncio.sleep(0)
        self.remoteDescription = description

    async def addIceCandidate(self, candidate):
        self.candidates.append(candidate)

    async def close(self):
        self.closed = True


class FakeSink:
    def __init__(self):
        self.tracks = []
        self.started = 0
        self.stopped = False

    def addTrack(self, track):
        self.tracks.append(track)

    async def start(self):
        self.started += 1

    async def stop(self):
        self.stopped = True


class FakeTrack:
    def __init__(self, kind="video"):
        self.kind = kind


class LoopbackChannel:
    """Signaling channel wired straight into a RoomRouter, no sockets."""

    def __init__(self, rooms, client_id):
        self.rooms = rooms
        self.client_id = client_id
        self.sent = []
        self.closed = False
        self._closed = asyncio.Event()

    async def send(self, text):
        frame = json.loads(text)
        self.sent.append(frame)
        self.rooms.handle_frame(self.client_id, frame)

    async def close(self):
        if not self.closed:
            self.closed = True
            self._closed.set()
            self.rooms.disconnect(self.client_id)

    def __aiter__(self):
        return self

    async def __anext__(self):
        await self._closed.wait()
        raise StopAsyncIteration


class Inbound:
    """Server-side outbox feeding a session; can hold frames back to model latency."""

    def __init__(self, session):
        self.session = session
        self.held = None

    def __call__(self, frame):
        if self.held is None:
            self.session.dispatch(frame)
        else:
            self.held.append(frame)

    def hold(self):
        self.held = []

    def release(self):
        frames, self.held = self.held or [], None
        for frame in frames:
            self.session.dispatch(frame)


def make_session(rooms, client_id, **kwargs) -> SignalingSession:
    kwargs.setdefault("pc_factory", lambda: FakePeerConnection(client_id))
    kwargs.setdefault("sink_factory", lambda peer_id: FakeSink())
    session = SignalingSession(LoopbackChannel(rooms, client_id), **kwargs)
    session.inbound = Inbound(session)
    rooms.connect(client_id, session.inbound)
    return session


async def settle(*sessions):
    """Run every session's handlers (and what they trigger) to completion."""
    for _ in range(20):
        for session in sessions:
            await session.drain()
        await asyncio.sleep(0)


def sent_signals(session, kind=None):
    frames = [f["data"] for f in session.channel.sent if f["event"] == "signal"]
    if kind is not None:
        frames = [d for d in frames if d["type"] == kind]
    return frames
