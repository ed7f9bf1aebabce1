"""Local capture shared by every PeerLink, and per-peer remote media handles."""
import logging
from typing import Any, Callable, Dict, List, Optional

import numpy as np
from aiortc import MediaStreamTrack
from aiortc.contrib.media import MediaBlackhole, MediaPlayer, MediaRelay
from av import VideoFrame

from roomlink.client.errors import MediaAcquisitionError

logger = logging.getLogger(__name__)


def blank_frame(frame):
    """Black video or silent audio with the same timing as ``frame``."""
    if isinstance(frame, VideoFrame):
        blank = VideoFrame.from_ndarray(
            np.zeros((frame.height, frame.width, 3), dtype=np.uint8), format="rgb24"
        )
        blank.pts = frame.pts
        blank.time_base = frame.time_base
        return blank
    for plane in frame.planes:
        plane.update(bytes(plane.buffer_size))
    return frame


class SwitchableTrack(MediaStreamTrack):
    """Wraps a capture track; while disabled it emits blank frames instead."""

    def __init__(self, source: MediaStreamTrack):
        super().__init__()
        self.kind = source.kind
        self.source = source
        self.enabled = True

    async def recv(self):
        frame = await self.source.recv()
        if self.enabled:
            return frame
        return blank_frame(frame)

    def stop(self):
        super().stop()
        self.source.stop()


class LocalMedia:
    """The single local capture, attached read-only to every PeerLink.

    ``source`` is anything ffmpeg can open: a file, a device such as
    ``/dev/video0`` (with ``format="v4l2"``) or a stream URL. With neither
    a source nor tracks the client is receive-only.
    """

    def __init__(self, source: Optional[str] = None, format: Optional[str] = None,
                 options: Optional[Dict[str, str]] = None,
                 tracks: Optional[List[MediaStreamTrack]] = None):
        self.source = source
        self.format = format
        self.options = options or {}
        self.tracks: List[SwitchableTrack] = [SwitchableTrack(t) for t in (tracks or [])]
        self._player: Optional[MediaPlayer] = None
        self._relay = MediaRelay()

    def acquire(self):
        """Open the capture source. Idempotent."""
        if self.source is None or self._player is not None:
            return
        try:
            player = MediaPlayer(self.source, format=self.format, options=self.options)
        except Exception as e:
            raise MediaAcquisitionError(f"Cannot open media source {self.source!r}: {e}") from e
        sources = [t for t in (player.audio, player.video) if t is not None]
        if not sources:
            raise MediaAcquisitionError(f"Media source {self.source!r} has no audio or video")
        self._player = player
        self.tracks.extend(SwitchableTrack(t) for t in sources)
        logger.info("Acquired local media from %s (%s)", self.source, ", ".join(t.kind for t in sources))

    def subscribe(self) -> List[MediaStreamTrack]:
        """One relayed view of every local track, for a single PeerLink."""
        return [self._relay.subscribe(track) for track in self.tracks]

    def set_enabled(self, kind: str, enabled: bool):
        for track in self.tracks:
            if track.kind == kind:
                track.enabled = enabled

    def set_video_enabled(self, enabled: bool):
        self.set_enabled("video", enabled)

    def set_audio_enabled(self, enabled: bool):
        self.set_enabled("audio", enabled)

    def is_enabled(self, kind: str) -> bool:
        return any(t.enabled for t in self.tracks if t.kind == kind)

    def stop(self):
        for track in self.tracks:
            track.stop()
        self.tracks = []
        self._player = None


# Builds the sink that consumes one remote peer's media
SinkFactory = Callable[[str], Any]


def default_sink_factory(peer_id: str):
    return MediaBlackhole()


class RemoteMedia:
    """Rendering handle for the media one remote peer sends us."""

    def __init__(self, peer_id: str, sink):
        self.peer_id = peer_id
        self.sink = sink
        self.tracks: List[MediaStreamTrack] = []

    async def add_track(self, track: MediaStreamTrack):
        self.tracks.append(track)
        self.sink.addTrack(track)
        await self.sink.start()

    async def close(self):
        await self.sink.stop()
        self.tracks = []
