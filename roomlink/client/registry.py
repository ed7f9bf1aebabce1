import asyncio
import logging
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional

from roomlink.client.media import LocalMedia, RemoteMedia, SinkFactory, default_sink_factory
from roomlink.client.peer import NegotiationState, PeerLink
from roomlink.models import IceCandidate

logger = logging.getLogger(__name__)

# Per remote peer, candidates waiting for a PeerLink or a remote description
MAX_PENDING_CANDIDATES = 64


class ConnectionRegistry:
    """Owns every PeerLink of one client session, keyed by remote client id.

    Also owns the remote media handles (created the first time a remote
    track arrives for a peer) and the buffer of candidates that arrived
    too early to be applied.
    """

    def __init__(self, pc_factory: Callable[[], Any], local_media: Optional[LocalMedia] = None,
                 sink_factory: SinkFactory = default_sink_factory):
        self._pc_factory = pc_factory
        self.local_media = local_media
        self._sink_factory = sink_factory
        self._links: Dict[str, PeerLink] = {}
        self._remote_media: Dict[str, RemoteMedia] = {}
        self._pending: Dict[str, List[IceCandidate]] = {}

    def __contains__(self, peer_id: str) -> bool:
        return peer_id in self._links

    def __len__(self) -> int:
        return len(self._links)

    def get(self, peer_id: str) -> Optional[PeerLink]:
        return self._links.get(peer_id)

    def peer_ids(self) -> List[str]:
        return list(self._links)

    @property
    def remote_media(self) -> Mapping[str, RemoteMedia]:
        return MappingProxyType(self._remote_media)

    def get_or_create(self, peer_id: str) -> PeerLink:
        link = self._links.get(peer_id)
        if link is not None:
            return link

        pc = self._pc_factory()
        if self.local_media is not None:
            for track in self.local_media.subscribe():
                pc.addTrack(track)
        link = PeerLink(peer_id, pc)

        @pc.on("track")
        def on_track(track):
            asyncio.ensure_future(self.attach_remote_track(link, track))

        self._links[peer_id] = link
        logger.info("Created PeerLink for %s", peer_id)
        return link

    async def attach_remote_track(self, link: PeerLink, track):
        if link.closed or self._links.get(link.peer_id) is not link:
            return
        media = self._remote_media.get(link.peer_id)
        if media is None:
            media = RemoteMedia(link.peer_id, self._sink_factory(link.peer_id))
            self._remote_media[link.peer_id] = media
        logger.info("Receiving %s from %s", track.kind, link.peer_id)
        await media.add_track(track)

    async def remove(self, peer_id: str):
        """Close and forget everything held for ``peer_id``. Idempotent."""
        self._pending.pop(peer_id, None)
        link = self._links.pop(peer_id, None)
        media = self._remote_media.pop(peer_id, None)
        try:
            if link is not None:
                link.transition(NegotiationState.CLOSED)
                await link.pc.close()
                logger.info("Closed PeerLink for %s", peer_id)
        finally:
            if media is not None:
                await media.close()

    async def remove_all(self):
        for peer_id in list(self._links):
            await self.remove(peer_id)
        self._pending.clear()

    def buffer_candidate(self, peer_id: str, candidate: IceCandidate) -> bool:
        pending = self._pending.setdefault(peer_id, [])
        if len(pending) >= MAX_PENDING_CANDIDATES:
            logger.warning("Dropping candidate from %s: %d already pending", peer_id, len(pending))
            return False
        pending.append(candidate)
        return True

    def take_pending_candidates(self, peer_id: str) -> List[IceCandidate]:
        return self._pending.pop(peer_id, [])

    def pending_count(self, peer_id: str) -> int:
        return len(self._pending.get(peer_id, ()))
