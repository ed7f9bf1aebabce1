import asyncio

import pytest
from aiortc import VideoStreamTrack

from fakes import FakePeerConnection, FakeSink, FakeTrack
from roomlink.client.media import LocalMedia
from roomlink.client.peer import NegotiationState
from roomlink.client.registry import MAX_PENDING_CANDIDATES, ConnectionRegistry
from roomlink.models import IceCandidate


def make_registry(local_media=None, pc_factory=FakePeerConnection):
    sinks = {}

    def sink_factory(peer_id):
        sinks[peer_id] = FakeSink()
        return sinks[peer_id]

    registry = ConnectionRegistry(pc_factory, local_media=local_media, sink_factory=sink_factory)
    return registry, sinks


def test_get_or_create_returns_one_link_per_peer():
    async def scenario():
        registry, _ = make_registry()
        first = registry.get_or_create("b")
        assert registry.get_or_create("b") is first
        assert registry.get_or_create("c") is not first
        assert sorted(registry.peer_ids()) == ["b", "c"]
        assert first.state is NegotiationState.IDLE

    asyncio.run(scenario())


def test_new_links_carry_every_local_track():
    async def scenario():
        media = LocalMedia(tracks=[VideoStreamTrack(), VideoStreamTrack()])
        registry, _ = make_registry(media)
        b = registry.get_or_create("b")
        c = registry.get_or_create("c")
        assert len(b.pc.tracks) == 2
        assert len(c.pc.tracks) == 2
        # Each link gets its own relayed view of the shared capture
        assert b.pc.tracks[0] is not c.pc.tracks[0]

    asyncio.run(scenario())


def test_remove_closes_and_is_idempotent():
    async def scenario():
        registry, _ = make_registry()
        link = registry.get_or_create("b")

        await registry.remove("b")
        assert link.state is NegotiationState.CLOSED
        assert link.pc.closed
        assert "b" not in registry

        await registry.remove("b")
        await registry.remove("never-seen")
        assert len(registry) == 0

    asyncio.run(scenario())


class FailingClosePeerConnection(FakePeerConnection):
    async def close(self):
        raise RuntimeError("transport already gone")


def test_sink_is_stopped_even_if_closing_the_connection_fails():
    async def scenario():
        registry, sinks = make_registry(pc_factory=FailingClosePeerConnection)
        link = registry.get_or_create("b")
        link.pc.emit("track", FakeTrack("video"))
        await asyncio.sleep(0)

        with pytest.raises(RuntimeError):
            await registry.remove("b")

        assert sinks["b"].stopped
        assert link.state is NegotiationState.CLOSED
        assert "b" not in registry
        assert "b" not in registry.remote_media

    asyncio.run(scenario())


def test_remote_media_appears_only_with_inbound_media():
    async def scenario():
        registry, sinks = make_registry()
        link = registry.get_or_create("b")
        assert dict(registry.remote_media) == {}

        link.pc.emit("track", FakeTrack("audio"))
        link.pc.emit("track", FakeTrack("video"))
        await asyncio.sleep(0)

        media = registry.remote_media["b"]
        assert [t.kind for t in media.tracks] == ["audio", "video"]
        assert len(sinks["b"].tracks) == 2

        await registry.remove("b")
        assert "b" not in registry.remote_media
        assert sinks["b"].stopped

    asyncio.run(scenario())


def test_tracks_after_close_are_ignored():
    async def scenario():
        registry, sinks = make_registry()
        link = registry.get_or_create("b")
        await registry.remove("b")

        await registry.attach_remote_track(link, FakeTrack())
        assert dict(registry.remote_media) == {}
        assert sinks == {}

    asyncio.run(scenario())


def test_pending_candidates_are_bounded_and_discarded_on_remove():
    async def scenario():
        registry, _ = make_registry()
        candidate = IceCandidate(candidate="candidate:1 1 udp 2130706431 192.0.2.1 5000 typ host")
        for _ in range(MAX_PENDING_CANDIDATES):
            assert registry.buffer_candidate("b", candidate)
        assert not registry.buffer_candidate("b", candidate)
        assert registry.pending_count("b") == MAX_PENDING_CANDIDATES

        await registry.remove("b")
        assert registry.pending_count("b") == 0
        assert registry.take_pending_candidates("b") == []

    asyncio.run(scenario())
