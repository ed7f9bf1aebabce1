"""Offer/answer/candidate exchange with each remote peer.

Roles are fixed by the join choreography: a client that has just joined
offers to every member already in the room, and members only ever answer.
No peer both sends and expects an offer for the same remote id, so there
is no glare to resolve.

Every step for one peer runs under that PeerLink's lock. A departure can
close the link while a step is suspended; each step re-checks ``closed``
after every await and stops quietly.
"""
import asyncio
import logging
from typing import Awaitable, Callable

from aiortc import RTCSessionDescription

from roomlink.client.ice import candidate_from_wire, candidate_to_wire
from roomlink.client.peer import NegotiationState, PeerLink
from roomlink.client.registry import ConnectionRegistry
from roomlink.models import AnswerPayload, CandidatePayload, IceCandidate, OfferPayload

logger = logging.getLogger(__name__)

SendSignal = Callable[[object], Awaitable[None]]


class NegotiationEngine:
    def __init__(self, registry: ConnectionRegistry, send_signal: SendSignal):
        self.registry = registry
        self._send_signal = send_signal
        self._background: set = set()

    def _materialize(self, peer_id: str) -> PeerLink:
        link = self.registry.get(peer_id)
        if link is None:
            link = self.registry.get_or_create(peer_id)
            self._watch_local_candidates(link)
        return link

    def _watch_local_candidates(self, link: PeerLink):
        @link.pc.on("icecandidate")
        def on_icecandidate(candidate):
            if candidate is None or link.closed:
                return
            payload = CandidatePayload(candidate=candidate_to_wire(candidate), to=link.peer_id)
            task = asyncio.ensure_future(self._send_signal(payload))
            self._background.add(task)
            task.add_done_callback(self._background.discard)

    async def connect_to(self, peer_id: str):
        """Caller path: offer to a member that was in the room before us."""
        link = self._materialize(peer_id)
        async with link.lock:
            if link.state is not NegotiationState.IDLE:
                logger.warning("Not offering to %s: link is %s", peer_id, link.state.value)
                return
            offer = await link.pc.createOffer()
            if link.closed:
                return
            await link.pc.setLocalDescription(offer)
            if link.closed:
                return
            link.transition(NegotiationState.HAVE_LOCAL_OFFER)
            await self._send_signal(OfferPayload(sdp=link.pc.localDescription.sdp, to=peer_id))
            logger.info("Sent offer to %s", peer_id)

    async def handle_signal(self, sender: str, payload):
        if isinstance(payload, OfferPayload):
            await self.handle_offer(sender, payload)
        elif isinstance(payload, AnswerPayload):
            await self.handle_answer(sender, payload)
        elif isinstance(payload, CandidatePayload):
            await self.handle_candidate(sender, payload.candidate)

    async def handle_offer(self, sender: str, offer: OfferPayload):
        """Callee path: answer a newcomer's offer."""
        link = self._materialize(sender)
        async with link.lock:
            if link.closed:
                return
            if link.state is not NegotiationState.IDLE:
                logger.warning("Dropping offer from %s: link is %s", sender, link.state.value)
                return
            await link.pc.setRemoteDescription(RTCSessionDescription(sdp=offer.sdp, type="offer"))
            if link.closed:
                return
            link.transition(NegotiationState.HAVE_REMOTE_OFFER)
            await self._flush_candidates(link)
            answer = await link.pc.createAnswer()
            if link.closed:
                return
            await link.pc.setLocalDescription(answer)
            if link.closed:
                return
            link.transition(NegotiationState.STABLE)
            await self._send_signal(AnswerPayload(sdp=link.pc.localDescription.sdp, to=sender))
            logger.info("Sent answer to %s", sender)

    async def handle_answer(self, sender: str, answer: AnswerPayload):
        link = self.registry.get(sender)
        if link is None:
            logger.debug("Dropping answer from %s: no PeerLink", sender)
            return
        async with link.lock:
            if link.closed:
                return
            if link.state is not NegotiationState.HAVE_LOCAL_OFFER:
                logger.warning("Dropping answer from %s: link is %s", sender, link.state.value)
                return
            await link.pc.setRemoteDescription(RTCSessionDescription(sdp=answer.sdp, type="answer"))
            if link.closed:
                return
            link.transition(NegotiationState.STABLE)
            await self._flush_candidates(link)
            logger.info("Negotiation with %s is stable", sender)

    async def handle_candidate(self, sender: str, candidate: IceCandidate):
        link = self.registry.get(sender)
        if link is None:
            self.registry.buffer_candidate(sender, candidate)
            return
        async with link.lock:
            if link.closed:
                return
            if not link.has_remote_description:
                self.registry.buffer_candidate(sender, candidate)
                return
            await self._apply_candidate(link, candidate)

    async def _flush_candidates(self, link: PeerLink):
        for candidate in self.registry.take_pending_candidates(link.peer_id):
            if link.closed:
                return
            await self._apply_candidate(link, candidate)

    async def _apply_candidate(self, link: PeerLink, candidate: IceCandidate):
        # A bad or late candidate never aborts the link
        try:
            ice = candidate_from_wire(candidate)
            if ice is not None:
                await link.pc.addIceCandidate(ice)
        except Exception as e:
            logger.debug("Ignoring candidate from %s: %s", link.peer_id, e)

    async def close_peer(self, peer_id: str):
        await self.registry.remove(peer_id)

    async def close_all(self):
        await self.registry.remove_all()
