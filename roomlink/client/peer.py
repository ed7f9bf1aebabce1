"""Per-remote-peer negotiation state."""
import asyncio
import enum
import logging
from typing import Any

from roomlink.client.errors import NegotiationError

logger = logging.getLogger(__name__)


class NegotiationState(str, enum.Enum):
    IDLE = "idle"
    HAVE_LOCAL_OFFER = "have-local-offer"
    HAVE_REMOTE_OFFER = "have-remote-offer"
    STABLE = "stable"
    CLOSED = "closed"


_TRANSITIONS = {
    NegotiationState.IDLE: {NegotiationState.HAVE_LOCAL_OFFER, NegotiationState.HAVE_REMOTE_OFFER},
    NegotiationState.HAVE_LOCAL_OFFER: {NegotiationState.STABLE},
    NegotiationState.HAVE_REMOTE_OFFER: {NegotiationState.STABLE},
    NegotiationState.STABLE: set(),
    NegotiationState.CLOSED: set(),
}


class PeerLink:
    """Negotiation and media relationship with exactly one remote client.

    Attributes:
        peer_id: Remote client identifier.
        pc: The underlying peer connection (an aiortc ``RTCPeerConnection``).
        state: Current ``NegotiationState``.
        lock: Serializes this link's asynchronous negotiation steps.
    """

    def __init__(self, peer_id: str, pc: Any):
        self.peer_id = peer_id
        self.pc = pc
        self.state = NegotiationState.IDLE
        self.lock = asyncio.Lock()

    @property
    def closed(self) -> bool:
        return self.state is NegotiationState.CLOSED

    @property
    def has_remote_description(self) -> bool:
        return self.state in (NegotiationState.HAVE_REMOTE_OFFER, NegotiationState.STABLE)

    def transition(self, new_state: NegotiationState):
        # Any state may close
        if new_state is not NegotiationState.CLOSED and new_state not in _TRANSITIONS[self.state]:
            raise NegotiationError(
                f"peer {self.peer_id}: cannot go from {self.state.value} to {new_state.value}"
            )
        logger.debug("peer %s: %s -> %s", self.peer_id, self.state.value, new_state.value)
        self.state = new_state

    def __repr__(self) -> str:
        return f"PeerLink(peer_id={self.peer_id!r}, state={self.state.value!r})"
