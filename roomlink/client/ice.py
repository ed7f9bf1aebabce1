"""Connectivity servers and candidate conversion between aiortc and the wire."""
import logging
from typing import Callable, List, Optional

import requests
from aiortc import RTCConfiguration, RTCIceCandidate, RTCIceServer, RTCPeerConnection
from aiortc.sdp import candidate_from_sdp, candidate_to_sdp

from roomlink.models import IceCandidate
from roomlink.schemas import IceConfig

logger = logging.getLogger(__name__)


def fetch_ice_servers(url: str, timeout: float = 5.0) -> List[RTCIceServer]:
    """Fetch ``{"iceServers": [...]}`` from the signaling server.

    Any failure yields an empty list: connectivity degrades, but joining and
    media acquisition still go ahead.
    """
    try:
        resp = requests.get(url, timeout=timeout)
        resp.raise_for_status()
        cfg = IceConfig.model_validate(resp.json())
    except (requests.RequestException, ValueError) as e:
        logger.warning("Could not load ICE servers from %s: %s", url, e)
        return []
    servers = [
        RTCIceServer(urls=s.urls, username=s.username, credential=s.credential)
        for s in cfg.iceServers
    ]
    logger.info("Loaded %d ICE server(s) from %s", len(servers), url)
    return servers


def peer_connection_factory(ice_servers: List[RTCIceServer]) -> Callable[[], RTCPeerConnection]:
    def factory() -> RTCPeerConnection:
        return RTCPeerConnection(RTCConfiguration(iceServers=list(ice_servers)))
    return factory


def candidate_from_wire(c: IceCandidate) -> Optional[RTCIceCandidate]:
    """Parse a browser-style candidate; ``None`` marks end-of-candidates."""
    sdp = c.candidate
    if not sdp:
        return None
    if sdp.startswith("candidate:"):
        sdp = sdp[len("candidate:"):]
    candidate = candidate_from_sdp(sdp)
    candidate.sdpMid = c.sdp_mid
    candidate.sdpMLineIndex = c.sdp_mline_index
    return candidate


def candidate_to_wire(candidate: RTCIceCandidate) -> IceCandidate:
    return IceCandidate(
        candidate="candidate:" + candidate_to_sdp(candidate),
        sdp_mid=candidate.sdpMid,
        sdp_mline_index=candidate.sdpMLineIndex,
    )
