import pytest
from pydantic import ValidationError

from roomlink.models import (
    CandidatePayload,
    JoinMessage,
    RelayedSignalMessage,
    SignalMessage,
    client_message_adapter,
    server_message_adapter,
)


def test_client_frames_parse_into_tagged_models():
    join = client_message_adapter.validate_python({"event": "join", "roomId": "r1"})
    assert isinstance(join, JoinMessage)
    assert join.room_id == "r1"

    signal = client_message_adapter.validate_python({
        "event": "signal",
        "roomId": "r1",
        "data": {
            "type": "candidate",
            "to": "b",
            "candidate": {"candidate": "candidate:1 1 udp 1 192.0.2.1 5000 typ host",
                          "sdpMid": "0", "sdpMLineIndex": 0},
        },
    })
    assert isinstance(signal, SignalMessage)
    assert isinstance(signal.data, CandidatePayload)
    assert signal.data.candidate.sdp_mline_index == 0


def test_relayed_signal_uses_wire_names():
    message = RelayedSignalMessage(sender="a", data={"type": "answer", "sdp": "v=0"})
    assert message.to_wire() == {"event": "signal", "from": "a", "data": {"type": "answer", "sdp": "v=0"}}
    assert server_message_adapter.validate_python(message.to_wire()) == message


@pytest.mark.parametrize("data", [
    {"type": "renegotiate", "sdp": "v=0"},
    {"type": "offer"},
    {"type": "candidate", "candidate": {"sdpMid": "0"}},
    {"sdp": "v=0"},
])
def test_unknown_or_incomplete_payloads_are_rejected(data):
    with pytest.raises(ValidationError):
        client_message_adapter.validate_python({"event": "signal", "roomId": "r1", "data": data})
