"""Signaling wire protocol.

Every frame is a JSON object tagged by ``event``. Signal payloads carried
inside ``signal`` frames are tagged by ``type``. Both unions are closed:
unknown tags fail validation at the transport boundary.
"""
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


# --- Signal payloads -------------------------------------------------------

class IceCandidate(WireModel):
    candidate: str
    sdp_mid: Optional[str] = Field(default=None, alias="sdpMid")
    sdp_mline_index: Optional[int] = Field(default=None, alias="sdpMLineIndex")
    username_fragment: Optional[str] = Field(default=None, alias="usernameFragment")


class OfferPayload(WireModel):
    type: Literal["offer"] = "offer"
    sdp: str
    to: Optional[str] = None


class AnswerPayload(WireModel):
    type: Literal["answer"] = "answer"
    sdp: str
    to: Optional[str] = None


class CandidatePayload(WireModel):
    type: Literal["candidate"] = "candidate"
    candidate: IceCandidate
    to: Optional[str] = None


SignalPayload = Annotated[
    Union[OfferPayload, AnswerPayload, CandidatePayload],
    Field(discriminator="type"),
]


# --- Client -> server ------------------------------------------------------

class JoinMessage(WireModel):
    event: Literal["join"] = "join"
    room_id: str = Field(alias="roomId", min_length=1)


class LeaveMessage(WireModel):
    event: Literal["leave"] = "leave"


class SignalMessage(WireModel):
    event: Literal["signal"] = "signal"
    room_id: str = Field(alias="roomId", min_length=1)
    data: SignalPayload


ClientMessage = Annotated[
    Union[JoinMessage, LeaveMessage, SignalMessage],
    Field(discriminator="event"),
]


# --- Server -> client ------------------------------------------------------

class WelcomeMessage(WireModel):
    event: Literal["welcome"] = "welcome"
    client_id: str = Field(alias="clientId")


class PeerJoinedMessage(WireModel):
    event: Literal["peer-joined"] = "peer-joined"
    room_id: str = Field(alias="roomId")
    client_id: str = Field(alias="clientId")


class JoinedMessage(WireModel):
    event: Literal["joined"] = "joined"
    room_id: str = Field(alias="roomId")
    client_id: str = Field(alias="clientId")


class RelayedSignalMessage(WireModel):
    event: Literal["signal"] = "signal"
    sender: str = Field(alias="from")
    data: SignalPayload


class PeerLeftMessage(WireModel):
    event: Literal["peer-left"] = "peer-left"
    client_id: str = Field(alias="clientId")


ServerMessage = Annotated[
    Union[WelcomeMessage, PeerJoinedMessage, JoinedMessage, RelayedSignalMessage, PeerLeftMessage],
    Field(discriminator="event"),
]

client_message_adapter = TypeAdapter(ClientMessage)
server_message_adapter = TypeAdapter(ServerMessage)
