from pydantic import BaseModel, Field
from typing import List, Optional, Union


class IceServer(BaseModel):
    urls: Union[str, List[str]] = Field(description="STUN/TURN URL or list of URLs")
    username: Optional[str] = Field(default=None, description="TURN username")
    credential: Optional[str] = Field(default=None, description="TURN password")


class IceConfig(BaseModel):
    iceServers: List[IceServer] = Field(default_factory=list)


class HealthStatus(BaseModel):
    status: str
    message: str
    rooms: int
    clients: int
