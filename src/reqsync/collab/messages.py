"""Collaboration wire format.

Client messages are discriminated by `event`; field names are camelCase on the
wire.
"""

from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Discriminator, Field, JsonValue, TypeAdapter
from pydantic.alias_generators import to_camel
from reqsync_models import Participant

from ..constants import ServerEvent


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def dump(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class JoinMessage(_WireModel):
    event: Literal["join-session"]
    request_id: str
    username: str = Field(default="Anonymous")


class LeaveMessage(_WireModel):
    event: Literal["leave-session"]
    request_id: str


class EditMessage(_WireModel):
    event: Literal["request-update"]
    request_id: str
    data: JsonValue = Field(default=None, description="Opaque edit payload, relayed verbatim.")


class CursorMessage(_WireModel):
    event: Literal["cursor-position"]
    request_id: str
    field: str
    position: JsonValue = Field(default=None)


ClientMessage = Annotated[JoinMessage | LeaveMessage | EditMessage | CursorMessage, Discriminator("event")]

client_message_adapter: TypeAdapter[ClientMessage] = TypeAdapter(ClientMessage)


class RosterMessage(_WireModel):
    event: ServerEvent
    request_id: str
    seq: int
    user_id: str
    username: str | None = None
    users: list[Participant]


class EditRelayMessage(_WireModel):
    event: ServerEvent = ServerEvent.REQUEST_UPDATED
    request_id: str
    user_id: str
    data: JsonValue = None


class CursorRelayMessage(_WireModel):
    event: ServerEvent = ServerEvent.CURSOR_MOVED
    request_id: str
    user_id: str
    field: str
    position: JsonValue = None


class ErrorMessage(_WireModel):
    event: ServerEvent = ServerEvent.ERROR
    message: str
