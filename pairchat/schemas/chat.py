from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class SocketEnvelope(BaseModel):
    """A single frame: ``{"event": ..., "data": ...}`` in both directions."""

    model_config = ConfigDict(extra="ignore")

    event: str
    data: Any = None


class JoinPrivateChatPayload(BaseModel):

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    target_user_id: Optional[str] = Field(default=None, alias="targetUserId")


class RoomPayload(BaseModel):

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    room_id: Optional[str] = Field(default=None, alias="roomId")


class SendPrivateMessagePayload(RoomPayload):

    content: Optional[str] = None
    attachment_payload: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("attachmentPayload", "fileData", "attachment_payload")
    )
    attachment_name: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("attachmentName", "fileName", "attachment_name")
    )
