# chat_core/infrastructure/schemas.py
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, computed_field
from pydantic.alias_generators import to_camel

from chat_core.domain.entities import ChatKind, DeliveryStatus, MessageKind


class Schema(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True
    )


class UserBasic(Schema):
    id: int
    username: str


class User(UserBasic):
    is_active: bool
    created_at: datetime


class Presence(Schema):
    user_id: int
    online: bool


class ReadReceipt(Schema):
    user_id: int
    read_at: datetime


class MessageCreate(Schema):
    kind: MessageKind = MessageKind.TEXT
    content: str | None = None
    image_url: str | None = None
    event_id: str | None = None
    reply_to: int | None = None


class MessageUpdate(Schema):
    content: str = Field(..., min_length=1)


class Message(Schema):
    id: int
    chat_id: int
    sender_id: int
    sender: UserBasic
    kind: MessageKind
    content: str | None = None
    image_url: str | None = None
    event_ref: str | None = None
    reply_to_id: int | None = None
    status: DeliveryStatus
    read_by: list[ReadReceipt] = Field(default_factory=list)
    is_deleted: bool = False
    is_edited: bool = False
    edited_at: datetime | None = None
    created_at: datetime


class Pagination(Schema):
    page: int
    limit: int
    total: int
    total_pages: int


class MessagePage(Schema):
    messages: list[Message]
    pagination: Pagination


class Participant(Schema):
    user_id: int
    user: UserBasic
    unread_count: int
    is_admin: bool
    is_archived: bool
    is_muted: bool
    has_blocked: bool
    joined_at: datetime


class DirectChatCreate(Schema):
    other_user_id: int


class GroupChatCreate(Schema):
    name: str = Field(..., min_length=1)
    participant_ids: list[int]
    group_image: str | None = None


class ChatUpdate(Schema):
    name: str | None = Field(None, min_length=1)
    group_image: str | None = None


class MemberAdd(Schema):
    user_id: int


class ChatSettingsUpdate(Schema):
    archived: bool | None = None
    muted: bool | None = None
    blocked: bool | None = None


class Chat(Schema):
    id: int
    kind: ChatKind
    name: str | None = None
    group_image: str | None = None
    participants: list[Participant] = Field(default_factory=list)
    last_message: Message | None = None
    is_active: bool
    created_at: datetime
    last_activity_at: datetime

    @computed_field(alias="participantIds")
    @property
    def participant_ids(self) -> list[int]:
        return [p.user_id for p in self.participants]

    @computed_field(alias="admins")
    @property
    def admins(self) -> list[int]:
        return [p.user_id for p in self.participants if p.is_admin]

    @computed_field(alias="unreadCount")
    @property
    def unread_count(self) -> dict[int, int]:
        return {p.user_id: p.unread_count for p in self.participants}

    @computed_field(alias="blockedBy")
    @property
    def blocked_by(self) -> list[int]:
        return [p.user_id for p in self.participants if p.has_blocked]


class SearchResults(Schema):
    chats: list[Chat]
    messages: list[Message]


class Acknowledgement(Schema):
    success: bool = True
    chat_id: int | None = None
    message_id: int | None = None


class SocketEnvelope(BaseModel):
    """Frame exchanged over the socket in both directions."""

    event: str
    data: Any = None


class ChatRef(Schema):
    chat_id: int


class ReadRequest(ChatRef):
    user_id: int | None = None


class MessageRef(Schema):
    message_id: int
