# chat_core/infrastructure/models.py
from datetime import UTC, datetime
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from chat_core.domain.entities import DeliveryStatus, MessageKind
from chat_core.infrastructure.database import Base


def utcnow() -> datetime:
    return datetime.now(UTC)


class User(Base):
    """Local projection of identities owned by the auth service."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, index=True, autoincrement=True
    )
    username: Mapped[str] = mapped_column(String, unique=True, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )


class Chat(Base):
    __tablename__ = "chats"

    __table_args__ = (Index("ix_chats_active_activity", "is_active", "last_activity_at"),)

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, index=True, autoincrement=True
    )
    kind: Mapped[str] = mapped_column(String(16), index=True)
    name: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    group_image: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    # "<low id>:<high id>" for direct chats, NULL for groups and deactivated chats
    direct_key: Mapped[Optional[str]] = mapped_column(
        String, unique=True, nullable=True
    )
    # weak reference, no foreign key
    last_message_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )
    last_activity_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )

    participants: Mapped[List["ChatParticipant"]] = relationship(
        "ChatParticipant",
        back_populates="chat",
        lazy="selectin",
        order_by="ChatParticipant.user_id",
        cascade="all, delete-orphan",
    )
    last_message: Mapped[Optional["Message"]] = relationship(
        "Message",
        primaryjoin="foreign(Chat.last_message_id) == Message.id",
        lazy="selectin",
        viewonly=True,
    )


class ChatParticipant(Base):
    """Per-user state of a chat; each column is updated in place, never read-modify-written."""

    __tablename__ = "chat_participants"

    __table_args__ = (Index("ix_chat_participants_user", "user_id"),)

    chat_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("chats.id", ondelete="CASCADE"), primary_key=True
    )
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id"), primary_key=True
    )
    unread_count: Mapped[int] = mapped_column(Integer, default=0)
    is_admin: Mapped[bool] = mapped_column(Boolean, default=False)
    is_archived: Mapped[bool] = mapped_column(Boolean, default=False)
    is_muted: Mapped[bool] = mapped_column(Boolean, default=False)
    has_blocked: Mapped[bool] = mapped_column(Boolean, default=False)
    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )

    chat: Mapped[Chat] = relationship(
        "Chat", back_populates="participants", lazy="select"
    )
    user: Mapped[User] = relationship("User", lazy="joined")


class Message(Base):
    __tablename__ = "messages"

    __table_args__ = (
        Index("ix_messages_chat_id_order", "chat_id", "id"),
        Index("ix_messages_chat_deleted", "chat_id", "is_deleted"),
        Index("ix_messages_sender", "sender_id"),
    )

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, index=True, autoincrement=True
    )
    chat_id: Mapped[int] = mapped_column(Integer, ForeignKey("chats.id"), index=True)
    sender_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"))
    kind: Mapped[str] = mapped_column(String(16), default=MessageKind.TEXT.value)
    content: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    image_url: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    event_ref: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    # weak reference, no foreign key
    reply_to_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    status: Mapped[str] = mapped_column(
        String(16), default=DeliveryStatus.SENT.value, index=True
    )
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False)
    is_edited: Mapped[bool] = mapped_column(Boolean, default=False)
    edited_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )

    sender: Mapped[User] = relationship("User", lazy="joined")
    read_by: Mapped[List["MessageRead"]] = relationship(
        "MessageRead",
        back_populates="message",
        lazy="selectin",
        order_by="MessageRead.read_at",
    )


class MessageRead(Base):
    """One read receipt per (message, user); the primary key makes inserts idempotent."""

    __tablename__ = "message_reads"

    message_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("messages.id", ondelete="CASCADE"), primary_key=True
    )
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id"), primary_key=True
    )
    read_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    message: Mapped[Message] = relationship(
        "Message", back_populates="read_by", lazy="select"
    )


class MessageDeletion(Base):
    """Per-user tombstone hiding a message from one participant."""

    __tablename__ = "message_deletions"

    message_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("messages.id", ondelete="CASCADE"), primary_key=True
    )
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id"), primary_key=True
    )
    deleted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )
