from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from whatsconnect.domain.enums import (
    DeliveryStatus,
    MessageDirection,
    QueryStatus,
    SentimentLabel,
)


def _enum_values(enum_cls: type) -> list[str]:
    return [member.value for member in enum_cls]


class Base(DeclarativeBase):
    pass


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class Contact(Base, TimestampMixin):
    __tablename__ = "contacts"
    __table_args__ = (
        UniqueConstraint("phone", name="uq_contacts_phone"),
        CheckConstraint("unread_count >= 0", name="ck_contacts_unread_non_negative"),
    )

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    phone: Mapped[str] = mapped_column(String(20), nullable=False)
    display_name: Mapped[str] = mapped_column(String(120), nullable=False)
    unread_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    query_status: Mapped[QueryStatus] = mapped_column(
        Enum(QueryStatus, name="query_status", values_callable=_enum_values),
        nullable=False,
        default=QueryStatus.NEW,
    )
    last_contacted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    messages: Mapped[list["Message"]] = relationship(back_populates="contact")


class Message(Base):
    __tablename__ = "messages"
    __table_args__ = (Index("ix_messages_contact_timestamp", "contact_id", "timestamp"),)

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    contact_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("contacts.id", ondelete="SET NULL"), nullable=True
    )
    phone: Mapped[str] = mapped_column(String(20), index=True, nullable=False)
    direction: Mapped[MessageDirection] = mapped_column(
        Enum(MessageDirection, name="message_direction", values_callable=_enum_values),
        nullable=False,
    )
    body: Mapped[str] = mapped_column(Text, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    delivery_status: Mapped[DeliveryStatus] = mapped_column(
        Enum(DeliveryStatus, name="delivery_status", values_callable=_enum_values),
        nullable=False,
        default=DeliveryStatus.SENT,
    )
    sentiment_label: Mapped[SentimentLabel] = mapped_column(
        Enum(SentimentLabel, name="sentiment_label", values_callable=_enum_values),
        nullable=False,
        default=SentimentLabel.NEUTRAL,
    )
    sentiment_score: Mapped[float] = mapped_column(Float, nullable=False, default=0.5)
    provider_message_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    contact: Mapped[Contact | None] = relationship(back_populates="messages")
