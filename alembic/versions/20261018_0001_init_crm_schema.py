"""init crm schema

Revision ID: 20261018_0001
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""

from __future__ import annotations

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "20261018_0001"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    query_status = sa.Enum("new", "in-progress", "resolved", "closed", name="query_status")
    message_direction = sa.Enum("inbound", "outbound", name="message_direction")
    delivery_status = sa.Enum("sent", "delivered", "read", "failed", name="delivery_status")
    sentiment_label = sa.Enum("positive", "neutral", "negative", name="sentiment_label")

    bind = op.get_bind()
    query_status.create(bind, checkfirst=True)
    message_direction.create(bind, checkfirst=True)
    delivery_status.create(bind, checkfirst=True)
    sentiment_label.create(bind, checkfirst=True)

    op.create_table(
        "contacts",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("phone", sa.String(length=20), nullable=False),
        sa.Column("display_name", sa.String(length=120), nullable=False),
        sa.Column("unread_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column(
            "query_status",
            postgresql.ENUM(name="query_status", create_type=False),
            nullable=False,
            server_default=sa.text("'new'"),
        ),
        sa.Column("last_contacted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.CheckConstraint("unread_count >= 0", name="ck_contacts_unread_non_negative"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("phone", name="uq_contacts_phone"),
    )

    op.create_table(
        "messages",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("contact_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("phone", sa.String(length=20), nullable=False),
        sa.Column(
            "direction",
            postgresql.ENUM(name="message_direction", create_type=False),
            nullable=False,
        ),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column(
            "timestamp",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "delivery_status",
            postgresql.ENUM(name="delivery_status", create_type=False),
            nullable=False,
            server_default=sa.text("'sent'"),
        ),
        sa.Column(
            "sentiment_label",
            postgresql.ENUM(name="sentiment_label", create_type=False),
            nullable=False,
            server_default=sa.text("'neutral'"),
        ),
        sa.Column("sentiment_score", sa.Float(), nullable=False, server_default=sa.text("0.5")),
        sa.Column("provider_message_id", sa.String(length=255), nullable=True),
        sa.ForeignKeyConstraint(["contact_id"], ["contacts.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_messages_phone", "messages", ["phone"], unique=False)
    op.create_index(
        "ix_messages_contact_timestamp",
        "messages",
        ["contact_id", "timestamp"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_messages_contact_timestamp", table_name="messages")
    op.drop_index("ix_messages_phone", table_name="messages")
    op.drop_table("messages")
    op.drop_table("contacts")

    bind = op.get_bind()
    sa.Enum(name="sentiment_label").drop(bind, checkfirst=True)
    sa.Enum(name="delivery_status").drop(bind, checkfirst=True)
    sa.Enum(name="message_direction").drop(bind, checkfirst=True)
    sa.Enum(name="query_status").drop(bind, checkfirst=True)
