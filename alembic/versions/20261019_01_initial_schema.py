"""Initial schema for the chat transaction intake"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "20261019_01"
down_revision = None
branch_labels = None
depends_on = None


user_plan = sa.Enum("free", "pro", "family", name="user_plan")
transaction_kind = sa.Enum("expense", "income", name="transaction_kind")
payment_method = sa.Enum("pix", "credit", "debit", "cash", "transfer", name="payment_method")
transaction_source = sa.Enum("whatsapp", "web", name="transaction_source")
transaction_status = sa.Enum("confirmed", "pending", name="transaction_status")
division_kind = sa.Enum("half", "percentage", "fixed_amount", name="division_kind")
share_status = sa.Enum("pending", "accepted", "rejected", name="share_status")
wa_direction = sa.Enum("in", "out", name="wa_direction")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now(), onupdate=sa.func.now()),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("username", sa.String(length=64), nullable=True, unique=True),
        sa.Column("phone", sa.String(length=32), nullable=True, unique=True),
        sa.Column("language", sa.String(length=8), nullable=True),
        sa.Column("plan", user_plan, nullable=False, server_default=sa.text("'free'")),
        sa.Column("plan_active", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        *_timestamps(),
    )
    op.create_index("ix_users_phone", "users", ["phone"])

    op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("kind", transaction_kind, nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "name", "kind", name="uq_categories_user_name_kind"),
    )
    op.create_index("ix_categories_user_id", "categories", ["user_id"])

    op.create_table(
        "cards",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("brand", sa.String(length=32), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_cards_user_id", "cards", ["user_id"])

    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("kind", postgresql.ENUM("expense", "income", name="transaction_kind", create_type=False), nullable=False),
        sa.Column("amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("raw_text", sa.Text(), nullable=True),
        sa.Column("payment_method", payment_method, nullable=False),
        sa.Column("category_id", sa.Integer(), sa.ForeignKey("categories.id", ondelete="SET NULL"), nullable=True),
        sa.Column("card_id", sa.Integer(), sa.ForeignKey("cards.id", ondelete="SET NULL"), nullable=True),
        sa.Column("tx_datetime", sa.DateTime(timezone=True), nullable=False),
        sa.Column("installment_number", sa.Integer(), nullable=True),
        sa.Column("installment_total", sa.Integer(), nullable=True),
        sa.Column("parent_id", sa.Integer(), sa.ForeignKey("transactions.id", ondelete="CASCADE"), nullable=True),
        sa.Column("source", transaction_source, nullable=False, server_default=sa.text("'whatsapp'")),
        sa.Column("ai_confidence", sa.Float(), nullable=True),
        sa.Column("status", transaction_status, nullable=False, server_default=sa.text("'confirmed'")),
        *_timestamps(),
        sa.CheckConstraint("amount >= 0", name="ck_transactions_amount_non_negative"),
    )
    op.create_index("ix_transactions_user_id", "transactions", ["user_id"])
    op.create_index("ix_transactions_category_id", "transactions", ["category_id"])
    op.create_index("ix_transactions_card_id", "transactions", ["card_id"])
    op.create_index("ix_transactions_parent_id", "transactions", ["parent_id"])
    op.create_index("ix_transactions_tx_datetime", "transactions", ["tx_datetime"])
    op.create_index("ix_transactions_user_txdt", "transactions", ["user_id", "tx_datetime"])

    op.create_table(
        "shared_transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("transaction_id", sa.Integer(), sa.ForeignKey("transactions.id", ondelete="CASCADE"), nullable=False),
        sa.Column("owner_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("shared_with_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("division_kind", division_kind, nullable=False),
        sa.Column("status", share_status, nullable=False, server_default=sa.text("'pending'")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_shared_transactions_transaction_id", "shared_transactions", ["transaction_id"])
    op.create_index("ix_shared_transactions_owner_id", "shared_transactions", ["owner_id"])
    op.create_index("ix_shared_transactions_shared_with_id", "shared_transactions", ["shared_with_id"])
    op.create_index("ix_shared_transactions_created_at", "shared_transactions", ["created_at"])

    op.create_table(
        "wa_messages",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("wa_from", sa.String(length=32), nullable=False),
        sa.Column("wa_body", sa.Text(), nullable=True),
        sa.Column("direction", wa_direction, nullable=False),
        sa.Column("intent", sa.String(length=64), nullable=True),
        sa.Column("response", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_wa_messages_user_id", "wa_messages", ["user_id"])
    op.create_index("ix_wa_messages_wa_from", "wa_messages", ["wa_from"])
    op.create_index("ix_wa_messages_created_at", "wa_messages", ["created_at"])


def downgrade() -> None:
    op.drop_index("ix_wa_messages_created_at", table_name="wa_messages")
    op.drop_index("ix_wa_messages_wa_from", table_name="wa_messages")
    op.drop_index("ix_wa_messages_user_id", table_name="wa_messages")
    op.drop_table("wa_messages")
    wa_direction.drop(op.get_bind(), checkfirst=False)

    op.drop_index("ix_shared_transactions_created_at", table_name="shared_transactions")
    op.drop_index("ix_shared_transactions_shared_with_id", table_name="shared_transactions")
    op.drop_index("ix_shared_transactions_owner_id", table_name="shared_transactions")
    op.drop_index("ix_shared_transactions_transaction_id", table_name="shared_transactions")
    op.drop_table("shared_transactions")
    share_status.drop(op.get_bind(), checkfirst=False)
    division_kind.drop(op.get_bind(), checkfirst=False)

    op.drop_index("ix_transactions_user_txdt", table_name="transactions")
    op.drop_index("ix_transactions_tx_datetime", table_name="transactions")
    op.drop_index("ix_transactions_parent_id", table_name="transactions")
    op.drop_index("ix_transactions_card_id", table_name="transactions")
    op.drop_index("ix_transactions_category_id", table_name="transactions")
    op.drop_index("ix_transactions_user_id", table_name="transactions")
    op.drop_table("transactions")
    transaction_status.drop(op.get_bind(), checkfirst=False)
    transaction_source.drop(op.get_bind(), checkfirst=False)
    payment_method.drop(op.get_bind(), checkfirst=False)

    op.drop_index("ix_cards_user_id", table_name="cards")
    op.drop_table("cards")

    op.drop_index("ix_categories_user_id", table_name="categories")
    op.drop_table("categories")
    transaction_kind.drop(op.get_bind(), checkfirst=False)

    op.drop_index("ix_users_phone", table_name="users")
    op.drop_table("users")
    user_plan.drop(op.get_bind(), checkfirst=False)
