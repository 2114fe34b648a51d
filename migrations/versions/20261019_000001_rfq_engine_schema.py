"""RFQ engine schema: requests, invitations, quotations, notifications, comments, status events.

Revision ID: 20261019_000001
Revises:
Create Date: 2026-10-19 00:00:01
"""

from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261019_000001"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _is_postgres(bind) -> bool:
    return str(getattr(getattr(bind, "dialect", None), "name", "") or "").lower().startswith("postgres")


def _now_default(bind):
    return sa.text("NOW()") if _is_postgres(bind) else sa.text("CURRENT_TIMESTAMP")


def _false_default(bind):
    return sa.text("FALSE") if _is_postgres(bind) else sa.text("0")


def _table_exists(bind, table_name: str) -> bool:
    inspector = sa.inspect(bind)
    return bool(inspector.has_table(table_name))


def _index_exists(bind, table_name: str, index_name: str) -> bool:
    inspector = sa.inspect(bind)
    if not inspector.has_table(table_name):
        return False
    for index in inspector.get_indexes(table_name):
        if str(index.get("name") or "") == index_name:
            return True
    return False


def _create_index_if_missing(bind, index_name: str, table_name: str, columns: list[str]) -> None:
    if not _index_exists(bind, table_name, index_name):
        op.create_index(index_name, table_name, columns, unique=False)


def upgrade() -> None:
    bind = op.get_bind()
    now_default = _now_default(bind)
    false_default = _false_default(bind)

    if not _table_exists(bind, "procurement_requests"):
        op.create_table(
            "procurement_requests",
            sa.Column("id", sa.Text(), nullable=False),
            sa.Column("tenant_id", sa.Text(), nullable=False),
            sa.Column("code", sa.Text(), nullable=True),
            sa.Column("title", sa.Text(), nullable=True),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("requester_id", sa.Text(), nullable=True),
            sa.Column("requester_email", sa.Text(), nullable=True),
            sa.Column("status", sa.Text(), nullable=False, server_default=sa.text("'pending'")),
            sa.Column("due_date", sa.Text(), nullable=True),
            sa.Column("quotation_started_at", sa.Text(), nullable=True),
            sa.Column("winner_id", sa.Text(), nullable=True),
            sa.Column("winner_quotation_id", sa.Text(), nullable=True),
            sa.Column("winner_amount", sa.Float(), nullable=True),
            sa.Column("winner_delivery_days", sa.Integer(), nullable=True),
            sa.Column("previous_winner_id", sa.Text(), nullable=True),
            sa.Column("adjudicated_at", sa.Text(), nullable=True),
            sa.Column("revoked_at", sa.Text(), nullable=True),
            sa.Column("revocation_reason", sa.Text(), nullable=True),
            sa.Column("created_at", sa.Text(), nullable=False, server_default=now_default),
            sa.Column("updated_at", sa.Text(), nullable=False, server_default=now_default),
            sa.PrimaryKeyConstraint("id"),
            sa.CheckConstraint(
                "status IN ('draft','pending','in_progress','quoting','awarded','completed','rejected')",
                name="ck_procurement_requests_status",
            ),
        )

    if not _table_exists(bind, "quotation_invitations"):
        op.create_table(
            "quotation_invitations",
            sa.Column("id", sa.Text(), nullable=False),
            sa.Column("tenant_id", sa.Text(), nullable=False),
            sa.Column("request_id", sa.Text(), nullable=False),
            sa.Column("supplier_id", sa.Text(), nullable=False),
            sa.Column("manager_id", sa.Text(), nullable=False),
            sa.Column("status", sa.Text(), nullable=False, server_default=sa.text("'pending'")),
            sa.Column("due_date", sa.Text(), nullable=True),
            sa.Column("message", sa.Text(), nullable=True),
            sa.Column("delivery_address", sa.Text(), nullable=True),
            sa.Column("quotation_id", sa.Text(), nullable=True),
            sa.Column("created_at", sa.Text(), nullable=False),
            sa.Column("viewed_at", sa.Text(), nullable=True),
            sa.Column("updated_at", sa.Text(), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.ForeignKeyConstraint(["request_id"], ["procurement_requests.id"]),
            sa.CheckConstraint(
                "status IN ('pending','viewed','quoted','declined')",
                name="ck_quotation_invitations_status",
            ),
        )

    if not _table_exists(bind, "quotations"):
        op.create_table(
            "quotations",
            sa.Column("id", sa.Text(), nullable=False),
            sa.Column("tenant_id", sa.Text(), nullable=False),
            sa.Column("invitation_id", sa.Text(), nullable=False),
            sa.Column("request_id", sa.Text(), nullable=False),
            sa.Column("supplier_id", sa.Text(), nullable=False),
            sa.Column("supplier_name", sa.Text(), nullable=False),
            sa.Column("total_amount", sa.Float(), nullable=False),
            sa.Column("currency", sa.Text(), nullable=False),
            sa.Column("delivery_days", sa.Integer(), nullable=False),
            sa.Column("delivery_date", sa.Text(), nullable=True),
            sa.Column("payment_terms", sa.Text(), nullable=False),
            sa.Column("valid_until", sa.Text(), nullable=False),
            sa.Column("notes", sa.Text(), nullable=False, server_default=sa.text("''")),
            sa.Column("attachments", sa.Text(), nullable=False, server_default=sa.text("'[]'")),
            sa.Column("status", sa.Text(), nullable=False, server_default=sa.text("'submitted'")),
            sa.Column("is_winner", sa.Boolean(), nullable=False, server_default=false_default),
            sa.Column("is_reselection", sa.Boolean(), nullable=False, server_default=false_default),
            sa.Column("submitted_at", sa.Text(), nullable=False),
            sa.Column("selected_at", sa.Text(), nullable=True),
            sa.Column("updated_at", sa.Text(), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.ForeignKeyConstraint(["invitation_id"], ["quotation_invitations.id"]),
            sa.ForeignKeyConstraint(["request_id"], ["procurement_requests.id"]),
            sa.CheckConstraint("total_amount > 0", name="ck_quotations_total_amount"),
            sa.CheckConstraint("delivery_days > 0", name="ck_quotations_delivery_days"),
            sa.CheckConstraint("currency IN ('USD','EUR')", name="ck_quotations_currency"),
            sa.CheckConstraint(
                "status IN ('submitted','selected','rejected','cancelled','revoked')",
                name="ck_quotations_status",
            ),
        )

    if not _table_exists(bind, "notifications"):
        op.create_table(
            "notifications",
            sa.Column("id", sa.Text(), nullable=False),
            sa.Column("tenant_id", sa.Text(), nullable=False),
            sa.Column("user_id", sa.Text(), nullable=False),
            sa.Column("type", sa.Text(), nullable=False),
            sa.Column("title", sa.Text(), nullable=False),
            sa.Column("message", sa.Text(), nullable=False),
            sa.Column("related_id", sa.Text(), nullable=True),
            sa.Column("related_type", sa.Text(), nullable=True),
            sa.Column("read", sa.Boolean(), nullable=False, server_default=false_default),
            sa.Column("created_at", sa.Text(), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )

    if not _table_exists(bind, "quotation_comments"):
        op.create_table(
            "quotation_comments",
            sa.Column("id", sa.Text(), nullable=False),
            sa.Column("tenant_id", sa.Text(), nullable=False),
            sa.Column("request_id", sa.Text(), nullable=False),
            sa.Column("supplier_id", sa.Text(), nullable=False),
            sa.Column("author_id", sa.Text(), nullable=False),
            sa.Column("author_role", sa.Text(), nullable=False),
            sa.Column("body", sa.Text(), nullable=False),
            sa.Column("read", sa.Boolean(), nullable=False, server_default=false_default),
            sa.Column("created_at", sa.Text(), nullable=False),
            sa.PrimaryKeyConstraint("id"),
            sa.CheckConstraint("author_role IN ('manager','supplier')", name="ck_quotation_comments_author_role"),
        )

    if not _table_exists(bind, "status_events"):
        op.create_table(
            "status_events",
            sa.Column("id", sa.Text(), nullable=False),
            sa.Column("tenant_id", sa.Text(), nullable=False),
            sa.Column("entity", sa.Text(), nullable=False),
            sa.Column("entity_id", sa.Text(), nullable=False),
            sa.Column("from_status", sa.Text(), nullable=True),
            sa.Column("to_status", sa.Text(), nullable=True),
            sa.Column("reason", sa.Text(), nullable=True),
            sa.Column("actor_id", sa.Text(), nullable=True),
            sa.Column("occurred_at", sa.Text(), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )

    _create_index_if_missing(bind, "idx_invitations_request", "quotation_invitations", ["tenant_id", "request_id"])
    _create_index_if_missing(bind, "idx_invitations_supplier", "quotation_invitations", ["tenant_id", "supplier_id"])
    _create_index_if_missing(bind, "idx_quotations_request", "quotations", ["tenant_id", "request_id", "submitted_at"])
    _create_index_if_missing(bind, "idx_quotations_supplier", "quotations", ["tenant_id", "supplier_id", "submitted_at"])
    _create_index_if_missing(bind, "idx_notifications_user", "notifications", ["tenant_id", "user_id", "created_at"])
    _create_index_if_missing(bind, "idx_comments_thread", "quotation_comments", ["tenant_id", "request_id", "supplier_id"])
    _create_index_if_missing(bind, "idx_status_events_entity", "status_events", ["tenant_id", "entity", "entity_id"])


def downgrade() -> None:
    for table in (
        "status_events",
        "quotation_comments",
        "notifications",
        "quotations",
        "quotation_invitations",
        "procurement_requests",
    ):
        op.execute(f"DROP TABLE IF EXISTS {table}")
