"""create_design_tables

Revision ID: d3e5a7c90b12
Revises:
Create Date: 2026-10-17 09:00:00.000000
"""

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "d3e5a7c90b12"
down_revision = None
branch_labels = None
depends_on = None

JSON_TYPE = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def upgrade() -> None:
    op.create_table(
        "design_product_settings",
        sa.Column("product_id", sa.String(length=64), nullable=False),
        sa.Column(
            "is_customizable", sa.Boolean(), server_default="false", nullable=False
        ),
        sa.Column("domain_id", sa.String(length=64), nullable=False),
        sa.Column("template_serial", sa.String(length=128), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("product_id"),
    )

    op.create_table(
        "design_visitor_state",
        sa.Column("session_id", sa.String(length=255), nullable=False),
        sa.Column("designs", JSON_TYPE, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("session_id"),
    )

    op.create_table(
        "design_account_state",
        sa.Column("account_id", sa.String(length=255), nullable=False),
        sa.Column("designs", JSON_TYPE, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("account_id"),
    )

    op.create_table(
        "design_pending_edits",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("session_id", sa.String(length=255), nullable=False),
        sa.Column("product_id", sa.String(length=64), nullable=False),
        sa.Column("domain_id", sa.String(length=64), nullable=False),
        sa.Column("template_serial", sa.String(length=128), nullable=False),
        sa.Column("cart_line_key", sa.String(length=64), nullable=True),
        sa.Column("editing", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_design_pending_edits_session_id",
        "design_pending_edits",
        ["session_id"],
        unique=True,
    )

    op.create_table(
        "design_template_markers",
        sa.Column("template_serial", sa.String(length=128), nullable=False),
        sa.Column("product_id", sa.String(length=64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("template_serial"),
    )

    op.create_table(
        "design_cart_lines",
        sa.Column("cart_line_key", sa.String(length=64), nullable=False),
        sa.Column("session_id", sa.String(length=255), nullable=False),
        sa.Column("account_id", sa.String(length=255), nullable=True),
        sa.Column("product_id", sa.String(length=64), nullable=False),
        sa.Column("serial", sa.String(length=128), nullable=False),
        sa.Column("preview_url", sa.String(length=1024), nullable=True),
        sa.Column("thumbnail_url", sa.String(length=1024), nullable=True),
        sa.Column("design_data", JSON_TYPE, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("cart_line_key"),
    )
    op.create_index(
        "ix_design_cart_lines_session_id", "design_cart_lines", ["session_id"]
    )
    op.create_index(
        "ix_design_cart_lines_account_id", "design_cart_lines", ["account_id"]
    )

    lock_mode_enum = sa.Enum("remote", "local_only", name="design_lock_mode_enum")
    op.create_table(
        "design_order_lines",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("order_id", sa.String(length=64), nullable=False),
        sa.Column("cart_line_key", sa.String(length=64), nullable=False),
        sa.Column("product_id", sa.String(length=64), nullable=False),
        sa.Column("session_id", sa.String(length=255), nullable=False),
        sa.Column("account_id", sa.String(length=255), nullable=True),
        sa.Column("serial", sa.String(length=128), nullable=False),
        sa.Column("preview_url", sa.String(length=1024), nullable=True),
        sa.Column("locked", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("lock_mode", lock_mode_enum, nullable=True),
        sa.Column("ordered_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("locked_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "order_id", "cart_line_key", name="unique_order_cart_line"
        ),
    )
    op.create_index(
        "ix_design_order_lines_order_id", "design_order_lines", ["order_id"]
    )
    op.create_index("ix_design_order_lines_serial", "design_order_lines", ["serial"])
    op.create_index(
        "ix_design_order_lines_order_id_locked",
        "design_order_lines",
        ["order_id", "locked"],
    )

    op.create_table(
        "design_order_notes",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("order_id", sa.String(length=64), nullable=False),
        sa.Column("note", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_design_order_notes_order_id", "design_order_notes", ["order_id"]
    )


def downgrade() -> None:
    op.drop_index("ix_design_order_notes_order_id", table_name="design_order_notes")
    op.drop_table("design_order_notes")

    op.drop_index(
        "ix_design_order_lines_order_id_locked", table_name="design_order_lines"
    )
    op.drop_index("ix_design_order_lines_serial", table_name="design_order_lines")
    op.drop_index("ix_design_order_lines_order_id", table_name="design_order_lines")
    op.drop_table("design_order_lines")
    sa.Enum(name="design_lock_mode_enum").drop(op.get_bind(), checkfirst=True)

    op.drop_index("ix_design_cart_lines_account_id", table_name="design_cart_lines")
    op.drop_index("ix_design_cart_lines_session_id", table_name="design_cart_lines")
    op.drop_table("design_cart_lines")

    op.drop_table("design_template_markers")

    op.drop_index(
        "ix_design_pending_edits_session_id", table_name="design_pending_edits"
    )
    op.drop_table("design_pending_edits")

    op.drop_table("design_account_state")
    op.drop_table("design_visitor_state")
    op.drop_table("design_product_settings")
