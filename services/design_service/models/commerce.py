"""Design commerce models: cart line bindings, order lines, order notes."""

import uuid
from datetime import datetime
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.db.base import Base, JSONType
from services.design_service.models.enums import LockMode, enum_values
from sqlalchemy import Boolean, DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import Index, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

# ============================================================================
# CART MODELS
# ============================================================================


class CartLineBinding(Base):
    """Snapshot of a design attached to one cart line.

    Copied by value from the visitor's DesignRecord at add-to-cart time; later
    edits to the record do not reach it unless the line is re-edited in place.
    """

    __tablename__ = "design_cart_lines"

    # Freshly generated per add so identical customized items never merge
    cart_line_key: Mapped[str] = mapped_column(String(64), primary_key=True)

    # Owner (session_id always, account_id once logged in)
    session_id: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    account_id: Mapped[Optional[str]] = mapped_column(
        String(255), index=True, nullable=True
    )

    product_id: Mapped[str] = mapped_column(String(64), nullable=False)
    serial: Mapped[str] = mapped_column(String(128), nullable=False)
    preview_url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    thumbnail_url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    design_data: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    def owned_by(self, session_id: str, account_id: Optional[str]) -> bool:
        if self.session_id == session_id:
            return True
        return account_id is not None and self.account_id == account_id

    def __repr__(self):
        return f"<CartLineBinding {self.cart_line_key} product={self.product_id} serial={self.serial}>"


# ============================================================================
# ORDER MODELS
# ============================================================================


class OrderLineRecord(Base):
    """Immutable design snapshot on a placed order line."""

    __tablename__ = "design_order_lines"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    order_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    cart_line_key: Mapped[str] = mapped_column(String(64), nullable=False)

    product_id: Mapped[str] = mapped_column(String(64), nullable=False)
    session_id: Mapped[str] = mapped_column(String(255), nullable=False)
    account_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    serial: Mapped[str] = mapped_column(String(128), index=True, nullable=False)
    preview_url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)

    # Unlocked -> Locked, exactly once
    locked: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default="false", nullable=False
    )
    lock_mode: Mapped[Optional[LockMode]] = mapped_column(
        SAEnum(
            LockMode,
            values_callable=enum_values,
            name="design_lock_mode_enum",
        ),
        nullable=True,
    )

    ordered_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    locked_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        UniqueConstraint("order_id", "cart_line_key", name="unique_order_cart_line"),
        Index("ix_design_order_lines_order_id_locked", "order_id", "locked"),
    )

    def __repr__(self):
        return f"<OrderLineRecord order={self.order_id} serial={self.serial} locked={self.locked}>"


class OrderNote(Base):
    """Human-readable notes recorded against an order while locking designs."""

    __tablename__ = "design_order_notes"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    order_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    note: Mapped[str] = mapped_column(Text, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )

    def __repr__(self):
        return f"<OrderNote order={self.order_id}>"
