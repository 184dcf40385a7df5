"""Design state tiers and the short-lived editor round-trip markers."""

import uuid
from datetime import datetime
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.db.base import Base, JSONType
from sqlalchemy import Boolean, DateTime, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

# ============================================================================
# STATE TIERS
# ============================================================================


class VisitorDesignState(Base):
    """Ephemeral tier: every design a visitor session holds, keyed by product."""

    __tablename__ = "design_visitor_state"

    session_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    # {product_id: DesignRecord JSON}
    designs: Mapped[dict] = mapped_column(JSONType, default=dict, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    def __repr__(self):
        return f"<VisitorDesignState {self.session_id} designs={len(self.designs or {})}>"


class AccountDesignState(Base):
    """Durable tier: designs kept against an account, survives logout."""

    __tablename__ = "design_account_state"

    account_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    designs: Mapped[dict] = mapped_column(JSONType, default=dict, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    def __repr__(self):
        return f"<AccountDesignState {self.account_id} designs={len(self.designs or {})}>"


# ============================================================================
# EDITOR ROUND-TRIP MARKERS
# ============================================================================


class PendingEdit(Base):
    """What the visitor was doing when the editor link was generated."""

    __tablename__ = "design_pending_edits"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    session_id: Mapped[str] = mapped_column(
        String(255), unique=True, index=True, nullable=False
    )
    product_id: Mapped[str] = mapped_column(String(64), nullable=False)
    domain_id: Mapped[str] = mapped_column(String(64), nullable=False)
    template_serial: Mapped[str] = mapped_column(String(128), nullable=False)

    # Set when re-editing a design that is already bound to a cart line
    cart_line_key: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    editing: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default="false", nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )

    def __repr__(self):
        return f"<PendingEdit session={self.session_id} product={self.product_id} editing={self.editing}>"


class TemplateMarker(Base):
    """Reverse lookup from a template serial to the product that opened it."""

    __tablename__ = "design_template_markers"

    template_serial: Mapped[str] = mapped_column(String(128), primary_key=True)
    product_id: Mapped[str] = mapped_column(String(64), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )

    def __repr__(self):
        return f"<TemplateMarker {self.template_serial} -> {self.product_id}>"
