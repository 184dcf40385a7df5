"""Per-product customization settings read by the design lifecycle."""

from datetime import datetime

from libs.common.datetime_utils import utc_now
from libs.db.base import Base
from sqlalchemy import Boolean, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column


class ProductDesignSettings(Base):
    """Customization config for a catalogue product.

    Written by the shop admin, read-only for the lifecycle core.
    """

    __tablename__ = "design_product_settings"

    product_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    is_customizable: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default="false", nullable=False
    )
    # Domain id selects which API credential the product uses
    domain_id: Mapped[str] = mapped_column(String(64), default="", nullable=False)
    template_serial: Mapped[str] = mapped_column(
        String(128), default="", nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    @property
    def customizable(self) -> bool:
        return bool(self.is_customizable and self.domain_id and self.template_serial)

    def __repr__(self):
        return f"<ProductDesignSettings {self.product_id} customizable={self.customizable}>"
