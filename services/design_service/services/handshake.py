"""Return handshake: accept a visitor coming back from the editor with a serial."""

import enum
from dataclasses import dataclass
from typing import Mapping, Optional

from libs.common.config import get_settings
from libs.common.datetime_utils import is_expired, utc_now
from libs.common.logging import get_logger
from services.design_service.models import (
    PendingEdit,
    ProductDesignSettings,
    TemplateMarker,
)
from services.design_service.schemas import DesignRecord
from services.design_service.services.api_client import get_client_for_product
from services.design_service.services.binding import update_line_design
from services.design_service.services.design_store import DesignStore
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

# First present wins
SERIAL_PARAM_NAMES = ("productSerial", "design_serial", "p")
PRODUCT_PARAM_NAMES = ("productId", "product_id")
TEMPLATE_PARAM_NAMES = ("template", "templateSerial")


class ReturnOutcome(str, enum.Enum):
    NOT_A_RETURN = "not_a_return"
    INVALID_SERIAL = "invalid_serial"
    PRODUCT_NOT_FOUND = "product_not_found"
    SAVED_NEW_DESIGN = "saved_new_design"
    UPDATED_EXISTING_LINE = "updated_existing_line"


MESSAGES = {
    ReturnOutcome.INVALID_SERIAL: "Invalid design serial number.",
    ReturnOutcome.PRODUCT_NOT_FOUND: "Product not found. Please try again.",
    ReturnOutcome.SAVED_NEW_DESIGN: (
        "Your design has been saved! You can now add this customized product to your cart."
    ),
    ReturnOutcome.UPDATED_EXISTING_LINE: "Your design has been updated in your cart.",
}


@dataclass
class ReturnResult:
    outcome: ReturnOutcome
    product_id: Optional[str] = None
    serial: Optional[str] = None
    cart_line_key: Optional[str] = None
    preview_fetched: bool = False
    design: Optional[DesignRecord] = None

    @property
    def message(self) -> Optional[str]:
        return MESSAGES.get(self.outcome)


def _first_param(params: Mapping[str, str], names: tuple[str, ...]) -> Optional[str]:
    for name in names:
        value = (params.get(name) or "").strip()
        if value:
            return value
    return None


async def _load_pending(db: AsyncSession, session_id: str) -> Optional[PendingEdit]:
    result = await db.execute(
        select(PendingEdit).where(PendingEdit.session_id == session_id)
    )
    return result.scalar_one_or_none()


async def _product_from_marker(
    db: AsyncSession, template_serial: Optional[str]
) -> Optional[str]:
    """Reverse lookup through the template marker left when the link was issued."""
    if template_serial:
        markers = [await db.get(TemplateMarker, template_serial)]
    else:
        result = await db.execute(
            select(TemplateMarker).order_by(TemplateMarker.created_at.desc())
        )
        markers = list(result.scalars().all())

    for marker in markers:
        if marker is None or is_expired(marker.expires_at):
            continue
        product = await db.get(ProductDesignSettings, marker.product_id)
        if product is not None and product.customizable:
            return product.product_id
    return None


async def _resolve_product(
    db: AsyncSession,
    params: Mapping[str, str],
    pending: Optional[PendingEdit],
) -> Optional[str]:
    product_id = _first_param(params, PRODUCT_PARAM_NAMES)
    if product_id:
        return product_id
    if pending is not None and not is_expired(pending.expires_at):
        return pending.product_id
    return await _product_from_marker(db, _first_param(params, TEMPLATE_PARAM_NAMES))


async def handle_return(
    db: AsyncSession, store: DesignStore, params: Mapping[str, str]
) -> ReturnResult:
    """
    Process the editor's return callback.

    Order matters: the serial is validated before anything is written, the
    design is saved before the preview is fetched, and the pending edit is
    consumed once product resolution has run, whatever the outcome.
    """
    serial = _first_param(params, SERIAL_PARAM_NAMES)
    if serial is None:
        return ReturnResult(ReturnOutcome.NOT_A_RETURN)

    if len(serial) < get_settings().DESIGN_MIN_SERIAL_LENGTH:
        logger.warning("Rejected design return with malformed serial %r", serial)
        return ReturnResult(ReturnOutcome.INVALID_SERIAL, serial=serial)

    pending = await _load_pending(db, store.visitor.session_id)
    product_id = await _resolve_product(db, params, pending)
    if product_id is None:
        logger.warning("Could not resolve a product for returned design %s", serial)
        if pending is not None:
            await db.delete(pending)
        await db.commit()
        return ReturnResult(ReturnOutcome.PRODUCT_NOT_FOUND, serial=serial)

    record = await store.save(product_id, serial, {"returned_at": utc_now().isoformat()})

    preview_fetched = False
    client = await get_client_for_product(db, product_id)
    if client is None:
        logger.warning("No API client for product %s; skipping preview", product_id)
    else:
        preview = await client.get_design_preview(serial)
        if preview.ok:
            record = await store.save(
                product_id,
                serial,
                {
                    "preview_url": preview.data.get("preview_url"),
                    "thumbnail_url": preview.data.get("thumbnail_url"),
                },
            )
            preview_fetched = True
        else:
            logger.warning(
                "Preview fetch failed for design %s (%s): %s",
                serial,
                preview.error_kind,
                preview.message,
            )

    outcome = ReturnOutcome.SAVED_NEW_DESIGN
    cart_line_key = None
    if (
        pending is not None
        and pending.editing
        and pending.cart_line_key
        and pending.product_id == product_id
        and not is_expired(pending.expires_at)
    ):
        binding = await update_line_design(
            db,
            pending.cart_line_key,
            serial,
            preview_url=record.preview_url,
            thumbnail_url=record.thumbnail_url,
        )
        if binding is not None:
            outcome = ReturnOutcome.UPDATED_EXISTING_LINE
            cart_line_key = binding.cart_line_key

    if pending is not None:
        await db.delete(pending)
    await db.commit()

    logger.info(
        "Design return handled: %s (product=%s serial=%s)",
        outcome.value,
        product_id,
        serial,
    )
    return ReturnResult(
        outcome,
        product_id=product_id,
        serial=serial,
        cart_line_key=cart_line_key,
        preview_fetched=preview_fetched,
        design=record,
    )
