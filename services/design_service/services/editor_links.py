"""Editor deep links for starting a design or re-editing a cart line."""

from dataclasses import dataclass
from typing import Optional

from libs.common.config import get_settings
from libs.common.datetime_utils import expires_in
from libs.common.error_handler import (
    InvalidInputError,
    NotFoundError,
    StateConflictError,
)
from libs.common.logging import get_logger
from services.design_service.models import (
    CartLineBinding,
    EditorLinkMode,
    PendingEdit,
    ProductDesignSettings,
    TemplateMarker,
)
from services.design_service.services.api_client import (
    build_editor_url,
    get_api_key_for_domain,
)
from services.design_service.services.binding import is_serial_locked
from services.design_service.services.design_store import DesignStore
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


@dataclass
class EditorLink:
    url: str
    mode: EditorLinkMode
    product_id: str
    cart_line_key: Optional[str] = None


async def _customizable_product(
    db: AsyncSession, product_id: str
) -> ProductDesignSettings:
    product = await db.get(ProductDesignSettings, product_id)
    if product is None or not product.customizable:
        raise NotFoundError(f"Product {product_id} is not customizable")
    if not get_api_key_for_domain(product.domain_id):
        raise InvalidInputError(
            f"No API credential configured for domain {product.domain_id}"
        )
    return product


async def _stash_round_trip(
    db: AsyncSession,
    session_id: str,
    product: ProductDesignSettings,
    *,
    cart_line_key: Optional[str] = None,
) -> PendingEdit:
    """Remember what the visitor is doing until they come back from the editor."""
    ttl = get_settings().DESIGN_PENDING_EDIT_TTL_SECONDS

    result = await db.execute(
        select(PendingEdit).where(PendingEdit.session_id == session_id)
    )
    pending = result.scalar_one_or_none()
    values = {
        "product_id": product.product_id,
        "domain_id": product.domain_id,
        "template_serial": product.template_serial,
        "cart_line_key": cart_line_key,
        "editing": cart_line_key is not None,
        "expires_at": expires_in(ttl),
    }
    if pending is None:
        pending = PendingEdit(session_id=session_id, **values)
        db.add(pending)
    else:
        for key, value in values.items():
            setattr(pending, key, value)

    marker = await db.get(TemplateMarker, product.template_serial)
    if marker is None:
        marker = TemplateMarker(
            template_serial=product.template_serial,
            product_id=product.product_id,
            expires_at=expires_in(ttl),
        )
        db.add(marker)
    else:
        marker.product_id = product.product_id
        marker.expires_at = expires_in(ttl)

    await db.flush()
    return pending


async def start_design_link(
    db: AsyncSession, store: DesignStore, product_id: str
) -> EditorLink:
    """
    Link that opens the editor for a product page.

    Continues the visitor's current design when it is still editable,
    otherwise starts fresh from the product's template.
    """
    product = await _customizable_product(db, product_id)
    settings = get_settings()

    record = await store.get(product_id)
    if (
        record is not None
        and not record.locked
        and not await is_serial_locked(db, record.serial)
    ):
        mode, serial = EditorLinkMode.EDIT, record.serial
    else:
        mode, serial = EditorLinkMode.START, product.template_serial

    url = build_editor_url(
        product.domain_id,
        serial,
        {settings.DESIGN_EDITOR_PRODUCT_PARAM: product_id},
        mode=mode,
    )
    await _stash_round_trip(db, store.visitor.session_id, product)
    await db.commit()

    logger.info("Issued %s editor link for product %s", mode.value, product_id)
    return EditorLink(url=url, mode=mode, product_id=product_id)


async def cart_line_edit_link(
    db: AsyncSession, store: DesignStore, cart_line_key: str
) -> EditorLink:
    """Link that reopens a cart line's design so the line can be updated in place."""
    binding = await db.get(CartLineBinding, cart_line_key)
    if binding is None or not binding.owned_by(
        store.visitor.session_id, store.visitor.account_id
    ):
        raise NotFoundError(f"Cart line {cart_line_key} not found")
    if await is_serial_locked(db, binding.serial):
        raise StateConflictError(
            f"Design {binding.serial} has been ordered and can no longer be edited"
        )

    product = await _customizable_product(db, binding.product_id)
    settings = get_settings()

    url = build_editor_url(
        product.domain_id,
        binding.serial,
        {settings.DESIGN_EDITOR_PRODUCT_PARAM: binding.product_id},
        mode=EditorLinkMode.EDIT,
    )
    await _stash_round_trip(
        db, store.visitor.session_id, product, cart_line_key=cart_line_key
    )
    await db.commit()

    logger.info(
        "Issued edit link for cart line %s (design %s)", cart_line_key, binding.serial
    )
    return EditorLink(
        url=url,
        mode=EditorLinkMode.EDIT,
        product_id=binding.product_id,
        cart_line_key=cart_line_key,
    )
