"""Cart line design routes."""

from fastapi import APIRouter, Depends
from libs.common.config import get_settings
from libs.db.session import get_async_db
from services.design_service.routers._helpers import get_design_store
from services.design_service.schemas import (
    CartBindResponse,
    CartLineCreate,
    CartLineRemoveResponse,
    CartLineResponse,
    CartLinesResponse,
    EditorLinkResponse,
)
from services.design_service.services.binding import (
    bind_on_add_to_cart,
    list_cart_lines,
    on_remove_line,
)
from services.design_service.services.design_store import DesignStore
from services.design_service.services.editor_links import cart_line_edit_link
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/cart", tags=["cart"])


@router.get("/lines", response_model=CartLinesResponse)
async def get_cart_lines(
    store: DesignStore = Depends(get_design_store),
    db: AsyncSession = Depends(get_async_db),
):
    """
    Customized cart lines for the visitor.

    When the cart holds designs the checkout must show the copyright
    agreement, so its text travels with the listing.
    """
    settings = get_settings()
    lines = await list_cart_lines(db, store.visitor)
    copyright_required = bool(lines) and settings.DESIGN_REQUIRE_COPYRIGHT_AGREEMENT
    return CartLinesResponse(
        lines=[CartLineResponse.model_validate(line) for line in lines],
        has_designs=bool(lines),
        serials=[line.serial for line in lines],
        copyright_required=copyright_required,
        copyright_text=settings.DESIGN_COPYRIGHT_TEXT if copyright_required else None,
    )


@router.post("/lines", response_model=CartBindResponse, status_code=201)
async def add_cart_line(
    payload: CartLineCreate,
    store: DesignStore = Depends(get_design_store),
    db: AsyncSession = Depends(get_async_db),
):
    """Attach the visitor's current design to a new cart line, if there is one."""
    binding = await bind_on_add_to_cart(db, store, payload.product_id)
    if binding is None:
        return CartBindResponse(customized=False)
    return CartBindResponse(
        customized=True, binding=CartLineResponse.model_validate(binding)
    )


@router.delete("/lines/{cart_line_key}", response_model=CartLineRemoveResponse)
async def remove_cart_line(
    cart_line_key: str,
    store: DesignStore = Depends(get_design_store),
    db: AsyncSession = Depends(get_async_db),
):
    cleared = await on_remove_line(db, store, cart_line_key)
    return CartLineRemoveResponse(cart_line_key=cart_line_key, design_cleared=cleared)


@router.post("/lines/{cart_line_key}/editor-link", response_model=EditorLinkResponse)
async def create_cart_line_editor_link(
    cart_line_key: str,
    store: DesignStore = Depends(get_design_store),
    db: AsyncSession = Depends(get_async_db),
):
    """Link that reopens a cart line's design in the editor."""
    link = await cart_line_edit_link(db, store, cart_line_key)
    return EditorLinkResponse(
        url=link.url,
        mode=link.mode,
        product_id=link.product_id,
        cart_line_key=link.cart_line_key,
    )
