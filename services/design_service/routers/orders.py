"""Order design routes: checkout capture, order view and finalisation."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from libs.auth.dependencies import get_optional_user, is_admin
from libs.auth.models import AuthUser
from libs.common.error_handler import NotFoundError
from libs.db.session import get_async_db
from services.design_service.models import FinalizeTrigger
from services.design_service.routers._helpers import (
    get_optional_visitor_context,
    get_visitor_context,
)
from services.design_service.schemas import (
    FinalizeRequest,
    FinalizeResponse,
    OrderDesignsResponse,
    OrderLineResponse,
    OrderLinesCreate,
    OrderNoteResponse,
)
from services.design_service.services.binding import (
    create_order_lines,
    is_order_owner,
    list_order_lines,
    list_order_notes,
    on_order_finalized,
)
from services.design_service.services.design_store import VisitorContext
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post(
    "/{order_id}/lines", response_model=list[OrderLineResponse], status_code=201
)
async def create_order_design_lines(
    order_id: str,
    payload: OrderLinesCreate,
    visitor: VisitorContext = Depends(get_visitor_context),
    db: AsyncSession = Depends(get_async_db),
):
    """Copy the visitor's customized cart lines onto the order."""
    lines = await create_order_lines(
        db,
        visitor,
        order_id,
        payload.cart_line_keys,
        copyright_accepted=payload.copyright_accepted,
    )
    return [OrderLineResponse.model_validate(line) for line in lines]


async def _ensure_order_access(
    db: AsyncSession,
    order_id: str,
    visitor: Optional[VisitorContext],
    current_user: Optional[AuthUser],
) -> None:
    if is_admin(current_user):
        return
    if visitor is None or not await is_order_owner(db, order_id, visitor):
        raise NotFoundError(f"Order {order_id} not found")


@router.get("/{order_id}/designs", response_model=OrderDesignsResponse)
async def get_order_designs(
    order_id: str,
    visitor: Optional[VisitorContext] = Depends(get_optional_visitor_context),
    current_user: Optional[AuthUser] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Design lines and lock notes for an order placed by this visitor."""
    await _ensure_order_access(db, order_id, visitor, current_user)
    lines = await list_order_lines(db, order_id)
    notes = await list_order_notes(db, order_id)
    return OrderDesignsResponse(
        order_id=order_id,
        has_designs=bool(lines),
        lines=[OrderLineResponse.model_validate(line) for line in lines],
        notes=[OrderNoteResponse.model_validate(note) for note in notes],
    )


@router.post("/{order_id}/finalize", response_model=FinalizeResponse)
async def finalize_order(
    order_id: str,
    payload: Optional[FinalizeRequest] = None,
    visitor: Optional[VisitorContext] = Depends(get_optional_visitor_context),
    current_user: Optional[AuthUser] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_async_db),
):
    """
    Lock the order's designs.

    Called from the thank-you page and again on order completion. Lock
    failures are reported in the body and as order notes and never fail the
    request.

    The thank-you trigger is open to the visitor who placed the order. The
    completion trigger comes from the shop back office and needs an admin.
    """
    trigger = (payload or FinalizeRequest()).trigger
    if trigger == FinalizeTrigger.COMPLETED and not is_admin(current_user):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin privileges required",
        )
    await _ensure_order_access(db, order_id, visitor, current_user)

    summary = await on_order_finalized(db, order_id, trigger)
    return FinalizeResponse(
        order_id=summary.order_id,
        trigger=summary.trigger,
        enabled=summary.enabled,
        locked=summary.locked,
        failed=summary.failed,
        skipped=summary.skipped,
        already_locked=summary.already_locked,
    )
