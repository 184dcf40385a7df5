"""Visitor design routes: current designs, editor links and the editor return."""

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from libs.auth.dependencies import get_current_user
from libs.auth.models import AuthUser
from libs.db.session import get_async_db
from services.design_service.routers._helpers import (
    design_map_response,
    get_design_store,
)
from services.design_service.schemas import (
    DesignListResponse,
    DesignRecord,
    EditorLinkResponse,
    LoginSyncResponse,
    ReturnResponse,
)
from services.design_service.services.design_store import DesignStore, VisitorContext
from services.design_service.services.editor_links import start_design_link
from services.design_service.services.handshake import handle_return
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/designs", tags=["designs"])


@router.get("", response_model=DesignListResponse)
async def list_designs(store: DesignStore = Depends(get_design_store)):
    """List every design the visitor currently holds."""
    designs = await store.list_all()
    return DesignListResponse(designs=designs, total=len(designs))


@router.delete("")
async def clear_designs(
    store: DesignStore = Depends(get_design_store),
    db: AsyncSession = Depends(get_async_db),
):
    """Forget all of the visitor's designs."""
    removed = await store.clear_all()
    await db.commit()
    return {"removed": removed}


@router.get("/return", response_model=ReturnResponse)
async def design_return(
    request: Request,
    store: DesignStore = Depends(get_design_store),
    db: AsyncSession = Depends(get_async_db),
):
    """Editor callback. The visitor lands here with the saved design serial."""
    result = await handle_return(db, store, dict(request.query_params))
    return ReturnResponse(
        outcome=result.outcome.value,
        message=result.message,
        product_id=result.product_id,
        serial=result.serial,
        cart_line_key=result.cart_line_key,
        preview_fetched=result.preview_fetched,
        design=result.design,
    )


@router.post("/login-sync", response_model=LoginSyncResponse)
async def login_sync(
    session_id: str = Query(..., min_length=1),
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Merge the guest session's designs into the account after login."""
    store = DesignStore(
        db, VisitorContext(session_id=session_id, account_id=current_user.user_id)
    )
    merged = await store.merge_on_login()
    await db.commit()
    return LoginSyncResponse(
        account_id=current_user.user_id, designs=design_map_response(merged)
    )


@router.get("/{product_id}", response_model=DesignRecord)
async def get_design(product_id: str, store: DesignStore = Depends(get_design_store)):
    record = await store.get(product_id)
    if record is None:
        raise HTTPException(status_code=404, detail="No design for this product")
    return record


@router.delete("/{product_id}")
async def remove_design(
    product_id: str,
    store: DesignStore = Depends(get_design_store),
    db: AsyncSession = Depends(get_async_db),
):
    removed = await store.remove(product_id)
    await db.commit()
    return {"product_id": product_id, "removed": removed}


@router.post("/{product_id}/editor-link", response_model=EditorLinkResponse)
async def create_editor_link(
    product_id: str,
    store: DesignStore = Depends(get_design_store),
    db: AsyncSession = Depends(get_async_db),
):
    """Link to the editor for this product, continuing the current design if editable."""
    link = await start_design_link(db, store, product_id)
    return EditorLinkResponse(
        url=link.url,
        mode=link.mode,
        product_id=link.product_id,
        cart_line_key=link.cart_line_key,
    )
