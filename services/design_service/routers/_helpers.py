"""Shared request dependencies for design routers."""

from typing import Optional

from fastapi import Depends, Header, HTTPException, Query, status
from libs.auth.dependencies import get_optional_user
from libs.auth.models import AuthUser
from libs.db.session import get_async_db
from services.design_service.schemas import DesignRecord
from services.design_service.services.design_store import DesignStore, VisitorContext
from sqlalchemy.ext.asyncio import AsyncSession


async def get_optional_visitor_context(
    session_id: Optional[str] = Query(None),
    x_session_id: Optional[str] = Header(None, alias="X-Session-ID"),
    current_user: Optional[AuthUser] = Depends(get_optional_user),
) -> Optional[VisitorContext]:
    resolved = session_id or x_session_id
    if not resolved:
        return None
    return VisitorContext(
        session_id=resolved,
        account_id=current_user.user_id if current_user else None,
    )


async def get_visitor_context(
    visitor: Optional[VisitorContext] = Depends(get_optional_visitor_context),
) -> VisitorContext:
    """Identify the visitor from the session id and, if present, the bearer user."""
    if visitor is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Session ID required",
        )
    return visitor


async def get_design_store(
    visitor: VisitorContext = Depends(get_visitor_context),
    db: AsyncSession = Depends(get_async_db),
) -> DesignStore:
    """Design store for this request, seeded from the account tier on first use."""
    store = DesignStore(db, visitor)
    if await store.hydrate():
        await db.commit()
    return store


def design_map_response(records: dict[str, DesignRecord]) -> list[DesignRecord]:
    return sorted(records.values(), key=lambda r: r.product_id)
