"""Admin design routes: product settings, API diagnostics, renders and maintenance."""

from datetime import timedelta

from fastapi import APIRouter, Depends, HTTPException, Query
from libs.auth.dependencies import require_admin
from libs.auth.models import AuthUser
from libs.common.config import get_settings
from libs.common.error_handler import InvalidInputError
from libs.common.logging import get_logger
from libs.db.session import get_async_db
from services.design_service.models import ProductDesignSettings
from services.design_service.schemas import (
    ConnectionTestRequest,
    ConnectionTestResponse,
    DesignInfoResponse,
    ProductSettingsResponse,
    ProductSettingsUpsert,
    ReapRequest,
    ReapResponse,
    RenderRequest,
    RenderRequestResponse,
    RenderStatusResponse,
)
from services.design_service.services.api_client import (
    ApiErrorKind,
    ApiResult,
    DesignApiClient,
    get_client_for_product,
)
from services.design_service.services.design_store import reap_all
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

router = APIRouter(prefix="/designs", tags=["admin-designs"])

# ApiErrorKind -> HTTP status for admin diagnostics
ERROR_STATUS = {
    ApiErrorKind.INVALID_INPUT: 400,
    ApiErrorKind.UNAUTHORIZED: 502,
    ApiErrorKind.NOT_FOUND: 404,
    ApiErrorKind.TRANSPORT: 504,
    ApiErrorKind.PROTOCOL_ERROR: 502,
    ApiErrorKind.UNKNOWN: 502,
}


def _raise_for_result(result: ApiResult) -> None:
    if result.ok:
        return
    raise HTTPException(
        status_code=ERROR_STATUS.get(result.error_kind, 502),
        detail=result.message or "Design API request failed",
    )


async def _client_for(db: AsyncSession, product_id: str) -> DesignApiClient:
    client = await get_client_for_product(db, product_id)
    if client is None:
        raise InvalidInputError(
            f"Product {product_id} has no API credential configured"
        )
    return client


# ============================================================================
# PRODUCT SETTINGS
# ============================================================================


@router.get("/products", response_model=list[ProductSettingsResponse])
async def list_product_settings(
    _admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    result = await db.execute(
        select(ProductDesignSettings).order_by(ProductDesignSettings.product_id)
    )
    return [ProductSettingsResponse.model_validate(p) for p in result.scalars().all()]


@router.put("/products/{product_id}", response_model=ProductSettingsResponse)
async def upsert_product_settings(
    product_id: str,
    payload: ProductSettingsUpsert,
    _admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    """Enable or update customization for a product."""
    product = await db.get(ProductDesignSettings, product_id)
    if product is None:
        product = ProductDesignSettings(product_id=product_id, **payload.model_dump())
        db.add(product)
    else:
        for field, value in payload.model_dump().items():
            setattr(product, field, value)

    await db.commit()
    await db.refresh(product)
    logger.info(
        "Product %s design settings saved (customizable=%s)",
        product_id,
        product.customizable,
    )
    return ProductSettingsResponse.model_validate(product)


# ============================================================================
# API DIAGNOSTICS
# ============================================================================


@router.post("/connection-test", response_model=ConnectionTestResponse)
async def connection_test(
    payload: ConnectionTestRequest,
    _admin: AuthUser = Depends(require_admin),
):
    """Check an API key against the design API without saving it."""
    result = await DesignApiClient(payload.api_key).test_connection()
    if not result.ok:
        return ConnectionTestResponse(
            success=False,
            message=result.message or "Failed to connect to API",
            error_kind=result.error_kind.value if result.error_kind else None,
            status_code=result.http_status,
        )
    return ConnectionTestResponse(
        success=True,
        message=f"Connected successfully to {result.data['domain_name']}",
        domain_id=result.data.get("domain_id"),
        domain_name=result.data.get("domain_name"),
        status_code=result.http_status,
    )


@router.get("/assets/{serial}", response_model=DesignInfoResponse)
async def get_design_info(
    serial: str,
    product_id: str = Query(...),
    _admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    client = await _client_for(db, product_id)
    result = await client.get_design_info(serial)
    _raise_for_result(result)
    return DesignInfoResponse(**result.data)


# ============================================================================
# RENDERS
# ============================================================================


@router.post("/renders", response_model=RenderRequestResponse, status_code=202)
async def request_render(
    payload: RenderRequest,
    _admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    """Ask the design API for a print-resolution render."""
    client = await _client_for(db, payload.product_id)
    result = await client.request_high_res_image(
        payload.serial, payload.width, payload.height, payload.format, payload.dpi
    )
    _raise_for_result(result)
    return RenderRequestResponse(accepted=True, serial=payload.serial)


@router.get("/renders/status", response_model=RenderStatusResponse)
async def render_status(
    product_id: str = Query(...),
    serial: str = Query(..., min_length=1),
    width: int = Query(..., gt=0),
    height: int = Query(..., gt=0),
    format: str = Query("png"),
    dpi: int = Query(300, gt=0),
    _admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    client = await _client_for(db, product_id)
    result = await client.poll_image_status(serial, width, height, format, dpi)
    _raise_for_result(result)
    return RenderStatusResponse(
        serial=serial,
        status=result.data["status"].value,
        progress=result.data.get("progress"),
        url=result.data.get("url"),
    )


# ============================================================================
# MAINTENANCE
# ============================================================================


@router.post("/reap", response_model=ReapResponse)
async def reap_designs(
    payload: ReapRequest,
    _admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    """Age out old designs, expired editor markers and stale cart lines."""
    max_age_days = payload.max_age_days or get_settings().DESIGN_MAX_AGE_DAYS
    summary = await reap_all(db, timedelta(days=max_age_days))
    return ReapResponse(
        designs_removed=summary.designs_removed,
        markers_removed=summary.markers_removed,
        cart_lines_removed=summary.cart_lines_removed,
    )
