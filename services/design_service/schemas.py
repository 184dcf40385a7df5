"""Pydantic schemas for design service."""

import uuid
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from services.design_service.models import EditorLinkMode, FinalizeTrigger, LockMode

# ============================================================================
# DESIGN RECORD
# ============================================================================


class DesignRecord(BaseModel):
    """One visitor's current design for one product.

    Stored as JSON inside the visitor/account tier maps.
    """

    product_id: str
    serial: str
    owner_id: str
    created_at: datetime
    updated_at: datetime
    preview_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    locked: bool = False
    data: dict[str, Any] = Field(default_factory=dict)


class DesignListResponse(BaseModel):
    designs: list[DesignRecord]
    total: int


class EditorLinkResponse(BaseModel):
    url: str
    mode: EditorLinkMode
    product_id: str
    cart_line_key: Optional[str] = None


class ReturnResponse(BaseModel):
    outcome: str
    message: Optional[str] = None
    product_id: Optional[str] = None
    serial: Optional[str] = None
    cart_line_key: Optional[str] = None
    preview_fetched: bool = False
    design: Optional[DesignRecord] = None


class LoginSyncResponse(BaseModel):
    account_id: str
    designs: list[DesignRecord]


# ============================================================================
# CART SCHEMAS
# ============================================================================


class CartLineCreate(BaseModel):
    product_id: str = Field(..., min_length=1, max_length=64)


class CartLineResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    cart_line_key: str
    product_id: str
    serial: str
    preview_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class CartBindResponse(BaseModel):
    """Result of an add-to-cart. ``binding`` is None for an uncustomized line."""

    customized: bool
    binding: Optional[CartLineResponse] = None


class CartLinesResponse(BaseModel):
    lines: list[CartLineResponse]
    has_designs: bool
    serials: list[str]
    copyright_required: bool = False
    copyright_text: Optional[str] = None


class CartLineRemoveResponse(BaseModel):
    cart_line_key: str
    design_cleared: bool


# ============================================================================
# ORDER SCHEMAS
# ============================================================================


class OrderLinesCreate(BaseModel):
    cart_line_keys: list[str] = Field(..., min_length=1)
    copyright_accepted: bool = False


class OrderLineResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    order_id: str
    cart_line_key: str
    product_id: str
    serial: str
    preview_url: Optional[str] = None
    locked: bool
    lock_mode: Optional[LockMode] = None
    ordered_at: datetime
    locked_at: Optional[datetime] = None


class OrderNoteResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    note: str
    created_at: datetime


class OrderDesignsResponse(BaseModel):
    order_id: str
    has_designs: bool
    lines: list[OrderLineResponse]
    notes: list[OrderNoteResponse]


class FinalizeRequest(BaseModel):
    trigger: FinalizeTrigger = FinalizeTrigger.THANKYOU


class FinalizeResponse(BaseModel):
    order_id: str
    trigger: FinalizeTrigger
    enabled: bool
    locked: list[str] = []
    failed: list[str] = []
    skipped: list[str] = []
    already_locked: int = 0


# ============================================================================
# ADMIN SCHEMAS
# ============================================================================


class ProductSettingsUpsert(BaseModel):
    is_customizable: bool = True
    domain_id: str = Field("", max_length=64)
    template_serial: str = Field("", max_length=128)


class ProductSettingsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    product_id: str
    is_customizable: bool
    domain_id: str
    template_serial: str
    customizable: bool
    updated_at: datetime


class ConnectionTestRequest(BaseModel):
    api_key: str = Field(..., min_length=1)


class ConnectionTestResponse(BaseModel):
    success: bool
    message: str
    domain_id: Optional[str] = None
    domain_name: Optional[str] = None
    error_kind: Optional[str] = None
    status_code: Optional[int] = None


class DesignInfoResponse(BaseModel):
    serial: str
    locked: bool
    preview_url: Optional[str] = None
    thumbnail_url: Optional[str] = None


class RenderRequest(BaseModel):
    product_id: str
    serial: str = Field(..., min_length=1)
    width: int = Field(..., gt=0)
    height: int = Field(..., gt=0)
    format: str = "png"
    dpi: int = Field(300, gt=0)


class RenderRequestResponse(BaseModel):
    accepted: bool
    serial: str


class RenderStatusResponse(BaseModel):
    serial: str
    status: str
    progress: Optional[int] = None
    url: Optional[str] = None


class ReapRequest(BaseModel):
    max_age_days: Optional[int] = Field(None, gt=0)


class ReapResponse(BaseModel):
    designs_removed: int
    markers_removed: int
    cart_lines_removed: int
