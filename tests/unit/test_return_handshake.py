"""Unit tests for the editor return handshake."""

from datetime import timedelta
from unittest.mock import AsyncMock, patch

import httpx
import pytest
from libs.common.datetime_utils import utc_now
from services.design_service.models import (
    CartLineBinding,
    PendingEdit,
    VisitorDesignState,
)
from services.design_service.services.design_store import DesignStore, VisitorContext
from services.design_service.services.handshake import ReturnOutcome, handle_return
from tests.factories import (
    CartLineBindingFactory,
    PendingEditFactory,
    ProductSettingsFactory,
    TemplateMarkerFactory,
    graphql_response,
    preview_response,
    unique_session,
)


@pytest.fixture
def store(db_session):
    return DesignStore(db_session, VisitorContext(unique_session()))


async def _seed(db, *objects):
    db.add_all(objects)
    await db.commit()


# ---------------------------------------------------------------------------
# Serial validation
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_no_serial_is_not_a_return(db_session, store):
    result = await handle_return(db_session, store, {"productId": "42"})

    assert result.outcome == ReturnOutcome.NOT_A_RETURN
    assert result.message is None
    assert await db_session.get(VisitorDesignState, store.visitor.session_id) is None


@pytest.mark.asyncio
@pytest.mark.unit
async def test_short_serial_writes_nothing(db_session, store):
    pending = PendingEditFactory.create(session_id=store.visitor.session_id)
    await _seed(db_session, pending)

    with patch("httpx.AsyncClient.request", new_callable=AsyncMock) as mock_request:
        result = await handle_return(
            db_session, store, {"productSerial": "abc", "productId": "42"}
        )

    assert result.outcome == ReturnOutcome.INVALID_SERIAL
    assert result.message == "Invalid design serial number."
    mock_request.assert_not_awaited()
    assert await store.get("42") is None
    # Pending edit survives a rejected serial
    assert await db_session.get(PendingEdit, pending.id) is not None


@pytest.mark.asyncio
@pytest.mark.unit
@pytest.mark.parametrize("param", ["productSerial", "design_serial", "p"])
async def test_serial_param_variants(db_session, store, param):
    await _seed(db_session, ProductSettingsFactory.create(product_id="42"))

    with patch(
        "httpx.AsyncClient.request",
        new_callable=AsyncMock,
        return_value=preview_response("DSX123456"),
    ):
        result = await handle_return(
            db_session, store, {param: "DSX123456", "productId": "42"}
        )

    assert result.outcome == ReturnOutcome.SAVED_NEW_DESIGN
    assert (await store.get("42")).serial == "DSX123456"


@pytest.mark.asyncio
@pytest.mark.unit
async def test_first_serial_variant_wins(db_session, store):
    result = await handle_return(
        db_session,
        store,
        {"p": "SECOND001", "productSerial": "FIRST0001", "productId": "42"},
    )
    assert result.serial == "FIRST0001"


# ---------------------------------------------------------------------------
# Product resolution
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_product_from_pending_edit(db_session, store):
    await _seed(
        db_session,
        ProductSettingsFactory.create(product_id="42"),
        PendingEditFactory.create(session_id=store.visitor.session_id, product_id="42"),
    )

    with patch(
        "httpx.AsyncClient.request",
        new_callable=AsyncMock,
        return_value=preview_response("DSX123456"),
    ):
        result = await handle_return(db_session, store, {"productSerial": "DSX123456"})

    assert result.outcome == ReturnOutcome.SAVED_NEW_DESIGN
    assert result.product_id == "42"


@pytest.mark.asyncio
@pytest.mark.unit
async def test_product_from_template_marker(db_session, store):
    await _seed(
        db_session,
        ProductSettingsFactory.create(product_id="42", template_serial="TPL-42"),
        TemplateMarkerFactory.create(template_serial="TPL-42", product_id="42"),
    )

    with patch(
        "httpx.AsyncClient.request",
        new_callable=AsyncMock,
        return_value=preview_response("DSX123456"),
    ):
        result = await handle_return(
            db_session, store, {"productSerial": "DSX123456", "template": "TPL-42"}
        )

    assert result.product_id == "42"


@pytest.mark.asyncio
@pytest.mark.unit
async def test_expired_markers_do_not_resolve(db_session, store):
    expired = utc_now() - timedelta(minutes=5)
    pending = PendingEditFactory.create(
        session_id=store.visitor.session_id, expires_at=expired
    )
    await _seed(
        db_session,
        ProductSettingsFactory.create(product_id="42", template_serial="TPL-42"),
        TemplateMarkerFactory.create(expires_at=expired),
        pending,
    )

    result = await handle_return(db_session, store, {"productSerial": "DSX123456"})

    assert result.outcome == ReturnOutcome.PRODUCT_NOT_FOUND
    assert result.message == "Product not found. Please try again."
    assert await store.get("42") is None
    # The stale pending edit is consumed
    assert await db_session.get(PendingEdit, pending.id) is None


@pytest.mark.asyncio
@pytest.mark.unit
async def test_unresolvable_product(db_session, store):
    result = await handle_return(db_session, store, {"productSerial": "DSX123456"})
    assert result.outcome == ReturnOutcome.PRODUCT_NOT_FOUND


# ---------------------------------------------------------------------------
# Save, preview and line update
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_preview_is_written_to_the_saved_record(db_session, store):
    await _seed(db_session, ProductSettingsFactory.create(product_id="42"))

    with patch(
        "httpx.AsyncClient.request",
        new_callable=AsyncMock,
        return_value=preview_response("DSX123456"),
    ):
        result = await handle_return(
            db_session, store, {"productSerial": "DSX123456", "productId": "42"}
        )

    assert result.preview_fetched is True
    record = await store.get("42")
    assert record.preview_url == "https://cdn.test/DSX123456/preview.png"
    assert record.thumbnail_url == "https://cdn.test/DSX123456/thumb.png"
    assert "returned_at" in record.data


@pytest.mark.asyncio
@pytest.mark.unit
async def test_preview_failure_is_not_fatal(db_session, store):
    await _seed(db_session, ProductSettingsFactory.create(product_id="42"))

    with patch(
        "httpx.AsyncClient.request",
        new_callable=AsyncMock,
        side_effect=httpx.ConnectError("down"),
    ):
        result = await handle_return(
            db_session, store, {"productSerial": "DSX123456", "productId": "42"}
        )

    assert result.outcome == ReturnOutcome.SAVED_NEW_DESIGN
    assert result.preview_fetched is False
    record = await store.get("42")
    assert record.serial == "DSX123456"
    assert record.preview_url is None


@pytest.mark.asyncio
@pytest.mark.unit
async def test_edit_return_updates_cart_line_in_place(db_session, store):
    binding = CartLineBindingFactory.create(
        session_id=store.visitor.session_id, product_id="42", serial="OLD000001"
    )
    pending = PendingEditFactory.create(
        session_id=store.visitor.session_id,
        product_id="42",
        editing=True,
        cart_line_key=binding.cart_line_key,
    )
    await _seed(
        db_session, ProductSettingsFactory.create(product_id="42"), binding, pending
    )

    with patch(
        "httpx.AsyncClient.request",
        new_callable=AsyncMock,
        return_value=preview_response("NEW000001"),
    ):
        result = await handle_return(db_session, store, {"productSerial": "NEW000001"})

    assert result.outcome == ReturnOutcome.UPDATED_EXISTING_LINE
    assert result.cart_line_key == binding.cart_line_key
    assert result.message == "Your design has been updated in your cart."

    await db_session.refresh(binding)
    assert binding.serial == "NEW000001"
    assert binding.preview_url == "https://cdn.test/NEW000001/preview.png"
    assert await db_session.get(PendingEdit, pending.id) is None


@pytest.mark.asyncio
@pytest.mark.unit
async def test_edit_return_for_removed_line_saves_new_design(db_session, store):
    pending = PendingEditFactory.create(
        session_id=store.visitor.session_id,
        product_id="42",
        editing=True,
        cart_line_key="gone",
    )
    await _seed(db_session, pending)

    result = await handle_return(db_session, store, {"productSerial": "NEW000001"})

    assert result.outcome == ReturnOutcome.SAVED_NEW_DESIGN
    assert await db_session.get(CartLineBinding, "gone") is None


@pytest.mark.asyncio
@pytest.mark.unit
async def test_preview_not_found_keeps_design(db_session, store):
    await _seed(db_session, ProductSettingsFactory.create(product_id="42"))

    with patch(
        "httpx.AsyncClient.request",
        new_callable=AsyncMock,
        return_value=graphql_response({"asset": None}),
    ):
        result = await handle_return(
            db_session, store, {"productSerial": "DSX123456", "productId": "42"}
        )

    assert result.outcome == ReturnOutcome.SAVED_NEW_DESIGN
    assert result.preview_fetched is False
