"""Unit tests for cart/order binding and post-purchase locking."""

from unittest.mock import AsyncMock, patch

import pytest
from libs.common.error_handler import InvalidInputError, StateConflictError
from services.design_service.models import (
    CartLineBinding,
    FinalizeTrigger,
    LockMode,
    OrderLineRecord,
)
from services.design_service.services.api_client import (
    ApiErrorKind,
    ApiResult,
    DesignApiClient,
)
from services.design_service.services.binding import (
    bind_on_add_to_cart,
    create_order_lines,
    is_serial_locked,
    list_cart_lines,
    list_order_notes,
    on_checkout_create_order_line,
    on_order_finalized,
    on_remove_line,
)
from services.design_service.services.design_store import DesignStore, VisitorContext
from tests.factories import (
    CartLineBindingFactory,
    OrderLineFactory,
    ProductSettingsFactory,
    unique_session,
)


def _lock_ok(serial, mode=LockMode.REMOTE):
    return ApiResult.success({"serial": serial, "locked": True, "mode": mode})


async def _seed_product(db, product_id="42", **overrides):
    product = ProductSettingsFactory.create(product_id=product_id, **overrides)
    db.add(product)
    await db.commit()
    return product


# ---------------------------------------------------------------------------
# Cart lines
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_bind_snapshots_current_design(db_session):
    store = DesignStore(db_session, VisitorContext(unique_session()))
    await store.save("42", "DSX123456", {"preview_url": "https://cdn.test/p.png"})

    binding = await bind_on_add_to_cart(db_session, store, "42")

    assert binding.serial == "DSX123456"
    assert binding.preview_url == "https://cdn.test/p.png"
    assert binding.session_id == store.visitor.session_id

    # Later edits to the record do not reach the snapshot
    await store.save("42", "DSY999999")
    await db_session.refresh(binding)
    assert binding.serial == "DSX123456"


@pytest.mark.asyncio
@pytest.mark.unit
async def test_identical_adds_get_distinct_keys(db_session):
    store = DesignStore(db_session, VisitorContext(unique_session()))
    await store.save("42", "DSX123456")

    first = await bind_on_add_to_cart(db_session, store, "42")
    second = await bind_on_add_to_cart(db_session, store, "42")

    assert first.cart_line_key != second.cart_line_key
    assert len(await list_cart_lines(db_session, store.visitor)) == 2


@pytest.mark.asyncio
@pytest.mark.unit
async def test_bind_without_design_is_uncustomized(db_session):
    store = DesignStore(db_session, VisitorContext(unique_session()))
    assert await bind_on_add_to_cart(db_session, store, "42") is None


@pytest.mark.asyncio
@pytest.mark.unit
async def test_remove_line_clears_design(db_session):
    store = DesignStore(db_session, VisitorContext(unique_session()))
    await store.save("42", "DSX123456")
    binding = await bind_on_add_to_cart(db_session, store, "42")

    assert await on_remove_line(db_session, store, binding.cart_line_key) is True
    assert await db_session.get(CartLineBinding, binding.cart_line_key) is None
    assert await store.get("42") is None


@pytest.mark.asyncio
@pytest.mark.unit
async def test_remove_unknown_or_foreign_line_is_noop(db_session):
    store = DesignStore(db_session, VisitorContext(unique_session()))
    await store.save("42", "DSX123456")
    foreign = CartLineBindingFactory.create()
    db_session.add(foreign)
    await db_session.commit()

    assert await on_remove_line(db_session, store, "nope") is False
    assert await on_remove_line(db_session, store, foreign.cart_line_key) is False
    assert await store.get("42") is not None


# ---------------------------------------------------------------------------
# Order lines
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_checkout_copy_is_unlocked_and_repeatable(db_session):
    binding = CartLineBindingFactory.create(preview_url="https://cdn.test/p.png")
    db_session.add(binding)
    await db_session.commit()

    line = await on_checkout_create_order_line(db_session, "order-1", binding)
    again = await on_checkout_create_order_line(db_session, "order-1", binding)

    assert line.locked is False
    assert line.locked_at is None
    assert line.serial == binding.serial
    assert line.preview_url == binding.preview_url
    assert again.id == line.id


@pytest.mark.asyncio
@pytest.mark.unit
async def test_create_order_lines_requires_copyright(db_session):
    visitor = VisitorContext(unique_session())
    with pytest.raises(InvalidInputError):
        await create_order_lines(db_session, visitor, "order-1", ["k"], False)


@pytest.mark.asyncio
@pytest.mark.unit
async def test_create_order_lines_unknown_key_conflicts(db_session):
    visitor = VisitorContext(unique_session())
    with pytest.raises(StateConflictError):
        await create_order_lines(db_session, visitor, "order-1", ["missing"], True)


@pytest.mark.asyncio
@pytest.mark.unit
async def test_create_order_lines_skips_copyright_when_not_required(
    db_session, settings, monkeypatch
):
    monkeypatch.setattr(settings, "DESIGN_REQUIRE_COPYRIGHT_AGREEMENT", False)
    binding = CartLineBindingFactory.create()
    db_session.add(binding)
    await db_session.commit()
    visitor = VisitorContext(binding.session_id)

    lines = await create_order_lines(
        db_session, visitor, "order-2", [binding.cart_line_key]
    )
    assert [line.cart_line_key for line in lines] == [binding.cart_line_key]


# ---------------------------------------------------------------------------
# Finalisation
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_finalize_locks_and_notes(db_session):
    await _seed_product(db_session)
    line = OrderLineFactory.create(order_id="order-10", serial="DSX123456")
    db_session.add(line)
    await db_session.commit()

    with patch.object(
        DesignApiClient,
        "lock_design",
        new_callable=AsyncMock,
        return_value=_lock_ok("DSX123456"),
    ) as mock_lock:
        summary = await on_order_finalized(
            db_session, "order-10", FinalizeTrigger.THANKYOU
        )

    mock_lock.assert_awaited_once_with("DSX123456")
    assert summary.locked == ["DSX123456"]
    await db_session.refresh(line)
    assert line.locked is True
    assert line.locked_at is not None
    assert line.lock_mode == LockMode.REMOTE
    assert await is_serial_locked(db_session, "DSX123456")

    notes = [n.note for n in await list_order_notes(db_session, "order-10")]
    assert notes == ["Design DSX123456 has been locked and can no longer be edited."]


@pytest.mark.asyncio
@pytest.mark.unit
async def test_finalize_twice_sends_one_lock(db_session):
    await _seed_product(db_session)
    db_session.add(OrderLineFactory.create(order_id="order-11", serial="DSX123456"))
    await db_session.commit()

    with patch.object(
        DesignApiClient,
        "lock_design",
        new_callable=AsyncMock,
        return_value=_lock_ok("DSX123456"),
    ) as mock_lock:
        await on_order_finalized(db_session, "order-11", FinalizeTrigger.THANKYOU)
        second = await on_order_finalized(
            db_session, "order-11", FinalizeTrigger.COMPLETED
        )

    assert mock_lock.await_count == 1
    assert second.already_locked == 1
    assert second.locked == []


@pytest.mark.asyncio
@pytest.mark.unit
async def test_finalize_failure_leaves_line_unlocked(db_session):
    await _seed_product(db_session)
    line = OrderLineFactory.create(order_id="order-12", serial="DSX123456")
    db_session.add(line)
    await db_session.commit()

    failure = ApiResult.failure(ApiErrorKind.TRANSPORT, "Request timed out")
    with patch.object(
        DesignApiClient, "lock_design", new_callable=AsyncMock, return_value=failure
    ):
        summary = await on_order_finalized(
            db_session, "order-12", FinalizeTrigger.THANKYOU
        )

    assert summary.failed == ["DSX123456"]
    await db_session.refresh(line)
    assert line.locked is False
    notes = [n.note for n in await list_order_notes(db_session, "order-12")]
    assert notes == ["Failed to lock design DSX123456: Request timed out"]

    # The completion trigger retries the still-unlocked line
    with patch.object(
        DesignApiClient,
        "lock_design",
        new_callable=AsyncMock,
        return_value=_lock_ok("DSX123456"),
    ):
        retry = await on_order_finalized(
            db_session, "order-12", FinalizeTrigger.COMPLETED
        )
    assert retry.locked == ["DSX123456"]


@pytest.mark.asyncio
@pytest.mark.unit
async def test_finalize_swallows_unexpected_errors(db_session):
    await _seed_product(db_session)
    db_session.add(OrderLineFactory.create(order_id="order-13", serial="DSX123456"))
    await db_session.commit()

    with patch.object(
        DesignApiClient,
        "lock_design",
        new_callable=AsyncMock,
        side_effect=RuntimeError("boom"),
    ):
        summary = await on_order_finalized(
            db_session, "order-13", FinalizeTrigger.THANKYOU
        )

    assert summary.failed == ["DSX123456"]
    notes = [n.note for n in await list_order_notes(db_session, "order-13")]
    assert notes == ["Failed to lock design DSX123456: boom"]


@pytest.mark.asyncio
@pytest.mark.unit
async def test_finalize_without_credential_skips_with_note(db_session):
    await _seed_product(db_session, domain_id="nokey0000")
    db_session.add(OrderLineFactory.create(order_id="order-14", serial="DSX123456"))
    await db_session.commit()

    summary = await on_order_finalized(db_session, "order-14", FinalizeTrigger.THANKYOU)

    assert summary.skipped == ["DSX123456"]
    notes = await list_order_notes(db_session, "order-14")
    assert len(notes) == 1
    assert "could not be locked" in notes[0].note


@pytest.mark.asyncio
@pytest.mark.unit
async def test_finalize_respects_disabled_trigger(db_session, settings, monkeypatch):
    monkeypatch.setattr(settings, "DESIGN_LOCK_ON_THANKYOU", False)
    await _seed_product(db_session)
    line = OrderLineFactory.create(order_id="order-15")
    db_session.add(line)
    await db_session.commit()

    with patch.object(DesignApiClient, "lock_design", new_callable=AsyncMock) as mock_lock:
        summary = await on_order_finalized(
            db_session, "order-15", FinalizeTrigger.THANKYOU
        )

    assert summary.enabled is False
    mock_lock.assert_not_awaited()
    assert (await db_session.get(OrderLineRecord, line.id)).locked is False


@pytest.mark.asyncio
@pytest.mark.unit
async def test_finalize_local_only_mode(db_session, settings, monkeypatch):
    monkeypatch.setattr(settings, "DESIGN_REMOTE_LOCK_ENABLED", False)
    await _seed_product(db_session)
    line = OrderLineFactory.create(order_id="order-16", serial="DSX123456")
    db_session.add(line)
    await db_session.commit()

    with patch("httpx.AsyncClient.request", new_callable=AsyncMock) as mock_request:
        summary = await on_order_finalized(
            db_session, "order-16", FinalizeTrigger.THANKYOU
        )

    mock_request.assert_not_awaited()
    assert summary.locked == ["DSX123456"]
    await db_session.refresh(line)
    assert line.lock_mode == LockMode.LOCAL_ONLY


@pytest.mark.asyncio
@pytest.mark.unit
async def test_finalize_marks_owner_design_locked(db_session):
    await _seed_product(db_session)
    store = DesignStore(db_session, VisitorContext(unique_session()))
    await store.save("42", "DSX123456")
    binding = await bind_on_add_to_cart(db_session, store, "42")
    await create_order_lines(
        db_session, store.visitor, "order-17", [binding.cart_line_key], True
    )

    with patch.object(
        DesignApiClient,
        "lock_design",
        new_callable=AsyncMock,
        return_value=_lock_ok("DSX123456"),
    ):
        await on_order_finalized(db_session, "order-17", FinalizeTrigger.COMPLETED)

    assert (await store.get("42")).locked is True


@pytest.mark.asyncio
@pytest.mark.unit
async def test_finalize_owner_update_failure_keeps_line_unlocked(db_session):
    await _seed_product(db_session)
    line = OrderLineFactory.create(order_id="order-18", serial="DSX123456")
    db_session.add(line)
    await db_session.commit()

    with patch.object(
        DesignApiClient,
        "lock_design",
        new_callable=AsyncMock,
        return_value=_lock_ok("DSX123456"),
    ), patch.object(
        DesignStore, "mark_locked", new_callable=AsyncMock, side_effect=RuntimeError("boom")
    ):
        summary = await on_order_finalized(
            db_session, "order-18", FinalizeTrigger.THANKYOU
        )

    assert summary.locked == []
    assert summary.failed == ["DSX123456"]
    await db_session.refresh(line)
    assert line.locked is False
    assert line.locked_at is None
    notes = [n.note for n in await list_order_notes(db_session, "order-18")]
    assert notes == ["Failed to lock design DSX123456: boom"]


@pytest.mark.asyncio
@pytest.mark.unit
async def test_finalize_commit_failure_reports_nothing_locked(db_session):
    await _seed_product(db_session)
    line = OrderLineFactory.create(order_id="order-19", serial="DSX123456")
    db_session.add(line)
    await db_session.commit()

    with patch.object(
        DesignApiClient,
        "lock_design",
        new_callable=AsyncMock,
        return_value=_lock_ok("DSX123456"),
    ), patch.object(
        db_session, "commit", new_callable=AsyncMock, side_effect=RuntimeError("db down")
    ):
        summary = await on_order_finalized(
            db_session, "order-19", FinalizeTrigger.THANKYOU
        )

    assert summary.locked == []
    assert summary.failed == ["DSX123456"]
    await db_session.refresh(line)
    assert line.locked is False
    assert await list_order_notes(db_session, "order-19") == []
