"""Unit tests for editor deep link issuance."""

import httpx
import pytest
from libs.common.error_handler import (
    InvalidInputError,
    NotFoundError,
    StateConflictError,
)
from services.design_service.models import EditorLinkMode, PendingEdit, TemplateMarker
from services.design_service.services.design_store import DesignStore, VisitorContext
from services.design_service.services.editor_links import (
    cart_line_edit_link,
    start_design_link,
)
from sqlalchemy import select
from tests.factories import (
    DOMAIN_ID,
    CartLineBindingFactory,
    OrderLineFactory,
    ProductSettingsFactory,
    unique_session,
)


async def _pending_for(db, session_id):
    result = await db.execute(
        select(PendingEdit).where(PendingEdit.session_id == session_id)
    )
    return result.scalar_one_or_none()


@pytest.fixture
def store(db_session):
    return DesignStore(db_session, VisitorContext(unique_session()))


@pytest.mark.asyncio
@pytest.mark.unit
async def test_start_link_for_new_design(db_session, store):
    db_session.add(ProductSettingsFactory.create(product_id="42", template_serial="TPL-42"))
    await db_session.commit()

    link = await start_design_link(db_session, store, "42")

    assert link.mode == EditorLinkMode.START
    params = httpx.URL(link.url).params
    assert params["domain"] == DOMAIN_ID
    assert params["template"] == "TPL-42"
    assert params["productId"] == "42"

    pending = await _pending_for(db_session, store.visitor.session_id)
    assert pending.product_id == "42"
    assert pending.editing is False
    marker = await db_session.get(TemplateMarker, "TPL-42")
    assert marker.product_id == "42"


@pytest.mark.asyncio
@pytest.mark.unit
async def test_start_link_continues_existing_design(db_session, store):
    db_session.add(ProductSettingsFactory.create(product_id="42"))
    await db_session.commit()
    await store.save("42", "DSX123456")

    link = await start_design_link(db_session, store, "42")

    assert link.mode == EditorLinkMode.EDIT
    assert httpx.URL(link.url).params["p"] == "DSX123456"


@pytest.mark.asyncio
@pytest.mark.unit
async def test_locked_design_gets_fresh_template_link(db_session, store):
    db_session.add(ProductSettingsFactory.create(product_id="42", template_serial="TPL-42"))
    db_session.add(OrderLineFactory.create(serial="DSX123456", locked=True))
    await db_session.commit()
    await store.save("42", "DSX123456")

    link = await start_design_link(db_session, store, "42")

    assert link.mode == EditorLinkMode.START
    assert httpx.URL(link.url).params["template"] == "TPL-42"


@pytest.mark.asyncio
@pytest.mark.unit
async def test_start_link_rejects_non_customizable(db_session, store):
    db_session.add(ProductSettingsFactory.create(product_id="42", template_serial=""))
    await db_session.commit()

    with pytest.raises(NotFoundError):
        await start_design_link(db_session, store, "42")
    with pytest.raises(NotFoundError):
        await start_design_link(db_session, store, "missing")


@pytest.mark.asyncio
@pytest.mark.unit
async def test_start_link_requires_credential(db_session, store):
    db_session.add(ProductSettingsFactory.create(product_id="42", domain_id="nokey0000"))
    await db_session.commit()

    with pytest.raises(InvalidInputError):
        await start_design_link(db_session, store, "42")


@pytest.mark.asyncio
@pytest.mark.unit
async def test_cart_line_edit_link(db_session, store):
    db_session.add(ProductSettingsFactory.create(product_id="42"))
    binding = CartLineBindingFactory.create(
        session_id=store.visitor.session_id, serial="DSX123456"
    )
    db_session.add(binding)
    await db_session.commit()

    link = await cart_line_edit_link(db_session, store, binding.cart_line_key)

    assert link.mode == EditorLinkMode.EDIT
    assert link.cart_line_key == binding.cart_line_key
    assert httpx.URL(link.url).params["p"] == "DSX123456"
    pending = await _pending_for(db_session, store.visitor.session_id)
    assert pending.editing is True
    assert pending.cart_line_key == binding.cart_line_key


@pytest.mark.asyncio
@pytest.mark.unit
async def test_cart_line_edit_link_refuses_ordered_design(db_session, store):
    db_session.add(ProductSettingsFactory.create(product_id="42"))
    binding = CartLineBindingFactory.create(
        session_id=store.visitor.session_id, serial="DSX123456"
    )
    db_session.add_all([binding, OrderLineFactory.create(serial="DSX123456", locked=True)])
    await db_session.commit()

    with pytest.raises(StateConflictError):
        await cart_line_edit_link(db_session, store, binding.cart_line_key)


@pytest.mark.asyncio
@pytest.mark.unit
async def test_cart_line_edit_link_foreign_line(db_session, store):
    foreign = CartLineBindingFactory.create()
    db_session.add(foreign)
    await db_session.commit()

    with pytest.raises(NotFoundError):
        await cart_line_edit_link(db_session, store, foreign.cart_line_key)


@pytest.mark.asyncio
@pytest.mark.unit
async def test_reissuing_link_reuses_pending_edit(db_session, store):
    db_session.add(ProductSettingsFactory.create(product_id="42"))
    db_session.add(ProductSettingsFactory.create(product_id="43"))
    await db_session.commit()

    await start_design_link(db_session, store, "42")
    await start_design_link(db_session, store, "43")

    result = await db_session.execute(
        select(PendingEdit).where(PendingEdit.session_id == store.visitor.session_id)
    )
    rows = result.scalars().all()
    assert len(rows) == 1
    assert rows[0].product_id == "43"
