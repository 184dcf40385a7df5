"""Cart and order binding: snapshot designs onto lines and lock them after purchase."""

import uuid
from dataclasses import dataclass, field
from typing import Optional

from libs.common.config import get_settings
from libs.common.datetime_utils import utc_now
from libs.common.error_handler import InvalidInputError, StateConflictError
from libs.common.logging import get_logger
from services.design_service.models import (
    CartLineBinding,
    FinalizeTrigger,
    LockMode,
    OrderLineRecord,
    OrderNote,
)
from services.design_service.services.api_client import get_client_for_product
from services.design_service.services.design_store import DesignStore, VisitorContext
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Cart lines
# ---------------------------------------------------------------------------


async def bind_on_add_to_cart(
    db: AsyncSession, store: DesignStore, product_id: str
) -> Optional[CartLineBinding]:
    """Snapshot the visitor's current design onto a new cart line.

    Every add gets a fresh line key so two identical customized items never
    collapse into one line. Returns None when there is no design, in which
    case the line is an ordinary uncustomized one.
    """
    record = await store.get(product_id)
    if record is None:
        return None

    binding = CartLineBinding(
        cart_line_key=uuid.uuid4().hex,
        session_id=store.visitor.session_id,
        account_id=store.visitor.account_id,
        product_id=product_id,
        serial=record.serial,
        preview_url=record.preview_url,
        thumbnail_url=record.thumbnail_url,
        design_data=dict(record.data),
    )
    db.add(binding)
    await db.commit()

    logger.info(
        "Bound design %s to cart line %s (product %s)",
        record.serial,
        binding.cart_line_key,
        product_id,
    )
    return binding


async def on_remove_line(
    db: AsyncSession, store: DesignStore, cart_line_key: str
) -> bool:
    """Drop a cart line's binding and the visitor's design for that product.

    Unknown keys, or keys owned by someone else, are a no-op.
    """
    binding = await db.get(CartLineBinding, cart_line_key)
    if binding is None or not binding.owned_by(
        store.visitor.session_id, store.visitor.account_id
    ):
        return False

    product_id = binding.product_id
    await db.delete(binding)
    await store.remove(product_id)
    await db.commit()

    logger.info(
        "Removed cart line %s and cleared design for product %s",
        cart_line_key,
        product_id,
    )
    return True


async def update_line_design(
    db: AsyncSession,
    cart_line_key: str,
    serial: str,
    preview_url: Optional[str] = None,
    thumbnail_url: Optional[str] = None,
) -> Optional[CartLineBinding]:
    """Point an existing cart line at a re-edited design. Flushes only."""
    binding = await db.get(CartLineBinding, cart_line_key)
    if binding is None:
        return None

    binding.serial = serial
    binding.preview_url = preview_url
    binding.thumbnail_url = thumbnail_url
    binding.updated_at = utc_now()
    await db.flush()
    return binding


def _owner_filter(model, visitor: VisitorContext):
    """Rows belonging to the visitor's session or, when signed in, account."""
    clause = model.session_id == visitor.session_id
    if visitor.is_authenticated:
        clause = or_(clause, model.account_id == visitor.account_id)
    return clause


async def list_cart_lines(
    db: AsyncSession, visitor: VisitorContext
) -> list[CartLineBinding]:
    result = await db.execute(
        select(CartLineBinding)
        .where(_owner_filter(CartLineBinding, visitor))
        .order_by(CartLineBinding.created_at)
    )
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Order lines
# ---------------------------------------------------------------------------


async def on_checkout_create_order_line(
    db: AsyncSession, order_id: str, binding: CartLineBinding
) -> OrderLineRecord:
    """Copy a cart binding onto an order line, unlocked.

    Repeating the call for the same order and cart line returns the row that
    already exists. Flushes only.
    """
    result = await db.execute(
        select(OrderLineRecord).where(
            OrderLineRecord.order_id == order_id,
            OrderLineRecord.cart_line_key == binding.cart_line_key,
        )
    )
    existing = result.scalar_one_or_none()
    if existing:
        return existing

    line = OrderLineRecord(
        order_id=order_id,
        cart_line_key=binding.cart_line_key,
        product_id=binding.product_id,
        session_id=binding.session_id,
        account_id=binding.account_id,
        serial=binding.serial,
        preview_url=binding.preview_url,
        locked=False,
        ordered_at=utc_now(),
    )
    db.add(line)
    await db.flush()
    return line


async def create_order_lines(
    db: AsyncSession,
    visitor: VisitorContext,
    order_id: str,
    cart_line_keys: list[str],
    copyright_accepted: bool = False,
) -> list[OrderLineRecord]:
    """Create order lines for the visitor's customized cart lines at checkout."""
    settings = get_settings()
    if settings.DESIGN_REQUIRE_COPYRIGHT_AGREEMENT and not copyright_accepted:
        raise InvalidInputError(
            "You must agree to the copyright terms to proceed with your custom design order."
        )

    lines = []
    for cart_line_key in cart_line_keys:
        binding = await db.get(CartLineBinding, cart_line_key)
        if binding is None or not binding.owned_by(
            visitor.session_id, visitor.account_id
        ):
            raise StateConflictError(f"Cart line {cart_line_key} has no design")
        lines.append(await on_checkout_create_order_line(db, order_id, binding))

    await db.commit()
    logger.info("Recorded %d design lines for order %s", len(lines), order_id)
    return lines


async def list_order_lines(db: AsyncSession, order_id: str) -> list[OrderLineRecord]:
    result = await db.execute(
        select(OrderLineRecord)
        .where(OrderLineRecord.order_id == order_id)
        .order_by(OrderLineRecord.ordered_at)
    )
    return list(result.scalars().all())


async def is_order_owner(
    db: AsyncSession, order_id: str, visitor: VisitorContext
) -> bool:
    """True when any design line on the order was placed by this visitor."""
    result = await db.execute(
        select(OrderLineRecord.id)
        .where(
            OrderLineRecord.order_id == order_id,
            _owner_filter(OrderLineRecord, visitor),
        )
        .limit(1)
    )
    return result.first() is not None


async def list_order_notes(db: AsyncSession, order_id: str) -> list[OrderNote]:
    result = await db.execute(
        select(OrderNote)
        .where(OrderNote.order_id == order_id)
        .order_by(OrderNote.created_at)
    )
    return list(result.scalars().all())


async def is_serial_locked(db: AsyncSession, serial: str) -> bool:
    """True once any order holding this serial has locked it."""
    result = await db.execute(
        select(OrderLineRecord.id)
        .where(OrderLineRecord.serial == serial, OrderLineRecord.locked.is_(True))
        .limit(1)
    )
    return result.first() is not None


def add_order_note(db: AsyncSession, order_id: str, note: str) -> OrderNote:
    order_note = OrderNote(order_id=order_id, note=note)
    db.add(order_note)
    return order_note


# ---------------------------------------------------------------------------
# Finalisation
# ---------------------------------------------------------------------------


@dataclass
class FinalizeSummary:
    order_id: str
    trigger: FinalizeTrigger
    enabled: bool = True
    locked: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    already_locked: int = 0


def _trigger_enabled(trigger: FinalizeTrigger) -> bool:
    settings = get_settings()
    if trigger == FinalizeTrigger.COMPLETED:
        return settings.DESIGN_LOCK_ON_COMPLETION
    return settings.DESIGN_LOCK_ON_THANKYOU


async def _lock_line(
    db: AsyncSession, line: OrderLineRecord, summary: FinalizeSummary
) -> None:
    client = await get_client_for_product(db, line.product_id)
    if client is None:
        add_order_note(
            db,
            line.order_id,
            f"Design {line.serial} could not be locked: no API credential "
            f"configured for product {line.product_id}.",
        )
        summary.skipped.append(line.serial)
        return

    result = await client.lock_design(line.serial)
    if not result.ok:
        logger.warning(
            "Failed to lock design %s for order %s (%s): %s",
            line.serial,
            line.order_id,
            result.error_kind,
            result.message,
        )
        add_order_note(
            db, line.order_id, f"Failed to lock design {line.serial}: {result.message}"
        )
        summary.failed.append(line.serial)
        return

    lock_mode = LockMode((result.data or {}).get("mode", LockMode.REMOTE))

    # The line flips only after the owner record is updated
    owner = DesignStore(db, VisitorContext(line.session_id, line.account_id))
    await owner.mark_locked(line.product_id, line.serial)

    line.locked = True
    line.locked_at = utc_now()
    line.lock_mode = lock_mode
    add_order_note(
        db,
        line.order_id,
        f"Design {line.serial} has been locked and can no longer be edited.",
    )
    summary.locked.append(line.serial)


async def on_order_finalized(
    db: AsyncSession, order_id: str, trigger: FinalizeTrigger
) -> FinalizeSummary:
    """
    Lock every unlocked design on an order.

    Both the thank-you and completion triggers run through here; either can be
    switched off in settings. Locked lines are never sent again, so calling
    this repeatedly is safe. A failed lock leaves the line unlocked for the
    next trigger and is recorded as an order note. Never raises.
    """
    summary = FinalizeSummary(order_id=order_id, trigger=trigger)
    if not _trigger_enabled(trigger):
        summary.enabled = False
        logger.info("Design locking on %s is disabled; order %s", trigger.value, order_id)
        return summary

    try:
        result = await db.execute(
            select(OrderLineRecord)
            .where(OrderLineRecord.order_id == order_id)
            .order_by(OrderLineRecord.ordered_at)
            .with_for_update()
        )
        lines = result.scalars().all()

        for line in lines:
            if line.locked:
                summary.already_locked += 1
                continue
            try:
                await _lock_line(db, line, summary)
            except Exception as e:
                logger.exception(
                    "Unexpected error locking design %s for order %s",
                    line.serial,
                    order_id,
                )
                add_order_note(db, order_id, f"Failed to lock design {line.serial}: {e}")
                summary.failed.append(line.serial)

        await db.commit()
    except Exception:
        logger.exception("Design finalisation failed for order %s", order_id)
        await db.rollback()
        # Nothing from this run was saved
        summary.failed.extend(summary.locked)
        summary.locked.clear()
        return summary

    logger.info(
        "Finalised order %s on %s: locked=%d failed=%d skipped=%d already=%d",
        order_id,
        trigger.value,
        len(summary.locked),
        len(summary.failed),
        len(summary.skipped),
        summary.already_locked,
    )
    return summary
