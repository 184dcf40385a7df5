"""Two-tier design store: per-session ephemeral state and per-account durable state."""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Optional

from libs.common.datetime_utils import ensure_utc, is_expired, utc_now
from libs.common.error_handler import InvalidInputError
from libs.common.logging import get_logger
from services.design_service.models import (
    AccountDesignState,
    CartLineBinding,
    PendingEdit,
    TemplateMarker,
    VisitorDesignState,
)
from services.design_service.schemas import DesignRecord
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

# Keys in ``extra`` that populate DesignRecord fields rather than ``data``
RECORD_FIELDS = ("preview_url", "thumbnail_url")


@dataclass(frozen=True)
class VisitorContext:
    """Who is acting: always a session, plus an account once logged in."""

    session_id: str
    account_id: Optional[str] = None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.account_id)

    @property
    def owner_id(self) -> str:
        return self.account_id or self.session_id


def _load_map(designs: Optional[dict]) -> dict[str, DesignRecord]:
    return {
        product_id: DesignRecord.model_validate(payload)
        for product_id, payload in (designs or {}).items()
    }


def _dump_map(records: dict[str, DesignRecord]) -> dict[str, Any]:
    return {
        product_id: record.model_dump(mode="json")
        for product_id, record in records.items()
    }


def _prune(designs: Optional[dict], cutoff: datetime) -> tuple[dict, list[str]]:
    """Split a tier map into (kept, removed product ids) by updated_at."""
    kept = {}
    removed = []
    for product_id, payload in (designs or {}).items():
        record = DesignRecord.model_validate(payload)
        if ensure_utc(record.updated_at) < cutoff:
            removed.append(product_id)
        else:
            kept[product_id] = payload
    return kept, removed


class DesignStore:
    """
    Design records for one visitor, keyed by product id.

    Reads come from the ephemeral (session) tier. Writes land there first and
    are written through to the durable (account) tier when the visitor is
    logged in. Methods flush but never commit; the calling operation owns
    the transaction.
    """

    def __init__(self, db: AsyncSession, visitor: VisitorContext):
        self.db = db
        self.visitor = visitor

    # =========================================================================
    # Tier access
    # =========================================================================

    async def _ephemeral_row(self, create: bool = False) -> Optional[VisitorDesignState]:
        row = await self.db.get(VisitorDesignState, self.visitor.session_id)
        if row is None and create:
            row = VisitorDesignState(session_id=self.visitor.session_id, designs={})
            self.db.add(row)
        return row

    async def _durable_row(self, create: bool = False) -> Optional[AccountDesignState]:
        if not self.visitor.is_authenticated:
            return None
        row = await self.db.get(AccountDesignState, self.visitor.account_id)
        if row is None and create:
            row = AccountDesignState(account_id=self.visitor.account_id, designs={})
            self.db.add(row)
        return row

    async def _ephemeral(self) -> dict[str, DesignRecord]:
        row = await self._ephemeral_row()
        return _load_map(row.designs if row else None)

    async def _durable(self) -> dict[str, DesignRecord]:
        row = await self._durable_row()
        return _load_map(row.designs if row else None)

    async def _write_entry(self, product_id: str, record: Optional[DesignRecord]):
        """Set or delete one entry in both tiers (durable only when logged in)."""
        rows = [await self._ephemeral_row(create=record is not None)]
        if self.visitor.is_authenticated:
            rows.append(await self._durable_row(create=record is not None))

        for row in rows:
            if row is None:
                continue
            # Reassign a new dict so the JSON column is flagged dirty
            designs = dict(row.designs or {})
            if record is None:
                designs.pop(product_id, None)
            else:
                designs[product_id] = record.model_dump(mode="json")
            row.designs = designs
        await self.db.flush()

    # =========================================================================
    # Records
    # =========================================================================

    async def save(
        self,
        product_id: str,
        serial: str,
        extra: Optional[dict[str, Any]] = None,
    ) -> DesignRecord:
        """
        Store ``serial`` as the visitor's current design for ``product_id``.

        Re-saving the same serial keeps created_at and the locked flag and
        merges ``extra`` into the existing data; a different serial replaces
        the record outright.
        """
        if not product_id or not serial:
            raise InvalidInputError("Product id and design serial are required")

        extra = dict(extra or {})
        fields = {key: extra.pop(key) for key in RECORD_FIELDS if key in extra}
        now = utc_now()
        existing = await self.get(product_id)

        if existing and existing.serial == serial:
            record = existing.model_copy(
                update={
                    "owner_id": self.visitor.owner_id,
                    "updated_at": now,
                    "data": {**existing.data, **extra},
                    **fields,
                }
            )
        else:
            record = DesignRecord(
                product_id=product_id,
                serial=serial,
                owner_id=self.visitor.owner_id,
                created_at=now,
                updated_at=now,
                data=extra,
                **fields,
            )

        await self._write_entry(product_id, record)
        logger.info(
            "Saved design %s for product %s (owner=%s)",
            serial,
            product_id,
            self.visitor.owner_id,
        )
        return record

    async def get(self, product_id: str) -> Optional[DesignRecord]:
        record = (await self._ephemeral()).get(product_id)
        if record is None and self.visitor.is_authenticated:
            record = (await self._durable()).get(product_id)
        return record

    async def has_design(self, product_id: str) -> bool:
        return await self.get(product_id) is not None

    async def design_age(self, product_id: str) -> Optional[timedelta]:
        """Time since the current design was first saved, or None."""
        record = await self.get(product_id)
        if record is None:
            return None
        return utc_now() - ensure_utc(record.created_at)

    async def remove(self, product_id: str) -> bool:
        """Forget the design for a product in every tier this visitor owns."""
        existed = await self.has_design(product_id)
        await self._write_entry(product_id, None)
        if existed:
            logger.info(
                "Removed design for product %s (owner=%s)",
                product_id,
                self.visitor.owner_id,
            )
        return existed

    async def list_all(self) -> list[DesignRecord]:
        records = await self._durable()
        records.update(await self._ephemeral())
        return sorted(records.values(), key=lambda r: ensure_utc(r.updated_at))

    async def clear_all(self) -> int:
        """Drop every design in both tiers. Returns the number removed."""
        count = len(await self.list_all())
        for row in (await self._ephemeral_row(), await self._durable_row()):
            if row is not None:
                row.designs = {}
        await self.db.flush()
        logger.info("Cleared %d designs (owner=%s)", count, self.visitor.owner_id)
        return count

    async def mark_locked(self, product_id: str, serial: str) -> bool:
        """Flag the record locked if it still holds ``serial``."""
        record = await self.get(product_id)
        if record is None or record.serial != serial or record.locked:
            return False
        await self._write_entry(
            product_id, record.model_copy(update={"locked": True})
        )
        return True

    async def reap_age(self, max_age: timedelta) -> int:
        """Remove records whose last update is older than ``max_age``."""
        cutoff = utc_now() - max_age
        removed: set[str] = set()
        for row in (await self._ephemeral_row(), await self._durable_row()):
            if row is None:
                continue
            kept, stale = _prune(row.designs, cutoff)
            if stale:
                row.designs = kept
                removed.update(stale)
        await self.db.flush()
        return len(removed)

    # =========================================================================
    # Login lifecycle
    # =========================================================================

    async def hydrate(self) -> bool:
        """
        Seed an empty session tier from the account tier.

        Returns True when anything was copied.
        """
        if not self.visitor.is_authenticated:
            return False
        ephemeral = await self._ephemeral_row()
        if ephemeral is not None and ephemeral.designs:
            return False
        durable = await self._durable_row()
        if durable is None or not durable.designs:
            return False

        ephemeral = await self._ephemeral_row(create=True)
        ephemeral.designs = dict(durable.designs)
        await self.db.flush()
        logger.info(
            "Hydrated %d designs into session %s from account %s",
            len(durable.designs),
            self.visitor.session_id,
            self.visitor.account_id,
        )
        return True

    async def merge_on_login(self) -> dict[str, DesignRecord]:
        """
        Union the account tier with the session tier, session winning.

        The result is written to the account tier and mirrored back into the
        session. Calling it again with no intervening writes changes nothing.
        """
        if not self.visitor.is_authenticated:
            raise InvalidInputError("Login is required to sync designs")

        merged = {**(await self._durable()), **(await self._ephemeral())}
        merged = {
            product_id: record.model_copy(update={"owner_id": self.visitor.account_id})
            for product_id, record in merged.items()
        }
        payload = _dump_map(merged)

        (await self._durable_row(create=True)).designs = payload
        (await self._ephemeral_row(create=True)).designs = dict(payload)
        await self.db.flush()

        logger.info(
            "Merged %d designs for account %s (session=%s)",
            len(merged),
            self.visitor.account_id,
            self.visitor.session_id,
        )
        return merged


# ---------------------------------------------------------------------------
# Maintenance
# ---------------------------------------------------------------------------


@dataclass
class ReapSummary:
    designs_removed: int = 0
    markers_removed: int = 0
    cart_lines_removed: int = 0


async def reap_all(db: AsyncSession, max_age: timedelta) -> ReapSummary:
    """
    Age out designs across every owner in both tiers.

    Also purges expired editor round-trip markers and cart bindings older than
    ``max_age``. Commits.
    """
    summary = ReapSummary()
    cutoff = utc_now() - max_age

    for model in (VisitorDesignState, AccountDesignState):
        rows = (await db.execute(select(model))).scalars().all()
        for row in rows:
            kept, stale = _prune(row.designs, cutoff)
            if stale:
                row.designs = kept
                summary.designs_removed += len(stale)

    for model in (PendingEdit, TemplateMarker):
        rows = (await db.execute(select(model))).scalars().all()
        for row in rows:
            if is_expired(row.expires_at):
                await db.delete(row)
                summary.markers_removed += 1

    bindings = (await db.execute(select(CartLineBinding))).scalars().all()
    for binding in bindings:
        if ensure_utc(binding.updated_at) < cutoff:
            await db.delete(binding)
            summary.cart_lines_removed += 1

    await db.commit()
    logger.info(
        "Reaped %d designs, %d markers, %d cart lines older than %s",
        summary.designs_removed,
        summary.markers_removed,
        summary.cart_lines_removed,
        max_age,
    )
    return summary
