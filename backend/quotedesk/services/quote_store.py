"""
QuoteStore — persisted reads/writes for catalog, quote, item and status-history rows.

Each write commits before returning, so a failed write surfaces at the call
that caused it (after a rollback); nothing is retried here.
"""
import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional

from sqlalchemy import delete, inspect, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from quotedesk.models.orm_models import (
    CatalogKind,
    CatalogMethod,
    CatalogModel,
    CatalogModelMethod,
    CatalogPriceTier,
    CatalogPrintPosition,
    CatalogType,
    QuoteItemRow,
    QuoteRow,
    QuoteStatusHistoryRow,
)
from quotedesk.models.quote_schema import (
    Attachment,
    MethodSelection,
    Quote,
    QuoteItem,
    QuoteStatusHistoryEntry,
)
from quotedesk.services.errors import ItemNotFoundError, QuoteNotFoundError

logger = logging.getLogger("quotedesk-store")


def row_to_dict(obj) -> Dict[str, Any]:
    return {attr.key: getattr(obj, attr.key) for attr in inspect(obj).mapper.column_attrs}


def parse_methods(raw: Optional[Iterable[Any]]) -> List[MethodSelection]:
    """
    Read stored method selections. Older rows use camelCase keys or ``id``
    for the method id; entries without any method id are skipped.
    """
    selections: List[MethodSelection] = []
    for entry in raw or []:
        if not isinstance(entry, Mapping):
            continue
        method_id = entry.get("method_id") or entry.get("methodId") or entry.get("id")
        if not method_id:
            continue
        try:
            count = int(entry.get("count") or 1)
        except (TypeError, ValueError):
            count = 1
        selections.append(
            MethodSelection(
                method_id=str(method_id),
                count=count,
                print_position_id=entry.get("print_position_id") or entry.get("printPositionId"),
                print_width_mm=_optional_float(entry.get("print_width_mm", entry.get("printWidthMm"))),
                print_height_mm=_optional_float(entry.get("print_height_mm", entry.get("printHeightMm"))),
            )
        )
    return selections


def parse_attachment(raw: Optional[Mapping[str, Any]]) -> Optional[Attachment]:
    if not isinstance(raw, Mapping):
        return None
    return Attachment(
        name=raw.get("name") or "file",
        size=int(raw.get("size") or 0),
        content_type=raw.get("content_type") or raw.get("type") or "application/octet-stream",
        url=raw.get("url") or "",
    )


def _optional_float(value) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def item_from_row(row: QuoteItemRow) -> QuoteItem:
    # line_total is recomputed from the stored unit price
    unit_price = float(row.unit_price or 0.0)
    return QuoteItem(
        id=row.id,
        quote_id=row.quote_id,
        position=row.position,
        name=row.name,
        quantity=row.qty,
        unit=row.unit,
        unit_price=unit_price,
        line_total=row.qty * unit_price,
        description=row.description,
        type_id=row.catalog_type_id,
        kind_id=row.catalog_kind_id,
        model_id=row.catalog_model_id,
        print_position_id=row.print_position_id,
        print_width_mm=row.print_width_mm,
        print_height_mm=row.print_height_mm,
        methods=parse_methods(row.methods),
        attachment=parse_attachment(row.attachment),
    )


def _item_columns(item: QuoteItem) -> Dict[str, Any]:
    return {
        "position": item.position,
        "name": item.name,
        "description": item.description,
        "qty": item.quantity,
        "unit": item.unit,
        "unit_price": item.unit_price,
        "line_total": item.line_total,
        "catalog_type_id": item.type_id,
        "catalog_kind_id": item.kind_id,
        "catalog_model_id": item.model_id,
        "print_position_id": item.print_position_id,
        "print_width_mm": item.print_width_mm,
        "print_height_mm": item.print_height_mm,
        "methods": [m.model_dump() for m in item.methods] or None,
        "attachment": item.attachment.model_dump() if item.attachment else None,
    }


class QuoteStore:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def _commit(self) -> None:
        try:
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

    # ── Catalog ──────────────────────────────────────────────────────────────
    async def fetch_catalog_rows(self, table: str, team_id: str) -> List[Dict[str, Any]]:
        if table == "catalog_types":
            stmt = select(CatalogType).where(CatalogType.team_id == team_id)
        elif table == "catalog_kinds":
            stmt = select(CatalogKind).where(CatalogKind.team_id == team_id)
        elif table == "catalog_models":
            stmt = select(CatalogModel).where(CatalogModel.team_id == team_id)
        elif table == "catalog_methods":
            stmt = select(CatalogMethod).where(CatalogMethod.team_id == team_id)
        elif table == "catalog_price_tiers":
            stmt = (
                select(CatalogPriceTier)
                .join(CatalogModel, CatalogModel.id == CatalogPriceTier.model_id)
                .where(CatalogModel.team_id == team_id)
            )
        elif table == "catalog_model_methods":
            stmt = (
                select(CatalogModelMethod)
                .join(CatalogModel, CatalogModel.id == CatalogModelMethod.model_id)
                .where(CatalogModel.team_id == team_id)
            )
        elif table == "catalog_print_positions":
            stmt = (
                select(CatalogPrintPosition)
                .join(CatalogKind, CatalogKind.id == CatalogPrintPosition.kind_id)
                .where(CatalogKind.team_id == team_id)
            )
        else:
            raise ValueError(f"Unknown catalog table: {table}")
        result = await self.session.execute(stmt)
        return [row_to_dict(obj) for obj in result.scalars().all()]

    # ── Quotes ───────────────────────────────────────────────────────────────
    async def _quote_row(self, quote_id: str) -> QuoteRow:
        result = await self.session.execute(select(QuoteRow).where(QuoteRow.id == quote_id))
        row = result.scalar_one_or_none()
        if row is None:
            raise QuoteNotFoundError(quote_id)
        return row

    async def get_quote(self, quote_id: str) -> Quote:
        return Quote.model_validate(await self._quote_row(quote_id))

    async def list_quotes(
        self, team_id: str, status: Optional[str] = None, search: Optional[str] = None
    ) -> List[Quote]:
        """
        Team quotes, newest first. ``search`` matches case-insensitively
        anywhere in title, comment or customer id.
        """
        stmt = select(QuoteRow).where(QuoteRow.team_id == team_id)
        if status:
            stmt = stmt.where(QuoteRow.status == status)
        term = (search or "").strip()
        if term:
            stmt = stmt.where(
                or_(
                    QuoteRow.title.icontains(term, autoescape=True),
                    QuoteRow.comment.icontains(term, autoescape=True),
                    QuoteRow.customer_id.icontains(term, autoescape=True),
                )
            )
        result = await self.session.execute(stmt.order_by(QuoteRow.created_at.desc()))
        return [Quote.model_validate(row) for row in result.scalars().all()]

    async def delete_quote(self, quote_id: str) -> None:
        """Delete a quote together with its items and status history."""
        await self._quote_row(quote_id)
        try:
            await self.session.execute(delete(QuoteItemRow).where(QuoteItemRow.quote_id == quote_id))
            await self.session.execute(
                delete(QuoteStatusHistoryRow).where(QuoteStatusHistoryRow.quote_id == quote_id)
            )
            await self.session.execute(delete(QuoteRow).where(QuoteRow.id == quote_id))
        except Exception:
            await self.session.rollback()
            raise
        await self._commit()

    async def insert_quote(self, quote: Quote, initial_entry: QuoteStatusHistoryEntry) -> None:
        self.session.add(
            QuoteRow(
                id=quote.id,
                team_id=quote.team_id,
                status=quote.status.value,
                currency=quote.currency,
                customer_id=quote.customer_id,
                title=quote.title,
                comment=quote.comment,
                deadline_at=quote.deadline_at,
                deadline_note=quote.deadline_note,
                created_at=quote.created_at,
                updated_at=quote.updated_at,
            )
        )
        # parent row must exist before the history FK is checked
        await self.session.flush()
        self.session.add(_history_row(initial_entry))
        await self._commit()

    async def save_status_change(self, quote: Quote, entry: QuoteStatusHistoryEntry) -> None:
        row = await self._quote_row(quote.id)
        row.status = quote.status.value
        row.updated_at = quote.updated_at
        self.session.add(_history_row(entry))
        await self._commit()

    async def list_status_history(self, quote_id: str) -> List[QuoteStatusHistoryEntry]:
        result = await self.session.execute(
            select(QuoteStatusHistoryRow)
            .where(QuoteStatusHistoryRow.quote_id == quote_id)
            .order_by(QuoteStatusHistoryRow.created_at.desc())
        )
        return [QuoteStatusHistoryEntry.model_validate(row) for row in result.scalars().all()]

    # ── Items ────────────────────────────────────────────────────────────────
    async def list_items(self, quote_id: str) -> List[QuoteItem]:
        result = await self.session.execute(
            select(QuoteItemRow)
            .where(QuoteItemRow.quote_id == quote_id)
            .order_by(QuoteItemRow.position)
        )
        return [item_from_row(row) for row in result.scalars().all()]

    async def _item_row(self, quote_id: str, item_id: str) -> QuoteItemRow:
        result = await self.session.execute(
            select(QuoteItemRow).where(QuoteItemRow.id == item_id, QuoteItemRow.quote_id == quote_id)
        )
        row = result.scalar_one_or_none()
        if row is None:
            raise ItemNotFoundError(item_id, quote_id)
        return row

    async def insert_item(self, item: QuoteItem) -> None:
        self.session.add(QuoteItemRow(id=item.id, quote_id=item.quote_id, **_item_columns(item)))
        await self._commit()

    async def update_item(self, item: QuoteItem) -> None:
        row = await self._item_row(item.quote_id, item.id)
        for key, value in _item_columns(item).items():
            setattr(row, key, value)
        await self._commit()

    async def delete_item(self, quote_id: str, item_id: str) -> None:
        result = await self.session.execute(
            delete(QuoteItemRow).where(QuoteItemRow.id == item_id, QuoteItemRow.quote_id == quote_id)
        )
        if result.rowcount == 0:
            await self.session.rollback()
            raise ItemNotFoundError(item_id, quote_id)
        await self._commit()

    async def update_positions(self, quote_id: str, positions: Mapping[str, int]) -> None:
        result = await self.session.execute(
            select(QuoteItemRow).where(
                QuoteItemRow.quote_id == quote_id, QuoteItemRow.id.in_(list(positions))
            )
        )
        rows = {row.id: row for row in result.scalars().all()}
        missing = [item_id for item_id in positions if item_id not in rows]
        if missing:
            raise ItemNotFoundError(missing[0], quote_id)
        for item_id, position in positions.items():
            rows[item_id].position = position
        await self._commit()


def _history_row(entry: QuoteStatusHistoryEntry) -> QuoteStatusHistoryRow:
    return QuoteStatusHistoryRow(
        id=entry.id,
        quote_id=entry.quote_id,
        from_status=entry.from_status.value if entry.from_status else None,
        to_status=entry.to_status.value,
        note=entry.note,
        changed_by=entry.changed_by,
        created_at=entry.created_at,
    )
