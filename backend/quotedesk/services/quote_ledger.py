"""
Quote Item Ledger — ordered line items of one quote.

Invariant after every mutation: item.line_total == item.quantity × item.unit_price.

Each mutation is split into a pure "plan" step (build_item, apply_patch,
plan_reorder) that validates and prices without touching state, and a
single-assignment "commit" step. PersistentQuoteLedger writes to the store
between the two, so a failed write leaves the in-memory ledger untouched.
"""
import logging
import uuid
from typing import Callable, Dict, Iterable, List, Sequence

from quotedesk.models.quote_schema import QuoteItem, QuoteItemDraft, QuoteItemPatch, QuoteTotals
from quotedesk.services.catalog_engine import CatalogTree
from quotedesk.services.errors import ItemNotFoundError
from quotedesk.services.pricing_engine import (
    resolve_catalog_price,
    resolve_manual_price,
    resolve_unit_price,
    validate_manual_selections,
    validate_quantity,
)
from quotedesk.services.totals_engine import compute_totals

logger = logging.getLogger("quotedesk-ledger")

PRICING_FIELDS = frozenset({"quantity", "type_id", "kind_id", "model_id", "methods", "manual_price"})
_CATALOG_FIELDS = ("type_id", "kind_id", "model_id")


def gen_uuid() -> str:
    return str(uuid.uuid4())


class QuoteItemLedger:
    def __init__(
        self,
        quote_id: str,
        catalog: CatalogTree,
        items: Iterable[QuoteItem] = (),
        id_factory: Callable[[], str] = gen_uuid,
    ):
        self.quote_id = quote_id
        self.catalog = catalog
        self._id_factory = id_factory
        self._items: Dict[str, QuoteItem] = {item.id: item for item in items}

    # ── Reads ────────────────────────────────────────────────────────────────
    @property
    def items(self) -> List[QuoteItem]:
        return sorted(self._items.values(), key=lambda item: item.position)

    def __len__(self) -> int:
        return len(self._items)

    def get(self, item_id: str) -> QuoteItem:
        try:
            return self._items[item_id]
        except KeyError:
            raise ItemNotFoundError(item_id, self.quote_id) from None

    def next_position(self) -> int:
        return max((item.position for item in self._items.values()), default=0) + 1

    def totals(self, discount_percent: float = 0.0, tax_percent: float = 0.0) -> QuoteTotals:
        return compute_totals(self._items.values(), discount_percent, tax_percent)

    # ── Plans (pure) ─────────────────────────────────────────────────────────
    def build_item(self, draft: QuoteItemDraft) -> QuoteItem:
        unit_price = resolve_unit_price(self.catalog, draft)
        catalog_mode = draft.is_catalog_mode
        return QuoteItem(
            id=self._id_factory(),
            quote_id=self.quote_id,
            position=self.next_position(),
            name=draft.name,
            quantity=draft.quantity,
            unit=draft.unit,
            unit_price=unit_price,
            line_total=draft.quantity * unit_price,
            description=draft.description,
            type_id=draft.type_id if catalog_mode else None,
            kind_id=draft.kind_id if catalog_mode else None,
            model_id=draft.model_id if catalog_mode else None,
            print_position_id=draft.print_position_id,
            print_width_mm=draft.print_width_mm,
            print_height_mm=draft.print_height_mm,
            methods=list(draft.methods) if catalog_mode else [],
            attachment=draft.attachment,
        )

    def apply_patch(self, item_id: str, patch: QuoteItemPatch) -> QuoteItem:
        current = self.get(item_id)
        changes = {name: getattr(patch, name) for name in patch.model_fields_set}
        pricing_changed = bool(PRICING_FIELDS & changes.keys())

        for required in ("name", "unit"):
            if changes.get(required, "") is None:
                changes.pop(required)
        if "methods" in changes and changes["methods"] is None:
            changes["methods"] = []

        manual_requested = "manual_price" in changes
        manual_price = changes.pop("manual_price", None)
        model_cleared = "model_id" in changes and changes["model_id"] is None
        if model_cleared or (manual_requested and "model_id" not in changes):
            # leaving catalog mode drops the whole catalog selection
            changes.update({field: None for field in _CATALOG_FIELDS})
            changes.setdefault("methods", [])

        merged = current.model_copy(update=changes)
        unit_price = current.unit_price
        if pricing_changed:
            if merged.is_catalog_mode:
                unit_price = resolve_catalog_price(
                    self.catalog, merged.kind_id, merged.model_id, merged.quantity, merged.methods
                )
            else:
                validate_quantity(merged.quantity)
                validate_manual_selections(changes.get("methods", ()))
                if manual_requested or current.is_catalog_mode:
                    # a catalog price never carries over into manual mode
                    unit_price = resolve_manual_price(manual_price)

        return merged.model_copy(
            update={"unit_price": unit_price, "line_total": merged.quantity * unit_price}
        )

    def patch_needs_catalog(self, item_id: str, patch: QuoteItemPatch) -> bool:
        """Whether the patched item is priced against the catalog."""
        fields = patch.model_fields_set
        if "model_id" in fields:
            return patch.model_id is not None
        if "manual_price" in fields:
            return False
        return self.get(item_id).is_catalog_mode

    def plan_reorder(self, item_ids: Sequence[str]) -> Dict[str, int]:
        """
        Sequential positions (1..n) following ``item_ids``; items not listed
        keep their relative order after the listed ones.
        """
        seen = set()
        ordered: List[str] = []
        for item_id in item_ids:
            self.get(item_id)
            if item_id not in seen:
                seen.add(item_id)
                ordered.append(item_id)
        ordered.extend(item.id for item in self.items if item.id not in seen)
        return {item_id: index for index, item_id in enumerate(ordered, start=1)}

    # ── Commits ──────────────────────────────────────────────────────────────
    def commit(self, item: QuoteItem) -> QuoteItem:
        self._items[item.id] = item
        return item

    def remove(self, item_id: str) -> QuoteItem:
        item = self.get(item_id)
        del self._items[item_id]
        return item

    def apply_positions(self, positions: Dict[str, int]) -> List[QuoteItem]:
        updated = {
            item_id: self.get(item_id).model_copy(update={"position": position})
            for item_id, position in positions.items()
        }
        self._items.update(updated)
        return self.items

    # ── Mutations ────────────────────────────────────────────────────────────
    def add_item(self, draft: QuoteItemDraft) -> QuoteItem:
        return self.commit(self.build_item(draft))

    def update_item(self, item_id: str, patch: QuoteItemPatch) -> QuoteItem:
        return self.commit(self.apply_patch(item_id, patch))

    def delete_item(self, item_id: str) -> None:
        self.remove(item_id)

    def reorder(self, item_ids: Sequence[str]) -> List[QuoteItem]:
        return self.apply_positions(self.plan_reorder(item_ids))


class PersistentQuoteLedger:
    """
    QuoteItemLedger backed by the store. Store errors propagate unchanged and
    the in-memory state is only updated after the write succeeded.
    """

    def __init__(self, store, ledger: QuoteItemLedger):
        self.store = store
        self.ledger = ledger

    @classmethod
    async def load(cls, store, quote_id: str, catalog: CatalogTree) -> "PersistentQuoteLedger":
        await store.get_quote(quote_id)
        items = await store.list_items(quote_id)
        return cls(store, QuoteItemLedger(quote_id, catalog, items))

    @property
    def catalog(self) -> CatalogTree:
        return self.ledger.catalog

    @catalog.setter
    def catalog(self, catalog: CatalogTree) -> None:
        self.ledger.catalog = catalog

    @property
    def items(self) -> List[QuoteItem]:
        return self.ledger.items

    def totals(self, discount_percent: float = 0.0, tax_percent: float = 0.0) -> QuoteTotals:
        return self.ledger.totals(discount_percent, tax_percent)

    def patch_needs_catalog(self, item_id: str, patch: QuoteItemPatch) -> bool:
        return self.ledger.patch_needs_catalog(item_id, patch)

    async def add_item(self, draft: QuoteItemDraft) -> QuoteItem:
        item = self.ledger.build_item(draft)
        await self.store.insert_item(item)
        logger.info(
            f"Item {item.id} added to quote {item.quote_id} at position {item.position}",
            extra={"quote_id": item.quote_id},
        )
        return self.ledger.commit(item)

    async def update_item(self, item_id: str, patch: QuoteItemPatch) -> QuoteItem:
        item = self.ledger.apply_patch(item_id, patch)
        await self.store.update_item(item)
        return self.ledger.commit(item)

    async def delete_item(self, item_id: str) -> None:
        self.ledger.get(item_id)
        await self.store.delete_item(self.ledger.quote_id, item_id)
        self.ledger.remove(item_id)

    async def reorder(self, item_ids: Sequence[str]) -> List[QuoteItem]:
        positions = self.ledger.plan_reorder(item_ids)
        await self.store.update_positions(self.ledger.quote_id, positions)
        return self.ledger.apply_positions(positions)
