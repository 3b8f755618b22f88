"""
test_quote_ledger.py — Unit tests for QuoteItemLedger and PersistentQuoteLedger.

Tests cover:
  - add_item: manual and catalog modes, position assignment (max + 1)
  - update_item: partial patches, re-pricing on pricing fields, mode switch
  - delete_item / reorder and their not-found errors
  - line_total == quantity × unit_price after every mutation
  - failed validation or store writes leave the ledger unchanged
"""

import asyncio
import itertools
import uuid
import pytest

from quotedesk.models.quote_schema import MethodSelection, QuoteItemDraft, QuoteItemPatch
from quotedesk.services.errors import (
    InvalidMethodError,
    InvalidPriceError,
    InvalidQuantityError,
    ItemNotFoundError,
)
from quotedesk.services.quote_ledger import PersistentQuoteLedger, QuoteItemLedger

QUOTE_ID = str(uuid.uuid4())


@pytest.fixture
def ledger(sample_catalog):
    counter = itertools.count(1)
    return QuoteItemLedger(QUOTE_ID, sample_catalog, id_factory=lambda: f"item-{next(counter)}")


def _assert_consistent(ledger):
    for item in ledger.items:
        assert item.line_total == pytest.approx(item.quantity * item.unit_price)


def _classic(ids, quantity=1, methods=()):
    return QuoteItemDraft(
        name="Classic Tee",
        quantity=quantity,
        type_id=ids.apparel,
        kind_id=ids.tshirts,
        model_id=ids.classic,
        methods=list(methods),
    )


# ===========================================================================
# Class 1: add_item
# ===========================================================================

class TestAddItem:

    def test_manual_item(self, ledger):
        item = ledger.add_item(QuoteItemDraft(name="Design work", quantity=3, manual_price=40.0))
        assert item.position == 1
        assert item.unit_price == 40.0
        assert item.line_total == 120.0
        assert item.unit == "pcs"
        assert item.quote_id == QUOTE_ID
        assert not item.is_catalog_mode

    def test_catalog_item_with_methods(self, ledger, ids):
        item = ledger.add_item(_classic(ids, 10, [
            MethodSelection(method_id=ids.screen, count=2),
            MethodSelection(method_id=ids.embroidery),
        ]))
        assert item.unit_price == 105.0
        assert item.line_total == 1050.0
        assert item.model_id == ids.classic
        assert len(item.methods) == 2

    def test_manual_item_drops_catalog_leftovers(self, ledger, ids):
        item = ledger.add_item(QuoteItemDraft(
            name="Custom", manual_price=10.0, type_id=ids.apparel, kind_id=ids.tshirts,
        ))
        assert item.type_id is None
        assert item.kind_id is None
        assert item.methods == []

    def test_manual_item_rejects_methods(self, ledger, ids):
        with pytest.raises(InvalidMethodError) as exc_info:
            ledger.add_item(QuoteItemDraft(
                name="Custom", manual_price=10.0, kind_id=ids.tshirts,
                methods=[MethodSelection(method_id=ids.screen)],
            ))
        assert exc_info.value.method_id == ids.screen
        assert len(ledger) == 0

    def test_manual_price_is_rounded_to_cents(self, ledger):
        item = ledger.add_item(QuoteItemDraft(name="Sticker", quantity=3, manual_price=0.333))
        assert item.unit_price == 0.33
        assert item.line_total == pytest.approx(0.99)

    def test_positions_are_max_plus_one(self, ledger):
        first = ledger.add_item(QuoteItemDraft(name="A", manual_price=1.0))
        second = ledger.add_item(QuoteItemDraft(name="B", manual_price=1.0))
        ledger.add_item(QuoteItemDraft(name="C", manual_price=1.0))
        ledger.delete_item(second.id)
        fourth = ledger.add_item(QuoteItemDraft(name="D", manual_price=1.0))
        assert first.position == 1
        assert fourth.position == 4

    def test_rejected_draft_leaves_ledger_unchanged(self, ledger, ids):
        ledger.add_item(QuoteItemDraft(name="A", manual_price=1.0))
        with pytest.raises(InvalidPriceError):
            ledger.add_item(QuoteItemDraft(name="B", manual_price=-5.0))
        with pytest.raises(InvalidMethodError):
            ledger.add_item(_classic(ids, 1, [MethodSelection(method_id=ids.engraving)]))
        with pytest.raises(InvalidQuantityError):
            ledger.add_item(_classic(ids, 0))
        assert len(ledger) == 1


# ===========================================================================
# Class 2: update_item
# ===========================================================================

class TestUpdateItem:

    def test_quantity_change_reprices_tier(self, ledger, ids):
        item = ledger.add_item(_classic(ids, 5))
        assert item.unit_price == 100.0
        updated = ledger.update_item(item.id, QuoteItemPatch(quantity=10))
        assert updated.unit_price == 80.0
        assert updated.line_total == 800.0
        _assert_consistent(ledger)

    def test_non_pricing_patch_keeps_price(self, ledger):
        item = ledger.add_item(QuoteItemDraft(name="Fee", quantity=2, manual_price=15.0))
        updated = ledger.update_item(item.id, QuoteItemPatch(name="Setup fee", description="one-off"))
        assert updated.name == "Setup fee"
        assert updated.description == "one-off"
        assert updated.unit_price == 15.0
        assert updated.line_total == 30.0

    def test_manual_quantity_change_keeps_manual_price(self, ledger):
        item = ledger.add_item(QuoteItemDraft(name="Fee", quantity=2, manual_price=15.0))
        updated = ledger.update_item(item.id, QuoteItemPatch(quantity=4))
        assert updated.unit_price == 15.0
        assert updated.line_total == 60.0

    def test_manual_price_patch(self, ledger):
        item = ledger.add_item(QuoteItemDraft(name="Fee", manual_price=15.0))
        updated = ledger.update_item(item.id, QuoteItemPatch(manual_price=22.5))
        assert updated.unit_price == 22.5

    def test_manual_price_switches_catalog_item_to_manual(self, ledger, ids):
        item = ledger.add_item(_classic(ids, 3, [MethodSelection(method_id=ids.screen)]))
        updated = ledger.update_item(item.id, QuoteItemPatch(manual_price=70.0))
        assert not updated.is_catalog_mode
        assert updated.methods == []
        assert updated.unit_price == 70.0
        assert updated.line_total == 210.0

    def test_methods_on_manual_item_are_rejected(self, ledger, ids):
        item = ledger.add_item(QuoteItemDraft(name="Fee", quantity=2, manual_price=15.0))
        with pytest.raises(InvalidMethodError):
            ledger.update_item(item.id, QuoteItemPatch(methods=[MethodSelection(method_id=ids.screen, count=0)]))
        with pytest.raises(InvalidMethodError):
            ledger.update_item(item.id, QuoteItemPatch(methods=[MethodSelection(method_id="no-such-method")]))
        assert ledger.get(item.id) == item

    def test_empty_methods_on_manual_item_is_allowed(self, ledger):
        item = ledger.add_item(QuoteItemDraft(name="Fee", quantity=2, manual_price=15.0))
        updated = ledger.update_item(item.id, QuoteItemPatch(methods=[]))
        assert updated.methods == []
        assert updated.unit_price == 15.0

    def test_clearing_model_leaves_no_catalog_residue(self, ledger, ids):
        item = ledger.add_item(_classic(ids, 10, [MethodSelection(method_id=ids.screen)]))
        assert item.unit_price == 90.0
        updated = ledger.update_item(item.id, QuoteItemPatch(model_id=None))
        assert not updated.is_catalog_mode
        assert (updated.type_id, updated.kind_id, updated.model_id) == (None, None, None)
        assert updated.methods == []
        assert updated.unit_price == 0.0
        assert updated.line_total == 0.0

    def test_clearing_model_with_manual_price(self, ledger, ids):
        item = ledger.add_item(_classic(ids, 4))
        updated = ledger.update_item(item.id, QuoteItemPatch(model_id=None, manual_price=12.5))
        assert updated.kind_id is None
        assert updated.unit_price == 12.5
        assert updated.line_total == 50.0

    def test_clearing_model_with_methods_is_rejected(self, ledger, ids):
        item = ledger.add_item(_classic(ids, 4))
        with pytest.raises(InvalidMethodError):
            ledger.update_item(item.id, QuoteItemPatch(
                model_id=None, methods=[MethodSelection(method_id=ids.screen)],
            ))
        assert ledger.get(item.id) == item

    def test_switch_to_catalog_mode(self, ledger, ids):
        item = ledger.add_item(QuoteItemDraft(name="Tee", quantity=12, manual_price=1.0))
        updated = ledger.update_item(item.id, QuoteItemPatch(
            type_id=ids.apparel, kind_id=ids.tshirts, model_id=ids.classic,
        ))
        assert updated.unit_price == 80.0
        assert updated.line_total == 960.0

    def test_methods_patch_reprices(self, ledger, ids):
        item = ledger.add_item(_classic(ids, 1))
        updated = ledger.update_item(
            item.id, QuoteItemPatch(methods=[MethodSelection(method_id=ids.embroidery, count=3)])
        )
        assert updated.unit_price == 115.0

    def test_clearing_methods_with_none(self, ledger, ids):
        item = ledger.add_item(_classic(ids, 1, [MethodSelection(method_id=ids.screen)]))
        updated = ledger.update_item(item.id, QuoteItemPatch(methods=None))
        assert updated.methods == []
        assert updated.unit_price == 100.0

    def test_none_name_is_ignored(self, ledger):
        item = ledger.add_item(QuoteItemDraft(name="Fee", manual_price=1.0))
        updated = ledger.update_item(item.id, QuoteItemPatch(name=None))
        assert updated.name == "Fee"

    def test_invalid_patch_leaves_item_unchanged(self, ledger, ids):
        item = ledger.add_item(_classic(ids, 2))
        with pytest.raises(InvalidMethodError):
            ledger.update_item(item.id, QuoteItemPatch(methods=[MethodSelection(method_id=ids.patch)]))
        with pytest.raises(InvalidQuantityError):
            ledger.update_item(item.id, QuoteItemPatch(quantity=0))
        assert ledger.get(item.id) == item

    def test_unknown_item(self, ledger):
        with pytest.raises(ItemNotFoundError) as exc_info:
            ledger.update_item("missing", QuoteItemPatch(name="x"))
        assert exc_info.value.item_id == "missing"
        assert exc_info.value.quote_id == QUOTE_ID


# ===========================================================================
# Class 3: delete / reorder / totals
# ===========================================================================

class TestDeleteAndReorder:

    def _three(self, ledger):
        return [ledger.add_item(QuoteItemDraft(name=n, manual_price=10.0)) for n in ("A", "B", "C")]

    def test_delete(self, ledger):
        a, b, c = self._three(ledger)
        ledger.delete_item(b.id)
        assert [i.name for i in ledger.items] == ["A", "C"]

    def test_delete_unknown(self, ledger):
        self._three(ledger)
        with pytest.raises(ItemNotFoundError):
            ledger.delete_item("missing")
        assert len(ledger) == 3

    def test_reorder_full(self, ledger):
        a, b, c = self._three(ledger)
        items = ledger.reorder([c.id, a.id, b.id])
        assert [(i.name, i.position) for i in items] == [("C", 1), ("A", 2), ("B", 3)]

    def test_reorder_partial_keeps_rest_in_order(self, ledger):
        a, b, c = self._three(ledger)
        items = ledger.reorder([c.id])
        assert [i.name for i in items] == ["C", "A", "B"]
        assert [i.position for i in items] == [1, 2, 3]

    def test_reorder_unknown_id_changes_nothing(self, ledger):
        a, b, c = self._three(ledger)
        with pytest.raises(ItemNotFoundError):
            ledger.reorder([c.id, "missing"])
        assert [i.name for i in ledger.items] == ["A", "B", "C"]

    def test_reorder_ignores_duplicates(self, ledger):
        a, b, c = self._three(ledger)
        items = ledger.reorder([b.id, b.id, a.id])
        assert [i.name for i in items] == ["B", "A", "C"]

    def test_totals_follow_items(self, ledger):
        ledger.add_item(QuoteItemDraft(name="A", quantity=2, manual_price=50.0))
        ledger.add_item(QuoteItemDraft(name="B", quantity=1, manual_price=30.0))
        totals = ledger.totals(discount_percent=10, tax_percent=20)
        assert totals.total == pytest.approx(140.4)


# ===========================================================================
# Class 4: PersistentQuoteLedger
# ===========================================================================

class _RecordingStore:
    def __init__(self, items=(), fail=False):
        self._items = list(items)
        self.fail = fail
        self.writes = []

    async def get_quote(self, quote_id):
        return {"id": quote_id}

    async def list_items(self, quote_id):
        return list(self._items)

    async def _write(self, name, *args):
        if self.fail:
            raise ConnectionError("db down")
        self.writes.append((name, args))

    async def insert_item(self, item):
        await self._write("insert", item.id)

    async def update_item(self, item):
        await self._write("update", item.id)

    async def delete_item(self, quote_id, item_id):
        await self._write("delete", item_id)

    async def update_positions(self, quote_id, positions):
        await self._write("positions", dict(positions))


class TestPersistentQuoteLedger:

    def test_writes_then_commits(self, sample_catalog):
        store = _RecordingStore()

        async def scenario():
            ledger = await PersistentQuoteLedger.load(store, QUOTE_ID, sample_catalog)
            item = await ledger.add_item(QuoteItemDraft(name="Fee", manual_price=5.0))
            await ledger.update_item(item.id, QuoteItemPatch(quantity=3))
            await ledger.reorder([item.id])
            await ledger.delete_item(item.id)
            return ledger

        ledger = asyncio.run(scenario())
        assert [w[0] for w in store.writes] == ["insert", "update", "positions", "delete"]
        assert ledger.items == []

    def test_store_failure_leaves_ledger_unchanged(self, sample_catalog):
        store = _RecordingStore(fail=True)

        async def scenario():
            ledger = await PersistentQuoteLedger.load(store, QUOTE_ID, sample_catalog)
            with pytest.raises(ConnectionError):
                await ledger.add_item(QuoteItemDraft(name="Fee", manual_price=5.0))
            return ledger

        ledger = asyncio.run(scenario())
        assert ledger.items == []

    def test_delete_unknown_skips_store(self, sample_catalog):
        store = _RecordingStore()

        async def scenario():
            ledger = await PersistentQuoteLedger.load(store, QUOTE_ID, sample_catalog)
            with pytest.raises(ItemNotFoundError):
                await ledger.delete_item("missing")

        asyncio.run(scenario())
        assert store.writes == []
