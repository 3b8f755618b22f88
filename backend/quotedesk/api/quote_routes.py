"""Quote routes — quote lifecycle, line items and totals."""
import logging
from datetime import date
from typing import List, Optional
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from quotedesk.api.deps import catalog_when, get_catalog, get_store, get_team_id, get_team_quote
from quotedesk.models.quote_schema import QuoteItem, QuoteItemDraft, QuoteItemPatch
from quotedesk.services.catalog_engine import CatalogTree
from quotedesk.services.quote_ledger import PersistentQuoteLedger
from quotedesk.services.quote_store import QuoteStore
from quotedesk.services.status_engine import (
    create_quote,
    delete_quote,
    list_status_history,
    parse_status,
    set_status,
)

router = APIRouter(prefix="/api/quotes", tags=["Quotes"])
logger = logging.getLogger("quotedesk-api")


# ─── Pydantic schemas ────────────────────────────────────────────────────────

class QuoteCreateRequest(BaseModel):
    customer_id: Optional[str] = None
    currency: Optional[str] = None
    title: Optional[str] = None
    comment: Optional[str] = None
    deadline_at: Optional[date] = None
    deadline_note: Optional[str] = None
    created_by: Optional[str] = None


class ReorderRequest(BaseModel):
    item_ids: List[str]


class StatusChangeRequest(BaseModel):
    status: str
    note: Optional[str] = None
    changed_by: Optional[str] = None


# ─── Helpers ─────────────────────────────────────────────────────────────────

def _item_view(item: QuoteItem, catalog: CatalogTree) -> dict:
    """Item fields plus display names resolved against the current catalog."""
    view = item.model_dump()
    view["type_name"] = catalog.type_name(item.type_id)
    view["kind_name"] = catalog.kind_name(item.type_id, item.kind_id)
    view["model_name"] = catalog.model_name(item.type_id, item.kind_id, item.model_id)
    view["model_image"] = catalog.model_image(item.type_id, item.kind_id, item.model_id)
    view["print_position_label"] = catalog.print_position_label(
        item.type_id, item.kind_id, item.print_position_id
    )
    for method, method_view in zip(item.methods, view["methods"]):
        method_view["method_name"] = catalog.method_name(item.type_id, item.kind_id, method.method_id)
    return view


async def _team_ledger(
    quote_id: str, team_id: str, store: QuoteStore, catalog: CatalogTree
) -> PersistentQuoteLedger:
    await get_team_quote(quote_id, team_id, store)
    return await PersistentQuoteLedger.load(store, quote_id, catalog)


# ─── Quotes ──────────────────────────────────────────────────────────────────

@router.post("", status_code=201)
async def create_quote_route(
    req: QuoteCreateRequest,
    team_id: str = Depends(get_team_id),
    store: QuoteStore = Depends(get_store),
):
    quote = await create_quote(
        store,
        team_id,
        customer_id=req.customer_id,
        currency=req.currency,
        title=req.title,
        comment=req.comment,
        deadline_at=req.deadline_at,
        deadline_note=req.deadline_note,
        created_by=req.created_by,
    )
    return quote.model_dump()


@router.get("")
async def list_quotes(
    status: Optional[str] = None,
    search: Optional[str] = Query(None, description="Matches title, comment or customer id"),
    team_id: str = Depends(get_team_id),
    store: QuoteStore = Depends(get_store),
):
    status_value = parse_status(status).value if status else None
    quotes = await store.list_quotes(team_id, status_value, search)
    return {"total": len(quotes), "quotes": [q.model_dump() for q in quotes]}


@router.get("/{quote_id}")
async def get_quote(
    quote_id: str,
    discount: float = Query(0.0, description="Discount percent applied to the subtotal"),
    tax: float = Query(0.0, description="Tax percent applied after the discount"),
    team_id: str = Depends(get_team_id),
    store: QuoteStore = Depends(get_store),
    catalog: CatalogTree = Depends(get_catalog),
):
    quote = await get_team_quote(quote_id, team_id, store)
    ledger = await PersistentQuoteLedger.load(store, quote_id, catalog)
    return {
        "quote": quote.model_dump(),
        "items": [_item_view(item, catalog) for item in ledger.items],
        "totals": ledger.totals(discount, tax).model_dump(),
    }


@router.delete("/{quote_id}")
async def delete_quote_route(
    quote_id: str,
    team_id: str = Depends(get_team_id),
    store: QuoteStore = Depends(get_store),
):
    await get_team_quote(quote_id, team_id, store)
    await delete_quote(store, quote_id)
    return {"deleted": quote_id}


# ─── Items ───────────────────────────────────────────────────────────────────
# Item routes load the catalog only when the item is priced against it.

@router.post("/{quote_id}/items", status_code=201)
async def add_item(
    quote_id: str,
    draft: QuoteItemDraft,
    team_id: str = Depends(get_team_id),
    store: QuoteStore = Depends(get_store),
):
    await get_team_quote(quote_id, team_id, store)
    catalog = await catalog_when(draft.is_catalog_mode, team_id, store)
    ledger = await PersistentQuoteLedger.load(store, quote_id, catalog)
    item = await ledger.add_item(draft)
    return _item_view(item, catalog)


@router.put("/{quote_id}/items/order")
async def reorder_items(
    quote_id: str,
    req: ReorderRequest,
    team_id: str = Depends(get_team_id),
    store: QuoteStore = Depends(get_store),
):
    ledger = await _team_ledger(quote_id, team_id, store, CatalogTree.empty())
    items = await ledger.reorder(req.item_ids)
    return {"items": [{"id": item.id, "position": item.position} for item in items]}


@router.patch("/{quote_id}/items/{item_id}")
async def update_item(
    quote_id: str,
    item_id: str,
    patch: QuoteItemPatch,
    team_id: str = Depends(get_team_id),
    store: QuoteStore = Depends(get_store),
):
    ledger = await _team_ledger(quote_id, team_id, store, CatalogTree.empty())
    needed = ledger.patch_needs_catalog(item_id, patch)
    ledger.catalog = await catalog_when(needed, team_id, store)
    item = await ledger.update_item(item_id, patch)
    return _item_view(item, ledger.catalog)


@router.delete("/{quote_id}/items/{item_id}")
async def delete_item(
    quote_id: str,
    item_id: str,
    team_id: str = Depends(get_team_id),
    store: QuoteStore = Depends(get_store),
):
    ledger = await _team_ledger(quote_id, team_id, store, CatalogTree.empty())
    await ledger.delete_item(item_id)
    return {"deleted": item_id, "remaining": len(ledger.items)}


# ─── Status ──────────────────────────────────────────────────────────────────

@router.post("/{quote_id}/status")
async def change_status(
    quote_id: str,
    req: StatusChangeRequest,
    team_id: str = Depends(get_team_id),
    store: QuoteStore = Depends(get_store),
):
    await get_team_quote(quote_id, team_id, store)
    quote = await set_status(store, quote_id, req.status, req.note, changed_by=req.changed_by)
    return quote.model_dump()


@router.get("/{quote_id}/history")
async def get_status_history(
    quote_id: str,
    team_id: str = Depends(get_team_id),
    store: QuoteStore = Depends(get_store),
):
    await get_team_quote(quote_id, team_id, store)
    entries = await list_status_history(store, quote_id)
    return {"quote_id": quote_id, "history": [e.model_dump() for e in entries]}
