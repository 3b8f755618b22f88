"""
Price Resolver — unit price for a line item.

Two modes:
  - manual:  unit_price = provided price (must be >= 0)
  - catalog: unit_price = max(0, tier_price(kind, model, qty) + Σ method_price × count)

Unit prices are rounded to MONEY_SCALE decimals, the scale of the money columns,
so a persisted line total always equals quantity × stored unit price.

Pure functions: the CatalogTree is passed in explicitly and nothing is read
from module state, the clock, or randomness.
"""
from typing import Iterable, Optional

from quotedesk.models.quote_schema import MethodSelection, QuoteItemDraft
from quotedesk.services.catalog_engine import CatalogTree
from quotedesk.services.errors import InvalidMethodError, InvalidPriceError, InvalidQuantityError

MONEY_SCALE = 2


def round_money(value: float) -> float:
    return round(value, MONEY_SCALE)


def validate_quantity(quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise InvalidQuantityError(quantity)
    return quantity


def resolve_manual_price(price) -> float:
    if price is None:
        return 0.0
    value = float(price)
    if value < 0 or value != value:  # NaN compares unequal to itself
        raise InvalidPriceError(price)
    return round_money(value)


def validate_manual_selections(selections: Iterable[MethodSelection]) -> None:
    """Methods only price against a catalog model; a manual item carries none."""
    selections = list(selections)
    if selections:
        raise InvalidMethodError(selections[0].method_id, "methods require a catalog model")


def resolve_catalog_price(
    catalog: CatalogTree,
    kind_id: Optional[str],
    model_id: Optional[str],
    quantity: int,
    selections: Iterable[MethodSelection] = (),
) -> float:
    validate_quantity(quantity)
    methods_total = 0.0
    for selection in selections:
        if selection.count < 1:
            raise InvalidMethodError(selection.method_id, f"count must be >= 1, got {selection.count}")
        if not catalog.method_allowed(kind_id, model_id, selection.method_id):
            raise InvalidMethodError(
                selection.method_id, f"not offered for kind {kind_id} / model {model_id}"
            )
        methods_total += catalog.method_price(kind_id, selection.method_id) * selection.count

    base = catalog.resolve_tier_price(kind_id, model_id, quantity)
    return round_money(max(0.0, base + methods_total))


def resolve_unit_price(catalog: CatalogTree, draft: QuoteItemDraft) -> float:
    """Dispatch on the draft's pricing mode."""
    if draft.is_catalog_mode:
        return resolve_catalog_price(
            catalog, draft.kind_id, draft.model_id, draft.quantity, draft.methods
        )
    validate_quantity(draft.quantity)
    validate_manual_selections(draft.methods)
    return resolve_manual_price(draft.manual_price)
