"""
Catalog audit helpers: model validation warnings, price ranges, tier
discounts, next-tier suggestion and CSV export.

These never affect resolution; a model that fails validation still prices.
"""
import io
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pandas as pd

from quotedesk.services.catalog_engine import CatalogTree, ModelNode, PriceTierNode

logger = logging.getLogger("quotedesk-catalog")

WARN_NAME_REQUIRED = "Model name is required"
WARN_NO_METHODS = "No decoration methods linked to the model"
WARN_INVALID_TIERS = "Tier prices should decrease as quantity grows"

CSV_COLUMNS = ["type", "kind", "model", "price_min", "price_max", "methods", "image_url"]


@dataclass
class ValidationResult:
    is_valid: bool
    warnings: List[str] = field(default_factory=list)


def validate_model(model: ModelNode) -> ValidationResult:
    warnings: List[str] = []
    if not model.name.strip():
        warnings.append(WARN_NAME_REQUIRED)
    if not model.method_ids:
        warnings.append(WARN_NO_METHODS)
    tiers = model.tiers
    for prev, current in zip(tiers, tiers[1:]):
        if current.price >= prev.price:
            warnings.append(WARN_INVALID_TIERS)
            break
    return ValidationResult(is_valid=not warnings, warnings=warnings)


def price_range(model: ModelNode) -> Tuple[float, float]:
    if model.tiers:
        prices = [tier.price for tier in model.tiers]
        return min(prices), max(prices)
    return model.base_price, model.base_price


def tier_discount_percent(model: ModelNode) -> int:
    """Discount of the last tier relative to the first, in whole percent."""
    if len(model.tiers) < 2:
        return 0
    first = model.tiers[0].price
    last = model.tiers[-1].price
    if first == 0:
        return 0
    return round((1 - last / first) * 100)


def next_tier(tiers: Sequence[PriceTierNode], base_price: float, tier_id: str = "") -> PriceTierNode:
    """Open-ended tier starting right after the last one (or at 1)."""
    if not tiers:
        next_min = 1
    else:
        last = tiers[-1]
        next_min = last.max_qty + 1 if last.max_qty else last.min_qty + 1
    return PriceTierNode(id=tier_id, min_qty=next_min, max_qty=None, price=base_price)


def audit_catalog(tree: CatalogTree) -> List[Dict[str, Any]]:
    """Validation result for every model, with its type/kind context."""
    report = []
    for type_node in tree.types.values():
        for kind in type_node.kinds.values():
            for model in kind.models.values():
                result = validate_model(model)
                low, high = price_range(model)
                suggestion = next_tier(model.tiers, model.base_price)
                report.append({
                    "type_id": type_node.id,
                    "type_name": type_node.name,
                    "kind_id": kind.id,
                    "kind_name": kind.name,
                    "model_id": model.id,
                    "model_name": model.name,
                    "is_valid": result.is_valid,
                    "warnings": result.warnings,
                    "price_min": low,
                    "price_max": high,
                    "tier_discount_pct": tier_discount_percent(model),
                    "next_tier": {
                        "min_qty": suggestion.min_qty,
                        "max_qty": suggestion.max_qty,
                        "price": suggestion.price,
                    },
                })
    invalid = sum(1 for r in report if not r["is_valid"])
    if invalid:
        logger.info(f"Catalog audit: {invalid}/{len(report)} models with warnings")
    return report


def catalog_frame(tree: CatalogTree) -> pd.DataFrame:
    rows = []
    for type_node in tree.types.values():
        for kind in type_node.kinds.values():
            for model in kind.models.values():
                low, high = price_range(model)
                method_names = [
                    kind.methods[mid].name if mid in kind.methods else mid
                    for mid in model.method_ids
                ]
                rows.append({
                    "type": type_node.name,
                    "kind": kind.name,
                    "model": model.name,
                    "price_min": low,
                    "price_max": high,
                    "methods": ", ".join(method_names),
                    "image_url": model.image_url or "",
                })
    return pd.DataFrame(rows, columns=CSV_COLUMNS)


def export_catalog_csv(tree: CatalogTree, path: Optional[str] = None) -> str:
    """CSV with a UTF-8 BOM so spreadsheet apps detect the encoding."""
    buffer = io.StringIO()
    catalog_frame(tree).to_csv(buffer, index=False)
    text = "\ufeff" + buffer.getvalue()
    if path:
        with open(path, "w", encoding="utf-8", newline="") as f:
            f.write(text)
    return text
