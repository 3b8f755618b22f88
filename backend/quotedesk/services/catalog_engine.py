"""
Catalog Index — immutable, id-indexed view of a team's product catalog.

Hierarchy: type → kind → {models, methods, print positions}, model → price tiers.
Every level is a read-only dict keyed by id so lookups are O(1); a flat
kind index lets the pricing path skip the type level entirely.
"""
import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from quotedesk.services.errors import CatalogLoadError

logger = logging.getLogger("quotedesk-catalog")

# Order matters only for error reporting: the first failing table is named.
CATALOG_TABLES: Tuple[str, ...] = (
    "catalog_types",
    "catalog_kinds",
    "catalog_models",
    "catalog_price_tiers",
    "catalog_methods",
    "catalog_model_methods",
    "catalog_print_positions",
)

Row = Mapping[str, Any]


@dataclass(frozen=True)
class PriceTierNode:
    id: str
    min_qty: int
    max_qty: Optional[int]
    price: float

    def contains(self, quantity: int) -> bool:
        if quantity < self.min_qty:
            return False
        return self.max_qty is None or quantity <= self.max_qty


@dataclass(frozen=True)
class ModelNode:
    id: str
    kind_id: str
    name: str
    base_price: float = 0.0
    tiers: Tuple[PriceTierNode, ...] = ()
    method_ids: Tuple[str, ...] = ()
    image_url: Optional[str] = None


@dataclass(frozen=True)
class MethodNode:
    id: str
    kind_id: str
    name: str
    price: float = 0.0


@dataclass(frozen=True)
class PrintPositionNode:
    id: str
    kind_id: str
    label: str
    sort_order: Optional[int] = None


@dataclass(frozen=True)
class KindNode:
    id: str
    type_id: str
    name: str
    sort_order: Optional[int] = None
    models: Mapping[str, ModelNode] = field(default_factory=lambda: MappingProxyType({}))
    methods: Mapping[str, MethodNode] = field(default_factory=lambda: MappingProxyType({}))
    print_positions: Mapping[str, PrintPositionNode] = field(
        default_factory=lambda: MappingProxyType({})
    )


@dataclass(frozen=True)
class TypeNode:
    id: str
    name: str
    sort_order: Optional[int] = None
    kinds: Mapping[str, KindNode] = field(default_factory=lambda: MappingProxyType({}))


class CatalogTree:
    """
    Read-only catalog snapshot for one editing session.

    Name/label lookups take the full path (type, kind, ...) and return None
    when any id along it is unknown: ids may reference rows created after
    the snapshot was taken. Price lookups never fail either — unknown
    models/methods price at 0.
    """

    def __init__(self, types: Iterable[TypeNode] = ()):
        self._types: Mapping[str, TypeNode] = MappingProxyType({t.id: t for t in types})
        self._kinds: Mapping[str, KindNode] = MappingProxyType(
            {k.id: k for t in self._types.values() for k in t.kinds.values()}
        )

    @classmethod
    def empty(cls) -> "CatalogTree":
        return cls()

    @property
    def is_empty(self) -> bool:
        return not self._types

    @property
    def types(self) -> Mapping[str, TypeNode]:
        return self._types

    # ── Path lookups ─────────────────────────────────────────────────────────
    def _kind_in_type(self, type_id: Optional[str], kind_id: Optional[str]) -> Optional[KindNode]:
        type_node = self._types.get(type_id) if type_id is not None else None
        if type_node is None or kind_id is None:
            return None
        return type_node.kinds.get(kind_id)

    def kind(self, kind_id: Optional[str]) -> Optional[KindNode]:
        return self._kinds.get(kind_id) if kind_id is not None else None

    def model(self, kind_id: Optional[str], model_id: Optional[str]) -> Optional[ModelNode]:
        kind = self.kind(kind_id)
        if kind is None or model_id is None:
            return None
        return kind.models.get(model_id)

    def type_name(self, type_id: Optional[str]) -> Optional[str]:
        node = self._types.get(type_id) if type_id is not None else None
        return node.name if node else None

    def kind_name(self, type_id: Optional[str], kind_id: Optional[str]) -> Optional[str]:
        kind = self._kind_in_type(type_id, kind_id)
        return kind.name if kind else None

    def model_name(self, type_id, kind_id, model_id) -> Optional[str]:
        kind = self._kind_in_type(type_id, kind_id)
        model = kind.models.get(model_id) if kind and model_id is not None else None
        return model.name if model else None

    def model_image(self, type_id, kind_id, model_id) -> Optional[str]:
        kind = self._kind_in_type(type_id, kind_id)
        model = kind.models.get(model_id) if kind and model_id is not None else None
        return model.image_url if model else None

    def method_name(self, type_id, kind_id, method_id) -> Optional[str]:
        kind = self._kind_in_type(type_id, kind_id)
        method = kind.methods.get(method_id) if kind and method_id is not None else None
        return method.name if method else None

    def print_position_label(self, type_id, kind_id, position_id) -> Optional[str]:
        kind = self._kind_in_type(type_id, kind_id)
        pos = kind.print_positions.get(position_id) if kind and position_id is not None else None
        return pos.label if pos else None

    # ── Pricing lookups ──────────────────────────────────────────────────────
    def model_base_price(self, kind_id: Optional[str], model_id: Optional[str]) -> float:
        model = self.model(kind_id, model_id)
        return model.base_price if model else 0.0

    def resolve_tier_price(self, kind_id: Optional[str], model_id: Optional[str], quantity: int) -> float:
        """Price of the first tier containing ``quantity``, else the model's flat base price."""
        model = self.model(kind_id, model_id)
        if model is None:
            return 0.0
        for tier in model.tiers:
            if tier.contains(quantity):
                return tier.price
        return model.base_price

    def method_price(self, kind_id: Optional[str], method_id: Optional[str]) -> float:
        kind = self.kind(kind_id)
        method = kind.methods.get(method_id) if kind and method_id is not None else None
        return method.price if method else 0.0

    def method_allowed(self, kind_id: Optional[str], model_id: Optional[str], method_id: str) -> bool:
        """
        A method must belong to the kind. When the model declares method
        associations, the method must also be one of them.
        """
        kind = self.kind(kind_id)
        if kind is None or method_id not in kind.methods:
            return False
        model = kind.models.get(model_id) if model_id is not None else None
        if model is not None and model.method_ids:
            return method_id in model.method_ids
        return True

    def as_dict(self) -> List[Dict[str, Any]]:
        """Nested plain-dict rendering for API responses."""
        return [
            {
                "id": t.id,
                "name": t.name,
                "kinds": [
                    {
                        "id": k.id,
                        "name": k.name,
                        "models": [
                            {
                                "id": m.id,
                                "name": m.name,
                                "price": m.base_price,
                                "image_url": m.image_url,
                                "method_ids": list(m.method_ids),
                                "price_tiers": [
                                    {"id": tr.id, "min": tr.min_qty, "max": tr.max_qty, "price": tr.price}
                                    for tr in m.tiers
                                ],
                            }
                            for m in k.models.values()
                        ],
                        "methods": [
                            {"id": me.id, "name": me.name, "price": me.price}
                            for me in k.methods.values()
                        ],
                        "print_positions": [
                            {"id": p.id, "label": p.label, "sort_order": p.sort_order}
                            for p in k.print_positions.values()
                        ],
                    }
                    for k in t.kinds.values()
                ],
            }
            for t in self._types.values()
        ]


def _price(value) -> float:
    return float(value) if value is not None else 0.0


def _ordered(rows: Iterable[Row], label_key: str = "name") -> List[Row]:
    # sort_order first (missing last), then label
    return sorted(
        rows,
        key=lambda r: (r.get("sort_order") is None, r.get("sort_order") or 0, str(r.get(label_key) or "")),
    )


def _group(rows: Iterable[Row], key: str) -> Dict[str, List[Row]]:
    grouped: Dict[str, List[Row]] = {}
    for row in rows:
        grouped.setdefault(row[key], []).append(row)
    return grouped


def build_catalog_tree(
    types: Iterable[Row],
    kinds: Iterable[Row],
    models: Iterable[Row],
    tiers: Iterable[Row] = (),
    methods: Iterable[Row] = (),
    model_methods: Iterable[Row] = (),
    print_positions: Iterable[Row] = (),
) -> CatalogTree:
    """
    Assemble a CatalogTree from flat table rows (plain mappings, as returned
    by the store). Orphan rows whose parent id is absent are dropped.
    """
    method_ids_by_model: Dict[str, List[str]] = {}
    for row in model_methods:
        method_ids_by_model.setdefault(row["model_id"], []).append(row["method_id"])

    tiers_by_model: Dict[str, List[PriceTierNode]] = {}
    for row in sorted(tiers, key=lambda r: r["min_qty"]):
        tiers_by_model.setdefault(row["model_id"], []).append(
            PriceTierNode(
                id=row["id"],
                min_qty=int(row["min_qty"]),
                max_qty=int(row["max_qty"]) if row.get("max_qty") is not None else None,
                price=_price(row.get("price")),
            )
        )

    models_by_kind: Dict[str, Dict[str, ModelNode]] = {}
    for row in sorted(models, key=lambda r: str(r.get("name") or "")):
        models_by_kind.setdefault(row["kind_id"], {})[row["id"]] = ModelNode(
            id=row["id"],
            kind_id=row["kind_id"],
            name=row.get("name") or "",
            base_price=_price(row.get("price")),
            tiers=tuple(tiers_by_model.get(row["id"], ())),
            method_ids=tuple(method_ids_by_model.get(row["id"], ())),
            image_url=row.get("image_url"),
        )

    methods_by_kind: Dict[str, Dict[str, MethodNode]] = {}
    for row in sorted(methods, key=lambda r: str(r.get("name") or "")):
        methods_by_kind.setdefault(row["kind_id"], {})[row["id"]] = MethodNode(
            id=row["id"], kind_id=row["kind_id"], name=row.get("name") or "", price=_price(row.get("price"))
        )

    positions_by_kind: Dict[str, Dict[str, PrintPositionNode]] = {}
    for row in _ordered(print_positions, label_key="label"):
        positions_by_kind.setdefault(row["kind_id"], {})[row["id"]] = PrintPositionNode(
            id=row["id"], kind_id=row["kind_id"], label=row.get("label") or "", sort_order=row.get("sort_order")
        )

    kinds_by_type: Dict[str, Dict[str, KindNode]] = {}
    for row in _ordered(kinds):
        kinds_by_type.setdefault(row["type_id"], {})[row["id"]] = KindNode(
            id=row["id"],
            type_id=row["type_id"],
            name=row.get("name") or "",
            sort_order=row.get("sort_order"),
            models=MappingProxyType(models_by_kind.get(row["id"], {})),
            methods=MappingProxyType(methods_by_kind.get(row["id"], {})),
            print_positions=MappingProxyType(positions_by_kind.get(row["id"], {})),
        )

    return CatalogTree(
        TypeNode(
            id=row["id"],
            name=row.get("name") or "",
            sort_order=row.get("sort_order"),
            kinds=MappingProxyType(kinds_by_type.get(row["id"], {})),
        )
        for row in _ordered(types)
    )


async def load_catalog(store, team_id: str) -> CatalogTree:
    """
    Read every catalog table for ``team_id`` through ``store`` and build the tree.

    All-or-nothing: the first failing read raises CatalogLoadError and no
    partial tree escapes.
    """
    rows: Dict[str, List[Row]] = {}
    for table in CATALOG_TABLES:
        try:
            rows[table] = list(await store.fetch_catalog_rows(table, team_id))
        except Exception as e:
            logger.error(f"Catalog load failed for team {team_id} at {table}: {e}")
            raise CatalogLoadError(team_id, table, e) from e

    tree = build_catalog_tree(
        types=rows["catalog_types"],
        kinds=rows["catalog_kinds"],
        models=rows["catalog_models"],
        tiers=rows["catalog_price_tiers"],
        methods=rows["catalog_methods"],
        model_methods=rows["catalog_model_methods"],
        print_positions=rows["catalog_print_positions"],
    )
    logger.info(
        f"Catalog loaded for team {team_id}: {len(rows['catalog_types'])} types, "
        f"{len(rows['catalog_models'])} models, {len(rows['catalog_methods'])} methods"
    )
    return tree
