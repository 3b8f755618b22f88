"""
conftest.py — Shared pytest fixtures for the Quotedesk backend test suite.

Pure engine tests use the in-memory ``sample_catalog``. Store and API tests
use a throwaway SQLite file (aiosqlite) per test; coroutines are driven with
``asyncio.run`` so no async pytest plugin is needed.

Import-path bootstrapping:
    The ``backend/`` directory is inserted into sys.path so that all
    ``quotedesk.*`` imports resolve correctly regardless of where pytest is invoked.
"""

import sys
import os
import uuid
import asyncio
from types import SimpleNamespace
import pytest

# ---------------------------------------------------------------------------
# Ensure ``backend/`` is on the import path before any quotedesk imports occur.
# ---------------------------------------------------------------------------
_BACKEND_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _BACKEND_DIR not in sys.path:
    sys.path.insert(0, _BACKEND_DIR)


TEAM_ID = "team-a"
OTHER_TEAM_ID = "team-b"


def _id() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Catalog fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(scope="session")
def ids():
    """
    Stable ids for the sample catalog.

    Apparel (type)
      └─ T-Shirts (kind)
           ├─ Classic Tee  base 120, tiers 1–9 → 100, 10+ → 80,
           │               linked methods: Screen print, Embroidery
           ├─ Basic Tee    base 50, no tiers, no linked methods
           ├─ methods: Screen print 10, Embroidery 5, Engraving 7
           └─ print positions: Front (1), Back (2)
    Bags (type, no sort order)
      └─ Tote bags (kind) — method Patch 3, model Canvas Tote 40
    """
    return SimpleNamespace(
        apparel=_id(), bags=_id(),
        tshirts=_id(), totes=_id(),
        classic=_id(), basic=_id(), canvas=_id(),
        tier_small=_id(), tier_bulk=_id(),
        screen=_id(), embroidery=_id(), engraving=_id(), patch=_id(),
        front=_id(), back=_id(),
        other_type=_id(),
    )


@pytest.fixture(scope="session")
def catalog_rows(ids):
    """Flat table rows keyed by table name, shaped like QuoteStore.fetch_catalog_rows output."""
    return {
        "catalog_types": [
            {"id": ids.bags, "team_id": TEAM_ID, "name": "Bags", "sort_order": None},
            {"id": ids.apparel, "team_id": TEAM_ID, "name": "Apparel", "sort_order": 1},
            {"id": ids.other_type, "team_id": OTHER_TEAM_ID, "name": "Mugs", "sort_order": 1},
        ],
        "catalog_kinds": [
            {"id": ids.tshirts, "team_id": TEAM_ID, "type_id": ids.apparel, "name": "T-Shirts", "sort_order": 1},
            {"id": ids.totes, "team_id": TEAM_ID, "type_id": ids.bags, "name": "Tote bags", "sort_order": None},
        ],
        "catalog_models": [
            {"id": ids.classic, "team_id": TEAM_ID, "kind_id": ids.tshirts, "name": "Classic Tee",
             "price": 120.0, "image_url": "https://cdn.example.com/classic.png"},
            {"id": ids.basic, "team_id": TEAM_ID, "kind_id": ids.tshirts, "name": "Basic Tee",
             "price": 50.0, "image_url": None},
            {"id": ids.canvas, "team_id": TEAM_ID, "kind_id": ids.totes, "name": "Canvas Tote",
             "price": 40.0, "image_url": None},
        ],
        "catalog_price_tiers": [
            {"id": ids.tier_bulk, "model_id": ids.classic, "min_qty": 10, "max_qty": None, "price": 80.0},
            {"id": ids.tier_small, "model_id": ids.classic, "min_qty": 1, "max_qty": 9, "price": 100.0},
        ],
        "catalog_methods": [
            {"id": ids.screen, "team_id": TEAM_ID, "kind_id": ids.tshirts, "name": "Screen print", "price": 10.0},
            {"id": ids.embroidery, "team_id": TEAM_ID, "kind_id": ids.tshirts, "name": "Embroidery", "price": 5.0},
            {"id": ids.engraving, "team_id": TEAM_ID, "kind_id": ids.tshirts, "name": "Engraving", "price": 7.0},
            {"id": ids.patch, "team_id": TEAM_ID, "kind_id": ids.totes, "name": "Patch", "price": 3.0},
        ],
        "catalog_model_methods": [
            {"model_id": ids.classic, "method_id": ids.screen},
            {"model_id": ids.classic, "method_id": ids.embroidery},
        ],
        "catalog_print_positions": [
            {"id": ids.back, "kind_id": ids.tshirts, "label": "Back", "sort_order": 2},
            {"id": ids.front, "kind_id": ids.tshirts, "label": "Front", "sort_order": 1},
        ],
    }


@pytest.fixture(scope="session")
def sample_catalog(catalog_rows):
    """CatalogTree for TEAM_ID built straight from the rows (no store)."""
    from quotedesk.services.catalog_engine import build_catalog_tree

    def team_rows(table):
        return [r for r in catalog_rows[table] if r.get("team_id", TEAM_ID) == TEAM_ID]

    return build_catalog_tree(
        types=team_rows("catalog_types"),
        kinds=team_rows("catalog_kinds"),
        models=team_rows("catalog_models"),
        tiers=catalog_rows["catalog_price_tiers"],
        methods=team_rows("catalog_methods"),
        model_methods=catalog_rows["catalog_model_methods"],
        print_positions=catalog_rows["catalog_print_positions"],
    )


# ---------------------------------------------------------------------------
# Database fixtures (SQLite via aiosqlite)
# ---------------------------------------------------------------------------

@pytest.fixture
def db_engine(tmp_path):
    from sqlalchemy.pool import NullPool
    from quotedesk.db import create_tables, make_engine

    engine = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'quotedesk.db'}", poolclass=NullPool)
    asyncio.run(create_tables(engine))
    yield engine
    asyncio.run(engine.dispose())


@pytest.fixture
def session_factory(db_engine, catalog_rows):
    """Session factory over a database pre-seeded with the sample catalog."""
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
    from quotedesk.models.orm_models import (
        CatalogKind,
        CatalogMethod,
        CatalogModel,
        CatalogModelMethod,
        CatalogPriceTier,
        CatalogPrintPosition,
        CatalogType,
    )

    factory = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)
    tables = [
        (CatalogType, "catalog_types"),
        (CatalogKind, "catalog_kinds"),
        (CatalogModel, "catalog_models"),
        (CatalogPriceTier, "catalog_price_tiers"),
        (CatalogMethod, "catalog_methods"),
        (CatalogModelMethod, "catalog_model_methods"),
        (CatalogPrintPosition, "catalog_print_positions"),
    ]

    async def seed():
        async with factory() as session:
            for orm_cls, table in tables:
                session.add_all(orm_cls(**row) for row in catalog_rows[table])
                await session.flush()
            await session.commit()

    asyncio.run(seed())
    return factory


@pytest.fixture
def run_with_store(session_factory):
    """
    Run ``scenario(store)`` to completion in a fresh session and return its result.
    """
    from quotedesk.services.quote_store import QuoteStore

    def _run(scenario):
        async def _main():
            async with session_factory() as session:
                return await scenario(QuoteStore(session))
        return asyncio.run(_main())

    return _run
