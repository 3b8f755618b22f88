"""FastAPI dependency injection — tenant scoping, store and catalog access."""
from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from quotedesk.db import get_db
from quotedesk.models.quote_schema import Quote
from quotedesk.services.catalog_engine import CatalogTree, load_catalog
from quotedesk.services.errors import QuoteNotFoundError
from quotedesk.services.quote_store import QuoteStore


def get_team_id(x_team_id: str = Header(default="")) -> str:
    """Team scoping comes from the calling application; identity is not checked here."""
    team_id = x_team_id.strip()
    if not team_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="X-Team-Id header required")
    return team_id


def get_store(db: AsyncSession = Depends(get_db)) -> QuoteStore:
    return QuoteStore(db)


async def get_catalog(
    team_id: str = Depends(get_team_id),
    store: QuoteStore = Depends(get_store),
) -> CatalogTree:
    return await load_catalog(store, team_id)


async def get_team_quote(quote_id: str, team_id: str, store: QuoteStore) -> Quote:
    """Quotes of another team are reported as missing."""
    quote = await store.get_quote(quote_id)
    if quote.team_id != team_id:
        raise QuoteNotFoundError(quote_id)
    return quote


async def catalog_when(needed: bool, team_id: str, store: QuoteStore) -> CatalogTree:
    """Load the team catalog only for work that prices or names against it."""
    if not needed:
        return CatalogTree.empty()
    return await load_catalog(store, team_id)
