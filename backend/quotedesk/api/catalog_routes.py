"""Catalog routes — read-only catalog tree, model audit and CSV export."""
import logging
from fastapi import APIRouter, Depends
from fastapi.responses import Response
from quotedesk.api.deps import get_catalog, get_team_id
from quotedesk.services.catalog_audit import audit_catalog, export_catalog_csv
from quotedesk.services.catalog_engine import CatalogTree

router = APIRouter(prefix="/api/catalog", tags=["Catalog"])
logger = logging.getLogger("quotedesk-api")


@router.get("")
async def get_catalog_tree(
    team_id: str = Depends(get_team_id),
    catalog: CatalogTree = Depends(get_catalog),
):
    return {"team_id": team_id, "types": catalog.as_dict()}


@router.get("/audit")
async def get_catalog_audit(catalog: CatalogTree = Depends(get_catalog)):
    """Validation warnings per model. Warnings never block pricing."""
    report = audit_catalog(catalog)
    return {
        "total_models": len(report),
        "with_warnings": sum(1 for r in report if not r["is_valid"]),
        "models": report,
    }


@router.get("/export.csv")
async def export_catalog(
    team_id: str = Depends(get_team_id),
    catalog: CatalogTree = Depends(get_catalog),
):
    csv_text = export_catalog_csv(catalog)
    logger.info(f"Catalog CSV exported for team {team_id}", extra={"team_id": team_id})
    return Response(
        content=csv_text.encode("utf-8"),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": 'attachment; filename="catalog.csv"'},
    )
