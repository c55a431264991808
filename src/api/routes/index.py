from fastapi import APIRouter, Depends, HTTPException
from src.api.dependencies.auth import verify_token
from src.api.dependencies.services import get_container
from src.core.container import ServiceContainer
from src.core.models.documents import IndexReport
from src.utils.errors import AppError, SourceUnavailable
from src.utils.logging import logger

router = APIRouter(prefix="/index")

@router.post("/sync", response_model=IndexReport)
async def sync_endpoint(
    authenticated: bool = Depends(verify_token),
    container: ServiceContainer = Depends(get_container)
):
    """Run an on-demand sync. Waits for a scheduled run in progress to finish first."""
    try:
        return await container.indexer.sync(container.source)
    except SourceUnavailable as e:
        logger.error(f"Sync failed: {e}")
        raise HTTPException(status_code=503, detail=str(e))
    except AppError as e:
        logger.error(f"Sync failed: {e}")
        raise HTTPException(status_code=e.status_code, detail=str(e))

@router.get("/status", response_model=IndexReport)
async def status_endpoint(
    authenticated: bool = Depends(verify_token),
    container: ServiceContainer = Depends(get_container)
):
    if container.indexer.last_report is None:
        raise HTTPException(status_code=404, detail="No sync has run yet")
    return container.indexer.last_report
