from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from src.api.dependencies.services import get_container
from src.core.container import ServiceContainer

router = APIRouter()

@router.get("/health")
async def health_endpoint(container: ServiceContainer = Depends(get_container)):
    database_ok = True
    if container.db_service is not None:
        database_ok = await container.db_service.check_health()

    body = {
        "status": "ok" if database_ok else "degraded",
        "database": database_ok,
        "indexing": container.indexer.running,
    }
    return JSONResponse(status_code=200 if database_ok else 503, content=body)
