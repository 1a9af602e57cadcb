from fastapi import APIRouter

from mapping_service.api.v1.endpoints import court_sentencing, mappings, prisoners

# Create API router
api_router = APIRouter()

# The generic "/mapping/{kind}" routes go last so the fixed paths win
api_router.include_router(
    court_sentencing.router, prefix="/mapping/court-sentencing", tags=["Court Sentencing"]
)
api_router.include_router(prisoners.router, prefix="/mapping/prisoners", tags=["Prisoners"])
api_router.include_router(mappings.router, prefix="/mapping", tags=["Mappings"])

__all__ = ["api_router"]
