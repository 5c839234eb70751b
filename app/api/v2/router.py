from fastapi import APIRouter
from app.api.v2 import (
    planning,
    visits,
    contracts,
    directory,
    websocket,
)

api_router = APIRouter()

# Include all v2 routers
api_router.include_router(planning.router, prefix="/planning", tags=["planning"])
api_router.include_router(visits.router, prefix="/visits", tags=["visits"])
api_router.include_router(contracts.router, prefix="/contracts", tags=["contracts"])
api_router.include_router(directory.companies_router, prefix="/companies", tags=["companies"])
api_router.include_router(directory.branches_router, prefix="/branches", tags=["branches"])
api_router.include_router(websocket.router, tags=["websocket"])
