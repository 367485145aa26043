from fastapi import APIRouter

from microgrid.api.v1.endpoints import communities, microgrid, trading

api_router = APIRouter()

# Live snapshot, reset and membership
api_router.include_router(microgrid.router, prefix="/microgrid", tags=["microgrid"])

# Peer-to-peer energy trades
api_router.include_router(trading.router, prefix="/microgrid/trading", tags=["trading"])

# Community registry
api_router.include_router(communities.router, prefix="/microgrid/communities", tags=["communities"])
