from fastapi import APIRouter

from src.theaterpos.api.v1 import agents, auth, orders, stream

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(auth.router)
api_router.include_router(orders.router)
api_router.include_router(stream.router)
api_router.include_router(agents.router)
