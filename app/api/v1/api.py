from fastapi import APIRouter

from app.api.v1.endpoints import credentials, orders, scheduler, sync

api_router = APIRouter()
api_router.include_router(sync.router, prefix="/sync", tags=["sync"])
api_router.include_router(scheduler.router, prefix="/scheduler", tags=["scheduler"])
api_router.include_router(orders.router, prefix="/orders", tags=["orders"])
api_router.include_router(credentials.router, prefix="/credentials", tags=["credentials"])
