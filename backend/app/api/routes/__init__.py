from fastapi import APIRouter

from app.api.routes import analytics, decision, health


api_router = APIRouter()
api_router.include_router(health.router)
api_router.include_router(decision.router)
api_router.include_router(analytics.router)
