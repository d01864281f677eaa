"""API router initialization"""
from fastapi import APIRouter
from alertbridge.api.routes import health, webhooks

api_router = APIRouter()

api_router.include_router(health.router, tags=["health"])
api_router.include_router(webhooks.router, prefix="/webhook", tags=["webhook"])
