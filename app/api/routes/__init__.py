"""API routes."""

from fastapi import APIRouter

from app.api.routes import whatsapp_webhooks

api_router = APIRouter()

# Public routes (authenticated by webhook signature)
api_router.include_router(whatsapp_webhooks.router, prefix="/whatsapp", tags=["whatsapp-webhooks"])
