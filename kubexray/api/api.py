# kubexray/api/api.py
from fastapi import APIRouter
from kubexray.api.endpoints import health, webhook

api_router = APIRouter()

# The scanning service posts to the listener root
api_router.include_router(webhook.router, tags=["Webhook"])
api_router.include_router(health.router, tags=["Health"])
