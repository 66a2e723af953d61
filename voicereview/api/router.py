"""
Top-level API router.
Combines all sub-routers into a single router.
"""

from fastapi import APIRouter

from voicereview.api.health import router as health_router
from voicereview.api.reviews import router as reviews_router
from voicereview.api.sentences import router as sentences_router
from voicereview.api.audit import router as audit_router

api_router = APIRouter()

api_router.include_router(health_router)
api_router.include_router(reviews_router)
api_router.include_router(sentences_router)
api_router.include_router(audit_router)
