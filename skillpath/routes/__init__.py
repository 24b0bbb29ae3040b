"""
skillpath/routes/__init__.py
Route registration
"""
from fastapi import APIRouter
from skillpath.routes import assessment, recommendations

router = APIRouter()

router.include_router(assessment.router)
router.include_router(recommendations.router)
