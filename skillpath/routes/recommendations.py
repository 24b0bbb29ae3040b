"""
skillpath/routes/recommendations.py
Recommendation endpoints
"""
from typing import Dict, Any, Optional
from fastapi import APIRouter, Depends, Query

from skillpath.errors import ErrorResponse
from skillpath.orm.recommendation import ResourceType
from skillpath.routes.deps import get_current_user_id, get_recommendation_engine
from skillpath.schemas.recommendation import CompleteRecommendationRequest
from skillpath.services.recommendation_engine import RecommendationEngine


router = APIRouter(
    prefix="/api/recommendations",
    tags=["Recommendations"],
    responses={404: {"model": ErrorResponse}}
)


@router.get("")
async def get_recommendations(
    skill_id: Optional[int] = Query(None, gt=0),
    resource_type: Optional[ResourceType] = Query(None, alias="type"),
    limit: Optional[int] = Query(None, ge=1, le=20),
    user_id: int = Depends(get_current_user_id),
    engine: RecommendationEngine = Depends(get_recommendation_engine),
) -> Dict[str, Any]:
    """
    Personalized recommendations for the caller's skill gaps.

    Query params:
    - skill_id: only this skill
    - type: resource type filter; personalized requests an AI resource
    - limit: maximum number of skill gaps considered
    """
    result = await engine.get_recommendations(user_id, skill_id=skill_id, resource_type=resource_type, limit=limit)
    return {
        "success": True,
        **result.model_dump(mode="json")
    }


@router.get("/history")
async def get_recommendation_history(
    skill_id: Optional[int] = Query(None, gt=0),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user_id: int = Depends(get_current_user_id),
    engine: RecommendationEngine = Depends(get_recommendation_engine),
) -> Dict[str, Any]:
    offset = (page - 1) * limit
    entries = await engine.get_recommendation_history(user_id, skill_id=skill_id, limit=limit, offset=offset)
    return {
        "success": True,
        "history": entries,
        "page": page,
        "limit": limit
    }


@router.get("/ai-metrics")
async def get_ai_metrics(
    user_id: int = Depends(get_current_user_id),
    engine: RecommendationEngine = Depends(get_recommendation_engine),
) -> Dict[str, Any]:
    return {
        "success": True,
        "metrics": engine.get_ai_metrics()
    }


@router.post("/{history_id}/complete")
async def complete_recommendation(
    history_id: int,
    body: Optional[CompleteRecommendationRequest] = None,
    user_id: int = Depends(get_current_user_id),
    engine: RecommendationEngine = Depends(get_recommendation_engine),
) -> Dict[str, Any]:
    entry = await engine.mark_recommendation_completed(
        user_id, history_id, was_helpful=body.was_helpful if body else None
    )
    return {
        "success": True,
        "recommendation": entry
    }
