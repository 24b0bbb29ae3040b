"""
skillpath/routes/deps.py
Request-scoped dependencies shared by the routers
"""
from fastapi import Header, Request

from skillpath.errors import BadRequestError, ErrorCode
from skillpath.services.recommendation_engine import RecommendationEngine
from skillpath.services.session_engine import SessionEngine


async def get_current_user_id(x_user_id: str = Header(..., alias="X-User-Id")) -> int:
    """Caller identity as forwarded by the authenticating gateway."""
    try:
        user_id = int(x_user_id)
    except ValueError:
        raise BadRequestError("X-User-Id must be a positive integer", code=ErrorCode.INVALID_INPUT)
    if user_id <= 0:
        raise BadRequestError("X-User-Id must be a positive integer", code=ErrorCode.INVALID_INPUT)
    return user_id


def get_session_engine(request: Request) -> SessionEngine:
    return request.app.state.session_engine


def get_recommendation_engine(request: Request) -> RecommendationEngine:
    return request.app.state.recommendation_engine
