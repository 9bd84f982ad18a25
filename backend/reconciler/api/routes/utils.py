"""Utility endpoints"""
from fastapi import APIRouter

router = APIRouter(prefix="/utils", tags=["utils"])


@router.get("/health-check/")
async def health_check() -> bool:
    """
    Liveness probe for load balancers and orchestrators

    Request path: GET /api/v1/utils/health-check/
    """
    return True
