"""Evaluation endpoints for ranking lender programs against a scenario."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Response, status

from app.deps import get_evaluation_service
from app.models.schemas.evaluation import (
    ErrorResponse,
    EvaluationRequest,
    MatchResultResponse,
)
from app.services.evaluation_service import EvaluationService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "",
    status_code=status.HTTP_200_OK,
    summary="Evaluate a scenario",
    description="Rank lender programs for a scenario with tier, score and rationale",
    responses={
        200: {"model": list[MatchResultResponse]},
        404: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
        429: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
)
async def evaluate_scenario(
    request: EvaluationRequest,
    service: Annotated[EvaluationService, Depends(get_evaluation_service)],
) -> Response:
    """
    Evaluate a scenario against the program catalog.

    The body is returned exactly as computed (or as cached), so repeated
    requests within the cache TTL are byte-identical.
    """
    body = await service.evaluate(request)
    return Response(content=body, media_type="application/json")
