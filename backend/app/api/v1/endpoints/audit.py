"""Audit ledger endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends

from app.deps import get_evaluation_service
from app.models.schemas.evaluation import ChainVerificationResponse
from app.services.evaluation_service import EvaluationService

router = APIRouter()


@router.get(
    "/verify",
    response_model=ChainVerificationResponse,
    summary="Verify the audit chain",
    description="Recompute every audit hash and report invalid sequences",
)
async def verify_audit_chain(
    service: Annotated[EvaluationService, Depends(get_evaluation_service)],
) -> ChainVerificationResponse:
    """
    Verify the audit ledger.

    A broken chain halts further evaluations in every worker sharing the ledger.
    """
    report = await service.verify_audit_chain()
    return ChainVerificationResponse(
        valid=report.valid,
        records_checked=report.records_checked,
        invalid_sequences=report.invalid_sequences,
        first_invalid=report.first_invalid,
        halted=await service.ledger_halted(),
    )
