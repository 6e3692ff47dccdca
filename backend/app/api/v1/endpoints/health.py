"""Health check endpoint."""

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from app.deps import get_db, get_evaluation_state

router = APIRouter()


@router.get("/health")
async def health_check(db: AsyncSession = Depends(get_db)) -> dict:
    """
    Health check endpoint.

    Verifies that the API is running, the database is accessible and the
    audit ledger is accepting appends.

    Returns:
        dict: Health status with API, database and ledger status
    """
    # Check database connectivity
    try:
        await db.execute(text("SELECT 1"))
        db_status = "healthy"
    except Exception as e:
        db_status = f"unhealthy: {str(e)}"

    try:
        halted = await get_evaluation_state().ledger.guard.refresh()
        ledger_status = "halted" if halted else "healthy"
    except Exception as e:
        ledger_status = f"unknown: {str(e)}"

    healthy = db_status == "healthy" and ledger_status == "healthy"
    return {
        "status": "healthy" if healthy else "degraded",
        "api": "healthy",
        "database": db_status,
        "audit_ledger": ledger_status,
    }
