from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from trunkline.apps.api.deps import get_db
from trunkline.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from trunkline.apps.api.response import SuccessEnvelope

router = APIRouter(tags=["health"], responses=DEFAULT_ERROR_RESPONSES)


class HealthResponse(BaseModel):
    status: str
    database: str


# Allow legacy unwrapped responses while v1 middleware wraps them into envelopes.
@router.get("/health", response_model=SuccessEnvelope[HealthResponse] | HealthResponse)
async def health(db: AsyncSession = Depends(get_db)) -> HealthResponse:
    # A failed ping propagates to the database error handler as a 500.
    await db.execute(text("SELECT 1"))
    return HealthResponse(status="ok", database="ok")
