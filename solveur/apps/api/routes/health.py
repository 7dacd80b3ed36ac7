from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from solveur.apps.api.deps import get_db
from solveur.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from solveur.apps.api.response import ApiModel, SuccessEnvelope, success_response
from solveur.core.config import get_settings
from solveur.services.telemetry import counters_snapshot, external_call_stats, p95_latency


logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"], responses=DEFAULT_ERROR_RESPONSES)

_TELEMETRY_WINDOW_S = 300


class ProviderStatus(ApiModel):
    embeddings: str
    vectors: str
    vectors_configured: bool
    llm: str
    openai_configured: bool


class HealthResponse(ApiModel):
    status: str
    database: str
    providers: ProviderStatus
    counters: dict[str, int]
    request_p95_ms: float | None = None
    integrations: dict[str, dict[str, float | int | None]] = {}


# Unversioned /health stays raw; /v1/health carries the envelope.
@router.get("/health", response_model=SuccessEnvelope[HealthResponse] | HealthResponse)
async def health(request: Request, db: AsyncSession = Depends(get_db)) -> dict:
    settings = get_settings()
    database = "ok"
    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.error("health_database_unreachable", exc_info=exc)
        database = "unavailable"

    vectors = request.app.state.vectors
    payload = HealthResponse(
        status="ok" if database == "ok" else "degraded",
        database=database,
        providers=ProviderStatus(
            embeddings=request.app.state.embedder.provider_name,
            vectors=vectors.backend_name,
            vectors_configured=vectors.configured,
            llm=getattr(request.app.state.completer, "name", "unknown"),
            openai_configured=bool(settings.openai_api_key),
        ),
        counters=counters_snapshot(),
        request_p95_ms=p95_latency(_TELEMETRY_WINDOW_S),
        integrations=external_call_stats(_TELEMETRY_WINDOW_S),
    )
    if database != "ok":
        # Load balancers only read the status code; the body is for operators.
        body = success_response(request=request, data=payload.model_dump(by_alias=True))
        return JSONResponse(status_code=503, content=body)
    return success_response(request=request, data=payload)
