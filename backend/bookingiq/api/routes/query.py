"""
Query API Routes (natural-language analytics)
"""
import asyncio

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request

from bookingiq.agents.base import build_text_service
from bookingiq.agents.orchestrator import QueryOrchestrator
from bookingiq.config import get_settings
from bookingiq.errors import DataStoreError, NarrativeUnavailableError
from bookingiq.schemas import ErrorResponse, QueryRequest, QueryResponse
from bookingiq.tools.booking_tools import SqlBookingStore

router = APIRouter()
logger = structlog.get_logger()


def get_query_orchestrator(request: Request) -> QueryOrchestrator:
    """Build the orchestrator on first use and keep it on the application state."""
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        settings = get_settings()
        try:
            service = build_text_service(settings)
        except ValueError as e:
            logger.error("Text generation service not configured", error=str(e))
            raise HTTPException(status_code=503, detail={"detail": str(e), "retryable": False})
        orchestrator = QueryOrchestrator.build(service, SqlBookingStore(), settings)
        request.app.state.orchestrator = orchestrator
    return orchestrator


@router.post(
    "",
    response_model=QueryResponse,
    responses={503: {"model": ErrorResponse}, 504: {"model": ErrorResponse}},
)
async def run_query(
    body: QueryRequest,
    orchestrator: QueryOrchestrator = Depends(get_query_orchestrator),
):
    """Answer an analytic question about bookings with a validated narrative."""
    settings = get_settings()
    try:
        return await asyncio.wait_for(orchestrator.run(body), timeout=settings.request_timeout_seconds)
    except DataStoreError as e:
        logger.error("Query failed on booking store", error=str(e))
        raise HTTPException(status_code=503, detail={"detail": str(e), "retryable": e.retryable})
    except NarrativeUnavailableError as e:
        logger.error("Query failed on narrative generation", error=str(e))
        raise HTTPException(status_code=503, detail={"detail": str(e), "retryable": True})
    except asyncio.TimeoutError:
        logger.error("Query timed out", timeout_s=settings.request_timeout_seconds)
        raise HTTPException(status_code=504, detail={"detail": "Query timed out", "retryable": True})
