"""API routes for query generation and execution."""
import logging

from fastapi import APIRouter, Depends, HTTPException
from starlette.concurrency import run_in_threadpool

from querygate.agents.query_engine import QueryGateway
from querygate.agents.query_engine.interfaces import QueryTranslatorInterface
from querygate.agents.query_engine.translators import TranslationError
from querygate.api.dependencies import get_gateway, get_translator
from querygate.api.models.query import (
    QueryExecuteRequest,
    QueryExecuteResponse,
    QueryGenerateRequest,
    QueryGenerateResponse,
)


router = APIRouter(prefix="/queries", tags=["queries"])
logger = logging.getLogger(__name__)


@router.post("/execute", response_model=QueryExecuteResponse)
async def execute_query(
    request: QueryExecuteRequest,
    gateway: QueryGateway = Depends(get_gateway)
):
    """
    Execute one query against a data source.

    Gateway failures are rendered by the GatewayError handler as
    ``{"error": {"kind", "message", "engine_type"}}``.
    """
    descriptor = request.datasource.to_descriptor()
    result = await gateway.execute(descriptor, request.query_text)
    return QueryExecuteResponse(
        engine_type=result.engine_type,
        rows=result.rows,
        columns=result.columns,
        row_count=result.row_count,
        execution_time_ms=result.execution_time_ms,
    )


@router.post("/generate", response_model=QueryGenerateResponse)
async def generate_query(
    request: QueryGenerateRequest,
    translator: QueryTranslatorInterface = Depends(get_translator)
):
    """
    Generate a query string from natural language.

    The result is returned for review; it is not executed.
    """
    try:
        query_text = await run_in_threadpool(
            translator.translate,
            request.natural_language_query,
            request.schema_description,
            request.engine_type,
        )
    except TranslationError as e:
        logger.error(f"Query generation failed: {e}")
        raise HTTPException(status_code=502, detail=str(e))

    return QueryGenerateResponse(query_text=query_text, engine_type=request.engine_type)
