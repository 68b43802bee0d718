"""API routes for data source connectivity checks."""
import logging

from fastapi import APIRouter, Depends

from querygate.agents.query_engine import QueryGateway
from querygate.agents.utils.errors import GatewayError
from querygate.api.dependencies import get_gateway
from querygate.api.models.datasource import ConnectionTestResponse, DataSourceDescriptorModel


router = APIRouter(prefix="/datasources", tags=["datasources"])
logger = logging.getLogger(__name__)


@router.post("/test-connection", response_model=ConnectionTestResponse)
async def test_datasource_connection(
    test_request: DataSourceDescriptorModel,
    gateway: QueryGateway = Depends(get_gateway)
):
    """Test database connection without saving."""
    try:
        descriptor = test_request.to_descriptor()
    except GatewayError as e:
        return ConnectionTestResponse(
            success=False,
            message="Connection test failed",
            engine_type=test_request.type,
            error_kind=e.kind.value,
            error_details=e.message,
        )

    result = await gateway.probe(descriptor)
    if result.ok:
        return ConnectionTestResponse(
            success=True,
            message="Connection successful",
            engine_type=descriptor.engine_type.value,
            connection_time_ms=result.connection_time_ms,
        )

    return ConnectionTestResponse(
        success=False,
        message="Connection failed",
        engine_type=descriptor.engine_type.value,
        connection_time_ms=result.connection_time_ms,
        error_kind=result.error.kind.value,
        error_details=result.error.message,
    )
