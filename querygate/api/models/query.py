"""Query generation and execution models."""
from typing import Any, Dict, List

from pydantic import BaseModel, Field

from querygate.api.models.datasource import DataSourceDescriptorModel


class QueryExecuteRequest(BaseModel):
    """Request model for running one query against a data source."""
    datasource: DataSourceDescriptorModel
    query_text: str = Field(..., min_length=1)


class QueryExecuteResponse(BaseModel):
    """Response model for query execution."""
    engine_type: str
    rows: List[Dict[str, Any]]
    columns: List[str]
    row_count: int
    execution_time_ms: float


class QueryGenerateRequest(BaseModel):
    """Request model for generating a query from natural language."""
    natural_language_query: str = Field(..., min_length=3, max_length=1000)
    schema_description: str = Field(..., min_length=1)
    engine_type: str


class QueryGenerateResponse(BaseModel):
    """Response model for generated query."""
    query_text: str
    engine_type: str
