"""Data source models for database connections."""
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from querygate.agents.utils.database_connection_schema import DataSourceDescriptor


class DataSourceDescriptorModel(BaseModel):
    """Connection details for one target engine, as sent by the dashboard."""
    type: str = Field(..., description='"PostgreSQL", "MySQL", "MariaDB", "MongoDB" or "Oracle"')
    host: Optional[str] = None
    port: Optional[int] = Field(default=None, gt=0, le=65535)
    username: Optional[str] = None
    password: Optional[str] = None
    database: Optional[str] = None
    connection_string: Optional[str] = Field(default=None, alias="connectionString")

    model_config = {"populate_by_name": True}

    @model_validator(mode="after")
    def check_connection_group(self):
        """A descriptor needs either a connection string or a host."""
        if not (self.connection_string and self.connection_string.strip()) and not self.host:
            raise ValueError("Either connectionString or host must be provided")
        return self

    def to_descriptor(self) -> DataSourceDescriptor:
        return DataSourceDescriptor.from_dict({
            "type": self.type,
            "host": self.host,
            "port": self.port,
            "username": self.username,
            "password": self.password,
            "database": self.database,
            "connectionString": self.connection_string,
        })


class ConnectionTestResponse(BaseModel):
    """Response model for connection test."""
    success: bool
    message: str
    engine_type: str
    connection_time_ms: Optional[float] = None
    error_kind: Optional[str] = None
    error_details: Optional[str] = None
