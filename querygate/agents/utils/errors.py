"""Typed failures raised by the query gateway."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    UNSUPPORTED_ENGINE = "unsupported_engine"
    INVALID_DESCRIPTOR = "invalid_descriptor"
    CONNECTION_FAILED = "connection_failed"
    UNSUPPORTED_QUERY_FORM = "unsupported_query_form"
    QUERY_FAILED = "query_failed"
    SERIALIZATION_FAILED = "serialization_failed"


@dataclass
class GatewayError(Exception):
    """Base class for every failure surfaced by the gateway."""

    message: str
    engine_type: Optional[str] = None
    kind: ErrorKind = ErrorKind.QUERY_FAILED
    http_status: int = 500

    def __str__(self) -> str:
        if self.engine_type:
            return f"[{self.engine_type}] {self.message}"
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "engine_type": self.engine_type,
        }


@dataclass
class UnsupportedEngineError(GatewayError):
    kind: ErrorKind = ErrorKind.UNSUPPORTED_ENGINE
    http_status: int = 400


@dataclass
class InvalidDescriptorError(GatewayError):
    kind: ErrorKind = ErrorKind.INVALID_DESCRIPTOR
    http_status: int = 422


@dataclass
class ConnectionFailedError(GatewayError):
    kind: ErrorKind = ErrorKind.CONNECTION_FAILED
    http_status: int = 502


@dataclass
class UnsupportedQueryFormError(GatewayError):
    kind: ErrorKind = ErrorKind.UNSUPPORTED_QUERY_FORM
    http_status: int = 422


@dataclass
class QueryFailedError(GatewayError):
    kind: ErrorKind = ErrorKind.QUERY_FAILED
    http_status: int = 400


@dataclass
class SerializationFailedError(GatewayError):
    kind: ErrorKind = ErrorKind.SERIALIZATION_FAILED
    http_status: int = 500
