"""Query engine interfaces for multi-datasource support."""
from .engine_adapter_interface import EngineAdapterInterface, ProbeResult, QueryResult
from .query_translator_interface import QueryTranslatorInterface

__all__ = ['EngineAdapterInterface', 'ProbeResult', 'QueryResult', 'QueryTranslatorInterface']
