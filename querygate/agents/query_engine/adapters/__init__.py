"""Engine adapters for different data sources."""
from .sql_engine_adapter import SQLEngineAdapter
from .mongodb_engine_adapter import MongoDBEngineAdapter

__all__ = ['SQLEngineAdapter', 'MongoDBEngineAdapter']
