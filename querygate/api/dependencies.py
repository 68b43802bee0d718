from functools import lru_cache

from fastapi import HTTPException, status

from querygate.agents.query_engine import QueryGateway
from querygate.agents.query_engine.interfaces import QueryTranslatorInterface
from querygate.agents.query_engine.translators import OpenAIQueryTranslator, TranslationError
from querygate.core.config import get_settings


@lru_cache()
def get_gateway() -> QueryGateway:
    """Get the shared query gateway (it holds no per-call state)."""
    return QueryGateway(settings=get_settings())


def get_translator() -> QueryTranslatorInterface:
    """Get the query translator, or 503 when no LLM credentials are configured."""
    settings = get_settings()
    try:
        return OpenAIQueryTranslator(model=settings.OPENAI_MODEL, api_key=settings.OPENAI_API_KEY)
    except TranslationError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))
