"""Query translators for different text-generation services."""
from .openai_query_translator import OpenAIQueryTranslator, TranslationError, clean_query_text

__all__ = ['OpenAIQueryTranslator', 'TranslationError', 'clean_query_text']
