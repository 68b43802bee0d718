"""Interface for translators producing dialect-specific query strings."""
from abc import ABC, abstractmethod


class QueryTranslatorInterface(ABC):
    """
    Abstract interface for natural-language-to-query translation.

    Implementations call an external text-generation service. The gateway
    never calls a translator; higher-level flows feed its output into
    ``QueryGateway.execute``.
    """

    @abstractmethod
    def translate(
        self,
        natural_language_question: str,
        schema_description: str,
        engine_type: str
    ) -> str:
        """
        Produce a single query string in the engine's dialect.

        Args:
            natural_language_question: User's question
            schema_description: DDL or free-text description of the target schema
            engine_type: Boundary engine name ("PostgreSQL", "MongoDB", ...)

        Returns:
            Raw query text (SQL statement or "db." shell command)
        """
        pass
