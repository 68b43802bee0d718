"""Query translator backed by the OpenAI chat completions API."""
import logging
import os
from typing import Optional

from openai import OpenAI, OpenAIError

from querygate.agents.query_engine.interfaces import QueryTranslatorInterface


logger = logging.getLogger(__name__)

# Language tags a model may still put on the first line of a fenced block
_FENCE_LANGUAGES = ("sql", "javascript", "js")

_DIALECT_NAMES = {
    "mongodb": "MongoDB Shell Command",
}


class TranslationError(Exception):
    """Raised when the text-generation service fails or returns nothing usable."""


def clean_query_text(raw: str) -> str:
    """Strip markdown fences and a leading language tag from model output."""
    query = (raw or "").strip()
    if query.startswith("```") and query.endswith("```") and len(query) >= 6:
        query = query[3:-3].strip()
        first_line, sep, rest = query.partition("\n")
        if sep and first_line.strip().lower() in _FENCE_LANGUAGES:
            query = rest.strip()
    return query


class OpenAIQueryTranslator(QueryTranslatorInterface):
    """
    Translates natural language into a single executable query using an LLM.

    MongoDB targets are asked for a one-line shell command such as
    ``db.collection.find(...).toArray()``; every other engine gets SQL in
    its own dialect.
    """

    def __init__(self, model: str = "gpt-4o-mini", api_key: Optional[str] = None, client: Optional[OpenAI] = None):
        """
        Initialize the translator.

        Args:
            model: LLM model to use for generation
            api_key: OpenAI API key, defaults to the OPENAI_API_KEY environment variable
            client: Preconfigured OpenAI client
        """
        self.model = model
        if client is not None:
            self.client = client
        else:
            api_key = api_key or os.getenv('OPENAI_API_KEY')
            if not api_key:
                raise TranslationError("No OpenAI API key configured")
            self.client = OpenAI(api_key=api_key)

    def translate(
        self,
        natural_language_question: str,
        schema_description: str,
        engine_type: str
    ) -> str:
        logger.info(f"Translating question for {engine_type}: {natural_language_question}")
        dialect = _DIALECT_NAMES.get(engine_type.strip().lower(), engine_type)

        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": self._build_system_prompt(dialect)},
                    {
                        "role": "user",
                        "content": (
                            f"Natural Language Query: {natural_language_question}\n\n"
                            f"Database Schema:\n```\n{schema_description}\n```\n\nQuery:"
                        ),
                    },
                ],
                temperature=0,
            )
        except OpenAIError as e:
            logger.error(f"LLM call failed: {e}")
            raise TranslationError(f"Query translation failed: {e}") from e

        content = response.choices[0].message.content if response.choices else None
        query = clean_query_text(content or "")
        if not query:
            raise TranslationError("The model returned an empty query")
        return query

    @staticmethod
    def _build_system_prompt(dialect: str) -> str:
        return f"""You are a database query expert. Convert the given natural language query into a single, executable query that can be executed against the provided database schema for a {dialect} database.

IMPORTANT:
- Your output must be ONLY the raw query string. Do not wrap it in markdown, comments, or any other formatting.
- If the database type is 'MongoDB Shell Command', you must generate a command like 'db.collection.find(...).toArray()'. The command must be a single line of code and may only use find, findOne, aggregate, countDocuments, estimatedDocumentCount or distinct."""
