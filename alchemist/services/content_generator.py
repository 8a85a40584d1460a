"""
Content Generator - Client for the external generative-text provider.

One call per keyword. Every failure (transport, provider status, unparseable
or too-short output) surfaces as ContentGenerationError for that keyword.
"""

import json
from typing import Protocol

import httpx
from structlog import get_logger

from alchemist.config import Settings
from alchemist.exceptions import ContentGenerationError
from alchemist.models.domain import GeneratedArticle

logger = get_logger(__name__)

PROMPT_TEMPLATE = """You are an expert blog writer and SEO specialist.
Write a blog post for the keyword: {keyword}

The body must be at least {min_words} words of Markdown using ## and ### headings.
Respond with a single JSON object:
{{"title": "...", "tldr": "2-3 sentence summary", "body": "...", "linkingSuggestions": ["..."]}}"""


class ContentGenerator(Protocol):
    """Anything that can turn a keyword into an article."""

    async def generate(self, keyword: str) -> GeneratedArticle:
        """
        Generate an article for one keyword.

        Raises:
            ContentGenerationError: On any provider or output failure
        """
        ...


def _strip_code_fences(text: str) -> str:
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = cleaned.removeprefix("```json").removeprefix("```")
        cleaned = cleaned.removesuffix("```")
    return cleaned.strip()


def parse_article(keyword: str, text: str, approach: str, min_word_count: int) -> GeneratedArticle:
    """
    Parse the model's JSON reply into a GeneratedArticle.

    Raises:
        ContentGenerationError: If the reply is not valid JSON, misses a field,
            or the body is shorter than min_word_count words
    """
    try:
        payload = json.loads(_strip_code_fences(text))
    except json.JSONDecodeError as exc:
        raise ContentGenerationError(keyword, "Failed to parse blog post response") from exc

    if not isinstance(payload, dict):
        raise ContentGenerationError(keyword, "Invalid response structure")

    title = payload.get("title")
    tldr = payload.get("tldr")
    body = payload.get("body")
    if not (isinstance(title, str) and title and isinstance(tldr, str) and tldr):
        raise ContentGenerationError(keyword, "Invalid response structure")
    if not (isinstance(body, str) and body):
        raise ContentGenerationError(keyword, "Invalid response structure")

    suggestions = payload.get("linkingSuggestions") or []
    if not isinstance(suggestions, list):
        suggestions = []

    article = GeneratedArticle(
        keyword=keyword,
        title=title.strip(),
        tldr=tldr.strip(),
        body=body.strip(),
        approach=approach,
        linking_suggestions=tuple(str(s) for s in suggestions),
    )

    if article.word_count < min_word_count:
        raise ContentGenerationError(
            keyword,
            f"Blog post body is too short ({article.word_count} words). "
            f"Minimum {min_word_count} words required.",
        )
    return article


class GeminiContentGenerator:
    """Content generator backed by the Gemini generateContent REST endpoint."""

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-1.5-flash",
        api_base: str = "https://generativelanguage.googleapis.com/v1beta",
        timeout_seconds: float = 60.0,
        min_word_count: int = 400,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.api_key = api_key
        self.model = model
        self.api_base = api_base.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.min_word_count = min_word_count
        self._http_client = http_client

    @classmethod
    def from_settings(cls, settings: Settings) -> "GeminiContentGenerator":
        """Build the generator from application settings."""
        return cls(
            api_key=settings.generation_api_key,
            model=settings.generation_model,
            api_base=settings.generation_api_base,
            timeout_seconds=settings.generation_timeout_seconds,
            min_word_count=settings.min_word_count,
        )

    @property
    def http_client(self) -> httpx.AsyncClient:
        """Get HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.timeout_seconds)
        return self._http_client

    @property
    def endpoint(self) -> str:
        return f"{self.api_base}/models/{self.model}:generateContent"

    async def generate(self, keyword: str) -> GeneratedArticle:
        """Generate one article; raises ContentGenerationError on any failure."""
        if not self.api_key:
            raise ContentGenerationError(keyword, "Content provider API key not configured")

        prompt = PROMPT_TEMPLATE.format(keyword=keyword, min_words=self.min_word_count)
        request_body = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {"responseMimeType": "application/json"},
        }

        try:
            response = await self.http_client.post(
                self.endpoint, params={"key": self.api_key}, json=request_body
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            logger.warning(
                "generation_provider_error",
                keyword=keyword,
                status=e.response.status_code,
            )
            raise ContentGenerationError(
                keyword, f"Provider returned {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            logger.warning("generation_transport_error", keyword=keyword, error=str(e))
            raise ContentGenerationError(keyword, f"Provider unreachable: {e}") from e
        except ValueError as e:
            raise ContentGenerationError(keyword, "Provider returned invalid JSON") from e

        try:
            text = data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError) as e:
            raise ContentGenerationError(keyword, "Provider returned no content") from e

        return parse_article(keyword, text, approach=self.model, min_word_count=self.min_word_count)

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
