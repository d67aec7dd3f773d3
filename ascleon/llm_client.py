"""Gemini API client wrapper with error handling."""
import asyncio
from typing import Any, Dict, List, Optional

import httpx
import structlog
from pydantic import ValidationError

from ascleon import config
from ascleon.errors import GeminiError
from ascleon.llm_types import EmbedContentResponse, GenerateContentResponse

logger = structlog.get_logger()

RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}


class GeminiClient:
    """Async client for the Gemini generative-language REST API."""

    def __init__(
        self,
        api_key: str = None,
        base_url: str = None,
        chat_model: str = None,
        embedding_model: str = None,
        timeout: float = None,
        max_retries: int = None,
        retry_backoff: float = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize Gemini client.

        Args:
            api_key: Gemini API key (defaults to config.GEMINI_API_KEY)
            base_url: API base URL including version (defaults to config.GEMINI_BASE_URL)
            chat_model: Generation model (defaults to config.CHAT_MODEL)
            embedding_model: Embedding model (defaults to config.EMBEDDING_MODEL)
            timeout: Request timeout in seconds
            max_retries: Extra attempts for connection errors, 429 and 5xx
            retry_backoff: Base delay in seconds, doubled after each retry
            transport: Optional httpx transport (used by tests)
        """
        self.api_key = api_key if api_key is not None else config.GEMINI_API_KEY
        self.base_url = (base_url or config.GEMINI_BASE_URL).rstrip("/")
        self.chat_model = chat_model or config.CHAT_MODEL
        self.embedding_model = embedding_model or config.EMBEDDING_MODEL
        self.timeout = timeout if timeout is not None else config.GEMINI_TIMEOUT
        self.max_retries = max_retries if max_retries is not None else config.GEMINI_MAX_RETRIES
        self.retry_backoff = (
            retry_backoff if retry_backoff is not None else config.GEMINI_RETRY_BACKOFF
        )
        self._transport = transport

    async def generate_content(
        self,
        parts: List[Dict[str, Any]],
        temperature: Optional[float] = None,
        max_output_tokens: Optional[int] = None,
        response_mime_type: Optional[str] = None,
        model: str = None,
    ) -> GenerateContentResponse:
        """Send a single-turn generateContent request.

        Args:
            parts: Request parts, e.g. ``{"text": ...}`` or ``{"inlineData": {...}}``
            temperature: Sampling temperature
            max_output_tokens: Output token cap
            response_mime_type: Set to ``application/json`` for JSON mode
            model: Model to use (defaults to the client's chat model)

        Returns:
            Parsed GenerateContentResponse

        Raises:
            GeminiError: On transport errors, non-2xx responses or malformed bodies
        """
        model = model or self.chat_model

        generation_config: Dict[str, Any] = {}
        if temperature is not None:
            generation_config["temperature"] = temperature
        if max_output_tokens is not None:
            generation_config["maxOutputTokens"] = max_output_tokens
        if response_mime_type:
            generation_config["responseMimeType"] = response_mime_type

        payload: Dict[str, Any] = {"contents": [{"parts": parts}]}
        if generation_config:
            payload["generationConfig"] = generation_config

        logger.info("gemini_generate_request", model=model, part_count=len(parts))

        data = await self._post(f"models/{model}:generateContent", payload)

        try:
            response = GenerateContentResponse.model_validate(data)
        except ValidationError as e:
            logger.error("gemini_generate_malformed", model=model, error=str(e))
            raise GeminiError(f"Malformed generateContent response: {e}") from e

        logger.info(
            "gemini_generate_response",
            model=model,
            part_count=len(response.parts),
            final_length=len(response.final_text()),
        )
        return response

    async def embed_content(self, text: str, model: str = None) -> List[float]:
        """Generate an embedding for a text.

        Args:
            text: Text to embed
            model: Model to use (defaults to the client's embedding model)

        Returns:
            Embedding vector

        Raises:
            GeminiError: On API errors or when no values are returned
        """
        model = model or self.embedding_model

        payload = {"content": {"parts": [{"text": text}]}}

        logger.debug("gemini_embedding_request", model=model, text_length=len(text))

        data = await self._post(f"models/{model}:embedContent", payload)

        try:
            values = EmbedContentResponse.model_validate(data).embedding.values
        except ValidationError as e:
            raise GeminiError(f"Malformed embedContent response: {e}") from e

        if not values:
            raise GeminiError("Empty embedding returned")

        logger.debug("gemini_embedding_response", model=model, dimension=len(values))
        return values

    async def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """POST to the API, retrying transient failures with exponential backoff."""
        url = f"{self.base_url}/{path}"
        attempt = 0

        while True:
            try:
                async with httpx.AsyncClient(
                    timeout=self.timeout, transport=self._transport
                ) as client:
                    response = await client.post(
                        url, params={"key": self.api_key}, json=payload
                    )
                    response.raise_for_status()
                    return response.json()

            except httpx.HTTPStatusError as e:
                status_code = e.response.status_code
                retryable = status_code in RETRYABLE_STATUS_CODES
                error = GeminiError(
                    f"Gemini API returned {status_code}: {_error_message(e.response)}",
                    status_code=status_code,
                )
            except httpx.TransportError as e:
                retryable = True
                error = GeminiError(f"Gemini API unreachable: {e}")
            except httpx.RequestError as e:
                # Undecodable body or redirect loop; not retried
                retryable = False
                error = GeminiError(f"Gemini API request failed: {e}")
            except ValueError as e:
                # Response body was not JSON
                logger.error("gemini_invalid_json", path=path, error=str(e))
                raise GeminiError(f"Invalid JSON from Gemini API: {e}") from e

            if not retryable or attempt >= self.max_retries:
                logger.error(
                    "gemini_request_failed",
                    path=path,
                    attempts=attempt + 1,
                    status_code=error.status_code,
                    error=str(error),
                )
                raise error

            delay = self.retry_backoff * (2 ** attempt)
            attempt += 1
            logger.warning(
                "gemini_request_retry",
                path=path,
                attempt=attempt,
                delay=delay,
                status_code=error.status_code,
            )
            await asyncio.sleep(delay)


def _error_message(response: httpx.Response) -> str:
    """Pull the human-readable message out of a Gemini error body."""
    try:
        body = response.json()
    except ValueError:
        return response.reason_phrase
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        return body["error"].get("message") or response.reason_phrase
    return response.reason_phrase
