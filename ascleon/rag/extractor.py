"""PDF text extraction through Gemini's multimodal generation API."""
import base64

import structlog

from ascleon.errors import ExtractionError, GeminiError
from ascleon.llm_client import GeminiClient

logger = structlog.get_logger()

EXTRACTION_PROMPT = (
    "Extract all text content from this PDF document. "
    "Return only the extracted text without any commentary."
)


class DocumentExtractor:
    """Turns a binary document into plain text."""

    def __init__(
        self,
        client: GeminiClient,
        temperature: float = 0.1,
        max_output_tokens: int = 8000,
    ):
        self.client = client
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens

    async def extract(self, data: bytes, mime_type: str = "application/pdf") -> str:
        """Extract plain text from a document.

        Args:
            data: Raw document bytes
            mime_type: MIME type sent with the inline data

        Returns:
            Extracted text (final-output segments only)

        Raises:
            ExtractionError: If the remote call fails or returns no text
        """
        if not data:
            raise ExtractionError("Document is empty")

        parts = [
            {"text": EXTRACTION_PROMPT},
            {
                "inlineData": {
                    "mimeType": mime_type,
                    "data": base64.b64encode(data).decode("ascii"),
                }
            },
        ]

        try:
            response = await self.client.generate_content(
                parts,
                temperature=self.temperature,
                max_output_tokens=self.max_output_tokens,
            )
        except GeminiError as e:
            logger.error("extraction_request_failed", error=str(e), size=len(data))
            raise ExtractionError(f"Failed to extract document text: {e}") from e

        text = response.final_text()
        if not text.strip():
            logger.error("extraction_empty", size=len(data), part_count=len(response.parts))
            raise ExtractionError("Failed to extract text from document")

        logger.info("document_extracted", size=len(data), text_length=len(text))
        return text
