"""Skin condition triage from a photo.

The generation API is asked for JSON in a fixed shape. Anything that does not
parse into :class:`SkinTriageResult` is replaced by a conservative default so
the user always gets safe care steps.
"""
import json
from typing import List, Literal, Optional, Tuple

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ascleon.errors import GeminiError, TriageError
from ascleon.llm_client import GeminiClient
from ascleon.query_log import QueryLogWriter
from ascleon.rag.models import QueryType
from ascleon.rag.query import normalize_language

logger = structlog.get_logger()

DEFAULT_IMAGE_MIME_TYPE = "image/jpeg"

TRIAGE_QUESTION = "Skin condition analysis"

FALLBACK_CARE_STEPS = [
    "Keep the area clean and dry",
    "Avoid scratching or touching the affected area",
    "Consult a healthcare professional for proper evaluation",
]

FALLBACK_DISCLAIMER = (
    "This is NOT a medical diagnosis. Please consult a qualified healthcare "
    "professional for proper evaluation and treatment."
)

TRIAGE_PROMPTS = {
    "en": """You are an AI medical triage assistant for rural healthcare. Analyze the skin condition image and provide:
1. A possible condition name (NOT a diagnosis)
2. Severity level: Mild, Moderate, or Urgent
3. Immediate care steps (3-5 bullet points)

CRITICAL SAFETY RULES:
- Never provide a definitive diagnosis
- Always recommend seeing a healthcare professional for proper evaluation
- If condition appears serious, mark as "Urgent" and emphasize immediate medical attention
- Keep language simple and accessible

Response format (JSON):
{
  "condition": "Possible condition description",
  "severity": "Mild/Moderate/Urgent",
  "careSteps": ["Step 1", "Step 2", "Step 3"],
  "disclaimer": "Appropriate safety disclaimer"
}""",
    "hi": """आप ग्रामीण स्वास्थ्य सेवा के लिए एक AI चिकित्सा ट्राइएज सहायक हैं। त्वचा की स्थिति की छवि का विश्लेषण करें और प्रदान करें:
1. संभावित स्थिति का नाम (निदान नहीं)
2. गंभीरता स्तर: Mild, Moderate, या Urgent
3. तत्काल देखभाल कदम (3-5 बिंदु) - हिंदी में

महत्वपूर्ण सुरक्षा नियम:
- कभी भी निश्चित निदान न दें
- हमेशा उचित मूल्यांकन के लिए स्वास्थ्य पेशेवर से परामर्श की सिफारिश करें
- यदि स्थिति गंभीर दिखाई देती है, तो "Urgent" चिह्नित करें और तत्काल चिकित्सा ध्यान पर जोर दें
- भाषा सरल और सुलभ रखें

प्रतिक्रिया प्रारूप (JSON):
{
  "condition": "हिंदी में संभावित स्थिति का विवरण",
  "severity": "Mild/Moderate/Urgent",
  "careSteps": ["हिंदी में कदम 1", "हिंदी में कदम 2", "हिंदी में कदम 3"],
  "disclaimer": "हिंदी में उपयुक्त सुरक्षा अस्वीकरण"
}""",
    "mr": """तुम्ही ग्रामीण आरोग्यसेवेसाठी AI वैद्यकीय ट्रायज सहाय्यक आहात. त्वचेच्या स्थितीच्या प्रतिमेचे विश्लेषण करा आणि प्रदान करा:
1. संभाव्य स्थितीचे नाव (निदान नाही)
2. तीव्रता स्तर: Mild, Moderate, किंवा Urgent
3. तात्काळ काळजी पायऱ्या (3-5 मुद्दे) - मराठीत

महत्त्वाचे सुरक्षा नियम:
- कधीही निश्चित निदान देऊ नका
- योग्य मूल्यमापनासाठी नेहमी आरोग्य व्यावसायिकाचा सल्ला घेण्याची शिफारस करा
- स्थिती गंभीर दिसत असल्यास, "Urgent" म्हणून चिन्हांकित करा आणि तात्काळ वैद्यकीय लक्षावर भर द्या
- भाषा सोपी आणि सुलभ ठेवा

प्रतिसाद स्वरूप (JSON):
{
  "condition": "मराठीत संभाव्य स्थितीचे वर्णन",
  "severity": "Mild/Moderate/Urgent",
  "careSteps": ["मराठीत पायरी 1", "मराठीत पायरी 2", "मराठीत पायरी 3"],
  "disclaimer": "मराठीत योग्य सुरक्षा अस्वीकरण"
}""",
}


class SkinTriageResult(BaseModel):
    """Structured triage answer."""

    model_config = ConfigDict(populate_by_name=True)

    condition: str = Field(..., min_length=1)
    severity: Literal["Mild", "Moderate", "Urgent"]
    care_steps: List[str] = Field(..., alias="careSteps", min_length=1)
    disclaimer: str = FALLBACK_DISCLAIMER

    @classmethod
    def fallback(cls, raw_text: str) -> "SkinTriageResult":
        return cls(
            condition=raw_text.strip() or "Unable to assess the image",
            severity="Moderate",
            care_steps=list(FALLBACK_CARE_STEPS),
            disclaimer=FALLBACK_DISCLAIMER,
        )

    def to_response(self) -> dict:
        return self.model_dump(by_alias=True)


def parse_triage(raw_text: str) -> SkinTriageResult:
    """Parse model output, falling back to the safe default."""
    try:
        return SkinTriageResult.model_validate(json.loads(raw_text))
    except (ValueError, ValidationError) as e:
        logger.warning("triage_output_unparseable", error=str(e), text_preview=raw_text[:100])
        return SkinTriageResult.fallback(raw_text)


def split_image(image: str) -> Tuple[str, str]:
    """Split a data URL (or bare base64 string) into (mime_type, base64 data)."""
    if image.startswith("data:") and "," in image:
        header, data = image.split(",", 1)
        mime_type = header[len("data:"):].split(";")[0] or DEFAULT_IMAGE_MIME_TYPE
        return mime_type, data
    if "," in image:
        return DEFAULT_IMAGE_MIME_TYPE, image.split(",", 1)[1]
    return DEFAULT_IMAGE_MIME_TYPE, image


class SkinTriage:
    def __init__(
        self,
        client: GeminiClient,
        query_log: QueryLogWriter,
        temperature: float = 0.3,
        max_output_tokens: int = 500,
    ):
        self.client = client
        self.query_log = query_log
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens

    async def analyze(
        self,
        image: str,
        language: str = "en",
        user_id: Optional[str] = None,
    ) -> SkinTriageResult:
        """Triage a skin photo.

        Raises:
            TriageError: If the image is missing or the remote call fails
        """
        mime_type, data = split_image(image or "")
        if not data:
            raise TriageError("Image is required")

        language = normalize_language(language)
        prompt = TRIAGE_PROMPTS[language]

        try:
            response = await self.client.generate_content(
                [
                    {"text": f"{prompt}\n\nAnalyze this skin condition and provide triage information."},
                    {"inlineData": {"mimeType": mime_type, "data": data}},
                ],
                temperature=self.temperature,
                max_output_tokens=self.max_output_tokens,
                response_mime_type="application/json",
            )
        except GeminiError as e:
            logger.error("triage_request_failed", error=str(e))
            raise TriageError(f"Failed to analyze image: {e}") from e

        result = parse_triage(response.final_text())

        self.query_log.submit(
            user_id,
            TRIAGE_QUESTION,
            json.dumps(result.to_response(), ensure_ascii=False),
            language,
            QueryType.SKIN,
        )

        logger.info("triage_completed", severity=result.severity, language=language)
        return result
