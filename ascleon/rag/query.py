"""Question answering over the document knowledge base.

Handles:
- Query embedding (best-effort)
- Similarity search for supporting context
- System prompt assembly with the safety rulebook
- Answer generation and final-segment selection
- Query logging through the background writer
"""
from dataclasses import dataclass
from typing import Dict, List, Optional

import structlog

from ascleon import config
from ascleon.errors import GeminiError, QueryError
from ascleon.llm_client import GeminiClient
from ascleon.query_log import QueryLogWriter
from ascleon.rag.embedder import Embedder
from ascleon.rag.models import QueryType, VectorStore

logger = structlog.get_logger()

DEFAULT_LANGUAGE = "en"

DISCLAIMER = "This is not a substitute for professional medical care."

NO_RESPONSE_ANSWER = "Sorry, I could not generate a response."

LANGUAGE_INSTRUCTIONS: Dict[str, str] = {
    "en": "You are Ascleon AI, an expert rural medical assistant. "
    "Respond in simple, non-technical English.",
    "hi": "आप Ascleon AI हैं, एक विशेषज्ञ ग्रामीण चिकित्सा सहायक। "
    "सरल, गैर-तकनीकी हिंदी में जवाब दें।",
    "mr": "तुम्ही Ascleon AI आहात, एक तज्ञ ग्रामीण वैद्यकीय सहाय्यक. "
    "साध्या, गैर-तांत्रिक मराठीमध्ये उत्तर द्या।",
}

SAFETY_RULES = f"""IMPORTANT RULES:
1. ALWAYS prioritize safety - never suggest anything that could cause harm
2. If symptoms are severe or life-threatening, IMMEDIATELY advise visiting nearest clinic/hospital
3. Base your answers on the provided medical context when available
4. If you don't have enough information, say so clearly
5. Never diagnose - only provide general guidance
6. Always end with: "{DISCLAIMER}\""""

EMERGENCY_FRAMING = (
    "The person may be facing an emergency right now. Give short, numbered "
    "first-aid steps they can follow immediately, and tell them to call an "
    "ambulance (108) or the national emergency number (112) if the situation "
    "is serious."
)


def normalize_language(language: Optional[str]) -> str:
    """Map a language code to a supported one, falling back to English."""
    code = (language or "").strip().lower()
    return code if code in LANGUAGE_INSTRUCTIONS else DEFAULT_LANGUAGE


def build_system_prompt(
    language: str,
    context_chunks: List[str],
    query_type: QueryType = QueryType.MEDICAL,
) -> str:
    """Assemble persona, safety rules and optional retrieved context."""
    sections = [
        LANGUAGE_INSTRUCTIONS[normalize_language(language)],
        "You are providing medical guidance to people in rural areas with "
        "limited healthcare access.",
    ]
    if query_type == QueryType.EMERGENCY:
        sections.append(EMERGENCY_FRAMING)
    sections.append(SAFETY_RULES)

    if context_chunks:
        sections.append("Verified Medical Context:\n" + "\n\n".join(context_chunks))

    return "\n\n".join(sections)


def ensure_disclaimer(answer: str) -> str:
    """Return the answer ending with the disclaimer, appending it if needed."""
    answer = answer.rstrip()
    if answer.endswith(DISCLAIMER):
        return answer
    return f"{answer}\n\n{DISCLAIMER}"


@dataclass
class QueryAnswer:
    answer: str
    language: str
    context_chunks: int


class QueryPipeline:
    """Retrieval-augmented answering for medical and emergency questions."""

    def __init__(
        self,
        client: GeminiClient,
        embedder: Embedder,
        store: VectorStore,
        query_log: QueryLogWriter,
        top_k: int = None,
        thresholds: Optional[Dict[QueryType, float]] = None,
        temperature: float = 0.3,
        max_output_tokens: int = 800,
    ):
        """Initialize the query pipeline.

        Args:
            client: Gemini client used for generation
            embedder: Best-effort embedder for the question
            store: Storage backend to search
            query_log: Background writer for query logs
            top_k: Chunks to retrieve (default from config)
            thresholds: Similarity threshold per call site (defaults from config)
            temperature: Generation temperature
            max_output_tokens: Generation token cap
        """
        self.client = client
        self.embedder = embedder
        self.store = store
        self.query_log = query_log
        self.top_k = config.RETRIEVAL_TOP_K if top_k is None else top_k
        self.thresholds = {
            QueryType.MEDICAL: config.MEDICAL_MATCH_THRESHOLD,
            QueryType.EMERGENCY: config.EMERGENCY_MATCH_THRESHOLD,
        }
        if thresholds:
            self.thresholds.update(thresholds)
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens

    async def retrieve_context(self, question: str, query_type: QueryType) -> List[str]:
        """Chunks supporting the question; empty when embedding or search fails."""
        embedding = await self.embedder.embed(question)
        if embedding is None:
            logger.info("retrieval_skipped_no_embedding", query_type=query_type.value)
            return []

        chunks = await self.store.search(
            embedding,
            similarity_threshold=self.thresholds[query_type],
            top_k=self.top_k,
        )
        logger.info(
            "retrieval_completed",
            query_type=query_type.value,
            results_returned=len(chunks),
        )
        return chunks

    async def answer(
        self,
        question: str,
        language: str = DEFAULT_LANGUAGE,
        user_id: Optional[str] = None,
        query_type: QueryType = QueryType.MEDICAL,
    ) -> QueryAnswer:
        """Answer a question.

        Args:
            question: User question
            language: Response language code (en, hi, mr; others fall back to en)
            user_id: Identity used for the query log (anonymous if None)
            query_type: MEDICAL or EMERGENCY call site

        Returns:
            QueryAnswer whose text always ends with the disclaimer

        Raises:
            QueryError: If the generation call fails
        """
        query_type = QueryType(query_type)
        if query_type == QueryType.SKIN:
            raise ValueError("Skin analysis is handled by SkinTriage")

        language = normalize_language(language)

        logger.info(
            "query_started",
            query_type=query_type.value,
            language=language,
            question_length=len(question),
        )

        context_chunks = await self.retrieve_context(question, query_type)
        system_prompt = build_system_prompt(language, context_chunks, query_type)

        try:
            response = await self.client.generate_content(
                [{"text": f"{system_prompt}\n\nQuestion: {question}"}],
                temperature=self.temperature,
                max_output_tokens=self.max_output_tokens,
            )
        except GeminiError as e:
            logger.error("answer_generation_failed", error=str(e), query_type=query_type.value)
            raise QueryError("Failed to get AI response") from e

        text = response.final_text()
        if not text.strip():
            logger.warning("answer_empty", part_count=len(response.parts))
            text = NO_RESPONSE_ANSWER

        answer = ensure_disclaimer(text)

        self.query_log.submit(user_id, question, answer, language, query_type)

        logger.info(
            "query_answered",
            query_type=query_type.value,
            language=language,
            context_chunks=len(context_chunks),
            answer_length=len(answer),
        )

        return QueryAnswer(answer=answer, language=language, context_chunks=len(context_chunks))
