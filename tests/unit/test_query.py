"""Tests for the query pipeline."""
import pytest

from ascleon.errors import QueryError, StoreError
from ascleon.query_log import QueryLogWriter
from ascleon.rag.embedder import Embedder
from ascleon.rag.models import QueryType
from ascleon.rag.query import (
    DISCLAIMER,
    LANGUAGE_INSTRUCTIONS,
    NO_RESPONSE_ANSWER,
    QueryPipeline,
    build_system_prompt,
    normalize_language,
)
from tests.conftest import FakeGeminiClient, letter_embedding


def make_pipeline(store, gemini, **kwargs):
    return QueryPipeline(gemini, Embedder(gemini), store, QueryLogWriter(store), **kwargs)


@pytest.mark.asyncio
async def test_empty_knowledge_base_still_answers_and_logs(store):
    gemini = FakeGeminiClient()
    pipeline = make_pipeline(store, gemini)

    result = await pipeline.answer("What are the symptoms of dengue?", "en", user_id="user-1")
    await pipeline.query_log.drain()

    assert result.answer
    assert DISCLAIMER in result.answer
    assert result.context_chunks == 0
    assert "Verified Medical Context" not in gemini.last_prompt
    assert gemini.last_prompt.endswith("Question: What are the symptoms of dengue?")

    logs = await store.list_query_logs()
    assert len(logs) == 1
    assert logs[0].query_type == "medical"
    assert logs[0].user_id == "user-1"
    assert logs[0].answer == result.answer


@pytest.mark.asyncio
async def test_reasoning_parts_not_in_answer(store):
    gemini = FakeGeminiClient(answer="Drink clean water.")
    result = await make_pipeline(store, gemini).answer("How to avoid cholera?")

    assert "Considering likely causes" not in result.answer
    assert result.answer.startswith("Drink clean water.")


@pytest.mark.asyncio
async def test_embedding_failure_still_answers(store):
    gemini = FakeGeminiClient(fail_embed=lambda text: True)
    result = await make_pipeline(store, gemini).answer("Is my cough serious?")

    assert result.answer
    assert result.context_chunks == 0
    assert len(gemini.generate_calls) == 1


@pytest.mark.asyncio
async def test_matching_chunks_added_as_context(store):
    question = "How is dengue treated?"
    await store.create_document("doc-1", "dengue.pdf", 10)
    await store.insert_chunk("doc-1", "Dengue is treated with fluids and rest.", 0, letter_embedding(question))

    gemini = FakeGeminiClient()
    result = await make_pipeline(store, gemini).answer(question)

    assert result.context_chunks == 1
    assert "Verified Medical Context:\nDengue is treated with fluids and rest." in gemini.last_prompt


@pytest.mark.asyncio
async def test_call_site_thresholds(store):
    calls = []

    async def recording_search(query_embedding, similarity_threshold, top_k):
        calls.append((similarity_threshold, top_k))
        return []

    store.search = recording_search
    pipeline = make_pipeline(store, FakeGeminiClient())

    await pipeline.answer("fever", query_type=QueryType.MEDICAL)
    await pipeline.answer("snake bite", query_type=QueryType.EMERGENCY)

    assert calls == [(0.7, 5), (0.5, 5)]


def test_explicit_top_k_is_kept(store):
    assert make_pipeline(store, FakeGeminiClient(), top_k=0).top_k == 0
    assert make_pipeline(store, FakeGeminiClient()).top_k == 5


@pytest.mark.asyncio
async def test_disclaimer_appended_once(store):
    gemini = FakeGeminiClient(answer="Rest well.")
    result = await make_pipeline(store, gemini).answer("tired")
    assert result.answer == f"Rest well.\n\n{DISCLAIMER}"

    gemini.answer = f"Rest well. {DISCLAIMER}"
    result = await make_pipeline(store, gemini).answer("tired")
    assert result.answer.count(DISCLAIMER) == 1

    gemini.answer = f"{DISCLAIMER} Also drink ORS and rest."
    result = await make_pipeline(store, gemini).answer("tired")
    assert result.answer.endswith(DISCLAIMER)
    assert result.answer.startswith(f"{DISCLAIMER} Also drink ORS and rest.")


@pytest.mark.asyncio
async def test_empty_generation_falls_back_to_apology(store):
    gemini = FakeGeminiClient(answer="")
    result = await make_pipeline(store, gemini).answer("headache")
    assert result.answer.startswith(NO_RESPONSE_ANSWER)


@pytest.mark.asyncio
async def test_generation_failure_raises_query_error(store):
    pipeline = make_pipeline(store, FakeGeminiClient(fail_generate=True))

    with pytest.raises(QueryError):
        await pipeline.answer("headache", user_id="user-1")

    await pipeline.query_log.drain()
    assert await store.list_query_logs() == []


@pytest.mark.asyncio
async def test_log_write_failure_does_not_affect_answer(store):
    async def broken_log(*args):
        raise StoreError("queries table unavailable")

    store.insert_query_log = broken_log
    pipeline = make_pipeline(store, FakeGeminiClient(answer="Use ORS."))

    result = await pipeline.answer("diarrhoea", user_id="user-1")
    await pipeline.query_log.drain()

    assert result.answer.startswith("Use ORS.")
    assert pipeline.query_log.pending == 0


@pytest.mark.asyncio
async def test_anonymous_questions_not_logged(store):
    pipeline = make_pipeline(store, FakeGeminiClient())
    await pipeline.answer("fever")
    await pipeline.query_log.drain()
    assert await store.list_query_logs() == []


@pytest.mark.asyncio
async def test_language_selects_persona(store):
    gemini = FakeGeminiClient()
    pipeline = make_pipeline(store, gemini)

    result = await pipeline.answer("ताप", language="mr")
    assert result.language == "mr"
    assert gemini.last_prompt.startswith(LANGUAGE_INSTRUCTIONS["mr"])

    result = await pipeline.answer("fièvre", language="fr")
    assert result.language == "en"
    assert gemini.last_prompt.startswith(LANGUAGE_INSTRUCTIONS["en"])


def test_normalize_language():
    assert normalize_language("HI") == "hi"
    assert normalize_language(None) == "en"
    assert normalize_language("ta") == "en"


def test_system_prompt_contains_safety_rules():
    prompt = build_system_prompt("en", [], QueryType.MEDICAL)

    assert "never suggest anything that could cause harm" in prompt
    assert "IMMEDIATELY advise visiting nearest clinic/hospital" in prompt
    assert "Never diagnose" in prompt
    assert DISCLAIMER in prompt
    assert "108" not in prompt

    emergency = build_system_prompt("en", ["Apply pressure to the wound."], QueryType.EMERGENCY)
    assert "108" in emergency
    assert emergency.endswith("Verified Medical Context:\nApply pressure to the wound.")


@pytest.mark.asyncio
async def test_skin_type_rejected(store):
    with pytest.raises(ValueError):
        await make_pipeline(store, FakeGeminiClient()).answer("rash", query_type=QueryType.SKIN)
