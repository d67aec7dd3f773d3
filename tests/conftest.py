"""Pytest configuration and fixtures shared by the unit tests."""
import json
import os
import tempfile

# Keep the default data directory out of the source tree
os.environ.setdefault("DATA_DIR", tempfile.mkdtemp(prefix="ascleon-test-"))

import pytest  # noqa: E402

from ascleon.errors import GeminiError  # noqa: E402
from ascleon.llm_types import GenerateContentResponse  # noqa: E402
from ascleon.main import create_app  # noqa: E402
from ascleon.rag.store_sqlite import SQLiteVectorStore  # noqa: E402
from ascleon.services import build_services  # noqa: E402


def letter_embedding(text: str) -> list:
    """Deterministic 8-dimensional embedding from letter counts."""
    lowered = text.lower()
    return [float(lowered.count(ch)) + 0.01 for ch in "aeiounst"]


class FakeGeminiClient:
    """In-memory stand-in for GeminiClient.

    Responds to PDF extraction with ``document_text``, to image triage with
    ``triage_text`` and to everything else with a reasoning part followed by
    ``answer``.
    """

    def __init__(
        self,
        document_text: str = "",
        answer: str = "Rest, drink fluids and see a doctor if fever persists.",
        triage_text: str = "",
        fail_generate: bool = False,
        fail_embed=None,
    ):
        self.api_key = "test-key"
        self.document_text = document_text
        self.answer = answer
        self.triage_text = triage_text
        self.fail_generate = fail_generate
        self.fail_embed = fail_embed or (lambda text: False)
        self.generate_calls = []
        self.embed_calls = []

    async def generate_content(
        self,
        parts,
        temperature=None,
        max_output_tokens=None,
        response_mime_type=None,
        model=None,
    ):
        self.generate_calls.append({
            "parts": parts,
            "temperature": temperature,
            "max_output_tokens": max_output_tokens,
            "response_mime_type": response_mime_type,
        })
        if self.fail_generate:
            raise GeminiError("Gemini API returned 503: unavailable", status_code=503)

        inline = [p["inlineData"] for p in parts if "inlineData" in p]
        if inline and inline[0]["mimeType"] == "application/pdf":
            response_parts = [{"text": self.document_text}] if self.document_text else []
        elif inline:
            response_parts = [{"text": self.triage_text}]
        else:
            response_parts = [
                {"text": "Considering likely causes...", "thought": True},
                {"text": self.answer},
            ]

        return GenerateContentResponse.model_validate(
            {"candidates": [{"content": {"role": "model", "parts": response_parts}}]}
        )

    async def embed_content(self, text, model=None):
        self.embed_calls.append(text)
        if self.fail_embed(text):
            raise GeminiError("Gemini API returned 500: internal", status_code=500)
        return letter_embedding(text)

    @property
    def last_prompt(self) -> str:
        return self.generate_calls[-1]["parts"][0]["text"]


def numbered_words(count: int, start: int = 0) -> str:
    return " ".join(f"word{i}" for i in range(start, start + count))


@pytest.fixture
def gemini():
    return FakeGeminiClient()


@pytest.fixture
def store(tmp_path):
    return SQLiteVectorStore(db_path=tmp_path / "ascleon.sqlite")


@pytest.fixture
def services(gemini, store):
    return build_services(client=gemini, store=store)


@pytest.fixture
def app(services):
    return create_app(services)


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def triage_json():
    return json.dumps({
        "condition": "Possible mild eczema",
        "severity": "Mild",
        "careSteps": ["Moisturise twice daily", "Avoid harsh soaps", "See a doctor if it spreads"],
        "disclaimer": "This is not a diagnosis.",
    })
