"""Typed views over Gemini API responses.

Gemini returns each candidate's content as a list of parts. Thinking models
tag their reasoning parts with ``thought: true``; only untagged parts carry
the final answer, so callers read text through :func:`select_final_text`.
"""
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Part(BaseModel):
    """One response segment."""

    model_config = ConfigDict(extra="ignore")

    text: Optional[str] = None
    thought: bool = False

    @property
    def is_final(self) -> bool:
        return bool(self.text) and not self.thought


class Content(BaseModel):
    model_config = ConfigDict(extra="ignore")

    role: Optional[str] = None
    parts: List[Part] = Field(default_factory=list)


class Candidate(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    content: Optional[Content] = None
    finish_reason: Optional[str] = Field(default=None, alias="finishReason")


class GenerateContentResponse(BaseModel):
    """Response body of ``models/{model}:generateContent``."""

    model_config = ConfigDict(extra="ignore")

    candidates: List[Candidate] = Field(default_factory=list)

    @property
    def parts(self) -> List[Part]:
        """Parts of the first candidate (empty if there is none)."""
        if not self.candidates or self.candidates[0].content is None:
            return []
        return self.candidates[0].content.parts

    def final_text(self) -> str:
        return select_final_text(self.parts)


class ContentEmbedding(BaseModel):
    model_config = ConfigDict(extra="ignore")

    values: List[float] = Field(default_factory=list)


class EmbedContentResponse(BaseModel):
    """Response body of ``models/{model}:embedContent``."""

    model_config = ConfigDict(extra="ignore")

    embedding: ContentEmbedding


def select_final_text(parts: List[Part]) -> str:
    """Concatenate final-output parts in order, dropping reasoning parts."""
    return "".join(part.text for part in parts if part.is_final)
