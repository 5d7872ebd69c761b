"""Request and response shapes of the Vertex AI ``generateContent`` endpoint."""

from __future__ import annotations

from pydantic import Field

from vertex_gateway.schemas import CamelModel


class Part(CamelModel):
    text: str | None = None


class Content(CamelModel):
    role: str | None = None
    parts: list[Part] | None = None


class GenerationConfig(CamelModel):
    temperature: float | None = None
    max_output_tokens: int | None = None
    top_p: float | None = None
    top_k: int | None = None


class SafetySetting(CamelModel):
    category: str | None = None
    threshold: str | None = None


class GenerateContentRequest(CamelModel):
    contents: list[Content] | None = Field(default_factory=list)
    generation_config: GenerationConfig | None = None
    safety_settings: list[SafetySetting] | None = None

    @classmethod
    def from_text(cls, text: str, role: str = "user") -> GenerateContentRequest:
        return cls(contents=[Content(role=role, parts=[Part(text=text)])])


class SafetyRating(CamelModel):
    category: str | None = None
    probability: str | None = None


class Candidate(CamelModel):
    content: Content | None = None
    finish_reason: str | None = None
    index: int = 0
    safety_ratings: list[SafetyRating] | None = None


class PromptFeedback(CamelModel):
    safety_ratings: list[SafetyRating] | None = None


class GenerateContentResponse(CamelModel):
    candidates: list[Candidate] | None = None
    prompt_feedback: PromptFeedback | None = None

    @property
    def generated_text(self) -> str | None:
        """Text of the first part of the first candidate, if every link exists."""
        if not self.candidates:
            return None
        content = self.candidates[0].content
        if content is None or not content.parts:
            return None
        return content.parts[0].text
