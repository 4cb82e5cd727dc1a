"""Data models for the objective news pipeline."""

from typing import List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ChatMessage(BaseModel):
    """One role-tagged message of a prompt."""

    model_config = ConfigDict(frozen=True)

    role: Literal["system", "user", "assistant"]
    content: str


class PromptRequest(BaseModel):
    """Messages plus sampling temperature for a single completion call."""

    model_config = ConfigDict(frozen=True)

    messages: Tuple[ChatMessage, ...] = Field(..., min_length=1)
    temperature: float = Field(0.7, ge=0.0, le=1.0)

    @classmethod
    def from_user(cls, content: str, temperature: float) -> "PromptRequest":
        return cls(
            messages=(ChatMessage(role="user", content=content),),
            temperature=temperature,
        )

    def payload_messages(self) -> List[dict]:
        return [message.model_dump() for message in self.messages]


class EnvelopeMessage(BaseModel):
    content: Optional[str] = None


class EnvelopeChoice(BaseModel):
    message: EnvelopeMessage


class ChatCompletionEnvelope(BaseModel):
    """The subset of the upstream response this package relies on."""

    choices: List[EnvelopeChoice] = Field(..., min_length=1)

    @property
    def text(self) -> str:
        return self.choices[0].message.content or ""


class TrendingItem(BaseModel):
    """A candidate story returned by the trending stage."""

    title: str
    summary: str = ""

    @field_validator("summary", mode="before")
    @classmethod
    def _summary_or_empty(cls, value):
        return "" if value is None else value


class SourceOpinion(BaseModel):
    """One outlet's stance on a story."""

    name: str
    summary: str = ""

    @field_validator("summary", mode="before")
    @classmethod
    def _summary_or_empty(cls, value):
        return "" if value is None else value


class ObjectivityResult(BaseModel):
    """Cross-referenced synthesis returned by the objectivity stage."""

    summary: str = ""
    sources: List[SourceOpinion] = Field(default_factory=list)

    @field_validator("summary", mode="before")
    @classmethod
    def _summary_or_empty(cls, value):
        return "" if value is None else value

    @field_validator("sources", mode="before")
    @classmethod
    def _sources_or_empty(cls, value):
        return [] if value is None else value


class NewsItem(BaseModel):
    """Enriched story handed back to callers."""

    title: str
    summary: str
    sources: List[SourceOpinion] = Field(default_factory=list)


class NewsResponse(BaseModel):
    """API envelope; keeps the `newsList` key expected by existing front ends."""

    model_config = ConfigDict(populate_by_name=True)

    category: str
    news_list: List[NewsItem] = Field(default_factory=list, alias="newsList")
