from typing import List, Literal, Optional

from pydantic import BaseModel, StrictBool, StrictStr


class Source(BaseModel):
    url: str
    title: Optional[str] = None
    excerpt: Optional[str] = None


class ChatOptions(BaseModel):
    persona: Optional[StrictStr] = None
    tone: Optional[StrictStr] = None
    depth: Optional[Literal["brief", "standard", "detailed"]] = None
    include_sources: StrictBool = True


class ChatRequest(BaseModel):
    query: Optional[StrictStr] = None
    prompt: Optional[StrictStr] = None  # legacy field name, use `query`
    options: Optional[ChatOptions] = None

    def question(self) -> str:
        """Canonical `query` first, legacy `prompt` otherwise. Stripped."""
        raw = self.query if self.query is not None else self.prompt
        return (raw or "").strip()

    @property
    def uses_legacy_field(self) -> bool:
        return self.query is None and self.prompt is not None


class ChatResponse(BaseModel):
    role: Literal["assistant"] = "assistant"
    text: str = ""
    sources: List[Source] = []


class ErrorResponse(BaseModel):
    error: str


class HealthResponse(BaseModel):
    ok: bool = True
    timestamp: str
