from typing import Literal

from pagelm.models.base import ApiModel
from pagelm.models.subject import SourceType


class RagSource(ApiModel):
    source_file: str = ""
    source_id: str | None = None
    page_number: int | None = None
    heading: str | None = None
    source_type: SourceType | None = None
    url: str | None = None


class FlashCard(ApiModel):
    q: str
    a: str
    tags: list[str] = []


class ChatInfo(ApiModel):
    id: str
    title: str | None = None
    at: int | None = None

    @property
    def display_title(self) -> str:
        return self.title or "Untitled chat"


class ChatMessage(ApiModel):
    role: Literal["user", "assistant"]
    content: str
    at: int = 0
    # populated for assistant turns once the payload is normalized
    sources: list[RagSource] = []
    flashcards: list[FlashCard] = []
    agent_steps: list["AgentStep"] = []


class ChatDetail(ApiModel):
    chat: ChatInfo
    messages: list[ChatMessage] = []


class AgentStep(ApiModel):
    step_id: int
    phase: str
    detail: str | None = None
    status: Literal["active", "done"] = "active"


class NormalizedAnswer(ApiModel):
    md: str = ""
    flashcards: list[FlashCard] = []
    sources: list[RagSource] = []


class ChatStart(ApiModel):
    chat_id: str
    stream: str = ""


ChatMessage.model_rebuild()
