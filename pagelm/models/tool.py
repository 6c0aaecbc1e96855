from enum import Enum
from typing import Any, Literal

from pagelm.models.base import ApiModel


class ToolKind(str, Enum):
    QUIZ = "quiz"
    PODCAST = "podcast"
    SMARTNOTES = "smartnotes"
    MINDMAP = "mindmap"
    EXAM = "exam"
    RESEARCH = "research"


class ToolStatus(str, Enum):
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


class ToolConfig(ApiModel):
    topic: str = ""
    difficulty: Literal["easy", "medium", "hard"] | None = None
    length: Literal["short", "medium", "long"] = "medium"
    source_ids: list[str] = []
    focus_area: str | None = None
    additional_instructions: str | None = None
    tone: str | None = None
    provider: str | None = None
    model: str | None = None
    # smartnotes / research only
    mode: Literal["summary", "deep", "study-guide"] | None = None
    depth: Literal["quick", "standard", "comprehensive"] | None = None
    # exam only
    time_limit: int | None = None
    shuffle: bool | None = None
    max_questions: int | None = None


class FileResult(ApiModel):
    """A generated file served by the backend (notes markdown, podcast audio)."""

    file: str
    filename: str | None = None


class ToolRecord(ApiModel):
    id: str
    tool: ToolKind
    topic: str = ""
    config: dict[str, Any] = {}
    created_at: int = 0
    result: Any = None


class QuizQuestion(ApiModel):
    id: int
    question: str
    options: list[str] = []
    correct: int = 0
    hint: str = ""
    explanation: str = ""
    image_html: str | None = None


class ExamQuestion(ApiModel):
    id: int
    question: str
    type: Literal["open", "mcq"] = "open"
    options: list[str] | None = None
    correct_answer: str | None = None
    hint: str = ""
    solution: str = ""
    points: int = 0
    source: str = ""


class Exam(ApiModel):
    questions: list[ExamQuestion] = []
    total_points: int = 0
    time_limit: int = 0


class GeneratedTool(ApiModel):
    """A tool card as shown in the tools column."""

    tool: ToolKind
    tool_id: str | None = None
    config: ToolConfig
    status: ToolStatus = ToolStatus.LOADING
    result: Any = None
    label: str = ""
    created_at: int | None = None
    error: str | None = None
