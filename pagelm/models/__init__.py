from pagelm.models.chat import (
    AgentStep,
    ChatDetail,
    ChatInfo,
    ChatMessage,
    ChatStart,
    FlashCard,
    NormalizedAnswer,
    RagSource,
)
from pagelm.models.flashcard import FlashcardCreate, SavedFlashcard
from pagelm.models.graph import (
    GraphEdge,
    GraphLayout,
    GraphNode,
    KnowledgeGraph,
    NodeCitation,
    NodePosition,
)
from pagelm.models.setup import ModelsResponse, ProviderInfo, TranscriptionResult
from pagelm.models.subject import (
    SearchMode,
    Source,
    SourceType,
    Subject,
    UploadResult,
    WebSearchHit,
)
from pagelm.models.tool import (
    Exam,
    ExamQuestion,
    FileResult,
    GeneratedTool,
    QuizQuestion,
    ToolConfig,
    ToolKind,
    ToolRecord,
    ToolStatus,
)

__all__ = [
    "AgentStep",
    "ChatDetail",
    "ChatInfo",
    "ChatMessage",
    "ChatStart",
    "Exam",
    "ExamQuestion",
    "FileResult",
    "FlashCard",
    "FlashcardCreate",
    "GeneratedTool",
    "GraphEdge",
    "GraphLayout",
    "GraphNode",
    "KnowledgeGraph",
    "ModelsResponse",
    "NodeCitation",
    "NodePosition",
    "NormalizedAnswer",
    "ProviderInfo",
    "QuizQuestion",
    "RagSource",
    "SavedFlashcard",
    "SearchMode",
    "Source",
    "SourceType",
    "Subject",
    "ToolConfig",
    "ToolKind",
    "ToolRecord",
    "ToolStatus",
    "TranscriptionResult",
    "UploadResult",
    "WebSearchHit",
]
