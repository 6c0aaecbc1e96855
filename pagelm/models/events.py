"""
Stream events pushed by the backend over the per-job WebSockets.

Every frame is a JSON object tagged by ``type``. One union covers all job
kinds; each kind only ever emits a subset:

  chat         ready, phase, file, answer, done, error
  quiz         ready, phase, quiz, done, error, ping
  podcast      ready, phase, file, warn, script, audio, done, error
  smartnotes   ready, phase, file, done, error, ping
  mindmap      ready, phase, mindmap, done, error, ping
  exam         ready, phase, exam, done, error, ping
  research     ready, phase, plan, file, done, error, ping
  websearch    ready, phase, result, done, error
  subjectgraph ready, phase, graph, done, error, ping
"""
from typing import Annotated, Any, Literal, Union

from pydantic import ConfigDict, Field, TypeAdapter

from pagelm.models.base import ApiModel
from pagelm.models.subject import WebSearchHit


class _Event(ApiModel):
    # ready events carry a kind-specific id field (quizId, pid, ...)
    model_config = ConfigDict(extra="allow")


class ReadyEvent(_Event):
    type: Literal["ready"]


class PhaseEvent(_Event):
    type: Literal["phase"]
    value: str = ""
    detail: str | None = None
    step_id: int | None = None


class QuizEvent(_Event):
    type: Literal["quiz"]
    quiz: Any = None


class AudioEvent(_Event):
    type: Literal["audio"]
    file: str | None = None
    filename: str | None = None
    static_url: str | None = None


class FileEvent(_Event):
    type: Literal["file"]
    file: str | None = None
    filename: str | None = None
    mime: str | None = None


class ScriptEvent(_Event):
    type: Literal["script"]
    data: Any = None


class WarnEvent(_Event):
    type: Literal["warn"]
    message: str = ""


class MindmapEvent(_Event):
    type: Literal["mindmap"]
    data: Any = None


class ExamEvent(_Event):
    type: Literal["exam"]
    exam: Any = None


class GraphEvent(_Event):
    type: Literal["graph"]
    data: Any = None


class PlanEvent(_Event):
    type: Literal["plan"]
    plan: Any = None


class AnswerEvent(_Event):
    type: Literal["answer"]
    answer: Any = None


class ResultEvent(_Event):
    type: Literal["result"]
    result: WebSearchHit


class DoneEvent(_Event):
    type: Literal["done"]
    source_id: str | None = None


class ErrorEvent(_Event):
    type: Literal["error"]
    error: str = "failed"


class PingEvent(_Event):
    type: Literal["ping"]
    t: int | None = None


StreamEvent = Annotated[
    Union[
        ReadyEvent,
        PhaseEvent,
        QuizEvent,
        AudioEvent,
        FileEvent,
        ScriptEvent,
        WarnEvent,
        MindmapEvent,
        ExamEvent,
        GraphEvent,
        PlanEvent,
        AnswerEvent,
        ResultEvent,
        DoneEvent,
        ErrorEvent,
        PingEvent,
    ],
    Field(discriminator="type"),
]

stream_event_adapter: TypeAdapter[StreamEvent] = TypeAdapter(StreamEvent)


def parse_event(raw: str | bytes) -> StreamEvent:
    """Decode one WebSocket frame. Raises pydantic.ValidationError on bad input."""
    return stream_event_adapter.validate_json(raw)
