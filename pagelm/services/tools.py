"""
Registry of generation tools.

Every tool follows the same lifecycle: POST a start request, receive a job id,
subscribe to /ws/<kind>?<param>=<id>, wait for the tool's payload event. What
differs per tool lives in a ToolSpec:

  kind        start path / stream path   id field     payload event  close after done
  quiz        quiz                       quizId       quiz           immediately
  podcast     podcast                    pid          audio          1s
  smartnotes  smartnotes                 noteId       file           immediately
  mindmap     mindmap                    mindmapId    mindmap        1s
  exam        exam                       examId       exam           immediately
  research    research                   researchId   file           immediately
"""
from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from pagelm.models.events import ErrorEvent, PhaseEvent, StreamEvent
from pagelm.models.graph import KnowledgeGraph
from pagelm.models.tool import (
    Exam,
    FileResult,
    GeneratedTool,
    QuizQuestion,
    ToolConfig,
    ToolKind,
    ToolRecord,
    ToolStatus,
)

logger = logging.getLogger(__name__)

QUIZ_LENGTHS = {"short": 5, "medium": 10, "long": 20}
DEFAULT_MINDMAP_TOPIC = "Knowledge Map"

DISPLAY_NAMES = {
    ToolKind.QUIZ: "Quiz",
    ToolKind.PODCAST: "Podcast",
    ToolKind.SMARTNOTES: "Notes",
    ToolKind.MINDMAP: "Mind Map",
    ToolKind.EXAM: "Exam",
    ToolKind.RESEARCH: "Research",
}


def _compact(payload: dict) -> dict:
    return {k: v for k, v in payload.items() if v is not None and v != []}


def _instructions(config: ToolConfig, with_tone: bool = False) -> dict | None:
    fields = {
        "focusArea": config.focus_area,
        "additionalInstructions": config.additional_instructions,
    }
    if with_tone:
        fields["tone"] = config.tone
    fields = {k: v for k, v in fields.items() if v}
    return fields or None


def _common(config: ToolConfig) -> dict:
    return {
        "sourceIds": config.source_ids or None,
        "instructions": _instructions(config),
        "provider": config.provider or None,
        "model": config.model or None,
    }


# --- Start payloads ---


def _quiz_payload(config: ToolConfig) -> dict:
    return _compact({
        "topic": config.topic,
        "difficulty": config.difficulty,
        "length": QUIZ_LENGTHS.get(config.length, 5),
        **_common(config),
    })


def _podcast_payload(config: ToolConfig) -> dict:
    return _compact({
        "topic": config.topic,
        "length": config.length,
        **_common(config),
        "instructions": _instructions(config, with_tone=True),
    })


def _smartnotes_payload(config: ToolConfig) -> dict:
    return _compact({
        "topic": config.topic,
        "length": config.length,
        "mode": config.mode,
        **_common(config),
    })


def _mindmap_payload(config: ToolConfig) -> dict:
    topic = config.topic if config.topic and config.topic != DEFAULT_MINDMAP_TOPIC else None
    return _compact({"topic": topic, **_common(config)})


def _exam_payload(config: ToolConfig) -> dict:
    if not config.source_ids:
        raise ValueError("An exam needs at least one source")
    return _compact({
        "timeLimit": config.time_limit,
        "shuffle": config.shuffle,
        "maxQuestions": config.max_questions,
        **_common(config),
    })


def _research_payload(config: ToolConfig) -> dict:
    return _compact({"topic": config.topic, "depth": config.depth, **_common(config)})


# --- Results ---


def _quiz_questions(raw: Any) -> list[QuizQuestion]:
    """Accept a bare list or {"quiz": [...]}; the backend numbers answers from 1."""
    if isinstance(raw, dict):
        raw = raw.get("quiz") or raw.get("questions")
    if not isinstance(raw, list):
        return []
    questions = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        correct = item.get("correct")
        item = {**item, "correct": max(0, correct - 1) if isinstance(correct, int) else 0}
        try:
            questions.append(QuizQuestion.model_validate(item))
        except ValidationError:
            logger.debug("Dropping malformed quiz question: %r", item)
    return questions


def _graph(raw: Any) -> KnowledgeGraph:
    try:
        return KnowledgeGraph.model_validate(raw or {})
    except ValidationError:
        logger.warning("Malformed mindmap payload; showing an empty map")
        return KnowledgeGraph()


def _exam(raw: Any) -> Exam:
    try:
        return Exam.model_validate(raw or {})
    except ValidationError:
        logger.warning("Malformed exam payload; showing an empty exam")
        return Exam()


def _file_from_event(event: StreamEvent) -> FileResult:
    file = getattr(event, "file", None) or getattr(event, "static_url", None) or ""
    return FileResult(file=file, filename=getattr(event, "filename", None))


@dataclass(frozen=True)
class ToolSpec:
    kind: ToolKind
    id_field: str
    payload_event: str
    build_payload: Callable[[ToolConfig], dict]
    extract: Callable[[StreamEvent], Any]
    restore: Callable[[ToolRecord], Any]
    ready_label: Callable[[Any, ToolConfig], str] = lambda result, config: config.topic
    close_delay: float = 0.0
    # mindmap shows the current phase on its card while generating
    phase_labels: bool = False

    @property
    def start_path(self) -> str:
        return self.kind.value

    @property
    def stream_path(self) -> str:
        return f"/ws/{self.kind.value}"

    @property
    def display_name(self) -> str:
        return DISPLAY_NAMES[self.kind]

    def job_id(self, start_response: dict) -> str:
        return start_response[self.id_field]


def _record_result(record: ToolRecord) -> dict:
    return record.result if isinstance(record.result, dict) else {}


REGISTRY: dict[ToolKind, ToolSpec] = {
    ToolKind.QUIZ: ToolSpec(
        kind=ToolKind.QUIZ,
        id_field="quizId",
        payload_event="quiz",
        build_payload=_quiz_payload,
        extract=lambda ev: _quiz_questions(ev.quiz),
        restore=lambda rec: _quiz_questions(_record_result(rec).get("questions")),
        ready_label=lambda result, config: f"{len(result)} Qs on {config.topic}",
    ),
    ToolKind.PODCAST: ToolSpec(
        kind=ToolKind.PODCAST,
        id_field="pid",
        payload_event="audio",
        build_payload=_podcast_payload,
        extract=lambda ev: FileResult(
            file=ev.file or ev.static_url or "", filename=ev.filename or "podcast.mp3"
        ),
        restore=lambda rec: FileResult(
            file=_record_result(rec).get("url", ""), filename=_record_result(rec).get("filename")
        ),
        close_delay=1.0,
    ),
    ToolKind.SMARTNOTES: ToolSpec(
        kind=ToolKind.SMARTNOTES,
        id_field="noteId",
        payload_event="file",
        build_payload=_smartnotes_payload,
        extract=_file_from_event,
        restore=lambda rec: FileResult(file=_record_result(rec).get("url", "")),
    ),
    ToolKind.MINDMAP: ToolSpec(
        kind=ToolKind.MINDMAP,
        id_field="mindmapId",
        payload_event="mindmap",
        build_payload=_mindmap_payload,
        extract=lambda ev: _graph(ev.data),
        restore=lambda rec: _graph(_record_result(rec).get("data")),
        ready_label=lambda result, config: f"{len(result.nodes)} concepts",
        close_delay=1.0,
        phase_labels=True,
    ),
    ToolKind.EXAM: ToolSpec(
        kind=ToolKind.EXAM,
        id_field="examId",
        payload_event="exam",
        build_payload=_exam_payload,
        extract=lambda ev: _exam(ev.exam),
        restore=lambda rec: _exam(_record_result(rec).get("exam") or rec.result),
        ready_label=lambda result, config: f"{len(result.questions)} questions",
    ),
    ToolKind.RESEARCH: ToolSpec(
        kind=ToolKind.RESEARCH,
        id_field="researchId",
        payload_event="file",
        build_payload=_research_payload,
        extract=_file_from_event,
        restore=lambda rec: FileResult(file=_record_result(rec).get("url", "")),
    ),
}


def get_spec(kind: ToolKind | str) -> ToolSpec:
    return REGISTRY[ToolKind(kind)]


def apply_event(spec: ToolSpec, card: GeneratedTool, event: StreamEvent) -> GeneratedTool:
    """Return the card as it should look after event; unchanged for unrelated events."""
    if isinstance(event, PhaseEvent) and spec.phase_labels and card.status == ToolStatus.LOADING:
        return card.model_copy(update={"label": event.detail or event.value or "Generating..."})

    if event.type == spec.payload_event:
        result = spec.extract(event)
        return card.model_copy(update={
            "status": ToolStatus.READY,
            "result": result,
            "label": spec.ready_label(result, card.config),
            "error": None,
        })

    if isinstance(event, ErrorEvent):
        return card.model_copy(update={"status": ToolStatus.ERROR, "error": event.error})

    return card


def restore_card(record: ToolRecord) -> GeneratedTool:
    """Rebuild a ready card from a tool persisted by the backend."""
    spec = get_spec(record.tool)
    length = record.config.get("length")
    difficulty = record.config.get("difficulty")
    config = ToolConfig(
        topic=record.topic,
        length=length if length in QUIZ_LENGTHS else "medium",
        difficulty=difficulty if difficulty in ("easy", "medium", "hard") else None,
    )
    return GeneratedTool(
        tool=record.tool,
        tool_id=record.id,
        config=config,
        status=ToolStatus.READY,
        result=spec.restore(record),
        label=record.topic,
        created_at=record.created_at,
    )
