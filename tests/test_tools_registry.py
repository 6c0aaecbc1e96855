"""Tests for per-tool payloads and stream event handling."""
import json

import pytest

from pagelm.models.events import parse_event
from pagelm.models.tool import GeneratedTool, ToolConfig, ToolKind, ToolRecord, ToolStatus
from pagelm.services.tools import REGISTRY, apply_event, get_spec, restore_card


def _card(kind, **config):
    return GeneratedTool(tool=kind, config=ToolConfig(**config), label=config.get("topic", ""))


def _event(**frame):
    return parse_event(json.dumps(frame))


def test_every_kind_is_registered():
    assert set(REGISTRY) == set(ToolKind)
    assert get_spec("podcast").id_field == "pid"
    assert get_spec(ToolKind.MINDMAP).stream_path == "/ws/mindmap"


def test_quiz_payload_maps_length_to_question_count():
    payload = get_spec("quiz").build_payload(ToolConfig(topic="Cells", length="long", difficulty="hard"))
    assert payload == {"topic": "Cells", "difficulty": "hard", "length": 20}


def test_podcast_instructions_carry_tone():
    payload = get_spec("podcast").build_payload(
        ToolConfig(topic="Cells", tone="casual", source_ids=["s1"])
    )
    assert payload["instructions"] == {"tone": "casual"}
    assert payload["sourceIds"] == ["s1"]


def test_mindmap_omits_placeholder_topic():
    spec = get_spec("mindmap")
    assert "topic" not in spec.build_payload(ToolConfig(topic="Knowledge Map"))
    assert spec.build_payload(ToolConfig(topic="Enzymes"))["topic"] == "Enzymes"


def test_exam_requires_sources():
    spec = get_spec("exam")
    with pytest.raises(ValueError):
        spec.build_payload(ToolConfig())
    assert spec.build_payload(ToolConfig(source_ids=["a"], time_limit=30))["timeLimit"] == 30


def test_quiz_event_makes_card_ready_with_zero_based_answers():
    spec = get_spec("quiz")
    card = _card(ToolKind.QUIZ, topic="Cells")
    questions = [
        {"id": i, "question": f"Q{i}", "options": ["a", "b", "c", "d"], "correct": 2}
        for i in range(5)
    ]
    card = apply_event(spec, card, _event(type="quiz", quiz=questions))
    assert card.status == ToolStatus.READY
    assert card.label == "5 Qs on Cells"
    assert card.result[0].correct == 1


def test_mindmap_phase_updates_label_while_loading():
    spec = get_spec("mindmap")
    card = _card(ToolKind.MINDMAP)
    card = apply_event(spec, card, _event(type="phase", value="extract", detail="Reading sources"))
    assert card.label == "Reading sources"
    card = apply_event(spec, card, _event(type="mindmap", data={"nodes": [{"id": "a", "label": "A"}], "edges": []}))
    assert card.status == ToolStatus.READY
    assert card.label == "1 concepts"


def test_phase_does_not_relabel_other_tools():
    spec = get_spec("quiz")
    card = _card(ToolKind.QUIZ, topic="Cells")
    assert apply_event(spec, card, _event(type="phase", value="generating")) == card


def test_error_event_marks_card_failed():
    spec = get_spec("smartnotes")
    card = apply_event(spec, _card(ToolKind.SMARTNOTES, topic="x"), _event(type="error", error="llm down"))
    assert card.status == ToolStatus.ERROR
    assert card.error == "llm down"


def test_podcast_audio_event():
    spec = get_spec("podcast")
    card = apply_event(
        spec,
        _card(ToolKind.PODCAST, topic="Cells"),
        _event(type="audio", staticUrl="/storage/podcasts/p1.mp3"),
    )
    assert card.result.file == "/storage/podcasts/p1.mp3"
    assert card.result.filename == "podcast.mp3"
    assert spec.close_delay == 1.0


def test_restore_card_sanitizes_config():
    record = ToolRecord(
        id="t1",
        tool=ToolKind.QUIZ,
        topic="Cells",
        config={"length": "enormous", "difficulty": "easy"},
        createdAt=5,
        result={"questions": [{"id": 1, "question": "Q", "options": ["a", "b"], "correct": 1}]},
    )
    card = restore_card(record)
    assert card.status == ToolStatus.READY
    assert card.tool_id == "t1"
    assert card.config.length == "medium"
    assert card.config.difficulty == "easy"
    assert card.result[0].correct == 0
