"""Tests for the subject knowledge graph column."""
import asyncio

import pytest

from pagelm.services.graph_column import MAX_INSTRUCTION_LENGTH, GraphColumn
from pagelm.services.subject_context import SubjectContext

GRAPH = {
    "nodes": [
        {"id": "cell", "label": "Cell", "category": "concept"},
        {"id": "atp", "label": "ATP", "category": "term"},
        {"id": "mito", "label": "Mitochondrion", "category": "concept"},
    ],
    "edges": [
        {"source": "cell", "target": "mito", "weight": 0.9},
        {"source": "mito", "target": "atp", "weight": 0.7},
    ],
}


@pytest.fixture
async def column(api, streams, subject):
    ctx = SubjectContext(api, streams)
    await ctx.load_subject(subject["id"])
    return GraphColumn(ctx)


async def test_load_lays_out_stored_graph(column, backend, subject, ws):
    backend.graphs[subject["id"]] = GRAPH
    await column.load()
    assert [n.id for n in column.layout.nodes] == ["cell", "atp", "mito"]
    assert column.categories() == ["concept", "term"]
    await asyncio.sleep(0)
    assert ws.opened[-1].endswith(f"/ws/subjectgraph?subjectId={subject['id']}")


async def test_load_without_graph(column):
    await column.load()
    assert column.graph is None
    assert column.layout is None
    assert column.search("x") == set()


async def test_rebuild_follows_stream(column, ws, backend, subject):
    ws.script(
        "/ws/subjectgraph",
        {"type": "phase", "value": "extract", "detail": "Extracting concepts"},
        {"type": "graph", "data": GRAPH},
        {"type": "done"},
    )
    await column.load()
    assert await column.rebuild()
    await column.wait_idle(timeout=5)

    assert not column.loading
    assert column.phase == ""
    assert len(column.graph.nodes) == 3
    assert backend.last_request("/graph/rebuild") == {}


async def test_rebuild_error_from_stream(column, ws):
    ws.script("/ws/subjectgraph", {"type": "error", "error": "no sources"})
    await column.load()
    await column.rebuild()
    await column.wait_idle(timeout=5)
    assert column.error == "no sources"


async def test_expand_sends_source_ids(column, backend):
    assert await column.expand(["s1", "s2"])
    assert backend.last_request("/graph/expand") == {"sourceIds": ["s1", "s2"]}
    assert column.loading
    assert await column.expand(["s3"]) is False


async def test_ai_edit(column, backend, subject):
    backend.graphs[subject["id"]] = GRAPH
    await column.load()
    assert await column.ai_edit("Add a node for glucose")
    assert "edited" in {n.id for n in column.graph.nodes}
    assert len(column.layout.nodes) == 4


async def test_ai_edit_rejects_long_instruction(column, backend, subject):
    backend.graphs[subject["id"]] = GRAPH
    await column.load()
    assert await column.ai_edit("x" * (MAX_INSTRUCTION_LENGTH + 1)) is False
    assert "too long" in column.error
    assert backend.requests == []


async def test_search_is_case_insensitive(column, backend, subject):
    backend.graphs[subject["id"]] = GRAPH
    await column.load()
    assert column.search("MITO") == {"mito"}
    assert column.search("") == {"cell", "atp", "mito"}


async def test_save_writes_graph(column, backend, subject):
    backend.graphs[subject["id"]] = GRAPH
    await column.load()
    column.graph.nodes.pop()
    await column.save()
    assert len(backend.graphs[subject["id"]]["nodes"]) == 2
