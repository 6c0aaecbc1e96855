from __future__ import annotations

import asyncio
import logging

from pydantic import ValidationError

from pagelm.models.events import DoneEvent, ErrorEvent, GraphEvent, PhaseEvent, StreamEvent
from pagelm.models.graph import GraphLayout, KnowledgeGraph
from pagelm.services.api_client import PageLMError
from pagelm.services.graph_layout import force_layout
from pagelm.services.model_choice import ModelChoice
from pagelm.services.subject_context import SubjectContext

logger = logging.getLogger(__name__)

STREAM_KEY = "subjectgraph"
MAX_INSTRUCTION_LENGTH = 2000


class GraphColumn:
    """Knowledge graph of the open subject, kept in sync with /ws/subjectgraph."""

    def __init__(self, ctx: SubjectContext, models: ModelChoice | None = None) -> None:
        self.ctx = ctx
        self.models = models or ModelChoice()
        self.graph: KnowledgeGraph | None = None
        self.layout: GraphLayout | None = None
        self.loading = False
        self.phase = ""
        self.error: str | None = None
        self.search_term = ""
        self._idle = asyncio.Event()
        self._idle.set()

    def _set_graph(self, graph: KnowledgeGraph | None) -> None:
        self.graph = graph
        self.layout = force_layout(graph) if graph else None

    async def load(self) -> None:
        """Fetch the stored graph and start following graph updates."""
        subject = self.ctx.subject
        if not subject:
            return
        try:
            self._set_graph(await self.ctx.api.get_graph(subject.id))
        except PageLMError as e:
            logger.warning("Could not load subject graph: %s", e)
            self._set_graph(None)
        url = self.ctx.api.ws_url("/ws/subjectgraph", subjectId=subject.id)
        self.ctx.streams.subscribe(STREAM_KEY, url, self.on_event)

    def on_event(self, ev: StreamEvent) -> None:
        if isinstance(ev, PhaseEvent):
            self.phase = ev.detail or ev.value
            self.loading = True
            self._idle.clear()
        elif isinstance(ev, GraphEvent):
            try:
                self._set_graph(KnowledgeGraph.model_validate(ev.data or {}))
            except ValidationError:
                logger.warning("Malformed graph update dropped")
        elif isinstance(ev, DoneEvent):
            self.loading = False
            self.phase = ""
            self._idle.set()
        elif isinstance(ev, ErrorEvent):
            self.loading = False
            self.phase = ""
            self.error = ev.error
            self._idle.set()

    async def rebuild(self) -> bool:
        subject = self.ctx.subject
        if not subject or self.loading:
            return False
        self.loading = True
        self.phase = "Starting rebuild..."
        self._idle.clear()
        self.error = None
        try:
            await self.ctx.api.rebuild_graph(subject.id, **self.models.as_override())
        except PageLMError as e:
            self.error = str(e) or "Rebuild failed"
            self.loading = False
            self.phase = ""
            self._idle.set()
            return False
        return True

    async def expand(self, source_ids: list[str]) -> bool:
        """Merge concepts from newly added sources into the graph."""
        subject = self.ctx.subject
        if not subject or not source_ids or self.loading:
            return False
        self.loading = True
        self.phase = "Expanding graph..."
        self._idle.clear()
        self.error = None
        try:
            await self.ctx.api.expand_graph(subject.id, source_ids)
        except PageLMError as e:
            self.error = str(e) or "Expand failed"
            self.loading = False
            self.phase = ""
            self._idle.set()
            return False
        return True

    async def ai_edit(self, instruction: str) -> bool:
        subject = self.ctx.subject
        instruction = instruction.strip()
        if not subject or not self.graph or not instruction:
            return False
        if len(instruction) > MAX_INSTRUCTION_LENGTH:
            self.error = f"Instruction is too long (max {MAX_INSTRUCTION_LENGTH} characters)"
            return False
        try:
            edited = await self.ctx.api.ai_edit_graph(
                subject.id, instruction, self.graph, **self.models.as_override()
            )
        except (PageLMError, ValidationError) as e:
            self.error = str(e) or "AI edit failed"
            return False
        self._set_graph(edited)
        return True

    async def save(self) -> None:
        subject = self.ctx.subject
        if subject and self.graph:
            await self.ctx.api.save_graph(subject.id, self.graph)

    def search(self, term: str) -> set[str]:
        """Ids of nodes whose label contains term; every node when term is empty."""
        self.search_term = term
        if not self.graph:
            return set()
        lower = term.lower()
        return {n.id for n in self.graph.nodes if not term or lower in n.label.lower()}

    def categories(self) -> list[str]:
        if not self.graph:
            return []
        return sorted({n.category for n in self.graph.nodes})

    def dispose(self) -> None:
        self.ctx.streams.close(STREAM_KEY)

    async def wait_idle(self, timeout: float | None = None) -> None:
        """Wait until a running rebuild or expansion reports done or error."""
        await asyncio.wait_for(self._idle.wait(), timeout)
