from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from pagelm.models.chat import ChatInfo
from pagelm.models.events import DoneEvent, ErrorEvent, PhaseEvent, ResultEvent, StreamEvent
from pagelm.models.subject import SearchMode, Source, SourceType, Subject, WebSearchHit
from pagelm.services.api_client import PageLMClient, PageLMError, UploadFile
from pagelm.services.subscription import SubscriptionManager

logger = logging.getLogger(__name__)


@dataclass
class WebSearchState:
    query: str = ""
    searching: bool = False
    phase: str = ""
    results: list[WebSearchHit] = field(default_factory=list)
    error: str = ""
    done: bool = False
    source_id: str | None = None


class SubjectContext:
    """
    Client-side state for the subject that is open in the workspace.

    Holds the subject, its sources and chat list, plus which chat, tool panel
    and source viewer are active. Every mutation goes through the backend and
    then re-fetches, so the lists always mirror the server.
    """

    def __init__(self, api: PageLMClient, streams: SubscriptionManager | None = None) -> None:
        self.api = api
        self.streams = streams or SubscriptionManager()
        self.subject: Subject | None = None
        self.sources: list[Source] = []
        self.chats: list[ChatInfo] = []
        self.active_chat_id: str | None = None
        self.active_panel: str | None = None
        self.viewing_source: Source | None = None
        self.web_search_state = WebSearchState()

    async def load_subject(self, subject_id: str) -> Subject:
        subject, sources = await self.api.get_subject(subject_id)
        self.subject = subject
        self.sources = sources
        self.chats = await self.api.list_chats(subject_id)
        self.active_chat_id = None
        self.active_panel = None
        self.viewing_source = None
        logger.info("Loaded subject %s (%d sources, %d chats)", subject_id, len(sources), len(self.chats))
        return subject

    async def refresh_sources(self) -> None:
        if not self.subject:
            return
        _, sources = await self.api.get_subject(self.subject.id)
        self.sources = sources
        self.subject = self.subject.model_copy(update={"source_count": len(sources)})

    async def refresh_chats(self) -> None:
        if not self.subject:
            return
        self.chats = await self.api.list_chats(self.subject.id)

    async def upload_sources(
        self, files: list[UploadFile], source_type: SourceType = SourceType.MATERIAL
    ) -> list[str] | None:
        """Upload files and refresh; returns the backend's warnings (e.g. skipped pages)."""
        if not self.subject:
            return None
        res = await self.api.upload_sources(self.subject.id, files, source_type)
        await self.refresh_sources()
        return res.warnings

    async def remove_source(self, source_id: str) -> None:
        if not self.subject:
            return
        await self.api.remove_source(self.subject.id, source_id)
        if self.viewing_source and self.viewing_source.id == source_id:
            self.viewing_source = None
        await self.refresh_sources()

    async def update_system_prompt(self, prompt: str) -> None:
        if not self.subject:
            return
        subject_id = self.subject.id
        updated = await self.api.update_subject_prompt(subject_id, prompt)
        # the subject may have changed while the request was in flight
        if self.subject and self.subject.id == subject_id:
            self.subject = self.subject.model_copy(update={"system_prompt": updated.system_prompt})

    async def rename(self, name: str) -> bool:
        name = name.strip()
        if not self.subject or not name or name == self.subject.name:
            return False
        await self.api.rename_subject(self.subject.id, name)
        await self.load_subject(self.subject.id)
        return True

    def open_source(self, source_id: str) -> Source | None:
        self.viewing_source = next((s for s in self.sources if s.id == source_id), None)
        return self.viewing_source

    def close_source(self) -> None:
        self.viewing_source = None

    def sources_of_type(self, source_type: SourceType | None = None) -> list[Source]:
        if source_type is None:
            return list(self.sources)
        return [s for s in self.sources if s.source_type == source_type]

    def source_type_counts(self) -> dict[SourceType, int]:
        counts: dict[SourceType, int] = {}
        for s in self.sources:
            counts[s.source_type] = counts.get(s.source_type, 0) + 1
        return counts

    # --- Web search ---

    async def web_search(self, query: str, mode: SearchMode = SearchMode.QUICK) -> WebSearchState:
        """Run a web search job to completion; the found pages become a websearch source."""
        query = query.strip()
        state = self.web_search_state
        if not self.subject or not query or state.searching:
            return state

        state = self.web_search_state = WebSearchState(query=query, searching=True, phase="Starting search...")
        finished = asyncio.Event()

        def on_event(ev: StreamEvent) -> None:
            if isinstance(ev, PhaseEvent):
                state.phase = ev.value
            elif isinstance(ev, ResultEvent):
                state.results.append(ev.result)
            elif isinstance(ev, DoneEvent):
                state.done = True
                state.source_id = ev.source_id
                state.searching = False
                state.phase = ""
                self.streams.close("websearch")
                finished.set()
            elif isinstance(ev, ErrorEvent):
                state.error = ev.error
                state.searching = False
                state.phase = ""
                self.streams.close("websearch")
                finished.set()

        try:
            job_id = await self.api.web_search_start(self.subject.id, query, mode)
        except PageLMError as e:
            logger.warning("Web search start failed: %s", e)
            state.error = str(e) or "Failed to start web search"
            state.searching = False
            state.phase = ""
            return state

        sub = self.streams.subscribe(
            "websearch", self.api.ws_url("/ws/websearch", jobId=job_id), on_event
        )
        await sub.wait()
        if not finished.is_set() and state.searching:
            state.searching = False
            state.error = state.error or "stream closed"
        if state.done:
            await self.refresh_sources()
        return state
