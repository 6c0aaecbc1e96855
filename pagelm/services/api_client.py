"""
HTTP client for the PageLM backend.

Wraps httpx.AsyncClient with one method per backend endpoint:
  GET/POST        /subjects
  GET/PATCH/DEL   /subjects/{id}
  POST/DEL        /subjects/{id}/sources[/{sourceId}]
  GET             /subjects/{id}/sources/{sourceId}/content
  POST            /subjects/{id}/chat
  GET/PATCH/DEL   /subjects/{id}/chats[/{chatId}]
  GET/POST/DEL    /subjects/{id}/flashcards[/{cardId}]
  GET/DEL         /subjects/{id}/tools[/{toolId}]
  POST            /subjects/{id}/{quiz,podcast,smartnotes,mindmap,exam,research,websearch}
  GET/PATCH/DEL   /subjects/{id}/mindmap, PATCH .../mindmap/ai-edit
  GET/PATCH       /subjects/{id}/graph, POST .../graph/{rebuild,expand}, PATCH .../graph/ai-edit
  POST            /subjects/{id}/transcriber
  GET             /models

Non-2xx responses raise BackendError; transport failures raise
BackendUnavailableError. WebSocket URLs for the job streams come from ws_url().
"""
from __future__ import annotations

import logging
import mimetypes
from pathlib import Path
from typing import Any, Union
from urllib.parse import quote, urlencode

import httpx

from pagelm.config import settings
from pagelm.models.chat import ChatDetail, ChatInfo, ChatStart
from pagelm.models.flashcard import FlashcardCreate, SavedFlashcard
from pagelm.models.graph import KnowledgeGraph
from pagelm.models.setup import ModelsResponse, TranscriptionResult
from pagelm.models.subject import SearchMode, Source, SourceType, Subject, UploadResult
from pagelm.models.tool import ToolRecord

logger = logging.getLogger(__name__)

# A file to upload: a path on disk, or (filename, content, mime type).
UploadFile = Union[Path, tuple[str, bytes, str]]

_DEFAULT_PORTS = {"http": 80, "https": 443, "ws": 80, "wss": 443}


class PageLMError(Exception):
    """Base class for client-side failures."""


class BackendError(PageLMError):
    """Raised when the backend answers with a non-2xx status."""

    def __init__(self, status_code: int, detail: str) -> None:
        super().__init__(f"http {status_code}: {detail}")
        self.status_code = status_code
        self.detail = detail


class BackendUnavailableError(PageLMError):
    """Raised when the backend cannot be reached or the request times out."""


class UntrustedOriginError(PageLMError):
    """Raised before fetching a URL that is not served by the configured backend."""


def _seg(value: str) -> str:
    return quote(value, safe="")


def _origin(url: httpx.URL) -> tuple[str, str, int | None]:
    scheme = url.scheme.lower()
    return scheme, url.host.lower(), url.port or _DEFAULT_PORTS.get(scheme)


def _file_part(f: UploadFile) -> tuple[str, bytes, str]:
    if isinstance(f, Path):
        mime = mimetypes.guess_type(f.name)[0] or "application/octet-stream"
        return f.name, f.read_bytes(), mime
    return f


class PageLMClient:
    """
    Async client for one backend.

    Usage:
        async with PageLMClient() as api:
            subjects = await api.list_subjects()
    """

    def __init__(
        self,
        base_url: str | None = None,
        *,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or settings.backend_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.timeout
        self._http = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "PageLMClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    # --- HTTP helpers ---

    async def _req(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        data: dict | None = None,
        files: list | None = None,
        timeout: float | None = None,
    ) -> Any:
        try:
            res = await self._http.request(
                method,
                path,
                json=json,
                data=data,
                files=files,
                timeout=timeout if timeout is not None else self.timeout,
            )
        except httpx.TimeoutException as e:
            raise BackendUnavailableError(f"{method} {path} timed out") from e
        except httpx.TransportError as e:
            raise BackendUnavailableError(f"{method} {path} failed: {e}") from e

        if not res.is_success:
            raise BackendError(res.status_code, self._error_detail(res))

        if "application/json" in res.headers.get("content-type", ""):
            return res.json()
        return res.text

    @staticmethod
    def _error_detail(res: httpx.Response) -> str:
        try:
            body = res.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and body.get("error"):
            return str(body["error"])
        return res.text or res.reason_phrase

    def _subject_path(self, subject_id: str, *parts: str) -> str:
        return "/".join(["/subjects", _seg(subject_id), *(_seg(p) for p in parts)])

    def ws_url(self, path: str, **params: str) -> str:
        """WebSocket URL on the backend's host; any base path is not carried over."""
        base = httpx.URL(self.base_url)
        scheme = "wss" if base.scheme == "https" else "ws"
        netloc = base.netloc.decode("ascii")
        query = f"?{urlencode(params)}" if params else ""
        return f"{scheme}://{netloc}{path}{query}"

    # --- Subjects ---

    async def list_subjects(self) -> list[Subject]:
        body = await self._req("GET", "/subjects")
        return [Subject.model_validate(s) for s in body.get("subjects", [])]

    async def create_subject(self, name: str) -> Subject:
        body = await self._req("POST", "/subjects", json={"name": name})
        return Subject.model_validate(body["subject"])

    async def get_subject(self, subject_id: str) -> tuple[Subject, list[Source]]:
        body = await self._req("GET", self._subject_path(subject_id))
        sources = [Source.model_validate(s) for s in body.get("sources", [])]
        subject = Subject.model_validate(body["subject"])
        return subject.model_copy(update={"source_count": len(sources)}), sources

    async def rename_subject(self, subject_id: str, name: str) -> Subject:
        body = await self._req("PATCH", self._subject_path(subject_id), json={"name": name})
        return Subject.model_validate(body["subject"])

    async def update_subject_prompt(self, subject_id: str, system_prompt: str) -> Subject:
        body = await self._req(
            "PATCH", self._subject_path(subject_id), json={"systemPrompt": system_prompt}
        )
        return Subject.model_validate(body["subject"])

    async def delete_subject(self, subject_id: str) -> None:
        await self._req("DELETE", self._subject_path(subject_id))

    # --- Sources ---

    async def upload_sources(
        self,
        subject_id: str,
        files: list[UploadFile],
        source_type: SourceType = SourceType.MATERIAL,
    ) -> UploadResult:
        parts = [("file", _file_part(f)) for f in files]
        body = await self._req(
            "POST",
            self._subject_path(subject_id, "sources"),
            data={"sourceType": SourceType(source_type).value},
            files=parts,
            timeout=max(self.timeout, settings.upload_timeout),
        )
        return UploadResult.model_validate(body)

    async def remove_source(self, subject_id: str, source_id: str) -> None:
        await self._req("DELETE", self._subject_path(subject_id, "sources", source_id))

    def source_content_url(self, subject_id: str, source_id: str) -> str:
        return self.base_url + self._subject_path(subject_id, "sources", source_id, "content")

    async def get_source_content_text(self, subject_id: str, source_id: str) -> str:
        body = await self._req("GET", self._subject_path(subject_id, "sources", source_id, "content"))
        return body if isinstance(body, str) else str(body)

    # --- Chat ---

    async def chat_start(
        self,
        subject_id: str,
        q: str,
        *,
        chat_id: str | None = None,
        provider: str | None = None,
        model: str | None = None,
    ) -> ChatStart:
        payload = {"q": q, "chatId": chat_id, "provider": provider, "model": model}
        body = await self._req(
            "POST",
            self._subject_path(subject_id, "chat"),
            json={k: v for k, v in payload.items() if v},
        )
        return ChatStart.model_validate(body)

    async def chat_start_multipart(
        self,
        subject_id: str,
        q: str,
        images: list[UploadFile],
        *,
        chat_id: str | None = None,
        provider: str | None = None,
        model: str | None = None,
    ) -> ChatStart:
        fields = {"q": q, "chatId": chat_id, "provider": provider, "model": model}
        body = await self._req(
            "POST",
            self._subject_path(subject_id, "chat"),
            data={k: v for k, v in fields.items() if v},
            files=[("file", _file_part(f)) for f in images],
            timeout=max(self.timeout, settings.upload_timeout),
        )
        return ChatStart.model_validate(body)

    async def list_chats(self, subject_id: str) -> list[ChatInfo]:
        body = await self._req("GET", self._subject_path(subject_id, "chats"))
        return [ChatInfo.model_validate(c) for c in body.get("chats", [])]

    async def get_chat(self, subject_id: str, chat_id: str) -> ChatDetail:
        body = await self._req("GET", self._subject_path(subject_id, "chats", chat_id))
        return ChatDetail.model_validate(body)

    async def rename_chat(self, subject_id: str, chat_id: str, title: str) -> ChatInfo:
        body = await self._req(
            "PATCH", self._subject_path(subject_id, "chats", chat_id), json={"title": title}
        )
        return ChatInfo.model_validate(body["chat"])

    async def delete_chat(self, subject_id: str, chat_id: str) -> None:
        await self._req("DELETE", self._subject_path(subject_id, "chats", chat_id))

    # --- Flashcards ---

    async def create_flashcard(self, subject_id: str, card: FlashcardCreate) -> SavedFlashcard:
        body = await self._req(
            "POST", self._subject_path(subject_id, "flashcards"), json=card.to_wire()
        )
        return SavedFlashcard.model_validate(body["flashcard"])

    async def list_flashcards(self, subject_id: str) -> list[SavedFlashcard]:
        body = await self._req("GET", self._subject_path(subject_id, "flashcards"))
        return [SavedFlashcard.model_validate(c) for c in body.get("flashcards", [])]

    async def delete_flashcard(self, subject_id: str, card_id: str) -> None:
        await self._req("DELETE", self._subject_path(subject_id, "flashcards", card_id))

    # --- Tools ---

    async def list_tools(self, subject_id: str) -> list[ToolRecord]:
        body = await self._req("GET", self._subject_path(subject_id, "tools"))
        return [ToolRecord.model_validate(t) for t in body.get("tools", [])]

    async def get_tool(self, subject_id: str, tool_id: str) -> ToolRecord:
        body = await self._req("GET", self._subject_path(subject_id, "tools", tool_id))
        return ToolRecord.model_validate(body.get("tool", body))

    async def delete_tool(self, subject_id: str, tool_id: str) -> None:
        await self._req("DELETE", self._subject_path(subject_id, "tools", tool_id))

    async def start_job(self, subject_id: str, kind: str, payload: dict) -> dict:
        """POST a generation request; the response carries the job id and stream path."""
        return await self._req("POST", self._subject_path(subject_id, kind), json=payload)

    async def web_search_start(self, subject_id: str, query: str, mode: SearchMode) -> str:
        body = await self.start_job(
            subject_id, "websearch", {"query": query, "mode": SearchMode(mode).value}
        )
        return body["jobId"]

    # --- Mindmap ---

    async def get_mindmap(self, subject_id: str) -> KnowledgeGraph | None:
        body = await self._req("GET", self._subject_path(subject_id, "mindmap"))
        data = body.get("data")
        return KnowledgeGraph.model_validate(data) if data else None

    async def save_mindmap(self, subject_id: str, tool_id: str, data: KnowledgeGraph) -> None:
        await self._req(
            "PATCH",
            self._subject_path(subject_id, "mindmap"),
            json={"toolId": tool_id, "data": data.to_wire()},
        )

    async def ai_edit_mindmap(
        self,
        subject_id: str,
        tool_id: str,
        instruction: str,
        current: KnowledgeGraph,
        *,
        provider: str | None = None,
        model: str | None = None,
    ) -> KnowledgeGraph:
        payload = {"toolId": tool_id, "instruction": instruction, "currentData": current.to_wire()}
        payload.update({k: v for k, v in (("provider", provider), ("model", model)) if v})
        body = await self._req(
            "PATCH",
            self._subject_path(subject_id, "mindmap", "ai-edit"),
            json=payload,
            timeout=settings.ai_edit_timeout,
        )
        return KnowledgeGraph.model_validate(body["data"])

    async def delete_mindmap(self, subject_id: str) -> None:
        await self._req("DELETE", self._subject_path(subject_id, "mindmap"))

    # --- Subject graph ---

    async def get_graph(self, subject_id: str) -> KnowledgeGraph | None:
        body = await self._req("GET", self._subject_path(subject_id, "graph"))
        data = body.get("data")
        return KnowledgeGraph.model_validate(data) if data else None

    async def save_graph(self, subject_id: str, data: KnowledgeGraph) -> None:
        await self._req(
            "PATCH", self._subject_path(subject_id, "graph"), json={"data": data.to_wire()}
        )

    async def rebuild_graph(
        self, subject_id: str, *, provider: str | None = None, model: str | None = None
    ) -> str:
        payload = {k: v for k, v in (("provider", provider), ("model", model)) if v}
        body = await self._req(
            "POST", self._subject_path(subject_id, "graph", "rebuild"), json=payload
        )
        return body["graphId"]

    async def expand_graph(self, subject_id: str, source_ids: list[str]) -> str:
        body = await self._req(
            "POST",
            self._subject_path(subject_id, "graph", "expand"),
            json={"sourceIds": source_ids},
        )
        return body["graphId"]

    async def ai_edit_graph(
        self,
        subject_id: str,
        instruction: str,
        current: KnowledgeGraph,
        *,
        provider: str | None = None,
        model: str | None = None,
    ) -> KnowledgeGraph:
        payload = {"instruction": instruction, "currentData": current.to_wire()}
        payload.update({k: v for k, v in (("provider", provider), ("model", model)) if v})
        body = await self._req(
            "PATCH",
            self._subject_path(subject_id, "graph", "ai-edit"),
            json=payload,
            timeout=settings.ai_edit_timeout,
        )
        return KnowledgeGraph.model_validate(body["data"])

    # --- Transcriber ---

    async def transcribe(self, subject_id: str, audio: UploadFile) -> TranscriptionResult:
        body = await self._req(
            "POST",
            self._subject_path(subject_id, "transcriber"),
            files=[("file", _file_part(audio))],
            timeout=max(self.timeout, settings.transcribe_timeout),
        )
        return TranscriptionResult.model_validate(body)

    # --- Models ---

    async def list_models(self) -> ModelsResponse:
        body = await self._req("GET", "/models")
        return ModelsResponse.model_validate(body)

    # --- Backend-hosted files (notes markdown, podcast audio) ---

    def resolve_backend_url(self, url: str) -> str:
        """
        Resolve url against the backend and check it is same-origin.

        Raises UntrustedOriginError for any other origin so that cookies and
        credentials are never sent to a third party.
        """
        base = httpx.URL(self.base_url + "/")
        target = base.join(url)
        if _origin(target) != _origin(base):
            raise UntrustedOriginError(f"Refusing to fetch from untrusted origin: {target}")
        return str(target)

    async def _fetch(self, url: str) -> httpx.Response:
        target = self.resolve_backend_url(url)
        try:
            res = await self._http.get(target)
        except httpx.TransportError as e:
            raise BackendUnavailableError(f"GET {target} failed: {e}") from e
        if not res.is_success:
            raise BackendError(res.status_code, self._error_detail(res))
        return res

    async def fetch_backend_content(self, url: str) -> str:
        """Body of a backend file as text, whatever its content type."""
        return (await self._fetch(url)).text

    async def fetch_backend_bytes(self, url: str) -> bytes:
        return (await self._fetch(url)).content

