"""
In-memory stand-in for the PageLM backend.

The REST side is a FastAPI app served to httpx through ASGITransport. The
WebSocket side is FakeStreams, a connector that replays scripted frames for
each stream path.
"""
import asyncio
import json
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse

JOB_ID_FIELDS = {
    "quiz": "quizId",
    "podcast": "pid",
    "smartnotes": "noteId",
    "mindmap": "mindmapId",
    "exam": "examId",
    "research": "researchId",
    "websearch": "jobId",
}


def _now() -> int:
    return int(time.time() * 1000)


def _new_id() -> str:
    return uuid.uuid4().hex[:12]


def _not_found(what: str) -> JSONResponse:
    return JSONResponse({"ok": False, "error": f"{what} not found"}, status_code=404)


class FakeBackend:
    def __init__(self) -> None:
        self.subjects: dict[str, dict] = {}
        self.sources: dict[str, list[dict]] = {}
        self.chats: dict[str, dict[str, dict]] = {}
        self.flashcards: dict[str, list[dict]] = {}
        self.tools: dict[str, list[dict]] = {}
        self.graphs: dict[str, dict] = {}
        self.mindmaps: dict[str, dict] = {}
        self.files: dict[str, str] = {}
        self.requests: list[tuple[str, str, Any]] = []
        self.providers = [
            {"id": "openai", "name": "OpenAI", "defaultModel": "gpt-4o-mini"},
            {"id": "ollama", "name": "Ollama", "defaultModel": "llama3"},
        ]
        self.fail_paths: set[str] = set()
        self.app = self._build_app()

    def add_subject(self, name: str) -> dict:
        sid = _new_id()
        now = _now()
        self.subjects[sid] = {"id": sid, "name": name, "createdAt": now, "updatedAt": now}
        self.sources[sid] = []
        self.chats[sid] = {}
        self.flashcards[sid] = []
        self.tools[sid] = []
        return self.subjects[sid]

    def _build_app(self) -> FastAPI:
        app = FastAPI()
        backend = self

        @app.middleware("http")
        async def inject_failures(request: Request, call_next):
            if request.url.path in backend.fail_paths:
                return JSONResponse({"ok": False, "error": "boom"}, status_code=500)
            return await call_next(request)

        @app.get("/subjects")
        async def list_subjects():
            return {"ok": True, "subjects": list(backend.subjects.values())}

        @app.post("/subjects")
        async def create_subject(request: Request):
            body = await request.json()
            name = (body.get("name") or "").strip()
            if not name:
                return JSONResponse({"ok": False, "error": "name required"}, status_code=400)
            return {"ok": True, "subject": backend.add_subject(name)}

        @app.get("/subjects/{sid}")
        async def get_subject(sid: str):
            if sid not in backend.subjects:
                return _not_found("subject")
            return {"ok": True, "subject": backend.subjects[sid], "sources": backend.sources[sid]}

        @app.patch("/subjects/{sid}")
        async def update_subject(sid: str, request: Request):
            if sid not in backend.subjects:
                return _not_found("subject")
            body = await request.json()
            subject = backend.subjects[sid]
            if "name" in body:
                subject["name"] = body["name"]
            if "systemPrompt" in body:
                subject["systemPrompt"] = body["systemPrompt"]
            subject["updatedAt"] = _now()
            return {"ok": True, "subject": subject}

        @app.delete("/subjects/{sid}")
        async def delete_subject(sid: str):
            if backend.subjects.pop(sid, None) is None:
                return _not_found("subject")
            return {"ok": True}

        @app.post("/subjects/{sid}/sources")
        async def upload_sources(sid: str, request: Request):
            if sid not in backend.subjects:
                return _not_found("subject")
            form = await request.form()
            source_type = form.get("sourceType") or "material"
            added = []
            for upload in form.getlist("file"):
                content = await upload.read()
                src = {
                    "id": _new_id(),
                    "filename": f"{_new_id()}-{upload.filename}",
                    "originalName": upload.filename,
                    "mimeType": upload.content_type,
                    "size": len(content),
                    "uploadedAt": _now(),
                    "sourceType": source_type,
                }
                backend.sources[sid].append(src)
                added.append(src)
            backend.requests.append(("POST", f"/subjects/{sid}/sources", {"sourceType": source_type}))
            return {"ok": True, "sources": added, "warnings": []}

        @app.delete("/subjects/{sid}/sources/{src_id}")
        async def remove_source(sid: str, src_id: str):
            before = len(backend.sources.get(sid, []))
            backend.sources[sid] = [s for s in backend.sources.get(sid, []) if s["id"] != src_id]
            if len(backend.sources[sid]) == before:
                return _not_found("source")
            return {"ok": True}

        @app.get("/subjects/{sid}/sources/{src_id}/content")
        async def source_content(sid: str, src_id: str):
            return PlainTextResponse(f"content of {src_id}")

        @app.post("/subjects/{sid}/chat")
        async def chat(sid: str, request: Request):
            if request.headers.get("content-type", "").startswith("multipart/"):
                form = await request.form()
                body = {k: v for k, v in form.items() if k != "file"}
                body["images"] = len(form.getlist("file"))
            else:
                body = await request.json()
            backend.requests.append(("POST", f"/subjects/{sid}/chat", body))
            chat_id = body.get("chatId") or _new_id()
            chats = backend.chats.setdefault(sid, {})
            chat = chats.setdefault(
                chat_id, {"id": chat_id, "title": body["q"][:40], "at": _now(), "messages": []}
            )
            chat["messages"].append({"role": "user", "content": body["q"], "at": _now()})
            return {"ok": True, "chatId": chat_id, "stream": f"/ws/chat?chatId={chat_id}"}

        @app.get("/subjects/{sid}/chats")
        async def list_chats(sid: str):
            chats = [
                {k: v for k, v in c.items() if k != "messages"}
                for c in backend.chats.get(sid, {}).values()
            ]
            return {"ok": True, "chats": chats}

        @app.get("/subjects/{sid}/chats/{chat_id}")
        async def get_chat(sid: str, chat_id: str):
            chat = backend.chats.get(sid, {}).get(chat_id)
            if chat is None:
                return _not_found("chat")
            info = {k: v for k, v in chat.items() if k != "messages"}
            return {"ok": True, "chat": info, "messages": chat["messages"]}

        @app.patch("/subjects/{sid}/chats/{chat_id}")
        async def rename_chat(sid: str, chat_id: str, request: Request):
            chat = backend.chats.get(sid, {}).get(chat_id)
            if chat is None:
                return _not_found("chat")
            chat["title"] = (await request.json())["title"]
            return {"ok": True, "chat": {k: v for k, v in chat.items() if k != "messages"}}

        @app.delete("/subjects/{sid}/chats/{chat_id}")
        async def delete_chat(sid: str, chat_id: str):
            if backend.chats.get(sid, {}).pop(chat_id, None) is None:
                return _not_found("chat")
            return {"ok": True}

        @app.get("/subjects/{sid}/mindmap")
        async def get_mindmap(sid: str):
            return {"ok": True, "data": backend.mindmaps.get(sid)}

        @app.patch("/subjects/{sid}/mindmap")
        async def save_mindmap(sid: str, request: Request):
            body = await request.json()
            backend.requests.append(("PATCH", f"/subjects/{sid}/mindmap", body))
            backend.mindmaps[sid] = body["data"]
            return {"ok": True}

        @app.patch("/subjects/{sid}/mindmap/ai-edit")
        async def ai_edit_mindmap(sid: str, request: Request):
            body = await request.json()
            backend.requests.append(("PATCH", f"/subjects/{sid}/mindmap/ai-edit", body))
            data = body["currentData"]
            data["nodes"] = data["nodes"] + [{"id": "added", "label": body["instruction"][:20]}]
            backend.mindmaps[sid] = data
            return {"ok": True, "data": data}

        @app.delete("/subjects/{sid}/mindmap")
        async def delete_mindmap(sid: str):
            backend.mindmaps.pop(sid, None)
            return {"ok": True}

        @app.get("/subjects/{sid}/flashcards")
        async def list_flashcards(sid: str):
            return {"ok": True, "flashcards": backend.flashcards.get(sid, [])}

        @app.post("/subjects/{sid}/flashcards")
        async def create_flashcard(sid: str, request: Request):
            body = await request.json()
            card = {"id": _new_id(), "created": _now(), **body}
            backend.flashcards.setdefault(sid, []).append(card)
            return {"ok": True, "flashcard": card}

        @app.delete("/subjects/{sid}/flashcards/{card_id}")
        async def delete_flashcard(sid: str, card_id: str):
            backend.flashcards[sid] = [c for c in backend.flashcards.get(sid, []) if c["id"] != card_id]
            return {"ok": True}

        @app.get("/subjects/{sid}/tools")
        async def list_tools(sid: str):
            return {"ok": True, "tools": backend.tools.get(sid, [])}

        @app.delete("/subjects/{sid}/tools/{tool_id}")
        async def delete_tool(sid: str, tool_id: str):
            backend.tools[sid] = [t for t in backend.tools.get(sid, []) if t["id"] != tool_id]
            return {"ok": True}

        @app.get("/subjects/{sid}/graph")
        async def get_graph(sid: str):
            return {"ok": True, "data": backend.graphs.get(sid)}

        @app.patch("/subjects/{sid}/graph")
        async def save_graph(sid: str, request: Request):
            backend.graphs[sid] = (await request.json())["data"]
            return {"ok": True}

        @app.post("/subjects/{sid}/graph/rebuild")
        async def rebuild_graph(sid: str, request: Request):
            backend.requests.append(("POST", f"/subjects/{sid}/graph/rebuild", await request.json()))
            return {"ok": True, "graphId": _new_id()}

        @app.post("/subjects/{sid}/graph/expand")
        async def expand_graph(sid: str, request: Request):
            backend.requests.append(("POST", f"/subjects/{sid}/graph/expand", await request.json()))
            return {"ok": True, "graphId": _new_id()}

        @app.patch("/subjects/{sid}/graph/ai-edit")
        async def ai_edit_graph(sid: str, request: Request):
            body = await request.json()
            backend.requests.append(("PATCH", f"/subjects/{sid}/graph/ai-edit", body))
            data = body["currentData"]
            data["nodes"] = data["nodes"] + [{"id": "edited", "label": body["instruction"][:20]}]
            backend.graphs[sid] = data
            return {"ok": True, "data": data}

        @app.post("/subjects/{sid}/transcriber")
        async def transcribe(sid: str, request: Request):
            form = await request.form()
            upload = form.get("file")
            return {"ok": True, "transcription": f"heard {upload.filename}", "provider": "fake"}

        @app.post("/subjects/{sid}/{kind}")
        async def start_job(sid: str, kind: str, request: Request):
            if kind not in JOB_ID_FIELDS:
                return _not_found("route")
            body = await request.json()
            backend.requests.append(("POST", f"/subjects/{sid}/{kind}", body))
            job_id = _new_id()
            field = JOB_ID_FIELDS[kind]
            return {"ok": True, field: job_id, "stream": f"/ws/{kind}?{field}={job_id}"}

        @app.get("/models")
        async def models():
            return {"ok": True, "providers": backend.providers, "defaultProvider": "openai"}

        @app.get("/files/{name}")
        async def files(name: str):
            if name not in backend.files:
                return _not_found("file")
            media_type = "application/json" if name.endswith(".json") else "text/plain"
            return PlainTextResponse(backend.files[name], media_type=media_type)

        return app

    def transport(self) -> httpx.ASGITransport:
        return httpx.ASGITransport(app=self.app)

    def last_request(self, path_suffix: str) -> Any:
        for method, path, body in reversed(self.requests):
            if path.endswith(path_suffix):
                return body
        raise AssertionError(f"no request to {path_suffix}")


class FakeStreams:
    """
    Connector replaying scripted frames.

    script("/ws/quiz", {...}, {...}) queues frames for the next connection to
    that path. Frames may be dicts (sent as JSON) or raw strings. A script
    may end with an exception instance to simulate a dropped connection.
    """

    def __init__(self) -> None:
        self.scripts: dict[str, list[list[Any]]] = {}
        self.opened: list[str] = []

    def script(self, path: str, *frames: Any) -> None:
        self.scripts.setdefault(path, []).append(list(frames))

    def opened_paths(self) -> list[str]:
        return [httpx.URL(u).path for u in self.opened]

    @asynccontextmanager
    async def __call__(self, url: str):
        self.opened.append(url)
        queue = self.scripts.get(httpx.URL(url).path) or []
        frames = queue.pop(0) if queue else []

        async def frames_iter():
            for frame in frames:
                await asyncio.sleep(0)
                if isinstance(frame, Exception):
                    raise frame
                yield frame if isinstance(frame, str) else json.dumps(frame)

        yield frames_iter()
