"""
Chat column state: message history, streamed answers and agent steps.

Lifecycle of one question:
  1. send() appends the user turn and POSTs /subjects/{id}/chat
  2. a new chat id is subscribed on /ws/chat?chatId= before it becomes active
  3. phase events become agent steps (the previous active step is closed)
  4. the answer event is normalized and appended as the assistant turn
  5. error events end the turn with an inline error; nothing is retried
"""
from __future__ import annotations

import asyncio
import logging
import mimetypes
import time
from dataclasses import dataclass
from pathlib import Path

from pagelm.models.chat import AgentStep, ChatMessage
from pagelm.models.events import AnswerEvent, DoneEvent, ErrorEvent, PhaseEvent, StreamEvent
from pagelm.services.answer import normalize_answer
from pagelm.services.api_client import PageLMError, UploadFile
from pagelm.services.model_choice import ModelChoice
from pagelm.services.subject_context import SubjectContext

logger = logging.getLogger(__name__)

STREAM_KEY = "chat"
MAX_IMAGES = 4
MAX_IMAGE_SIZE = 10 * 1024 * 1024
IMAGE_TYPES = {"image/png", "image/jpeg", "image/gif", "image/webp"}
TOOL_CONTENT_LIMIT = 3000

TOOL_CHAT_NAMES = {
    "quiz": "quiz",
    "podcast": "podcast",
    "smartnotes": "notes",
    "mindmap": "mindmap",
    "exam": "exam",
}


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class ToolChatContext:
    tool: str
    topic: str
    content: str

    def prompt(self) -> str:
        name = TOOL_CHAT_NAMES.get(self.tool, self.tool)
        content = self.content
        if len(content) > TOOL_CONTENT_LIMIT:
            content = content[:TOOL_CONTENT_LIMIT] + "\n...[truncated]"
        return (
            f'I just generated a {name} about "{self.topic}". Here\'s the content:\n\n'
            f"{content}\n\nHelp me understand and study this material."
        )


def filter_images(images: list[UploadFile]) -> list[UploadFile]:
    """Keep at most MAX_IMAGES supported images under MAX_IMAGE_SIZE."""
    valid: list[UploadFile] = []
    for img in images:
        if isinstance(img, Path):
            mime = mimetypes.guess_type(img.name)[0]
            size = img.stat().st_size if img.exists() else MAX_IMAGE_SIZE + 1
        else:
            _, content, mime = img
            size = len(content)
        if mime in IMAGE_TYPES and size <= MAX_IMAGE_SIZE:
            valid.append(img)
    return valid[:MAX_IMAGES]


class ChatSession:
    def __init__(self, ctx: SubjectContext, models: ModelChoice | None = None) -> None:
        self.ctx = ctx
        self.models = models or ModelChoice()
        self.messages: list[ChatMessage] = []
        self.agent_steps: list[AgentStep] = []
        self.busy = False
        self.awaiting = False
        self.error: str | None = None
        self._stream_chat_id: str | None = None
        self._turn_over = asyncio.Event()

    @property
    def api(self):
        return self.ctx.api

    # --- History ---

    async def select_chat(self, chat_id: str | None) -> None:
        """Make chat_id active, load its history and follow its stream."""
        if chat_id == self.ctx.active_chat_id and chat_id == self._stream_chat_id:
            return
        self.ctx.active_chat_id = chat_id
        if chat_id is None:
            self.ctx.streams.close(STREAM_KEY)
            self._stream_chat_id = None
            self.messages = []
            return
        self._follow(chat_id)
        await self.load_history()

    async def load_history(self) -> None:
        subject, chat_id = self.ctx.subject, self.ctx.active_chat_id
        if not subject or not chat_id:
            self.messages = []
            return
        try:
            detail = await self.api.get_chat(subject.id, chat_id)
        except PageLMError as e:
            logger.warning("Could not load chat %s: %s", chat_id, e)
            return
        self.messages = [self._display(m) for m in detail.messages]

    @staticmethod
    def _display(m: ChatMessage) -> ChatMessage:
        if m.role != "assistant":
            return m
        norm = normalize_answer(m.content)
        # sources stored on the message win over the ones embedded in its text
        sources = m.sources or norm.sources
        return m.model_copy(update={
            "content": norm.md,
            "sources": sources,
            "flashcards": norm.flashcards,
        })

    # --- Stream ---

    def _follow(self, chat_id: str) -> None:
        url = self.api.ws_url("/ws/chat", chatId=chat_id)
        self.ctx.streams.subscribe(STREAM_KEY, url, self.on_event)
        self._stream_chat_id = chat_id

    def _finish_steps(self) -> list[AgentStep]:
        return [
            s.model_copy(update={"status": "done"}) if s.status == "active" else s
            for s in self.agent_steps
        ]

    def on_event(self, ev: StreamEvent) -> None:
        if isinstance(ev, PhaseEvent):
            step_id = ev.step_id if ev.step_id is not None else _now_ms()
            self.agent_steps = self._finish_steps() + [
                AgentStep(step_id=step_id, phase=ev.value, detail=ev.detail, status="active")
            ]
        elif isinstance(ev, AnswerEvent):
            norm = normalize_answer(ev.answer)
            self.messages.append(ChatMessage(
                role="assistant",
                content=norm.md,
                at=_now_ms(),
                sources=norm.sources,
                flashcards=norm.flashcards,
                agent_steps=self._finish_steps(),
            ))
            self.agent_steps = []
            self.awaiting = False
            self.busy = False
            self._turn_over.set()
        elif isinstance(ev, DoneEvent):
            self.agent_steps = []
        elif isinstance(ev, ErrorEvent):
            logger.warning("Chat stream error: %s", ev.error)
            self.error = ev.error
            self.awaiting = False
            self.busy = False
            self.agent_steps = []
            self._turn_over.set()

    # --- Sending ---

    async def send(self, text: str, images: list[UploadFile] | None = None) -> bool:
        msg = text.strip()
        subject = self.ctx.subject
        if not msg or not subject or self.busy:
            return False

        self.messages.append(ChatMessage(role="user", content=msg, at=_now_ms()))
        self.awaiting = True
        self.busy = True
        self.error = None
        self._turn_over.clear()

        active = self.ctx.active_chat_id
        override = self.models.as_override()
        images = filter_images(images or [])
        try:
            if images:
                res = await self.api.chat_start_multipart(
                    subject.id, msg, images, chat_id=active, **override
                )
            else:
                res = await self.api.chat_start(subject.id, msg, chat_id=active, **override)
        except PageLMError as e:
            logger.warning("Chat request failed: %s", e)
            self.error = str(e)
            self.awaiting = False
            self.busy = False
            self._turn_over.set()
            return False

        if res.chat_id and res.chat_id != active:
            # subscribe before switching so early events are not missed
            self._follow(res.chat_id)
            self.ctx.active_chat_id = res.chat_id
            await self.ctx.refresh_chats()
        elif self.ctx.streams.get(STREAM_KEY) is None:
            self._follow(res.chat_id)
        return True

    async def wait_for_answer(self, timeout: float | None = None) -> ChatMessage | None:
        """Block until the current turn ends; returns the assistant turn, or None on error."""
        if not self.busy:
            return self._last_answer()
        await asyncio.wait_for(self._turn_over.wait(), timeout)
        return None if self.error else self._last_answer()

    async def ask(self, text: str, timeout: float | None = None) -> ChatMessage | None:
        if not await self.send(text):
            return None
        return await self.wait_for_answer(timeout)

    def _last_answer(self) -> ChatMessage | None:
        if self.messages and self.messages[-1].role == "assistant":
            return self.messages[-1]
        return None

    def stop_generating(self) -> None:
        self.ctx.streams.close(STREAM_KEY)
        self._stream_chat_id = None
        self.awaiting = False
        self.busy = False
        self.agent_steps = []
        self._turn_over.set()

    def new_chat(self) -> None:
        self.stop_generating()
        self.ctx.active_chat_id = None
        self.messages = []
        self.error = None

    async def rename_chat(self, chat_id: str, title: str) -> bool:
        subject = self.ctx.subject
        title = title.strip()
        if not subject or not title:
            return False
        await self.api.rename_chat(subject.id, chat_id, title)
        await self.ctx.refresh_chats()
        return True

    async def delete_chat(self, chat_id: str) -> bool:
        """Delete a chat; deleting the open one starts a fresh chat."""
        subject = self.ctx.subject
        if not subject:
            return False
        await self.api.delete_chat(subject.id, chat_id)
        if chat_id == self.ctx.active_chat_id:
            self.new_chat()
        await self.ctx.refresh_chats()
        return True

    async def retry(self, idx: int) -> bool:
        """Drop message idx and everything after it, then resend its text."""
        if self.busy:
            return False
        text = self.messages[idx].content
        self.messages = self.messages[:idx]
        return await self.send(text)

    async def edit(self, idx: int, text: str) -> bool:
        if self.busy or not text.strip():
            return False
        self.messages = self.messages[:idx]
        return await self.send(text)

    async def chat_about_tool(self, context: ToolChatContext) -> bool:
        if not self.ctx.subject or self.busy:
            return False
        self.new_chat()
        return await self.send(context.prompt())
