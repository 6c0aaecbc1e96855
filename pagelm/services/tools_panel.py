from __future__ import annotations

import logging
import time

from pagelm.models.events import DoneEvent, StreamEvent
from pagelm.models.tool import GeneratedTool, ToolConfig, ToolKind, ToolStatus
from pagelm.services.api_client import PageLMError
from pagelm.services.subject_context import SubjectContext
from pagelm.services.tools import apply_event, get_spec, restore_card

logger = logging.getLogger(__name__)


class ToolsPanel:
    """
    Generated tool cards for the open subject.

    Cards are keyed by "<kind>-<ms timestamp>" for jobs started here and by
    the backend tool id for restored ones. Each running job owns the stream
    subscription of the same key.
    """

    def __init__(self, ctx: SubjectContext) -> None:
        self.ctx = ctx
        self.generated: dict[str, GeneratedTool] = {}

    async def load_saved(self) -> None:
        subject = self.ctx.subject
        if not subject:
            return
        try:
            records = await self.ctx.api.list_tools(subject.id)
        except PageLMError as e:
            logger.warning("Could not load saved tools: %s", e)
            return
        known = set(self.generated) | {c.tool_id for c in self.generated.values() if c.tool_id}
        for rec in records:
            # a live card for the same job keeps its state
            if rec.id in known:
                continue
            try:
                self.generated[rec.id] = restore_card(rec)
            except ValueError:
                logger.debug("Skipping saved tool %s of unknown kind", rec.id)

    def _new_key(self, kind: ToolKind) -> str:
        key = f"{kind.value}-{int(time.time() * 1000)}"
        n = 1
        while key in self.generated:
            n += 1
            key = f"{kind.value}-{int(time.time() * 1000)}-{n}"
        return key

    async def start(self, kind: ToolKind | str, config: ToolConfig) -> str | None:
        """Start a generation job; returns the card key, or None without an open subject."""
        subject = self.ctx.subject
        if not subject:
            return None
        spec = get_spec(kind)
        key = self._new_key(spec.kind)
        self.generated[key] = GeneratedTool(
            tool=spec.kind,
            config=config,
            status=ToolStatus.LOADING,
            label=config.topic or spec.display_name,
            created_at=int(time.time() * 1000),
        )

        try:
            payload = spec.build_payload(config)
            res = await self.ctx.api.start_job(subject.id, spec.start_path, payload)
            job_id = spec.job_id(res)
        except (PageLMError, ValueError, KeyError) as e:
            logger.warning("%s start failed: %s", spec.display_name, e)
            self._update(key, status=ToolStatus.ERROR, error=str(e) or "Failed to start")
            return key

        self._update(key, tool_id=job_id)

        def on_event(ev: StreamEvent) -> None:
            card = self.generated.get(key)
            if card is None:
                return
            self.generated[key] = apply_event(spec, card, ev)
            if isinstance(ev, DoneEvent):
                self.ctx.streams.close_later(key, spec.close_delay)
            elif self.generated[key].status == ToolStatus.ERROR:
                self.ctx.streams.close(key)

        url = self.ctx.api.ws_url(spec.stream_path, **{spec.id_field: job_id})
        self.ctx.streams.subscribe(key, url, on_event)
        logger.info("Started %s job %s", spec.kind.value, job_id)
        return key

    def _update(self, key: str, **fields) -> None:
        card = self.generated.get(key)
        if card is not None:
            self.generated[key] = card.model_copy(update=fields)

    async def wait(self, key: str) -> GeneratedTool | None:
        """Wait for the job's stream to end and return its card."""
        sub = self.ctx.streams.get(key)
        if sub is not None:
            await sub.wait()
        card = self.generated.get(key)
        if card is not None and card.status == ToolStatus.LOADING:
            self._update(key, status=ToolStatus.ERROR, error="stream closed")
        return self.generated.get(key)

    def cards(self) -> list[tuple[str, GeneratedTool]]:
        return sorted(self.generated.items(), key=lambda kv: kv[1].created_at or 0, reverse=True)

    async def delete(self, key: str) -> None:
        card = self.generated.get(key)
        if card is None:
            return
        self.ctx.streams.close(key)
        subject = self.ctx.subject
        if subject and card.tool_id and card.status != ToolStatus.LOADING:
            await self.ctx.api.delete_tool(subject.id, card.tool_id)
        del self.generated[key]

    def dispose(self) -> None:
        for key in list(self.generated):
            self.ctx.streams.close(key)
