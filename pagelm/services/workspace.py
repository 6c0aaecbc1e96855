from __future__ import annotations

import logging

from pagelm.db.preferences import PreferenceStore
from pagelm.models.subject import Source
from pagelm.services.api_client import PageLMClient, PageLMError
from pagelm.services.chat_session import ChatSession, ToolChatContext
from pagelm.services.command_palette import CommandPalette, PaletteItem, build_items
from pagelm.services.graph_column import GraphColumn
from pagelm.services.layout import Column, ColumnLayout
from pagelm.services.model_choice import ModelChoice
from pagelm.services.shortcuts import KeyEvent, Shortcut, ShortcutDispatcher
from pagelm.services.subject_context import SubjectContext
from pagelm.services.subscription import SubscriptionManager
from pagelm.services.tools_panel import ToolsPanel

logger = logging.getLogger(__name__)


class Workspace:
    """
    One open subject: sources, chat, tools and graph columns plus the
    keyboard layer that drives them.

    Build with Workspace.open(); call close() to drop every stream.
    """

    def __init__(
        self,
        api: PageLMClient,
        layout: ColumnLayout,
        streams: SubscriptionManager | None = None,
    ) -> None:
        self.ctx = SubjectContext(api, streams)
        self.models = ModelChoice()
        self.chat = ChatSession(self.ctx, self.models)
        self.tools = ToolsPanel(self.ctx)
        self.graph = GraphColumn(self.ctx, self.models)
        self.layout = layout
        self.draft = ""
        self.show_palette = False
        self.show_help = False
        self.selected_tool: str | None = None
        self.palette = CommandPalette(
            on_new_chat=self.chat.new_chat,
            on_select_chat=self.chat.select_chat,
            on_select_tool=self._select_tool,
            on_select_source=self.open_source,
            on_close=self._close_palette,
        )
        self.shortcuts = ShortcutDispatcher(self.default_shortcuts())

    @classmethod
    async def open(
        cls,
        api: PageLMClient,
        subject_id: str,
        store: PreferenceStore,
        streams: SubscriptionManager | None = None,
    ) -> "Workspace":
        ws = cls(api, await ColumnLayout.load(store), streams)
        await ws.ctx.load_subject(subject_id)
        await ws.models.load(api)
        await ws.tools.load_saved()
        await ws.graph.load()
        logger.info("Opened workspace for subject %s", subject_id)
        return ws

    @property
    def path(self) -> str:
        return f"/subject/{self.ctx.subject.id}" if self.ctx.subject else "/"

    def close(self) -> None:
        self.tools.dispose()
        self.graph.dispose()
        self.ctx.streams.close_all()

    # --- Keyboard ---

    def default_shortcuts(self) -> list[Shortcut]:
        return [
            Shortcut("7", lambda: self.layout.toggle(Column.SOURCES), mod=True, shift=True,
                     label="Toggle sources"),
            Shortcut("8", lambda: self.layout.toggle(Column.CHAT), mod=True, shift=True,
                     label="Toggle chat"),
            Shortcut("9", lambda: self.layout.toggle(Column.TOOLS), mod=True, shift=True,
                     label="Toggle tools"),
            Shortcut("0", lambda: self.layout.toggle(Column.GRAPH), mod=True, shift=True,
                     label="Toggle graph"),
            Shortcut("o", self.chat.new_chat, mod=True, shift=True, label="New chat"),
            Shortcut("k", self._toggle_palette, mod=True, allow_in_inputs=True,
                     label="Command palette"),
            Shortcut("Enter", self.send_draft, mod=True, allow_in_inputs=True,
                     label="Send message"),
            Shortcut("Escape", self._escape, allow_in_inputs=True,
                     label="Close viewer / stop generating"),
            Shortcut("h", self._toggle_help, mod=True, label="Keyboard shortcuts"),
        ]

    async def handle_key(self, event: KeyEvent) -> bool:
        return await self.shortcuts.dispatch(event)

    def _toggle_palette(self) -> None:
        self.show_palette = not self.show_palette

    def _close_palette(self) -> None:
        self.show_palette = False

    def _toggle_help(self) -> None:
        self.show_help = not self.show_help

    def _escape(self) -> None:
        if self.ctx.viewing_source:
            self.ctx.close_source()
        else:
            self.chat.stop_generating()

    async def send_draft(self) -> bool:
        text, self.draft = self.draft, ""
        if await self.chat.send(text):
            return True
        self.draft = text
        return False

    # --- Cross-column actions ---

    async def open_source(self, source_id: str) -> Source | None:
        source = self.ctx.open_source(source_id)
        if source:
            await self.layout.expand(Column.SOURCES)
        return source

    async def _select_tool(self, tool_id: str) -> None:
        self.selected_tool = tool_id
        await self.layout.expand(Column.TOOLS)

    async def chat_about_tool(self, context: ToolChatContext) -> bool:
        await self.layout.expand(Column.CHAT)
        return await self.chat.chat_about_tool(context)

    async def palette_items(self, query: str = "") -> list[PaletteItem]:
        subject = self.ctx.subject
        tools = []
        if subject:
            try:
                tools = await self.ctx.api.list_tools(subject.id)
            except PageLMError as e:
                logger.debug("Palette could not list tools: %s", e)
        return build_items(query, self.ctx.chats, tools, self.ctx.sources)
