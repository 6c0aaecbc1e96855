from __future__ import annotations

import inspect
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Literal

from pagelm.models.chat import ChatInfo
from pagelm.models.subject import Source, SourceType
from pagelm.models.tool import ToolRecord
from pagelm.services.tools import DISPLAY_NAMES

logger = logging.getLogger(__name__)

SOURCE_BADGES = {
    SourceType.MATERIAL: "Material",
    SourceType.EXERCISE: "Exercise",
    SourceType.WEBSEARCH: "Web",
}


@dataclass(frozen=True)
class PaletteItem:
    kind: Literal["action", "chat", "tool", "source"]
    id: str
    label: str
    detail: str = ""


def build_items(
    query: str,
    chats: list[ChatInfo],
    tools: list[ToolRecord],
    sources: list[Source],
) -> list[PaletteItem]:
    """New-chat action first, then matching chats and tools (newest first), then sources."""
    q = query.lower().strip()
    items = [PaletteItem(kind="action", id="new-chat", label="New Chat")]

    matching_chats = [c for c in chats if not q or q in c.display_title.lower()]
    for c in sorted(matching_chats, key=lambda c: c.at or 0, reverse=True):
        items.append(PaletteItem(kind="chat", id=c.id, label=c.display_title))

    def tool_matches(t: ToolRecord) -> bool:
        name = DISPLAY_NAMES.get(t.tool, t.tool.value)
        return not q or q in t.topic.lower() or q in name.lower()

    for t in sorted(filter(tool_matches, tools), key=lambda t: t.created_at, reverse=True):
        items.append(PaletteItem(
            kind="tool", id=t.id, label=t.topic, detail=DISPLAY_NAMES.get(t.tool, t.tool.value)
        ))

    for s in sources:
        if not q or q in s.display_name.lower():
            items.append(PaletteItem(
                kind="source", id=s.id, label=s.display_name, detail=SOURCE_BADGES[s.source_type]
            ))
    return items


@dataclass
class CommandPalette:
    on_new_chat: Callable[[], object]
    on_select_chat: Callable[[str], object]
    on_select_tool: Callable[[str], object]
    on_select_source: Callable[[str], object]
    on_close: Callable[[], object] = lambda: None

    async def activate(self, item: PaletteItem) -> None:
        if item.kind == "action":
            result = self.on_new_chat()
        elif item.kind == "chat":
            result = self.on_select_chat(item.id)
        elif item.kind == "tool":
            result = self.on_select_tool(item.id)
        else:
            result = self.on_select_source(item.id)
        if inspect.isawaitable(result):
            await result
        logger.debug("Palette activated %s %s", item.kind, item.id)
        self.on_close()
