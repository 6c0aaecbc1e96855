"""
Collapsed-column state for the four workspace columns.

The flags are persisted through an injected PreferenceStore under
STORAGE_KEY as a JSON object {"sources": bool, "chat": bool, "tools": bool,
"graph": bool}. At least one column always stays open.
"""
from __future__ import annotations

import json
import logging
from enum import Enum

from pagelm.db.preferences import PreferenceStore

logger = logging.getLogger(__name__)

STORAGE_KEY = "pagelm-collapsed-columns"
COLLAPSED_WIDTH = "40px"
OPEN_WIDTH = "minmax(0,1fr)"


class Column(str, Enum):
    SOURCES = "sources"
    CHAT = "chat"
    TOOLS = "tools"
    GRAPH = "graph"


DEFAULT_COLLAPSED: dict[Column, bool] = {
    Column.SOURCES: False,
    Column.CHAT: False,
    Column.TOOLS: False,
    Column.GRAPH: True,
}


def _decode(raw: str | None) -> dict[Column, bool] | None:
    """Parse stored flags; None when missing, malformed or fully collapsed."""
    if not raw:
        return None
    try:
        parsed = json.loads(raw)
    except ValueError:
        return None
    if not isinstance(parsed, dict):
        return None
    # graph was added later and may be absent from stored values
    required = (Column.SOURCES, Column.CHAT, Column.TOOLS)
    if not all(isinstance(parsed.get(c.value), bool) for c in required):
        return None
    graph = parsed.get(Column.GRAPH.value)
    flags = {
        **{c: parsed[c.value] for c in required},
        Column.GRAPH: graph if isinstance(graph, bool) else True,
    }
    if all(flags.values()):
        return None
    return flags


class ColumnLayout:
    def __init__(self, store: PreferenceStore) -> None:
        self._store = store
        self._collapsed: dict[Column, bool] = dict(DEFAULT_COLLAPSED)

    @classmethod
    async def load(cls, store: PreferenceStore) -> "ColumnLayout":
        layout = cls(store)
        flags = _decode(await store.get(STORAGE_KEY))
        if flags is not None:
            layout._collapsed = flags
        return layout

    @property
    def collapsed(self) -> dict[Column, bool]:
        return dict(self._collapsed)

    def is_collapsed(self, col: Column | str) -> bool:
        return self._collapsed[Column(col)]

    def open_columns(self) -> list[Column]:
        return [c for c in Column if not self._collapsed[c]]

    async def _persist(self) -> None:
        await self._store.set(
            STORAGE_KEY, json.dumps({c.value: v for c, v in self._collapsed.items()})
        )

    async def toggle(self, col: Column | str) -> bool:
        """Flip a column. Collapsing the last open column is refused; returns whether anything changed."""
        col = Column(col)
        if not self._collapsed[col] and len(self.open_columns()) <= 1:
            logger.debug("Refusing to collapse %s: last open column", col.value)
            return False
        self._collapsed[col] = not self._collapsed[col]
        await self._persist()
        return True

    async def expand(self, col: Column | str) -> bool:
        col = Column(col)
        if not self._collapsed[col]:
            return False
        self._collapsed[col] = False
        await self._persist()
        return True

    def grid_template(self) -> str:
        return " ".join(COLLAPSED_WIDTH if self._collapsed[c] else OPEN_WIDTH for c in Column)
