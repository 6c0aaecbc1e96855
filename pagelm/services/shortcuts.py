from __future__ import annotations

import inspect
import logging
import sys
from collections.abc import Callable
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

IS_MAC = sys.platform == "darwin"

INPUT_TAGS = {"INPUT", "TEXTAREA", "SELECT"}

# Layout-independent codes for digit keys (Shift+7 types "/" on some layouts)
DIGIT_CODES = {str(d): f"Digit{d}" for d in range(10)}


def mod_key_label(is_mac: bool = IS_MAC) -> str:
    return "⌘" if is_mac else "Ctrl"


@dataclass
class KeyEvent:
    key: str
    code: str = ""
    meta: bool = False
    ctrl: bool = False
    shift: bool = False
    alt: bool = False
    target_tag: str | None = None

    @property
    def in_input(self) -> bool:
        return (self.target_tag or "").upper() in INPUT_TAGS


@dataclass
class Shortcut:
    key: str
    action: Callable[[], object]
    mod: bool = False
    shift: bool = False
    allow_in_inputs: bool = False
    label: str = ""

    def keys(self, is_mac: bool = IS_MAC) -> list[str]:
        """Key caps for help screens, e.g. ["Ctrl", "Shift", "7"]."""
        caps = []
        if self.mod:
            caps.append(mod_key_label(is_mac))
        if self.shift:
            caps.append("Shift")
        caps.append("Esc" if self.key == "Escape" else self.key.upper() if len(self.key) == 1 else self.key)
        return caps


@dataclass
class ShortcutDispatcher:
    shortcuts: list[Shortcut] = field(default_factory=list)
    is_mac: bool = IS_MAC

    def register(self, shortcut: Shortcut) -> None:
        self.shortcuts.append(shortcut)

    def matches(self, s: Shortcut, e: KeyEvent) -> bool:
        mod_pressed = e.meta if self.is_mac else e.ctrl
        if s.mod != mod_pressed:
            return False
        if s.shift and not e.shift:
            return False
        # Cmd+K must not fire for Cmd+Shift+K
        if not s.shift and e.shift and s.mod:
            return False
        key_match = (
            e.key.lower() == s.key.lower()
            or (s.key in DIGIT_CODES and e.code == DIGIT_CODES[s.key])
        )
        if not key_match:
            return False
        if e.in_input and not s.allow_in_inputs:
            return False
        return True

    async def dispatch(self, e: KeyEvent) -> bool:
        """Run the first matching shortcut. Returns True when the event was consumed."""
        for s in self.shortcuts:
            if self.matches(s, e):
                logger.debug("Shortcut %s fired", "+".join(s.keys(self.is_mac)))
                result = s.action()
                if inspect.isawaitable(result):
                    await result
                return True
        return False

    def help_rows(self) -> list[tuple[str, str]]:
        return [
            (" + ".join(s.keys(self.is_mac)), s.label)
            for s in self.shortcuts
            if s.label
        ]
