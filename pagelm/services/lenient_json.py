"""
Lenient JSON decoding for model-generated text.

The backend relays LLM output that is supposed to be a JSON object but often
arrives wrapped in prose ("Sure! {...} Hope this helps") or with raw control
characters inside string values. These helpers recover the object when one
is there and report failure with an empty result instead of raising.

Contract:
  extract_first_json_object(text) -> first balanced "{...}" span, or ""
  sanitize_json_string(text)      -> text with \\n, \\r, \\t escaped inside strings
  try_parse_json(text)            -> parsed value, or None
"""
from __future__ import annotations

import json
from typing import Any

_CONTROL_ESCAPES = {"\n": "\\n", "\r": "\\r", "\t": "\\t"}


def extract_first_json_object(text: str) -> str:
    """
    Return the first balanced {...} substring of text.

    Braces inside string literals do not count, and a backslash escapes the
    next character inside a string. An unbalanced object yields "".
    """
    depth = 0
    start = -1
    in_string = False
    escape = False

    for i, ch in enumerate(text):
        if in_string:
            if escape:
                escape = False
            elif ch == "\\":
                escape = True
            elif ch == '"':
                in_string = False
            continue

        if ch == '"':
            in_string = True
        elif ch == "{":
            if depth == 0:
                start = i
            depth += 1
        elif ch == "}":
            # a stray closer before any opener is ignored
            if depth == 0:
                continue
            depth -= 1
            if depth == 0 and start != -1:
                return text[start : i + 1]

    return ""


def sanitize_json_string(text: str) -> str:
    """Escape literal newline, CR and tab characters that sit inside JSON strings."""
    out: list[str] = []
    in_string = False
    escape = False

    for ch in text:
        if in_string:
            if escape:
                escape = False
            elif ch == "\\":
                escape = True
            elif ch == '"':
                in_string = False
            elif ch in _CONTROL_ESCAPES:
                out.append(_CONTROL_ESCAPES[ch])
                continue
        elif ch == '"':
            in_string = True
        out.append(ch)

    return "".join(out)


def try_parse_json(text: str) -> Any | None:
    try:
        return json.loads(text)
    except ValueError:
        pass
    try:
        return json.loads(sanitize_json_string(text))
    except ValueError:
        return None
