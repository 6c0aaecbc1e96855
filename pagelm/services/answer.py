"""
Answer payload normalization.

Assistant turns arrive either as plain markdown or as a JSON envelope
{"answer": str, "flashcards": [...], "sources": [...]}, sometimes embedded
in surrounding text. normalize_answer() maps every variant onto
NormalizedAnswer(md, flashcards, sources).
"""
from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

from pagelm.models.chat import FlashCard, NormalizedAnswer, RagSource
from pagelm.services.lenient_json import extract_first_json_object, try_parse_json

logger = logging.getLogger(__name__)


def _valid_items(model, items: Any) -> list:
    if not isinstance(items, list):
        return []
    parsed = []
    for item in items:
        try:
            parsed.append(model.model_validate(item))
        except ValidationError:
            logger.debug("Dropping malformed %s entry: %r", model.__name__, item)
    return parsed


def _from_mapping(obj: Any) -> NormalizedAnswer | None:
    if not isinstance(obj, dict):
        return None
    md = obj.get("answer") or obj.get("html") or ""
    return NormalizedAnswer(
        md=str(md),
        flashcards=_valid_items(FlashCard, obj.get("flashcards")),
        sources=_valid_items(RagSource, obj.get("sources")),
    )


def normalize_answer(payload: Any) -> NormalizedAnswer:
    if isinstance(payload, str):
        text = payload.strip()

        direct = _from_mapping(try_parse_json(text))
        if direct is not None:
            return direct

        inner = extract_first_json_object(text)
        if inner:
            extracted = _from_mapping(try_parse_json(inner))
            if extracted is not None:
                return extracted

        return NormalizedAnswer(md=text)

    return _from_mapping(payload) or NormalizedAnswer()
