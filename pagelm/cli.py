"""
Command-line front end for a PageLM backend.

Usage:
    pagelm subjects list
    pagelm sources upload <subject> notes.pdf --type material
    pagelm chat <subject> "What is osmosis?"
    pagelm tool quiz <subject> --topic Cells --length short
    pagelm graph layout <subject>
    pagelm columns toggle graph
"""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from pagelm.config import settings
from pagelm.db.preferences import SQLitePreferenceStore
from pagelm.models.flashcard import FlashcardCreate
from pagelm.models.subject import SearchMode, SourceType
from pagelm.models.tool import ToolConfig, ToolKind, ToolStatus
from pagelm.services.api_client import PageLMClient, PageLMError
from pagelm.services.chat_session import ChatSession
from pagelm.services.graph_column import GraphColumn
from pagelm.services.graph_layout import force_layout
from pagelm.services.layout import Column, ColumnLayout
from pagelm.services.model_choice import ModelChoice
from pagelm.services.subject_context import SubjectContext
from pagelm.services.tools import DISPLAY_NAMES
from pagelm.services.tools_panel import ToolsPanel

logger = logging.getLogger(__name__)


def _dump(data) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False, default=str))


async def _context(api: PageLMClient, subject_id: str) -> SubjectContext:
    ctx = SubjectContext(api)
    await ctx.load_subject(subject_id)
    return ctx


# --- subjects ---


async def cmd_subjects(args, api: PageLMClient) -> None:
    if args.action == "list":
        for s in await api.list_subjects():
            print(f"{s.id}\t{s.name}\t{s.source_count} sources")
    elif args.action == "create":
        s = await api.create_subject(args.name)
        print(f"Created {s.name} -> /subject/{s.id}")
    elif args.action == "rename":
        s = await api.rename_subject(args.subject, args.name)
        print(f"Renamed to {s.name}")
    elif args.action == "delete":
        await api.delete_subject(args.subject)
        print(f"Deleted {args.subject}")


# --- sources ---


async def cmd_sources(args, api: PageLMClient) -> None:
    ctx = await _context(api, args.subject)
    if args.action == "list":
        source_type = SourceType(args.type) if args.type else None
        for s in ctx.sources_of_type(source_type):
            print(f"{s.id}\t{s.source_type.value}\t{s.display_name}")
    elif args.action == "upload":
        warnings = await ctx.upload_sources([Path(p) for p in args.files], SourceType(args.type or "material"))
        for w in warnings or []:
            print(f"warning: {w}", file=sys.stderr)
        print(f"{len(ctx.sources)} sources in {ctx.subject.name}")
    elif args.action == "remove":
        await ctx.remove_source(args.source)
        print(f"Removed {args.source}")
    elif args.action == "search":
        state = await ctx.web_search(args.query, SearchMode(args.mode))
        ctx.streams.close_all()
        if state.error:
            raise PageLMError(state.error)
        for hit in state.results:
            print(f"- {hit.title} <{hit.url}>")
        if state.source_id:
            print(f"Saved as source {state.source_id}")


# --- chat ---


async def cmd_chat(args, api: PageLMClient) -> None:
    ctx = await _context(api, args.subject)
    models = ModelChoice()
    if args.provider:
        await models.load(api)
        models.select(args.provider, args.model or "")
    session = ChatSession(ctx, models)
    if args.chat:
        await session.select_chat(args.chat)
    try:
        answer = await session.ask(args.question, timeout=args.timeout)
    finally:
        ctx.streams.close_all()
    if answer is None:
        raise PageLMError(session.error or "no answer")
    for step in answer.agent_steps:
        print(f"[{step.phase}] {step.detail or ''}".rstrip(), file=sys.stderr)
    print(answer.content)
    if answer.sources:
        print("\nSources:")
        for src in answer.sources:
            page = f" p.{src.page_number}" if src.page_number else ""
            print(f"  - {src.source_file}{page}")
    for card in answer.flashcards:
        print(f"\nQ: {card.q}\nA: {card.a}")
    print(f"\nchat id: {ctx.active_chat_id}", file=sys.stderr)


async def cmd_chats(args, api: PageLMClient) -> None:
    ctx = await _context(api, args.subject)
    session = ChatSession(ctx)
    if args.action == "rename":
        await session.rename_chat(args.chat, args.title)
    elif args.action == "delete":
        await session.delete_chat(args.chat)
    else:
        await ctx.refresh_chats()
    for c in ctx.chats:
        print(f"{c.id}\t{c.display_title}")


# --- tools ---


async def cmd_tool(args, api: PageLMClient) -> None:
    ctx = await _context(api, args.subject)
    panel = ToolsPanel(ctx)
    config = ToolConfig(
        topic=args.topic or "",
        difficulty=args.difficulty,
        length=args.length,
        source_ids=args.source or [],
        focus_area=args.focus,
        additional_instructions=args.instructions,
    )
    key = await panel.start(ToolKind(args.kind), config)
    try:
        card = await asyncio.wait_for(panel.wait(key), args.timeout)
    finally:
        panel.dispose()
    if card is None or card.status != ToolStatus.READY:
        raise PageLMError(card.error if card else "tool did not start")
    print(card.label)
    result = card.result
    if hasattr(result, "model_dump"):
        _dump(result.model_dump(mode="json"))
    elif isinstance(result, list):
        _dump([r.model_dump(mode="json") for r in result])


async def cmd_tools(args, api: PageLMClient) -> None:
    for t in await api.list_tools(args.subject):
        print(f"{t.id}\t{DISPLAY_NAMES[t.tool]}\t{t.topic}")


# --- graph ---


async def cmd_graph(args, api: PageLMClient) -> None:
    ctx = await _context(api, args.subject)
    column = GraphColumn(ctx)
    try:
        await column.load()
        if args.action == "rebuild":
            if await column.rebuild():
                await column.wait_idle(args.timeout)
            if column.error:
                raise PageLMError(column.error)
        if column.graph is None:
            print("No graph yet")
            return
        if args.action == "layout":
            _dump(force_layout(column.graph, seed=args.seed).model_dump(mode="json"))
        else:
            for n in column.graph.nodes:
                print(f"{n.id}\t{n.category}\t{n.label}")
            print(f"{len(column.graph.nodes)} nodes, {len(column.graph.edges)} edges")
    finally:
        ctx.streams.close_all()


# --- flashcards ---


async def cmd_flashcards(args, api: PageLMClient) -> None:
    if args.action == "list":
        for c in await api.list_flashcards(args.subject):
            print(f"{c.id}\t{c.question}\t{c.answer}")
    elif args.action == "add":
        c = await api.create_flashcard(
            args.subject, FlashcardCreate(question=args.question, answer=args.answer, tag=args.tag)
        )
        print(f"Saved {c.id}")
    elif args.action == "delete":
        await api.delete_flashcard(args.subject, args.card)
        print(f"Deleted {args.card}")


# --- misc ---


async def cmd_transcribe(args, api: PageLMClient) -> None:
    res = await api.transcribe(args.subject, Path(args.file))
    if not res.ok:
        raise PageLMError(res.error or "transcription failed")
    print(res.transcription or "")


async def cmd_models(args, api: PageLMClient) -> None:
    res = await api.list_models()
    for p in res.providers:
        mark = "*" if p.id == res.default_provider else " "
        print(f"{mark} {p.id}\t{p.name}\t{p.default_model}")


async def cmd_columns(args, api: PageLMClient) -> None:
    layout = await ColumnLayout.load(SQLitePreferenceStore())
    if args.action == "toggle":
        if not await layout.toggle(Column(args.column)):
            print("At least one column must stay open", file=sys.stderr)
    for col in Column:
        print(f"{col.value}\t{'collapsed' if layout.is_collapsed(col) else 'open'}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="pagelm", description="PageLM study assistant client")
    parser.add_argument("--backend", help=f"Backend URL (default {settings.backend_url})")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("subjects", help="List and manage subjects")
    p.set_defaults(func=cmd_subjects)
    acts = p.add_subparsers(dest="action", required=True)
    acts.add_parser("list")
    acts.add_parser("create").add_argument("name")
    a = acts.add_parser("rename")
    a.add_argument("subject")
    a.add_argument("name")
    acts.add_parser("delete").add_argument("subject")

    p = sub.add_parser("sources", help="Manage a subject's sources")
    p.set_defaults(func=cmd_sources)
    acts = p.add_subparsers(dest="action", required=True)
    a = acts.add_parser("list")
    a.add_argument("subject")
    a.add_argument("--type", choices=[t.value for t in SourceType])
    a = acts.add_parser("upload")
    a.add_argument("subject")
    a.add_argument("files", nargs="+")
    a.add_argument("--type", choices=["material", "exercise"])
    a = acts.add_parser("remove")
    a.add_argument("subject")
    a.add_argument("source")
    a = acts.add_parser("search", help="Run a web search and save results as a source")
    a.add_argument("subject")
    a.add_argument("query")
    a.add_argument("--mode", choices=[m.value for m in SearchMode], default="quick")

    p = sub.add_parser("chat", help="Ask a question about a subject")
    p.set_defaults(func=cmd_chat)
    p.add_argument("subject")
    p.add_argument("question")
    p.add_argument("--chat", help="Continue an existing chat")
    p.add_argument("--provider")
    p.add_argument("--model")
    p.add_argument("--timeout", type=float, default=300.0)

    p = sub.add_parser("chats", help="List, rename and delete chats")
    p.set_defaults(func=cmd_chats)
    acts = p.add_subparsers(dest="action", required=True)
    acts.add_parser("list").add_argument("subject")
    a = acts.add_parser("rename")
    a.add_argument("subject")
    a.add_argument("chat")
    a.add_argument("title")
    a = acts.add_parser("delete")
    a.add_argument("subject")
    a.add_argument("chat")

    p = sub.add_parser("tool", help="Generate a study tool and wait for it")
    p.set_defaults(func=cmd_tool)
    p.add_argument("kind", choices=[k.value for k in ToolKind])
    p.add_argument("subject")
    p.add_argument("--topic")
    p.add_argument("--difficulty", choices=["easy", "medium", "hard"])
    p.add_argument("--length", choices=["short", "medium", "long"], default="medium")
    p.add_argument("--source", action="append", help="Restrict to a source id (repeatable)")
    p.add_argument("--focus")
    p.add_argument("--instructions")
    p.add_argument("--timeout", type=float, default=600.0)

    p = sub.add_parser("tools", help="Saved study tools")
    p.set_defaults(func=cmd_tools)
    acts = p.add_subparsers(dest="action", required=True)
    acts.add_parser("list").add_argument("subject")

    p = sub.add_parser("graph", help="Subject knowledge graph")
    p.set_defaults(func=cmd_graph)
    p.add_argument("action", choices=["show", "rebuild", "layout"])
    p.add_argument("subject")
    p.add_argument("--seed", type=int, default=0)
    p.add_argument("--timeout", type=float, default=600.0)

    p = sub.add_parser("flashcards", help="Saved flashcards")
    p.set_defaults(func=cmd_flashcards)
    acts = p.add_subparsers(dest="action", required=True)
    acts.add_parser("list").add_argument("subject")
    a = acts.add_parser("add")
    a.add_argument("subject")
    a.add_argument("question")
    a.add_argument("answer")
    a.add_argument("--tag", default="")
    a = acts.add_parser("delete")
    a.add_argument("subject")
    a.add_argument("card")

    p = sub.add_parser("transcribe", help="Transcribe an audio file")
    p.set_defaults(func=cmd_transcribe)
    p.add_argument("subject")
    p.add_argument("file")

    p = sub.add_parser("models", help="List LLM providers")
    p.set_defaults(func=cmd_models)

    p = sub.add_parser("columns", help="Workspace column layout")
    p.set_defaults(func=cmd_columns)
    acts = p.add_subparsers(dest="action", required=True)
    acts.add_parser("show")
    acts.add_parser("toggle").add_argument("column", choices=[c.value for c in Column])

    return parser


async def _run(args) -> None:
    async with PageLMClient(args.backend) as api:
        logger.debug("Using backend %s", api.base_url)
        await args.func(args, api)


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else settings.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    try:
        asyncio.run(_run(args))
    except PageLMError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    except asyncio.TimeoutError:
        print("error: timed out", file=sys.stderr)
        return 1
    return 0
