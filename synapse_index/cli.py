"""
SynapseIndex CLI - Command-line interface for indexing and retrieval.

Usage:
    python -m synapse_index [--json] [--storage-path PATH] [--backend NAME] <command>

    python -m synapse_index index --source zenith --type markdown --file notes.md
    python -m synapse_index index --source chat --type conversation "some text"
    python -m synapse_index search "quick fox" [--source S] [--type T] [--limit N] [--threshold X]
    python -m synapse_index context "quick fox" [--source chat]
    python -m synapse_index click <chunk_id>
    python -m synapse_index suggest [--source chat] [terms ...]
    python -m synapse_index linked <chunk_id>
    python -m synapse_index delete <chunk_id>
    python -m synapse_index stats
    python -m synapse_index clear

Global Options:
    --json              Output as JSON for automation/scripting
    --storage-path PATH Directory holding the index (sets SYNAPSE_STORAGE_PATH)
    --backend NAME      Storage backend: json or sqlite
"""

import sys
import asyncio
import argparse
import json
from pathlib import Path
from typing import Any, Dict, List, Optional

from .config import Settings
from .engine import SynapseEngine, open_engine
from .logging_config import setup_logging


def _parse_metadata(pairs: Optional[List[str]]) -> Dict[str, str]:
    metadata = {}
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise ValueError(f"metadata must be KEY=VALUE, got {pair!r}")
        metadata[key] = value
    return metadata


async def run_command(args: argparse.Namespace, engine: SynapseEngine) -> Any:
    """Dispatch a parsed command to the engine."""
    if args.command == "index":
        if args.file:
            path = Path(args.file)
            content = path.read_text(encoding="utf-8")
            metadata = {"filename": path.name}
        else:
            content = args.text or ""
            metadata = {}
        metadata.update(_parse_metadata(args.meta))
        return await engine.index(args.source, args.type, content, metadata)

    if args.command == "search":
        options: Dict[str, Any] = {"source": args.source, "type": args.type}
        if args.limit is not None:
            options["limit"] = args.limit
        if args.threshold is not None:
            options["threshold"] = args.threshold
        return await engine.search(args.query, **options)

    if args.command == "context":
        return await engine.get_active_context(args.query, args.source)

    if args.command == "click":
        recorded = await engine.record_interaction(args.chunk_id)
        return {"chunk_id": args.chunk_id, "recorded": recorded}

    if args.command == "suggest":
        return engine.get_smart_suggestions(args.source, args.terms)

    if args.command == "linked":
        return engine.get_linked_sources(args.chunk_id)

    if args.command == "delete":
        return await engine.delete_source(args.chunk_id)

    if args.command == "stats":
        return engine.stats()

    if args.command == "clear":
        await engine.clear()
        return {"status": "cleared"}

    raise ValueError(f"Unknown command: {args.command}")


def _preview(text: str, length: int = 80) -> str:
    text = " ".join(text.split())
    return text if len(text) <= length else text[:length - 3] + "..."


def format_result(command: str, result: Any) -> str:
    """Human-readable rendering of a command result."""
    lines = []

    if command == "index":
        if result["status"] == "skipped":
            return "Nothing to index (empty content)"
        lines.append(f"Indexed {len(result['chunks'])} chunk(s), {len(result['links'])} new link(s)")
        for chunk in result["chunks"]:
            lines.append(f"  {chunk['id']}  [{', '.join(chunk['keywords'][:5])}]")
        if not result["persisted"]:
            lines.append("Warning: index was not saved to disk")

    elif command in ("search", "context"):
        if not result:
            return "No results"
        for i, item in enumerate(result, 1):
            lines.append(f"{i}. [{item['relevance']:.1f}] {item['id']} ({item['source']}/{item['type']})")
            lines.append(f"   {_preview(item['content'])}")
            lines.append(f"   {item['explanation']}")

    elif command == "click":
        state = "recorded" if result["recorded"] else "unknown chunk, ignored"
        lines.append(f"{result['chunk_id']}: {state}")

    elif command == "suggest":
        if not result:
            return "No suggestions yet"
        for item in result:
            lines.append(f"- {item['id']} ({item['access_count']} clicks): {_preview(item['content'], 60)}")

    elif command == "linked":
        if not result:
            return "No linked chunks"
        for link in result:
            target = link["chunk"]["id"] if link["chunk"] else "(deleted)"
            lines.append(f"- {target}  strength={link['strength']:.2f}  shared={', '.join(link['shared_keywords'])}")

    elif command == "delete":
        if result["status"] == "not_found":
            return f"No chunk with id {result['chunk_id']}"
        lines.append(f"Deleted {result['chunk_id']} ({result['removed_links']} link(s) removed)")

    elif command == "stats":
        lines.append(f"Chunks: {result['total_chunks']}")
        lines.append(f"Links: {result['total_links']}")
        lines.append(f"By source: {result['sources']}")
        if result["top_search_terms"]:
            terms = ", ".join(f"{t['term']} ({t['count']})" for t in result["top_search_terms"])
            lines.append(f"Top search terms: {terms}")
        lines.append(f"Cache hit rate (approx.): {result['cache_hit_rate']}%")
        lines.append(f"Disk usage: {result['disk_usage']} KB")

    elif command == "clear":
        lines.append("Index cleared")

    return "\n".join(lines)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="SynapseIndex CLI")

    # Global options
    parser.add_argument("--json", action="store_true", help="Output as JSON")
    parser.add_argument("--storage-path", help="Directory holding the index")
    parser.add_argument("--backend", choices=["json", "sqlite"], help="Storage backend")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    index_parser = subparsers.add_parser("index", help="Index content")
    index_parser.add_argument("text", nargs="?", help="Text to index (or use --file)")
    index_parser.add_argument("--file", help="Read content from a file")
    index_parser.add_argument("--source", default="zenith", help="Source tag")
    index_parser.add_argument("--type", default="markdown", help="Content type")
    index_parser.add_argument("--meta", action="append", metavar="KEY=VALUE",
                              help="Metadata entry (repeatable)")

    search_parser = subparsers.add_parser("search", help="Search indexed content")
    search_parser.add_argument("query", help="Search query")
    search_parser.add_argument("--source", help="Only this source tag")
    search_parser.add_argument("--type", help="Only this content type")
    search_parser.add_argument("--limit", type=int, help="Maximum results")
    search_parser.add_argument("--threshold", type=float, help="Minimum similarity")

    context_parser = subparsers.add_parser("context", help="Get active context for a query")
    context_parser.add_argument("query", help="Current input")
    context_parser.add_argument("--source", default="chat", help="Consumer of the context")

    click_parser = subparsers.add_parser("click", help="Record a click on a chunk")
    click_parser.add_argument("chunk_id")

    suggest_parser = subparsers.add_parser("suggest", help="Suggest frequently used content")
    suggest_parser.add_argument("terms", nargs="*", help="Recently used terms")
    suggest_parser.add_argument("--source", default="chat", help="Current module")

    linked_parser = subparsers.add_parser("linked", help="Show chunks linked to a chunk")
    linked_parser.add_argument("chunk_id")

    delete_parser = subparsers.add_parser("delete", help="Delete a chunk")
    delete_parser.add_argument("chunk_id")

    subparsers.add_parser("stats", help="Show index statistics")
    subparsers.add_parser("clear", help="Delete all indexed content")

    return parser


async def _run(args: argparse.Namespace, config: Settings) -> Any:
    engine = await open_engine(config)
    try:
        return await run_command(args, engine)
    finally:
        await engine.close()


def main(argv: Optional[List[str]] = None):
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    overrides: Dict[str, Any] = {}
    if args.storage_path:
        overrides["storage_path"] = args.storage_path
    if args.backend:
        overrides["storage_backend"] = args.backend
    config = Settings(**overrides)

    setup_logging(config.log_level, config.log_structured)

    try:
        result = asyncio.run(_run(args, config))
    except (OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)

    if args.json:
        print(json.dumps(result, default=str))
    else:
        print(format_result(args.command, result))


if __name__ == "__main__":
    main()
